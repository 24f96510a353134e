from typing import Dict, List, Optional, Tuple

from reservation_ledger.bookings.ledger import BookingLedger
from reservation_ledger.bookings.schemas import Booking, BookingStatus
from reservation_ledger.inventory.service import SeatInventory
from reservation_ledger.logger_config import get_logger
from reservation_ledger.waitlist.schemas import WaitlistEntry

log = get_logger("waitlist")

QueueKey = Tuple[str, str]

class WaitlistQueue:
    """FIFO waitlists keyed by (service_id, date).

    Ranks are handed out at enqueue time as ``last rank + 1`` and are never
    renumbered, so they order entries but do not report live positions.
    """

    def __init__(self, inventory: SeatInventory, ledger: BookingLedger):
        self.inventory = inventory
        self.ledger = ledger
        self._queues: Dict[QueueKey, List[WaitlistEntry]] = {}

    def _next_rank(self, key: QueueKey) -> int:
        queue = self._queues.get(key)
        return queue[-1].rank + 1 if queue else 1

    def enqueue(self, booking: Booking) -> int:
        """Append a waitlisted booking and return its rank"""
        key = (booking.service_id, booking.date)
        entry = WaitlistEntry(
            pnr=booking.pnr,
            service_id=booking.service_id,
            date=booking.date,
            num_seats=booking.num_passengers,
            rank=self._next_rank(key)
        )
        self._queues.setdefault(key, []).append(entry)
        log.bind(pnr=booking.pnr).info(
            f"Placed on waitlist for {booking.service_id} {booking.date} (WL #{entry.rank})"
        )
        return entry.rank

    def restore(self, booking: Booking, rank: Optional[int] = None) -> int:
        """Re-enqueue a persisted booking, keeping its stored rank when it still fits FIFO order"""
        key = (booking.service_id, booking.date)
        next_rank = self._next_rank(key)
        if rank is None or rank < next_rank:
            if rank is not None:
                log.bind(pnr=booking.pnr).warning(
                    f"Stored rank {rank} out of order, re-deriving as {next_rank}"
                )
            return self.enqueue(booking)

        entry = WaitlistEntry(
            pnr=booking.pnr,
            service_id=booking.service_id,
            date=booking.date,
            num_seats=booking.num_passengers,
            rank=rank
        )
        self._queues.setdefault(key, []).append(entry)
        return rank

    def promote(self, service_id: str, date: str, available_seats: int) -> List[str]:
        """Confirm waitlisted bookings that fit in ``available_seats``, in rank order.

        Entries too large for the remaining seats are skipped but keep their
        place; a later, smaller entry may still be promoted. Returns the
        promoted PNRs.
        """
        key = (service_id, date)
        queue = self._queues.get(key)
        if not queue or available_seats <= 0:
            return []

        remaining = available_seats
        retained: List[WaitlistEntry] = []
        promoted: List[str] = []

        for entry in queue:
            if remaining < entry.num_seats:
                retained.append(entry)
                continue

            booking = self.ledger.get(entry.pnr)
            if booking is None or booking.status != BookingStatus.WAITLIST:
                log.bind(pnr=entry.pnr).warning("Dropping stale waitlist entry")
                continue

            if not self.inventory.reserve(service_id, date, entry.num_seats):
                log.bind(pnr=entry.pnr).error(
                    f"Seat commit failed with {remaining} seat(s) expected free, keeping WL #{entry.rank}"
                )
                retained.append(entry)
                continue

            self.ledger.set_status(entry.pnr, BookingStatus.CONFIRMED)
            remaining -= entry.num_seats
            promoted.append(entry.pnr)
            log.bind(pnr=entry.pnr).info(
                f"Promoted from WL #{entry.rank} ({entry.num_seats} seat(s)) on {service_id} {date}"
            )

        self._queues[key] = retained
        if promoted:
            log.info(f"Waitlist for {service_id} {date}: {len(retained)} entries remaining")
        return promoted

    def remove(self, pnr: str) -> bool:
        """Drop the entry for a PNR; False when it is not queued"""
        for key, queue in self._queues.items():
            for index, entry in enumerate(queue):
                if entry.pnr == pnr:
                    del queue[index]
                    return True
        return False

    def drop_service(self, service_id: str) -> None:
        for key in [k for k in self._queues if k[0] == service_id]:
            del self._queues[key]

    def find(self, pnr: str) -> Optional[WaitlistEntry]:
        for queue in self._queues.values():
            for entry in queue:
                if entry.pnr == pnr:
                    return entry
        return None

    def entries(self, service_id: str, date: str) -> List[WaitlistEntry]:
        return list(self._queues.get((service_id, date), []))

    def all_entries(self) -> List[WaitlistEntry]:
        return [entry for queue in self._queues.values() for entry in queue]

    def __len__(self) -> int:
        return sum(len(queue) for queue in self._queues.values())
