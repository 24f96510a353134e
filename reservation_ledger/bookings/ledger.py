from typing import Dict, List, Optional
from decimal import Decimal

from reservation_ledger.bookings.schemas import (
    ALLOWED_TRANSITIONS, INITIAL_STATUSES, Booking, BookingStatus, Passenger
)
from reservation_ledger.exceptions import BookingNotFound, InvalidTransition
from reservation_ledger.logger_config import get_logger

log = get_logger("ledger")

class BookingLedger:
    """Insertion-ordered store of bookings and their lifecycle status"""

    def __init__(self):
        self._bookings: Dict[str, Booking] = {}

    def create(
        self,
        pnr: str,
        service_id: str,
        date: str,
        passengers: List[Passenger],
        fare: Decimal,
        status: BookingStatus
    ) -> Booking:
        """Insert a new booking under an issued PNR"""
        if status not in INITIAL_STATUSES:
            raise InvalidTransition(pnr, "new", status.value)
        if pnr in self._bookings:
            raise ValueError(f"PNR '{pnr}' already exists in the ledger")

        booking = Booking(
            pnr=pnr,
            service_id=service_id,
            date=date,
            passengers=list(passengers),
            total_fare=fare,
            status=status
        )
        self._bookings[pnr] = booking
        log.bind(pnr=pnr).info(f"Created {status.value} booking on {service_id} {date}")
        return booking

    def restore(self, booking: Booking) -> None:
        """Append a persisted booking as-is"""
        if booking.pnr in self._bookings:
            raise ValueError(f"PNR '{booking.pnr}' already exists in the ledger")
        self._bookings[booking.pnr] = booking

    def find(self, pnr: str) -> Booking:
        booking = self._bookings.get(pnr)
        if booking is None:
            raise BookingNotFound(pnr)
        return booking

    def get(self, pnr: str) -> Optional[Booking]:
        return self._bookings.get(pnr)

    def set_status(self, pnr: str, new_status: BookingStatus) -> Booking:
        """Apply a lifecycle transition; illegal moves leave the record untouched"""
        booking = self.find(pnr)
        if new_status not in ALLOWED_TRANSITIONS[booking.status]:
            log.bind(pnr=pnr).info(
                f"Rejected transition {booking.status.value} -> {new_status.value}"
            )
            raise InvalidTransition(pnr, booking.status.value, new_status.value)

        booking.status = new_status
        return booking

    def all(self) -> List[Booking]:
        return list(self._bookings.values())

    def by_status(self, status: BookingStatus) -> List[Booking]:
        return [b for b in self._bookings.values() if b.status == status]

    def __len__(self) -> int:
        return len(self._bookings)

    def __contains__(self, pnr: str) -> bool:
        return pnr in self._bookings
