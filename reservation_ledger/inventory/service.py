import threading
from typing import Dict, List

from reservation_ledger.exceptions import UnknownService
from reservation_ledger.inventory.schemas import SeatAllocation
from reservation_ledger.logger_config import get_logger
from reservation_ledger.services.schemas import ServiceDescriptor
from reservation_ledger.validation import is_valid_date, validate_date

log = get_logger("inventory")

class SeatInventory:
    """Date-scoped seat counts per service.

    A date is materialized at full capacity the first time it is referenced
    and is never removed afterwards. Counts stay within ``[0, capacity]``.
    """

    def __init__(self):
        self._capacity: Dict[str, int] = {}
        # service_id -> {date -> available seats}, dicts keep materialization order
        self._calendars: Dict[str, Dict[str, int]] = {}
        self._lock = threading.RLock()

    def register(self, descriptor: ServiceDescriptor) -> None:
        """Start tracking a service; an existing calendar is kept"""
        with self._lock:
            self._capacity[descriptor.service_id] = descriptor.capacity
            calendar = self._calendars.setdefault(descriptor.service_id, {})
            # capacity may shrink on re-registration
            for date, seats in calendar.items():
                calendar[date] = min(seats, descriptor.capacity)

    def unregister(self, service_id: str) -> None:
        with self._lock:
            self._capacity.pop(service_id, None)
            self._calendars.pop(service_id, None)

    def capacity(self, service_id: str) -> int:
        if service_id not in self._capacity:
            raise UnknownService(service_id)
        return self._capacity[service_id]

    def _calendar_entry(self, service_id: str, date: str) -> Dict[str, int]:
        validate_date(date)
        capacity = self.capacity(service_id)
        calendar = self._calendars[service_id]
        if date not in calendar:
            calendar[date] = capacity
        return calendar

    def available(self, service_id: str, date: str) -> int:
        """Seats left for the date, materializing it at full capacity if unseen"""
        with self._lock:
            return self._calendar_entry(service_id, date)[date]

    def reserve(self, service_id: str, date: str, count: int) -> bool:
        """Take ``count`` seats if that many are left; False leaves the count untouched"""
        if count <= 0:
            raise ValueError("Seat count must be positive")

        with self._lock:
            calendar = self._calendar_entry(service_id, date)
            if calendar[date] < count:
                return False
            calendar[date] -= count
            log.debug(f"Reserved {count} seat(s) on {service_id} {date}, {calendar[date]} left")
            return True

    def release(self, service_id: str, date: str, count: int) -> None:
        """Give seats back, never exceeding the service capacity"""
        if count <= 0:
            raise ValueError("Seat count must be positive")

        with self._lock:
            calendar = self._calendar_entry(service_id, date)
            capacity = self._capacity[service_id]
            released = calendar[date] + count
            if released > capacity:
                log.warning(
                    f"Release of {count} seat(s) on {service_id} {date} exceeds capacity, clamping to {capacity}"
                )
                released = capacity
            calendar[date] = released

    def calendar(self, service_id: str) -> List[SeatAllocation]:
        """All materialized dates for a service, oldest first"""
        self.capacity(service_id)
        with self._lock:
            return [
                SeatAllocation(date=date, available_seats=seats)
                for date, seats in self._calendars[service_id].items()
            ]

    def restore(self, service_id: str, allocations: List[SeatAllocation]) -> int:
        """Load a persisted calendar; bad entries are skipped, returns the number loaded"""
        capacity = self.capacity(service_id)
        loaded = 0
        with self._lock:
            calendar = self._calendars[service_id]
            for allocation in allocations:
                if not is_valid_date(allocation.date):
                    log.warning(f"Skipping seat allocation for {service_id}: invalid date {allocation.date!r}")
                    continue
                calendar[allocation.date] = max(0, min(allocation.available_seats, capacity))
                loaded += 1
        return loaded
