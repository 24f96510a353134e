import threading
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Sequence, Union

from pydantic import ValidationError

from reservation_ledger.auth.schemas import Actor
from reservation_ledger.auth.service import require_operator
from reservation_ledger.bookings.ledger import BookingLedger
from reservation_ledger.bookings.pnr import (
    FileCounterStore, MemoryCounterStore, PNRGenerator, SqlCounterStore
)
from reservation_ledger.bookings.schemas import (
    Booking, BookingRequest, BookingResult, BookingStatus, CancellationResult,
    GroupBookingOutcome, Passenger
)
from reservation_ledger.config import Settings, settings
from reservation_ledger.database import create_session_factory
from reservation_ledger.exceptions import (
    AlreadyCancelled, CorruptedRecord, InsufficientCapacity, InvalidPassenger, PaymentDeclined,
    PersistenceFailed, ReservationError, UnknownService
)
from reservation_ledger.inventory.service import SeatInventory
from reservation_ledger.journal.service import JournalAction, JournalEntry, JournalOutcome, TransactionJournal
from reservation_ledger.logger_config import get_logger
from reservation_ledger.payments.gateway import PaymentGateway, SimulatedPaymentGateway
from reservation_ledger.services.catalog import ServiceCatalog, default_services
from reservation_ledger.services.schemas import ServiceAvailability, ServiceDescriptor
from reservation_ledger.snapshot.schemas import ServiceSnapshot, Snapshot
from reservation_ledger.snapshot.store import JsonSnapshotStore, SnapshotStore
from reservation_ledger.validation import is_valid_date, validate_date
from reservation_ledger.waitlist.queue import WaitlistQueue
from reservation_ledger.waitlist.schemas import WaitlistEntry

log = get_logger("engine")

# Journal key for payment failures when PNRs are issued lazily
UNISSUED_PNR = "UNISSUED"
CENTS = Decimal("0.01")

PassengerInput = Union[Passenger, dict]

class ReservationEngine:
    """Seat reservation and waitlist engine.

    Owns the seat inventory, booking ledger and waitlist queues for the
    services in its catalog. Every public operation runs under one engine
    lock, and every successful mutation is persisted to the snapshot store
    before the call returns. A failed save restores the state from before the
    call.
    """

    def __init__(
        self,
        catalog: Optional[ServiceCatalog] = None,
        payment_gateway: Optional[PaymentGateway] = None,
        pnr_generator: Optional[PNRGenerator] = None,
        journal: Optional[TransactionJournal] = None,
        snapshot_store=None,
        config: Optional[Settings] = None
    ):
        self.config = config or settings
        self.catalog = catalog or ServiceCatalog()
        self.payments = payment_gateway or SimulatedPaymentGateway()
        self.pnr_generator = pnr_generator or PNRGenerator(
            MemoryCounterStore(), floor=self.config.PNR_FLOOR
        )
        self.journal = journal or TransactionJournal()
        self.snapshot_store = snapshot_store
        self._lock = threading.RLock()
        self._reset_state()

    @classmethod
    def from_settings(
        cls,
        config: Optional[Settings] = None,
        payment_gateway: Optional[PaymentGateway] = None,
        seed_defaults: bool = True
    ) -> "ReservationEngine":
        """Build an engine on the configured stores and load the last snapshot"""
        config = config or settings
        if config.SNAPSHOT_BACKEND == "sql":
            session_factory = create_session_factory(config.DATABASE_URL)
            snapshot_store = SnapshotStore(session_factory)
            counter_store = SqlCounterStore(session_factory)
            journal = TransactionJournal(session_factory)
        else:
            snapshot_store = JsonSnapshotStore(config.SNAPSHOT_PATH)
            counter_store = FileCounterStore(config.PNR_COUNTER_FILE)
            journal = TransactionJournal()

        engine = cls(
            payment_gateway=payment_gateway,
            pnr_generator=PNRGenerator(counter_store, floor=config.PNR_FLOOR),
            journal=journal,
            snapshot_store=snapshot_store,
            config=config
        )
        engine.load()

        if seed_defaults and len(engine.catalog) == 0:
            for descriptor in default_services():
                engine.add_service(descriptor)
        return engine

    def _reset_state(self) -> None:
        self.inventory = SeatInventory()
        for descriptor in self.catalog.all():
            self.inventory.register(descriptor)
        self.ledger = BookingLedger()
        self.waitlist = WaitlistQueue(self.inventory, self.ledger)

    # ================================
    # Booking
    # ================================
    def book(self, service_id: str, date: str, passengers: Sequence[PassengerInput]) -> BookingResult:
        """Book seats for a group of passengers on one service date.

        Confirms when enough seats are left, otherwise places the booking on
        the waitlist. The full fare is charged in both cases; a declined
        payment raises PaymentDeclined and creates no booking.
        If the snapshot cannot be saved the booking is rolled back, the charge
        is refunded and PersistenceFailed is raised.
        """
        with self._lock:
            validate_date(date)
            descriptor = self.catalog.resolve(service_id)
            passenger_list = self._validate_passengers(passengers)
            seats = len(passenger_list)
            fare = descriptor.base_fare * seats
            checkpoint = self._checkpoint()

            # Eager issuance consumes a PNR even if the payment is declined
            pnr = None
            if not self.config.LAZY_PNR_ISSUANCE:
                pnr = self.pnr_generator.next()
                self.journal.record(pnr, JournalAction.BOOKING_ATTEMPT, JournalOutcome.PENDING_PAYMENT)

            try:
                self._require_capacity(service_id, date, seats)
                has_capacity = True
            except InsufficientCapacity:
                has_capacity = False

            if not self.payments.charge(fare):
                self.journal.record(
                    pnr or UNISSUED_PNR, JournalAction.PAYMENT_FAILED, JournalOutcome.ROLLED_BACK
                )
                log.bind(pnr=pnr or "").info(
                    f"Payment declined for {service_id} {date}, booking not issued"
                )
                raise PaymentDeclined(fare, pnr)

            if pnr is None:
                pnr = self.pnr_generator.next()
                self.journal.record(pnr, JournalAction.BOOKING_ATTEMPT, JournalOutcome.PENDING_PAYMENT)

            status = BookingStatus.WAITLIST
            if has_capacity:
                if self.inventory.reserve(service_id, date, seats):
                    status = BookingStatus.CONFIRMED
                else:
                    log.bind(pnr=pnr).error("Seat reservation failed after capacity check, waitlisting")

            booking = self.ledger.create(pnr, service_id, date, passenger_list, fare, status)
            rank = None
            if status == BookingStatus.CONFIRMED:
                self.journal.record(pnr, JournalAction.PAYMENT_SUCCESS, JournalOutcome.COMMITTED)
            else:
                rank = self.waitlist.enqueue(booking)
                self.journal.record(pnr, JournalAction.PAYMENT_SUCCESS, JournalOutcome.WAITLISTED)

            try:
                self._commit(checkpoint, pnr)
            except PersistenceFailed:
                self._issue_refund(pnr, fare)
                raise
            return BookingResult(pnr=pnr, status=status, total_fare=fare, waitlist_rank=rank)

    def book_groups(self, requests: Sequence[Union[BookingRequest, dict]]) -> List[GroupBookingOutcome]:
        """Book several independent groups; one failing group does not stop the others"""
        if not requests:
            raise ValueError("At least one booking group is required")
        if len(requests) > self.config.MAX_GROUPS_PER_REQUEST:
            raise ValueError(
                f"At most {self.config.MAX_GROUPS_PER_REQUEST} groups can be booked at once"
            )

        outcomes = []
        for index, raw in enumerate(requests, start=1):
            try:
                request = raw if isinstance(raw, BookingRequest) else BookingRequest.parse_obj(raw)
            except ValidationError as exc:
                log.info(f"Group {index} not booked: invalid request")
                outcomes.append(GroupBookingOutcome(
                    group_index=index,
                    error_code=InvalidPassenger.code,
                    error_message=str(exc)
                ))
                continue

            outcome = GroupBookingOutcome(group_index=index, request=request)
            try:
                outcome.result = self.book(request.service_id, request.date, request.passengers)
            except ReservationError as exc:
                log.info(f"Group {index} not booked: {exc.message}")
                outcome.error_code = exc.code
                outcome.error_message = exc.message
            outcomes.append(outcome)
        return outcomes

    def _validate_passengers(self, passengers: Sequence[PassengerInput]) -> List[Passenger]:
        if not passengers:
            raise InvalidPassenger("At least one passenger is required")
        limit = self.config.MAX_PASSENGERS_PER_BOOKING
        if len(passengers) > limit:
            raise InvalidPassenger(f"Maximum {limit} passengers per booking")

        validated = []
        for index, passenger in enumerate(passengers, start=1):
            if isinstance(passenger, Passenger):
                validated.append(passenger)
                continue
            try:
                validated.append(Passenger.parse_obj(passenger))
            except ValidationError as exc:
                raise InvalidPassenger(f"Passenger {index} is invalid: {exc}")
        return validated

    def _require_capacity(self, service_id: str, date: str, seats: int) -> None:
        available = self.inventory.available(service_id, date)
        if available < seats:
            raise InsufficientCapacity(
                f"{seats} seat(s) requested on {service_id} {date}, {available} left"
            )

    # ================================
    # Cancellation & Promotion
    # ================================
    def cancel(self, pnr: str) -> CancellationResult:
        """Cancel a booking, refund it and let the waitlist take any freed seats.

        Confirmed bookings are refunded at CANCELLATION_REFUND_RATE, waitlisted
        ones at WAITLIST_REFUND_RATE.
        """
        with self._lock:
            booking = self.ledger.find(pnr)
            previous = booking.status
            if previous == BookingStatus.CANCELLED:
                log.bind(pnr=pnr).info("Cancellation rejected, booking already cancelled")
                raise AlreadyCancelled(pnr)
            if previous == BookingStatus.CONFIRMED and booking.service_id not in self.catalog:
                raise UnknownService(booking.service_id)

            checkpoint = self._checkpoint()
            self.journal.record(pnr, JournalAction.CANCELLATION_ATTEMPT, JournalOutcome.PENDING_REFUND)

            released = 0
            promoted: List[str] = []
            if previous == BookingStatus.CONFIRMED:
                released = booking.num_passengers
                self.inventory.release(booking.service_id, booking.date, released)
                available = self.inventory.available(booking.service_id, booking.date)
                promoted = self.waitlist.promote(booking.service_id, booking.date, available)
                self.ledger.set_status(pnr, BookingStatus.CANCELLED)
                refund = self._refund_amount(booking.total_fare, self.config.CANCELLATION_REFUND_RATE)
                for promoted_pnr in promoted:
                    self.journal.record(promoted_pnr, JournalAction.PROMOTION, JournalOutcome.CONFIRMED)
                self.journal.record(pnr, JournalAction.CANCELLATION_SUCCESS, JournalOutcome.COMMITTED)
            else:
                if not self.waitlist.remove(pnr):
                    log.bind(pnr=pnr).warning("Waitlisted booking had no queue entry")
                self.ledger.set_status(pnr, BookingStatus.CANCELLED)
                refund = self._refund_amount(booking.total_fare, self.config.WAITLIST_REFUND_RATE)
                self.journal.record(pnr, JournalAction.CANCELLATION_SUCCESS_WL, JournalOutcome.COMMITTED)

            self._commit(checkpoint, pnr, *promoted)
            self._issue_refund(pnr, refund)
            log.bind(pnr=pnr).info(f"Cancelled {previous.value} booking, refund {refund}")
            return CancellationResult(
                pnr=pnr,
                previous_status=previous,
                refund_amount=refund,
                released_seats=released,
                promoted_pnrs=promoted
            )

    def promote_manually(self, service_id: str, date: str, actor: Optional[Actor] = None) -> List[str]:
        """Run a promotion pass with the seats currently left on a service date"""
        if actor is not None:
            require_operator(actor)

        with self._lock:
            validate_date(date)
            self.catalog.resolve(service_id)
            available = self.inventory.available(service_id, date)
            if available <= 0:
                log.info(f"No seats available on {service_id} {date} to promote the waitlist")
                return []

            checkpoint = self._checkpoint()
            promoted = self.waitlist.promote(service_id, date, available)
            for pnr in promoted:
                self.journal.record(pnr, JournalAction.PROMOTION, JournalOutcome.CONFIRMED)
            if promoted:
                self._commit(checkpoint, *promoted)
            return promoted

    @staticmethod
    def _refund_amount(fare: Decimal, rate: Decimal) -> Decimal:
        return (fare * rate).quantize(CENTS, rounding=ROUND_HALF_UP)

    def _issue_refund(self, pnr: str, amount: Decimal) -> None:
        # The cancellation stands whatever the gateway does with the refund
        try:
            self.payments.refund(amount)
        except Exception:
            log.bind(pnr=pnr).exception(f"Refund of {amount} failed")

    # ================================
    # Catalog administration
    # ================================
    def add_service(self, descriptor: ServiceDescriptor, actor: Optional[Actor] = None) -> None:
        if actor is not None:
            require_operator(actor)
        with self._lock:
            checkpoint = self._checkpoint()
            self.catalog.add(descriptor)
            self.inventory.register(descriptor)
            self._commit(checkpoint)

    def remove_service(self, service_id: str, actor: Optional[Actor] = None) -> ServiceDescriptor:
        """Withdraw a service; its bookings stay in the ledger"""
        if actor is not None:
            require_operator(actor)
        with self._lock:
            checkpoint = self._checkpoint()
            descriptor = self.catalog.remove(service_id)
            self.inventory.unregister(service_id)
            self.waitlist.drop_service(service_id)
            self._commit(checkpoint)
            return descriptor

    # ================================
    # Queries
    # ================================
    def find_booking(self, pnr: str) -> Booking:
        with self._lock:
            return self.ledger.find(pnr).copy(deep=True)

    def all_bookings(self, actor: Optional[Actor] = None) -> List[Booking]:
        """Every booking in insertion order"""
        if actor is not None:
            require_operator(actor)
        with self._lock:
            return [b.copy(deep=True) for b in self.ledger.all()]

    def availability(self, service_id: str, date: str) -> int:
        with self._lock:
            validate_date(date)
            self.catalog.resolve(service_id)
            return self.inventory.available(service_id, date)

    def search_services(self, source: str, destination: str, date: str) -> List[ServiceAvailability]:
        """Direct services between two stations with their seats left on a date"""
        with self._lock:
            validate_date(date)
            return [
                ServiceAvailability(
                    service=descriptor,
                    date=date,
                    available_seats=self.inventory.available(descriptor.service_id, date)
                )
                for descriptor in self.catalog.search(source, destination)
            ]

    def waitlist_entries(self, service_id: str, date: str) -> List[WaitlistEntry]:
        with self._lock:
            return self.waitlist.entries(service_id, date)

    def waitlist_entry(self, pnr: str) -> Optional[WaitlistEntry]:
        with self._lock:
            return self.waitlist.find(pnr)

    def transaction_history(self, pnr: str) -> List[JournalEntry]:
        return self.journal.history(pnr)

    # ================================
    # Snapshots
    # ================================
    def export_snapshot(self) -> Snapshot:
        with self._lock:
            return Snapshot(
                services=[
                    ServiceSnapshot(
                        descriptor=descriptor,
                        calendar=self.inventory.calendar(descriptor.service_id)
                    )
                    for descriptor in self.catalog.all()
                ],
                bookings=[b.copy(deep=True) for b in self.ledger.all()],
                pnr_counter=self.pnr_generator.current,
                waitlist=self.waitlist.all_entries()
            )

    def import_snapshot(self, snapshot: Snapshot) -> None:
        """Replace live bookings and seat counts with a snapshot.

        Waitlist queues are rebuilt from the Waitlist bookings in ledger order,
        keeping stored ranks when the snapshot carries them.
        """
        with self._lock:
            for service in snapshot.services:
                live = self.catalog.get(service.descriptor.service_id)
                if live is None:
                    self.catalog.add(service.descriptor)
                elif live != service.descriptor:
                    log.warning(
                        f"Service {live.service_id} differs from the snapshot, keeping the live "
                        f"descriptor (capacity {live.capacity}, fare {live.base_fare})"
                    )
            self._reset_state()
            for service in snapshot.services:
                self.inventory.restore(service.descriptor.service_id, service.calendar)

            stored_ranks = {entry.pnr: entry.rank for entry in snapshot.waitlist or []}
            highest_pnr = snapshot.pnr_counter
            skipped = 0
            for booking in snapshot.bookings:
                if not is_valid_date(booking.date) or booking.pnr in self.ledger:
                    log.bind(pnr=booking.pnr).warning("Skipping corrupted booking record")
                    skipped += 1
                    continue

                restored = booking.copy(deep=True)
                self.ledger.restore(restored)
                if restored.pnr.isdigit():
                    highest_pnr = max(highest_pnr, int(restored.pnr))

                if restored.status == BookingStatus.WAITLIST:
                    if restored.service_id in self.catalog:
                        self.waitlist.restore(restored, stored_ranks.get(restored.pnr))
                    else:
                        log.bind(pnr=restored.pnr).warning(
                            f"Waitlisted booking references unknown service {restored.service_id}"
                        )

            self.pnr_generator.advance_to(highest_pnr)
            log.info(
                f"Imported {len(self.ledger)} bookings, {len(self.waitlist)} waitlisted, "
                f"{skipped} skipped"
            )

    def load(self) -> bool:
        """Import the stored snapshot, if any"""
        if self.snapshot_store is None:
            return False
        try:
            snapshot = self.snapshot_store.load()
        except CorruptedRecord as exc:
            log.error(f"Stored snapshot is unreadable, refusing to start over it: {exc.message}")
            raise
        if snapshot is None:
            return False
        self.import_snapshot(snapshot)
        return True

    def _checkpoint(self) -> Optional[Snapshot]:
        if self.snapshot_store is None:
            return None
        return self.export_snapshot()

    def _commit(self, checkpoint: Optional[Snapshot], *pnrs: str) -> None:
        """Persist the live state, or restore ``checkpoint`` and raise PersistenceFailed"""
        if self.snapshot_store is None:
            return
        try:
            self.snapshot_store.save(self.export_snapshot())
        except Exception as exc:
            log.exception("Failed to persist snapshot, rolling back")
            self._rollback(checkpoint)
            for pnr in pnrs:
                self.journal.record(pnr, JournalAction.PERSIST_FAILED, JournalOutcome.ROLLED_BACK)
            raise PersistenceFailed(f"Snapshot could not be saved: {exc}") from exc

    def _rollback(self, checkpoint: Snapshot) -> None:
        self.catalog = ServiceCatalog([service.descriptor for service in checkpoint.services])
        self.import_snapshot(checkpoint)
