from decimal import Decimal

import pytest
from loguru import logger

from reservation_ledger.auth.schemas import Actor, ActorRole
from reservation_ledger.bookings.schemas import BookingStatus, Passenger
from reservation_ledger.config import Settings
from reservation_ledger.engine import UNISSUED_PNR, ReservationEngine
from reservation_ledger.exceptions import (
    AlreadyCancelled, BookingNotFound, CorruptedRecord, DuplicateService, InvalidDate, InvalidPassenger,
    PaymentDeclined, PermissionDenied, PersistenceFailed, UnknownService
)
from reservation_ledger.journal.service import JournalAction, JournalOutcome
from reservation_ledger.payments.gateway import AlwaysApprovePaymentGateway
from reservation_ledger.snapshot.schemas import ServiceSnapshot, Snapshot
from reservation_ledger.snapshot.store import JsonSnapshotStore

from tests.conftest import JOURNEY_DATE, PNR_FLOOR, make_passengers, make_service

OPERATOR = Actor(username="admin", role=ActorRole.OPERATOR)
CUSTOMER = Actor(username="user", role=ActorRole.CUSTOMER)


def _history(engine, pnr):
    return [(e.action, e.outcome) for e in engine.transaction_history(pnr)]


def test_confirm_waitlist_cancel_promote_scenario(engine, gateway):
    first = engine.book("X1", JOURNEY_DATE, make_passengers(2))
    assert first.status == BookingStatus.CONFIRMED
    assert first.total_fare == Decimal("100")
    assert first.waitlist_rank is None

    second = engine.book("X1", JOURNEY_DATE, make_passengers(1, prefix="Late"))
    assert second.status == BookingStatus.WAITLIST
    assert second.waitlist_rank == 1
    assert second.total_fare == Decimal("50")
    assert engine.availability("X1", JOURNEY_DATE) == 0

    result = engine.cancel(first.pnr)

    assert result.previous_status == BookingStatus.CONFIRMED
    assert result.released_seats == 2
    assert result.promoted_pnrs == [second.pnr]
    assert result.refund_amount == Decimal("80.00")
    assert engine.find_booking(first.pnr).status == BookingStatus.CANCELLED
    assert engine.find_booking(second.pnr).status == BookingStatus.CONFIRMED
    assert engine.availability("X1", JOURNEY_DATE) == 1
    assert engine.waitlist_entries("X1", JOURNEY_DATE) == []

    assert [c.amount for c in gateway.charges] == [Decimal("100"), Decimal("50")]
    assert [r.amount for r in gateway.refunds] == [Decimal("80.00")]

    assert _history(engine, first.pnr) == [
        (JournalAction.BOOKING_ATTEMPT, JournalOutcome.PENDING_PAYMENT),
        (JournalAction.PAYMENT_SUCCESS, JournalOutcome.COMMITTED),
        (JournalAction.CANCELLATION_ATTEMPT, JournalOutcome.PENDING_REFUND),
        (JournalAction.CANCELLATION_SUCCESS, JournalOutcome.COMMITTED),
    ]
    assert _history(engine, second.pnr) == [
        (JournalAction.BOOKING_ATTEMPT, JournalOutcome.PENDING_PAYMENT),
        (JournalAction.PAYMENT_SUCCESS, JournalOutcome.WAITLISTED),
        (JournalAction.PROMOTION, JournalOutcome.CONFIRMED),
    ]


def test_full_capacity_confirms_and_next_request_waitlists(make_engine):
    engine = make_engine(services=[make_service("X1", capacity=4)])
    assert engine.book("X1", JOURNEY_DATE, make_passengers(4)).status == BookingStatus.CONFIRMED
    assert engine.book("X1", JOURNEY_DATE, make_passengers(1)).status == BookingStatus.WAITLIST
    # other dates are independent
    assert engine.book("X1", "01/02/2030", make_passengers(1)).status == BookingStatus.CONFIRMED


def test_pnrs_are_issued_in_sequence(engine):
    pnrs = [engine.book("X1", JOURNEY_DATE, make_passengers(1)).pnr for _ in range(3)]
    assert pnrs == [str(PNR_FLOOR + i) for i in (1, 2, 3)]


def test_passengers_may_be_given_as_dicts(engine):
    result = engine.book("X1", JOURNEY_DATE, [{"name": "Ann", "age": 40, "gender": "F"}])
    booking = engine.find_booking(result.pnr)
    assert booking.passengers == [Passenger(name="Ann", age=40, gender="F")]


def test_invalid_date_has_no_side_effects(engine, gateway):
    with pytest.raises(InvalidDate):
        engine.book("X1", "2030/01/01", make_passengers(1))
    assert engine.pnr_generator.current == PNR_FLOOR
    assert engine.all_bookings() == []
    assert engine.inventory.calendar("X1") == []
    assert gateway.history == []


def test_unknown_service(engine):
    with pytest.raises(UnknownService):
        engine.book("NOPE", JOURNEY_DATE, make_passengers(1))
    assert engine.pnr_generator.current == PNR_FLOOR


@pytest.mark.parametrize("passengers", [
    [],
    make_passengers(7),
    [{"name": "Old", "age": 120, "gender": "M"}],
    [{"name": "Who", "age": 30, "gender": "?"}],
])
def test_invalid_passengers_rejected(engine, passengers):
    with pytest.raises(InvalidPassenger):
        engine.book("X1", JOURNEY_DATE, passengers)
    assert engine.all_bookings() == []


def test_declined_payment_orphans_the_pnr(make_engine, declining_gateway):
    engine = make_engine(payment_gateway=declining_gateway)

    with pytest.raises(PaymentDeclined) as exc_info:
        engine.book("X1", JOURNEY_DATE, make_passengers(2))

    orphan = str(PNR_FLOOR + 1)
    assert exc_info.value.pnr == orphan
    assert engine.all_bookings() == []
    assert engine.availability("X1", JOURNEY_DATE) == 2
    assert _history(engine, orphan) == [
        (JournalAction.BOOKING_ATTEMPT, JournalOutcome.PENDING_PAYMENT),
        (JournalAction.PAYMENT_FAILED, JournalOutcome.ROLLED_BACK),
    ]

    engine.payments = AlwaysApprovePaymentGateway()
    assert engine.book("X1", JOURNEY_DATE, make_passengers(1)).pnr == str(PNR_FLOOR + 2)


def test_declined_payment_on_waitlist_path_creates_nothing(make_engine, declining_gateway):
    engine = make_engine()
    engine.book("X1", JOURNEY_DATE, make_passengers(2))
    engine.payments = declining_gateway

    with pytest.raises(PaymentDeclined):
        engine.book("X1", JOURNEY_DATE, make_passengers(1))

    assert len(engine.all_bookings()) == 1
    assert engine.waitlist_entries("X1", JOURNEY_DATE) == []


def test_lazy_issuance_skips_pnr_on_declined_payment(make_engine, test_settings, declining_gateway):
    config = test_settings.copy(update={"LAZY_PNR_ISSUANCE": True})
    engine = make_engine(payment_gateway=declining_gateway, config=config)

    with pytest.raises(PaymentDeclined) as exc_info:
        engine.book("X1", JOURNEY_DATE, make_passengers(1))

    assert exc_info.value.pnr is None
    assert engine.pnr_generator.current == PNR_FLOOR
    assert _history(engine, UNISSUED_PNR) == [
        (JournalAction.PAYMENT_FAILED, JournalOutcome.ROLLED_BACK),
    ]

    engine.payments = AlwaysApprovePaymentGateway()
    assert engine.book("X1", JOURNEY_DATE, make_passengers(1)).pnr == str(PNR_FLOOR + 1)


def test_cancel_unknown_and_twice(engine, gateway):
    with pytest.raises(BookingNotFound):
        engine.cancel("999")

    pnr = engine.book("X1", JOURNEY_DATE, make_passengers(1)).pnr
    engine.cancel(pnr)
    with pytest.raises(AlreadyCancelled):
        engine.cancel(pnr)

    assert len(gateway.refunds) == 1
    assert engine.availability("X1", JOURNEY_DATE) == 2


def test_cancel_confirmed_without_waitlist_releases_exact_seats(make_engine):
    engine = make_engine(services=[make_service("X1", capacity=5)])
    pnr = engine.book("X1", JOURNEY_DATE, make_passengers(3)).pnr
    engine.book("X1", JOURNEY_DATE, make_passengers(1))
    assert engine.availability("X1", JOURNEY_DATE) == 1

    result = engine.cancel(pnr)
    assert result.promoted_pnrs == []
    assert engine.availability("X1", JOURNEY_DATE) == 4


def test_cancel_waitlisted_refunds_in_full_and_leaves_queue(engine, gateway):
    confirmed = engine.book("X1", JOURNEY_DATE, make_passengers(2)).pnr
    waitlisted = engine.book("X1", JOURNEY_DATE, make_passengers(1)).pnr

    result = engine.cancel(waitlisted)

    assert result.refund_amount == Decimal("50.00")
    assert result.promoted_pnrs == []
    assert engine.waitlist_entries("X1", JOURNEY_DATE) == []
    assert engine.waitlist_entry(waitlisted) is None
    assert _history(engine, waitlisted)[-1] == (
        JournalAction.CANCELLATION_SUCCESS_WL, JournalOutcome.COMMITTED
    )

    # freed seats must not revive the cancelled waitlist booking
    assert engine.cancel(confirmed).promoted_pnrs == []
    assert engine.find_booking(waitlisted).status == BookingStatus.CANCELLED
    assert engine.availability("X1", JOURNEY_DATE) == 2


def test_promotion_skips_large_entry_for_smaller_later_one(make_engine):
    engine = make_engine(services=[make_service("X1", capacity=3)])
    big_holder = engine.book("X1", JOURNEY_DATE, make_passengers(2)).pnr
    engine.book("X1", JOURNEY_DATE, make_passengers(1))
    a = engine.book("X1", JOURNEY_DATE, make_passengers(3)).pnr
    b = engine.book("X1", JOURNEY_DATE, make_passengers(1)).pnr

    result = engine.cancel(big_holder)

    assert result.promoted_pnrs == [b]
    assert engine.find_booking(a).status == BookingStatus.WAITLIST
    assert [(e.pnr, e.rank) for e in engine.waitlist_entries("X1", JOURNEY_DATE)] == [(a, 1)]
    assert engine.availability("X1", JOURNEY_DATE) == 1


def test_refund_failure_does_not_undo_cancellation(make_engine):
    class FlakyRefunds(AlwaysApprovePaymentGateway):
        def refund(self, amount):
            raise RuntimeError("refund service down")

    engine = make_engine(payment_gateway=FlakyRefunds())
    pnr = engine.book("X1", JOURNEY_DATE, make_passengers(1)).pnr

    result = engine.cancel(pnr)
    assert result.refund_amount == Decimal("40.00")
    assert engine.find_booking(pnr).status == BookingStatus.CANCELLED


def test_promote_manually(engine):
    engine.book("X1", JOURNEY_DATE, make_passengers(2))
    waitlisted = engine.book("X1", JOURNEY_DATE, make_passengers(1)).pnr

    assert engine.promote_manually("X1", JOURNEY_DATE, actor=OPERATOR) == []

    # seats freed out of band
    engine.inventory.release("X1", JOURNEY_DATE, 1)
    assert engine.promote_manually("X1", JOURNEY_DATE) == [waitlisted]
    assert engine.find_booking(waitlisted).status == BookingStatus.CONFIRMED
    assert engine.availability("X1", JOURNEY_DATE) == 0


def test_operator_only_actions(engine):
    with pytest.raises(PermissionDenied):
        engine.promote_manually("X1", JOURNEY_DATE, actor=CUSTOMER)
    with pytest.raises(PermissionDenied):
        engine.all_bookings(actor=CUSTOMER)
    with pytest.raises(PermissionDenied):
        engine.add_service(make_service("Y2"), actor=CUSTOMER)
    assert engine.all_bookings(actor=OPERATOR) == []


def test_book_groups_continues_past_failures(make_engine):
    engine = make_engine(services=[make_service("X1", capacity=2), make_service("Y2", capacity=10)])
    outcomes = engine.book_groups([
        {"service_id": "X1", "date": JOURNEY_DATE, "passengers": [{"name": "A", "age": 20, "gender": "M"}]},
        {"service_id": "X1", "date": "bad-date", "passengers": [{"name": "B", "age": 20, "gender": "M"}]},
        {"service_id": "Y2", "date": JOURNEY_DATE, "passengers": [{"name": "C", "age": 200, "gender": "M"}]},
        {"service_id": "ZZ", "date": JOURNEY_DATE, "passengers": [{"name": "D", "age": 20, "gender": "M"}]},
        {"service_id": "Y2", "date": JOURNEY_DATE, "passengers": [{"name": "E", "age": 20, "gender": "O"}]},
    ])

    assert [o.group_index for o in outcomes] == [1, 2, 3, 4, 5]
    assert [o.succeeded for o in outcomes] == [True, False, False, False, True]
    assert [o.error_code for o in outcomes] == [
        None, "INVALID_DATE", "INVALID_PASSENGER", "UNKNOWN_SERVICE", None
    ]
    assert len(engine.all_bookings()) == 2


def test_book_groups_limits(engine):
    with pytest.raises(ValueError):
        engine.book_groups([])
    group = {"service_id": "X1", "date": JOURNEY_DATE, "passengers": make_passengers(1)}
    with pytest.raises(ValueError):
        engine.book_groups([group] * 6)


def test_search_services_reports_availability(make_engine):
    engine = make_engine(services=[
        make_service("X1", capacity=2, source="CityA", destination="CityB"),
        make_service("Y2", capacity=8, source="CityA", destination="CityB"),
        make_service("Z3", capacity=8, source="CityB", destination="CityA"),
    ])
    engine.book("X1", JOURNEY_DATE, make_passengers(2))

    hits = engine.search_services("CityA", "CityB", JOURNEY_DATE)
    assert [(h.service.service_id, h.available_seats) for h in hits] == [("X1", 0), ("Y2", 8)]
    assert engine.search_services("CityC", "CityA", JOURNEY_DATE) == []
    with pytest.raises(InvalidDate):
        engine.search_services("CityA", "CityB", "tomorrow")


def test_add_and_remove_service(engine):
    engine.add_service(make_service("Y2", capacity=3), actor=OPERATOR)
    assert engine.availability("Y2", JOURNEY_DATE) == 3
    with pytest.raises(DuplicateService):
        engine.add_service(make_service("Y2"))

    pnr = engine.book("Y2", JOURNEY_DATE, make_passengers(1)).pnr
    engine.remove_service("Y2", actor=OPERATOR)

    with pytest.raises(UnknownService):
        engine.availability("Y2", JOURNEY_DATE)
    with pytest.raises(UnknownService):
        engine.cancel(pnr)
    assert engine.find_booking(pnr).status == BookingStatus.CONFIRMED


def test_every_successful_mutation_is_persisted(make_engine, tmp_path):
    store = JsonSnapshotStore(str(tmp_path / "snapshot.json"))
    engine = make_engine(snapshot_store=store)

    first = engine.book("X1", JOURNEY_DATE, make_passengers(2)).pnr
    assert [b.pnr for b in store.load().bookings] == [first]

    second = engine.book("X1", JOURNEY_DATE, make_passengers(1)).pnr
    assert [e.pnr for e in store.load().waitlist] == [second]

    engine.cancel(first)
    snapshot = store.load()
    assert [b.status for b in snapshot.bookings] == [BookingStatus.CANCELLED, BookingStatus.CONFIRMED]
    assert snapshot.waitlist == []
    assert snapshot.services[0].calendar[0].available_seats == 1


def test_returned_bookings_are_copies(engine):
    pnr = engine.book("X1", JOURNEY_DATE, make_passengers(1)).pnr
    engine.find_booking(pnr).status = BookingStatus.CANCELLED
    assert engine.find_booking(pnr).status == BookingStatus.CONFIRMED


def _json_settings(tmp_path):
    return Settings(
        SNAPSHOT_BACKEND="json",
        SNAPSHOT_PATH=str(tmp_path / "snapshot.json"),
        PNR_COUNTER_FILE=str(tmp_path / "pnr_counter.txt"),
        PNR_FLOOR=PNR_FLOOR,
        LOG_TO_FILE=False
    )


def test_restart_from_json_store(tmp_path, gateway):
    config = _json_settings(tmp_path)
    engine = ReservationEngine.from_settings(config, payment_gateway=gateway, seed_defaults=False)
    engine.add_service(make_service("X1"))
    confirmed = engine.book("X1", JOURNEY_DATE, make_passengers(2)).pnr
    waitlisted = engine.book("X1", JOURNEY_DATE, make_passengers(1)).pnr

    restarted = ReservationEngine.from_settings(config, payment_gateway=gateway, seed_defaults=False)

    assert [b.pnr for b in restarted.all_bookings()] == [confirmed, waitlisted]
    assert restarted.availability("X1", JOURNEY_DATE) == 0
    assert [(e.pnr, e.rank) for e in restarted.waitlist_entries("X1", JOURNEY_DATE)] == [(waitlisted, 1)]

    # waitlist promotion still works after the restart
    assert restarted.cancel(confirmed).promoted_pnrs == [waitlisted]


def test_pnrs_keep_increasing_after_counter_file_is_lost(tmp_path, gateway):
    config = _json_settings(tmp_path)
    engine = ReservationEngine.from_settings(config, payment_gateway=gateway, seed_defaults=False)
    engine.add_service(make_service("X1", capacity=10))
    last = engine.book("X1", JOURNEY_DATE, make_passengers(1)).pnr
    last = engine.book("X1", JOURNEY_DATE, make_passengers(1)).pnr

    (tmp_path / "pnr_counter.txt").unlink()
    restarted = ReservationEngine.from_settings(config, payment_gateway=gateway, seed_defaults=False)
    assert int(restarted.book("X1", JOURNEY_DATE, make_passengers(1)).pnr) > int(last)

    (tmp_path / "pnr_counter.txt").write_text("not a number")
    restarted = ReservationEngine.from_settings(config, payment_gateway=gateway, seed_defaults=False)
    assert restarted.book("X1", JOURNEY_DATE, make_passengers(1)).pnr == str(int(last) + 2)


def test_restart_from_sql_store_keeps_journal(tmp_path, gateway):
    config = Settings(
        DATABASE_URL=f"sqlite:///{tmp_path / 'ledger.db'}",
        SNAPSHOT_BACKEND="sql",
        PNR_FLOOR=PNR_FLOOR,
        LOG_TO_FILE=False
    )
    engine = ReservationEngine.from_settings(config, payment_gateway=gateway)
    assert sorted(s.service_id for s in engine.catalog.all()) == ["ET001", "SR205"]
    pnr = engine.book("ET001", JOURNEY_DATE, make_passengers(3)).pnr

    restarted = ReservationEngine.from_settings(config, payment_gateway=gateway)

    assert len(restarted.catalog) == 2
    assert restarted.find_booking(pnr).num_passengers == 3
    assert restarted.availability("ET001", JOURNEY_DATE) == 7
    assert _history(restarted, pnr) == [
        (JournalAction.BOOKING_ATTEMPT, JournalOutcome.PENDING_PAYMENT),
        (JournalAction.PAYMENT_SUCCESS, JournalOutcome.COMMITTED),
    ]
    assert restarted.book("SR205", JOURNEY_DATE, make_passengers(1)).pnr == str(int(pnr) + 1)


class FlakyStore:
    """Snapshot store that fails every save while ``failing`` is set"""

    def __init__(self):
        self.failing = False
        self.saved = []

    def save(self, snapshot):
        if self.failing:
            raise OSError("disk full")
        self.saved.append(snapshot)

    def load(self):
        return self.saved[-1] if self.saved else None


def test_failed_save_rolls_back_booking_and_refunds(make_engine, gateway):
    store = FlakyStore()
    store.failing = True
    engine = make_engine(snapshot_store=store)

    with pytest.raises(PersistenceFailed):
        engine.book("X1", JOURNEY_DATE, make_passengers(2))

    rolled_back = str(PNR_FLOOR + 1)
    assert engine.all_bookings() == []
    assert engine.availability("X1", JOURNEY_DATE) == 2
    assert [c.amount for c in gateway.charges] == [Decimal("100")]
    assert [r.amount for r in gateway.refunds] == [Decimal("100")]
    assert _history(engine, rolled_back)[-1] == (JournalAction.PERSIST_FAILED, JournalOutcome.ROLLED_BACK)

    # the consumed PNR is not reissued once the store recovers
    store.failing = False
    assert engine.book("X1", JOURNEY_DATE, make_passengers(1)).pnr == str(PNR_FLOOR + 2)


def test_failed_save_keeps_waitlisted_booking_queued(make_engine):
    store = FlakyStore()
    engine = make_engine(snapshot_store=store)
    engine.book("X1", JOURNEY_DATE, make_passengers(2))
    store.failing = True

    with pytest.raises(PersistenceFailed):
        engine.book("X1", JOURNEY_DATE, make_passengers(1))

    assert len(engine.all_bookings()) == 1
    assert engine.waitlist_entries("X1", JOURNEY_DATE) == []


def test_failed_save_leaves_cancellation_undone(make_engine, gateway):
    store = FlakyStore()
    engine = make_engine(snapshot_store=store)
    confirmed = engine.book("X1", JOURNEY_DATE, make_passengers(2)).pnr
    waitlisted = engine.book("X1", JOURNEY_DATE, make_passengers(1)).pnr
    store.failing = True

    with pytest.raises(PersistenceFailed):
        engine.cancel(confirmed)

    assert engine.find_booking(confirmed).status == BookingStatus.CONFIRMED
    assert engine.find_booking(waitlisted).status == BookingStatus.WAITLIST
    assert [(e.pnr, e.rank) for e in engine.waitlist_entries("X1", JOURNEY_DATE)] == [(waitlisted, 1)]
    assert engine.availability("X1", JOURNEY_DATE) == 0
    assert gateway.refunds == []

    store.failing = False
    assert engine.cancel(confirmed).promoted_pnrs == [waitlisted]


def test_failed_save_leaves_catalog_unchanged(make_engine):
    store = FlakyStore()
    store.failing = True
    engine = make_engine(snapshot_store=store)

    with pytest.raises(PersistenceFailed):
        engine.add_service(make_service("Y2"))
    assert "Y2" not in engine.catalog

    with pytest.raises(PersistenceFailed):
        engine.remove_service("X1")
    assert engine.availability("X1", JOURNEY_DATE) == 2


def test_group_booking_reports_failed_save(make_engine):
    store = FlakyStore()
    store.failing = True
    engine = make_engine(snapshot_store=store)

    outcomes = engine.book_groups([
        {"service_id": "X1", "date": JOURNEY_DATE, "passengers": make_passengers(1)},
    ])
    assert outcomes[0].error_code == "PERSISTENCE_FAILED"


def test_import_warns_when_live_descriptor_differs(engine):
    messages = []
    handler_id = logger.add(messages.append, level="WARNING", format="{message}")
    try:
        engine.import_snapshot(Snapshot(
            services=[ServiceSnapshot(descriptor=make_service("X1", capacity=9, fare="70"))],
            pnr_counter=PNR_FLOOR
        ))
    finally:
        logger.remove(handler_id)

    assert any("X1 differs from the snapshot" in m for m in messages)
    assert engine.catalog.resolve("X1").capacity == 2
    assert engine.availability("X1", JOURNEY_DATE) == 2


def test_unreadable_json_snapshot_stops_startup_and_is_kept(tmp_path, gateway):
    config = _json_settings(tmp_path)
    snapshot_file = tmp_path / "snapshot.json"
    snapshot_file.write_bytes(b"\xff\xfe\x00garbage")

    with pytest.raises(CorruptedRecord):
        ReservationEngine.from_settings(config, payment_gateway=gateway)
    assert snapshot_file.read_bytes() == b"\xff\xfe\x00garbage"
