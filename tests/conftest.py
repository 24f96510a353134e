from decimal import Decimal

import pytest

from reservation_ledger.bookings.pnr import MemoryCounterStore, PNRGenerator
from reservation_ledger.bookings.schemas import Passenger
from reservation_ledger.config import Settings
from reservation_ledger.database import create_session_factory
from reservation_ledger.engine import ReservationEngine
from reservation_ledger.journal.service import TransactionJournal
from reservation_ledger.payments.gateway import AlwaysApprovePaymentGateway, AlwaysDeclinePaymentGateway
from reservation_ledger.services.catalog import ServiceCatalog
from reservation_ledger.services.schemas import ServiceDescriptor, ServiceRoute

PNR_FLOOR = 100000000000
JOURNEY_DATE = "01/01/2030"


def make_service(service_id="X1", capacity=2, fare="50", source="CityC", destination="CityA"):
    return ServiceDescriptor(
        service_id=service_id,
        name=f"Service {service_id}",
        route=ServiceRoute(source=source, destination=destination),
        capacity=capacity,
        base_fare=Decimal(fare)
    )


def make_passengers(count, prefix="Passenger"):
    return [Passenger(name=f"{prefix} {i}", age=30 + i, gender="F") for i in range(1, count + 1)]


@pytest.fixture
def test_settings():
    return Settings(
        DATABASE_URL="sqlite://",
        SNAPSHOT_BACKEND="sql",
        PNR_FLOOR=PNR_FLOOR,
        LAZY_PNR_ISSUANCE=False,
        LOG_TO_FILE=False
    )


@pytest.fixture
def session_factory():
    return create_session_factory("sqlite://")


@pytest.fixture
def gateway():
    return AlwaysApprovePaymentGateway()


@pytest.fixture
def declining_gateway():
    return AlwaysDeclinePaymentGateway()


@pytest.fixture
def make_engine(test_settings, gateway):
    """Factory for engines over in-memory stores"""

    def _make(services=None, payment_gateway=None, snapshot_store=None, config=None, counter_store=None):
        config = config or test_settings
        return ReservationEngine(
            catalog=ServiceCatalog(services if services is not None else [make_service()]),
            payment_gateway=payment_gateway or gateway,
            pnr_generator=PNRGenerator(counter_store or MemoryCounterStore(), floor=config.PNR_FLOOR),
            journal=TransactionJournal(),
            snapshot_store=snapshot_store,
            config=config
        )

    return _make


@pytest.fixture
def engine(make_engine):
    return make_engine()
