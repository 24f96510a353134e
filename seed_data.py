#!/usr/bin/env python3

from decimal import Decimal

from reservation_ledger.auth.service import ActorDirectory
from reservation_ledger.config import settings
from reservation_ledger.database import create_session_factory
from reservation_ledger.engine import ReservationEngine
from reservation_ledger.logger_config import get_logger
from reservation_ledger.services.catalog import default_services
from reservation_ledger.services.schemas import ServiceDescriptor, ServiceRoute, Stop

log = get_logger("seed")

def extra_services():
    return [
        ServiceDescriptor(
            service_id="NX310",
            name="Night Express",
            route=ServiceRoute(
                source="CityA",
                destination="CityC",
                stops=[
                    Stop(station_name="CityA", departure_time="21:30"),
                    Stop(station_name="CityB", arrival_time="02:10", departure_time="02:25"),
                    Stop(station_name="CityC", arrival_time="07:45"),
                ]
            ),
            capacity=120,
            base_fare=Decimal("92.00"),
            has_pantry_car=True
        ),
        ServiceDescriptor(
            service_id="X1",
            name="Shuttle",
            route=ServiceRoute(source="CityC", destination="CityA"),
            capacity=2,
            base_fare=Decimal("50.00")
        ),
    ]

def create_seed_data():
    log.info(f"Seeding {settings.PROJECT_NAME} ({settings.SNAPSHOT_BACKEND} backend)")
    engine = ReservationEngine.from_settings(seed_defaults=False)

    try:
        created = 0
        for descriptor in default_services() + extra_services():
            if descriptor.service_id in engine.catalog:
                log.info(f"Service {descriptor.service_id} already present, skipping")
                continue
            engine.add_service(descriptor)
            created += 1

        if settings.SNAPSHOT_BACKEND == "sql":
            directory = ActorDirectory(create_session_factory(settings.DATABASE_URL))
            directory.ensure_defaults()

        log.info(f"Created {created} services, catalog now holds {len(engine.catalog)}")
    except Exception as e:
        log.error(f"Error creating seed data: {e}")
        raise

if __name__ == "__main__":
    create_seed_data()
