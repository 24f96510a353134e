import json
import os
from typing import Any, Dict, Optional

from sqlalchemy.orm import sessionmaker

from reservation_ledger.exceptions import CorruptedRecord
from reservation_ledger.logger_config import get_logger
from reservation_ledger.models import (
    BookingRecord, PnrCounterRecord, SeatAllocationRecord, ServiceRecord, WaitlistRecord
)
from reservation_ledger.snapshot.codec import parse_snapshot
from reservation_ledger.snapshot.schemas import SCHEMA_VERSION, Snapshot

log = get_logger("snapshot")

class SnapshotStore:
    """Snapshot persistence on the relational tables.

    ``save`` replaces every section in one transaction. The PNR counter row is
    only ever moved forward here; ``SqlCounterStore`` owns regular updates.
    """

    COUNTER_ROW_ID = 1

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def save(self, snapshot: Snapshot) -> None:
        with self.session_factory() as db:
            try:
                db.query(SeatAllocationRecord).delete()
                db.query(ServiceRecord).delete()
                db.query(WaitlistRecord).delete()
                db.query(BookingRecord).delete()

                for position, service in enumerate(snapshot.services):
                    descriptor = service.descriptor
                    db.add(ServiceRecord(
                        service_id=descriptor.service_id,
                        position=position,
                        name=descriptor.name,
                        kind=descriptor.kind.value,
                        has_pantry_car=descriptor.has_pantry_car,
                        source=descriptor.route.source,
                        destination=descriptor.route.destination,
                        stops=[stop.dict() for stop in descriptor.route.stops],
                        capacity=descriptor.capacity,
                        base_fare=descriptor.base_fare
                    ))
                    for index, allocation in enumerate(service.calendar):
                        db.add(SeatAllocationRecord(
                            service_id=descriptor.service_id,
                            position=index,
                            date=allocation.date,
                            available_seats=allocation.available_seats
                        ))

                for position, booking in enumerate(snapshot.bookings):
                    db.add(BookingRecord(
                        pnr=booking.pnr,
                        position=position,
                        service_id=booking.service_id,
                        date=booking.date,
                        total_fare=booking.total_fare,
                        status=booking.status.value,
                        passengers=[p.dict() for p in booking.passengers]
                    ))

                for entry in snapshot.waitlist or []:
                    db.add(WaitlistRecord(**entry.dict()))

                counter = db.get(PnrCounterRecord, self.COUNTER_ROW_ID)
                if counter is None:
                    db.add(PnrCounterRecord(id=self.COUNTER_ROW_ID, value=str(snapshot.pnr_counter)))
                elif _as_int(counter.value) < snapshot.pnr_counter:
                    counter.value = str(snapshot.pnr_counter)

                db.commit()
            except Exception:
                db.rollback()
                raise

    def load(self) -> Optional[Snapshot]:
        with self.session_factory() as db:
            services = db.query(ServiceRecord).order_by(ServiceRecord.position).all()
            bookings = db.query(BookingRecord).order_by(BookingRecord.position).all()
            counter = db.get(PnrCounterRecord, self.COUNTER_ROW_ID)
            if not services and not bookings and counter is None:
                return None

            calendars: Dict[str, list] = {}
            allocations = (
                db.query(SeatAllocationRecord)
                .order_by(SeatAllocationRecord.service_id, SeatAllocationRecord.position)
                .all()
            )
            for row in allocations:
                calendars.setdefault(row.service_id, []).append(
                    {"date": row.date, "available_seats": row.available_seats}
                )

            waitlist = db.query(WaitlistRecord).order_by(WaitlistRecord.id).all()

            data: Dict[str, Any] = {
                "schema_version": SCHEMA_VERSION,
                "services": [
                    {
                        "descriptor": {
                            "service_id": row.service_id,
                            "name": row.name,
                            "kind": row.kind,
                            "route": {
                                "source": row.source,
                                "destination": row.destination,
                                "stops": row.stops or [],
                            },
                            "capacity": row.capacity,
                            "base_fare": row.base_fare,
                            "has_pantry_car": bool(row.has_pantry_car),
                        },
                        "calendar": calendars.get(row.service_id, []),
                    }
                    for row in services
                ],
                "bookings": [
                    {
                        "pnr": row.pnr,
                        "service_id": row.service_id,
                        "date": row.date,
                        "passengers": row.passengers,
                        "total_fare": row.total_fare,
                        "status": row.status,
                    }
                    for row in bookings
                ],
                "pnr_counter": counter.value if counter else 0,
                "waitlist": [
                    {
                        "pnr": row.pnr,
                        "service_id": row.service_id,
                        "date": row.date,
                        "num_seats": row.num_seats,
                        "rank": row.rank,
                    }
                    for row in waitlist
                ],
            }
        return parse_snapshot(data)

class JsonSnapshotStore:
    """Snapshot persistence as a single JSON document, replaced atomically"""

    def __init__(self, path: str):
        self.path = path

    def save(self, snapshot: Snapshot) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as handle:
            handle.write(snapshot.model_dump_json(indent=2))
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, self.path)

    def load(self) -> Optional[Snapshot]:
        """Read the stored document; an unreadable file raises CorruptedRecord and is left in place"""
        if not os.path.exists(self.path):
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as handle:
                text = handle.read()
        except UnicodeDecodeError as exc:
            raise CorruptedRecord(self.path, f"snapshot is not UTF-8 text: {exc.reason}")
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise CorruptedRecord(text[:80], f"snapshot is not valid JSON: {exc}")
        return parse_snapshot(data)

def _as_int(value: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0
