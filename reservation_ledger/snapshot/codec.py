"""Snapshot parsing and the legacy pipe-delimited record format.

Legacy layout, one record per line:

    booking:    PNR|ServiceId|Date|Fare|Status|PassengerCount|Name|Age|Gender&Name|Age|Gender
    service:    EXPRESS|ServiceId|Name|Source|Destination|Capacity|Fare|Pantry|Calendar
    calendar:   Count:Date|Seats;Date|Seats;

Fares are written with six decimals. Every decoder raises ``CorruptedRecord``
on malformed input; the ``decode_*_lines`` helpers skip such lines.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from reservation_ledger.bookings.schemas import Booking, BookingStatus, Passenger
from reservation_ledger.exceptions import CorruptedRecord
from reservation_ledger.inventory.schemas import SeatAllocation
from reservation_ledger.logger_config import get_logger
from reservation_ledger.services.schemas import ServiceDescriptor, ServiceKind, ServiceRoute
from reservation_ledger.snapshot.schemas import SCHEMA_VERSION, ServiceSnapshot, Snapshot
from reservation_ledger.waitlist.schemas import WaitlistEntry

log = get_logger("snapshot")

FIELD_DELIMITER = "|"
PASSENGER_DELIMITER = "&"
ALLOCATION_DELIMITER = ";"
COUNT_DELIMITER = ":"
LEGACY_KIND_TAGS = {ServiceKind.EXPRESS: "EXPRESS"}

PARSE_ERRORS = (ValidationError, ValueError, TypeError, KeyError, InvalidOperation)


def _format_fare(amount: Decimal) -> str:
    return f"{Decimal(amount):.6f}"


def _parse_decimal(text: str, line: str) -> Decimal:
    try:
        value = Decimal(text)
    except InvalidOperation:
        raise CorruptedRecord(line, f"bad amount {text!r}")
    if not value.is_finite():
        raise CorruptedRecord(line, f"bad amount {text!r}")
    return value


def _parse_int(text: str, line: str, field: str) -> int:
    try:
        return int(text)
    except ValueError:
        raise CorruptedRecord(line, f"bad {field} {text!r}")


# ================================
# Legacy passengers & bookings
# ================================
def encode_passenger(passenger: Passenger) -> str:
    return FIELD_DELIMITER.join((passenger.name, str(passenger.age), passenger.gender))


def decode_passenger(data: str) -> Passenger:
    parts = data.split(FIELD_DELIMITER)
    if len(parts) != 3:
        raise CorruptedRecord(data, "passenger needs name, age and gender")
    try:
        return Passenger(name=parts[0], age=int(parts[1]), gender=parts[2])
    except PARSE_ERRORS as exc:
        raise CorruptedRecord(data, f"invalid passenger: {exc}")


def encode_booking(booking: Booking) -> str:
    passengers = PASSENGER_DELIMITER.join(encode_passenger(p) for p in booking.passengers)
    return FIELD_DELIMITER.join((
        booking.pnr,
        booking.service_id,
        booking.date,
        _format_fare(booking.total_fare),
        booking.status.value,
        str(booking.num_passengers),
        passengers,
    ))


def decode_booking(line: str) -> Booking:
    # passenger fields reuse the field delimiter, so the list is everything after field six
    parts = line.rstrip("\r\n").split(FIELD_DELIMITER, 6)
    if len(parts) < 7:
        raise CorruptedRecord(line, "booking needs 7 fields")

    pnr, service_id, date, fare_text, status_text, count_text, passenger_text = parts
    fare = _parse_decimal(fare_text, line)
    count = _parse_int(count_text, line, "passenger count")
    try:
        status = BookingStatus(status_text)
    except ValueError:
        raise CorruptedRecord(line, f"unknown status {status_text!r}")

    segments = passenger_text.split(PASSENGER_DELIMITER) if passenger_text else []
    if count <= 0 or len(segments) != count:
        raise CorruptedRecord(line, f"expected {count} passengers, found {len(segments)}")
    passengers = [decode_passenger(segment) for segment in segments]

    try:
        return Booking(
            pnr=pnr,
            service_id=service_id,
            date=date,
            passengers=passengers,
            total_fare=fare,
            status=status
        )
    except PARSE_ERRORS as exc:
        raise CorruptedRecord(line, f"invalid booking: {exc}")


# ================================
# Legacy seat calendar & services
# ================================
def encode_allocation(allocation: SeatAllocation) -> str:
    return f"{allocation.date}{FIELD_DELIMITER}{allocation.available_seats}"


def decode_allocation(data: str) -> SeatAllocation:
    parts = data.split(FIELD_DELIMITER)
    if len(parts) != 2:
        raise CorruptedRecord(data, "allocation needs date and seats")
    try:
        return SeatAllocation(date=parts[0], available_seats=int(parts[1]))
    except PARSE_ERRORS as exc:
        raise CorruptedRecord(data, f"invalid allocation: {exc}")


def encode_calendar(calendar: List[SeatAllocation]) -> str:
    body = "".join(encode_allocation(a) + ALLOCATION_DELIMITER for a in calendar)
    return f"{len(calendar)}{COUNT_DELIMITER}{body}"


def decode_calendar(data: str) -> List[SeatAllocation]:
    """Decode a count-prefixed calendar; bad allocations are skipped"""
    count_text, sep, body = data.partition(COUNT_DELIMITER)
    if not sep:
        raise CorruptedRecord(data, "calendar is missing its count prefix")
    count = _parse_int(count_text, data, "calendar count")

    allocations = []
    segments = [s for s in body.split(ALLOCATION_DELIMITER) if s]
    for segment in segments[:count]:
        try:
            allocations.append(decode_allocation(segment))
        except CorruptedRecord as exc:
            log.warning(f"Skipping seat allocation: {exc.message}")
    return allocations


def encode_service(service: ServiceSnapshot) -> str:
    descriptor = service.descriptor
    return FIELD_DELIMITER.join((
        LEGACY_KIND_TAGS[descriptor.kind],
        descriptor.service_id,
        descriptor.name,
        descriptor.route.source,
        descriptor.route.destination,
        str(descriptor.capacity),
        _format_fare(descriptor.base_fare),
        "1" if descriptor.has_pantry_car else "0",
        encode_calendar(service.calendar),
    ))


def decode_service(line: str) -> ServiceSnapshot:
    parts = line.rstrip("\r\n").split(FIELD_DELIMITER, 8)
    if len(parts) < 9:
        raise CorruptedRecord(line, "service needs 9 fields")

    tag, service_id, name, source, destination, capacity_text, fare_text, pantry, calendar = parts
    kinds = {v: k for k, v in LEGACY_KIND_TAGS.items()}
    if tag not in kinds:
        raise CorruptedRecord(line, f"unknown service kind {tag!r}")

    try:
        descriptor = ServiceDescriptor(
            service_id=service_id,
            name=name,
            kind=kinds[tag],
            route=ServiceRoute(source=source, destination=destination),
            capacity=_parse_int(capacity_text, line, "capacity"),
            base_fare=_parse_decimal(fare_text, line),
            has_pantry_car=(pantry == "1")
        )
    except PARSE_ERRORS as exc:
        raise CorruptedRecord(line, f"invalid service: {exc}")
    return ServiceSnapshot(descriptor=descriptor, calendar=decode_calendar(calendar))


def _decode_lines(lines: Iterable[str], decoder, label: str) -> List:
    records = []
    for number, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        try:
            records.append(decoder(line))
        except CorruptedRecord as exc:
            log.warning(f"Skipping {label} line {number}: {exc.message}")
    return records


def decode_booking_lines(lines: Iterable[str]) -> List[Booking]:
    return _decode_lines(lines, decode_booking, "booking")


def decode_service_lines(lines: Iterable[str]) -> List[ServiceSnapshot]:
    return _decode_lines(lines, decode_service, "service")


def export_legacy(snapshot: Snapshot) -> Dict[str, Any]:
    """Render a snapshot as the three legacy flat files"""
    return {
        "services": [encode_service(s) for s in snapshot.services],
        "bookings": [encode_booking(b) for b in snapshot.bookings],
        "pnr_counter": str(snapshot.pnr_counter),
    }


def import_legacy(
    service_lines: Iterable[str],
    booking_lines: Iterable[str],
    pnr_counter: Optional[str] = None
) -> Snapshot:
    """Build a version 1 snapshot from legacy flat-file lines"""
    counter = 0
    if pnr_counter is not None and pnr_counter.strip():
        try:
            counter = int(pnr_counter.strip())
        except ValueError:
            log.warning(f"Ignoring unreadable legacy PNR counter {pnr_counter!r}")
    return Snapshot(
        schema_version=1,
        services=decode_service_lines(service_lines),
        bookings=decode_booking_lines(booking_lines),
        pnr_counter=counter,
        waitlist=None
    )


# ================================
# Versioned snapshot documents
# ================================
def _parse_records(raw_records, model, label: str) -> List:
    records = []
    if not isinstance(raw_records, list):
        log.warning(f"Ignoring {label} section: expected a list")
        return records
    for index, raw in enumerate(raw_records):
        try:
            records.append(model.parse_obj(raw))
        except PARSE_ERRORS as exc:
            log.warning(f"Skipping {label} record {index}: {exc}")
    return records


def _parse_service(raw: Dict[str, Any]) -> ServiceSnapshot:
    descriptor = ServiceDescriptor.parse_obj(raw["descriptor"])
    calendar = _parse_records(raw.get("calendar", []), SeatAllocation, f"{descriptor.service_id} calendar")
    return ServiceSnapshot(descriptor=descriptor, calendar=calendar)


def parse_snapshot(data: Dict[str, Any]) -> Snapshot:
    """Build a Snapshot from a decoded document, skipping records that fail validation"""
    if not isinstance(data, dict):
        raise CorruptedRecord(repr(data)[:80], "snapshot document is not an object")

    version = data.get("schema_version", 1)
    if not isinstance(version, int) or version < 1 or version > SCHEMA_VERSION:
        raise CorruptedRecord(repr(version), "unsupported snapshot schema version")

    services = []
    for index, raw in enumerate(data.get("services") or []):
        try:
            services.append(_parse_service(raw))
        except PARSE_ERRORS as exc:
            log.warning(f"Skipping service record {index}: {exc}")

    counter = data.get("pnr_counter")
    try:
        pnr_counter = int(counter)
    except (TypeError, ValueError):
        log.warning(f"Unreadable PNR counter {counter!r} in snapshot")
        pnr_counter = 0

    waitlist = None
    if version >= 2 and data.get("waitlist") is not None:
        waitlist = _parse_records(data["waitlist"], WaitlistEntry, "waitlist")

    return Snapshot(
        schema_version=version,
        services=services,
        bookings=_parse_records(data.get("bookings") or [], Booking, "booking"),
        pnr_counter=pnr_counter,
        waitlist=waitlist
    )
