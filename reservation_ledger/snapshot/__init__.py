"""
Snapshot Persistence Module

Durable form of the engine state and the stores that keep it.

Key Components:
- schemas.py: Versioned Snapshot model (services, bookings, PNR counter, waitlist)
- codec.py: Tolerant snapshot parsing and the legacy pipe-delimited record format
- store.py: SnapshotStore (SQLAlchemy tables) and JsonSnapshotStore (JSON file)
"""

from .schemas import Snapshot, ServiceSnapshot, SCHEMA_VERSION
from .codec import (
    parse_snapshot, encode_booking, decode_booking, encode_service, decode_service,
    encode_calendar, decode_calendar, export_legacy, import_legacy
)
from .store import SnapshotStore, JsonSnapshotStore

__all__ = [
    "Snapshot",
    "ServiceSnapshot",
    "SCHEMA_VERSION",
    "parse_snapshot",
    "encode_booking",
    "decode_booking",
    "encode_service",
    "decode_service",
    "encode_calendar",
    "decode_calendar",
    "export_legacy",
    "import_legacy",
    "SnapshotStore",
    "JsonSnapshotStore"
]
