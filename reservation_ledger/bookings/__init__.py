"""
Booking Ledger Module

Holds every booking the engine has accepted together with its lifecycle
status, and issues the PNRs that identify them.

Key Components:
- ledger.py: BookingLedger insertion-ordered storage and status transitions
- pnr.py: PNRGenerator and its durable counter stores
- schemas.py: Pydantic models for passengers, bookings and operation results

Status lifecycle:
- Waitlist -> Confirmed (promotion)
- Waitlist -> Cancelled
- Confirmed -> Cancelled
"""

from .ledger import BookingLedger
from .pnr import PNRGenerator, FileCounterStore, SqlCounterStore, MemoryCounterStore
from .schemas import (
    Booking, BookingStatus, Passenger, BookingRequest, BookingResult,
    GroupBookingOutcome, CancellationResult, ALLOWED_TRANSITIONS
)

__all__ = [
    "BookingLedger",
    "PNRGenerator",
    "FileCounterStore",
    "SqlCounterStore",
    "MemoryCounterStore",
    "Booking",
    "BookingStatus",
    "Passenger",
    "BookingRequest",
    "BookingResult",
    "GroupBookingOutcome",
    "CancellationResult",
    "ALLOWED_TRANSITIONS"
]
