"""
Reservation Engine Module

Orchestrates booking, cancellation and waitlist promotion over the seat
inventory, booking ledger and waitlist queues, and persists a snapshot
after every successful change.

Key Components:
- engine.py: ReservationEngine and its from_settings factory
"""

from .engine import ReservationEngine, UNISSUED_PNR

__all__ = ["ReservationEngine", "UNISSUED_PNR"]
