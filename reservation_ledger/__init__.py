"""
Railway Reservation Ledger

Seat reservation and waitlist engine for a fixed set of scheduled train
services. It allocates date-scoped capacity to bookings, defers
oversubscribed requests to FIFO waitlists, promotes waitlisted bookings as
cancellations free seats, and keeps a durable snapshot of its state.

Modules:
- engine: ReservationEngine, the entry point for every operation
- inventory: per-service, per-date seat counts
- bookings: booking ledger, status lifecycle and PNR issuance
- waitlist: FIFO waitlist queues and the promotion pass
- services: service catalog
- payments: payment gateway adapters
- journal: transaction journal
- auth: actor roles and credential checks
- snapshot: snapshot schema, legacy record codec and stores
"""

from reservation_ledger.engine import ReservationEngine

__version__ = "1.0.0"

__all__ = ["ReservationEngine", "__version__"]
