"""Seat inventory: per-service, per-date remaining capacity."""

from .service import SeatInventory
from .schemas import SeatAllocation

__all__ = ["SeatInventory", "SeatAllocation"]
