from pydantic import BaseModel, Field
from typing import List, Optional

from reservation_ledger.bookings.schemas import Booking
from reservation_ledger.inventory.schemas import SeatAllocation
from reservation_ledger.services.schemas import ServiceDescriptor
from reservation_ledger.waitlist.schemas import WaitlistEntry

SCHEMA_VERSION = 2

class ServiceSnapshot(BaseModel):
    """A catalog entry together with its materialized seat calendar"""
    descriptor: ServiceDescriptor
    calendar: List[SeatAllocation] = Field(default_factory=list)

class Snapshot(BaseModel):
    """Complete durable engine state.

    Version 1 carried no ``waitlist`` section; waitlist order is then
    re-derived from the order of Waitlist bookings.
    """
    schema_version: int = SCHEMA_VERSION
    services: List[ServiceSnapshot] = Field(default_factory=list)
    bookings: List[Booking] = Field(default_factory=list)
    pnr_counter: int
    waitlist: Optional[List[WaitlistEntry]] = None
