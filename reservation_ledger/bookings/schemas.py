from pydantic import BaseModel, Field, validator
from typing import List, Dict, Literal, Optional, FrozenSet
from decimal import Decimal
from enum import Enum

from reservation_ledger.services.schemas import require_whole_cents

class BookingStatus(str, Enum):
    """Booking status enumeration"""
    CONFIRMED = "Confirmed"
    WAITLIST = "Waitlist"
    CANCELLED = "Cancelled"

# Waitlist is only ever an initial status, Cancelled is terminal
ALLOWED_TRANSITIONS: Dict[BookingStatus, FrozenSet[BookingStatus]] = {
    BookingStatus.WAITLIST: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.CANCELLED}),
    BookingStatus.CANCELLED: frozenset(),
}

INITIAL_STATUSES = frozenset({BookingStatus.CONFIRMED, BookingStatus.WAITLIST})

class Passenger(BaseModel):
    """Individual passenger information"""
    name: str = Field(..., min_length=1)
    age: int = Field(..., ge=1, le=119)
    gender: Literal["M", "F", "O"]

    @validator('name')
    def validate_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('Passenger name is required')
        if any(ch in v for ch in "|&;\n"):
            raise ValueError('Passenger name contains a reserved character')
        return v

    class Config:
        frozen = True

class Booking(BaseModel):
    """Ledger record for one booking"""
    pnr: str
    service_id: str
    date: str
    passengers: List[Passenger]
    total_fare: Decimal
    status: BookingStatus

    @validator('passengers')
    def validate_passengers(cls, v):
        if not v:
            raise ValueError('At least one passenger is required')
        return v

    @validator('total_fare')
    def whole_cents(cls, v):
        return require_whole_cents(v)

    @property
    def num_passengers(self) -> int:
        return len(self.passengers)

    def is_active(self) -> bool:
        return self.status != BookingStatus.CANCELLED

class BookingRequest(BaseModel):
    """One booking group: a service, a date and its passengers"""
    service_id: str
    date: str
    passengers: List[Passenger]

class BookingResult(BaseModel):
    """Outcome of a successful booking"""
    pnr: str
    status: BookingStatus
    total_fare: Decimal
    waitlist_rank: Optional[int] = None

class GroupBookingOutcome(BaseModel):
    """Per-group result of a multi-group booking"""
    group_index: int
    request: Optional[BookingRequest] = None
    result: Optional[BookingResult] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.result is not None

class CancellationResult(BaseModel):
    """Outcome of a cancellation"""
    pnr: str
    previous_status: BookingStatus
    refund_amount: Decimal
    released_seats: int = 0
    promoted_pnrs: List[str] = Field(default_factory=list)
