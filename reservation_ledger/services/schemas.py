from pydantic import BaseModel, Field, validator
from typing import List
from decimal import Decimal
from enum import Enum

RECORD_DELIMITERS = "|&;:\n"
CENTS = Decimal("0.01")

def reject_record_delimiters(v: str) -> str:
    if any(ch in v for ch in RECORD_DELIMITERS):
        raise ValueError("must not contain record delimiters")
    return v

def require_whole_cents(v: Decimal) -> Decimal:
    if v != v.quantize(CENTS):
        raise ValueError("amount must have at most 2 decimal places")
    return v

class ServiceKind(str, Enum):
    """Closed set of service kinds"""
    EXPRESS = "express"

class Stop(BaseModel):
    """Scheduled stop on a service route"""
    station_name: str
    arrival_time: str = "N/A"
    departure_time: str = "N/A"

class ServiceRoute(BaseModel):
    """Origin, destination and timetable of a service"""
    source: str
    destination: str
    stops: List[Stop] = Field(default_factory=list)

    @validator('source', 'destination')
    def no_reserved_delimiters(cls, v):
        return reject_record_delimiters(v)

    @validator('stops', always=True)
    def default_schedule(cls, v, values):
        if v:
            return v
        source = values.get('source')
        destination = values.get('destination')
        if source is None or destination is None:
            return v
        return [
            Stop(station_name=source, departure_time="08:00"),
            Stop(station_name="MidPoint", arrival_time="12:00", departure_time="12:15"),
            Stop(station_name=destination, arrival_time="18:00"),
        ]

class ServiceDescriptor(BaseModel):
    """Scheduled service as supplied by the catalog"""
    service_id: str = Field(..., min_length=1)
    name: str
    kind: ServiceKind = ServiceKind.EXPRESS
    route: ServiceRoute
    capacity: int = Field(..., gt=0)
    base_fare: Decimal = Field(..., ge=0)
    has_pantry_car: bool = False

    @validator('service_id', 'name')
    def no_reserved_delimiters(cls, v):
        return reject_record_delimiters(v)

    @validator('base_fare')
    def whole_cents(cls, v):
        return require_whole_cents(v)

class ServiceAvailability(BaseModel):
    """Search hit: a service and its seats left on the requested date"""
    service: ServiceDescriptor
    date: str
    available_seats: int
