from pydantic import BaseModel, Field

class SeatAllocation(BaseModel):
    """Seats left on one service for one date"""
    date: str
    available_seats: int = Field(..., ge=0)
