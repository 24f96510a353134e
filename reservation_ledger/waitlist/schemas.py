from pydantic import BaseModel, Field

class WaitlistEntry(BaseModel):
    """Deferred booking request waiting for seats on one service date"""
    pnr: str
    service_id: str
    date: str
    num_seats: int = Field(..., gt=0)
    rank: int = Field(..., ge=1)
