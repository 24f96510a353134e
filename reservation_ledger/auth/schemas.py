from pydantic import BaseModel, Field, validator
from enum import Enum

class ActorRole(str, Enum):
    """Closed set of actor roles"""
    OPERATOR = "operator"
    CUSTOMER = "customer"

class Actor(BaseModel):
    """Authenticated caller of engine operations"""
    username: str
    role: ActorRole

    @property
    def is_operator(self) -> bool:
        return self.role == ActorRole.OPERATOR

class ActorCreate(BaseModel):
    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=3)
    role: ActorRole = ActorRole.CUSTOMER

    @validator('username')
    def validate_username(cls, v):
        if any(ch.isspace() for ch in v):
            raise ValueError('Username must not contain whitespace')
        return v
