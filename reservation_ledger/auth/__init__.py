"""Actor authentication and role checks."""

from .service import ActorDirectory, require_operator
from .schemas import Actor, ActorCreate, ActorRole

__all__ = ["ActorDirectory", "require_operator", "Actor", "ActorCreate", "ActorRole"]
