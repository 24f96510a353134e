from typing import Dict, Optional

from passlib.context import CryptContext
from sqlalchemy.orm import sessionmaker

from reservation_ledger.auth.schemas import Actor, ActorCreate, ActorRole
from reservation_ledger.exceptions import AuthenticationFailed, PermissionDenied
from reservation_ledger.logger_config import get_logger
from reservation_ledger.models import ActorRecord

log = get_logger("auth")

class ActorDirectory:
    """Credential check for operators and customers.

    Passwords are stored as passlib hashes, in memory or in the ``actors``
    table when a session factory is given.
    """

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self.session_factory = session_factory
        self.pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
        self._actors: Dict[str, ActorRecord] = {}
        if self.session_factory is not None:
            self._load()

    def _load(self) -> None:
        with self.session_factory() as db:
            for record in db.query(ActorRecord).all():
                self._actors[record.username] = ActorRecord(
                    username=record.username,
                    role=record.role,
                    password_hash=record.password_hash
                )

    def register(self, actor_data: ActorCreate) -> Actor:
        if actor_data.username in self._actors:
            raise ValueError(f"Actor '{actor_data.username}' already exists")

        record = ActorRecord(
            username=actor_data.username,
            role=actor_data.role.value,
            password_hash=self.pwd_context.hash(actor_data.password)
        )
        if self.session_factory is not None:
            with self.session_factory() as db:
                db.add(ActorRecord(
                    username=record.username,
                    role=record.role,
                    password_hash=record.password_hash
                ))
                db.commit()

        self._actors[record.username] = record
        log.info(f"Registered {actor_data.role.value} '{actor_data.username}'")
        return Actor(username=record.username, role=actor_data.role)

    def ensure_defaults(self) -> None:
        """Seed the demo accounts when the directory is empty"""
        if self._actors:
            return
        self.register(ActorCreate(username="admin", password="123", role=ActorRole.OPERATOR))
        self.register(ActorCreate(username="user", password="123", role=ActorRole.CUSTOMER))

    def authenticate(self, username: str, password: str) -> Actor:
        record = self._actors.get(username)
        if record is None or not self.pwd_context.verify(password, record.password_hash):
            log.info(f"Login failed for '{username}'")
            raise AuthenticationFailed("Invalid credentials")
        return Actor(username=record.username, role=ActorRole(record.role))

def require_operator(actor: Actor) -> Actor:
    """Reject non-operators"""
    if not actor.is_operator:
        raise PermissionDenied(f"'{actor.username}' is not an operator")
    return actor
