import threading
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel
from sqlalchemy.orm import sessionmaker

from reservation_ledger.logger_config import get_logger
from reservation_ledger.models import JournalRecord

log = get_logger("journal")

class JournalAction(str, Enum):
    BOOKING_ATTEMPT = "BOOKING_ATTEMPT"
    PAYMENT_SUCCESS = "PAYMENT_SUCCESS"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    CANCELLATION_ATTEMPT = "CANCELLATION_ATTEMPT"
    CANCELLATION_SUCCESS = "CANCELLATION_SUCCESS"
    CANCELLATION_SUCCESS_WL = "CANCELLATION_SUCCESS_WL"
    PROMOTION = "PROMOTION"
    PERSIST_FAILED = "PERSIST_FAILED"

class JournalOutcome(str, Enum):
    PENDING_PAYMENT = "PENDING_PAYMENT"
    PENDING_REFUND = "PENDING_REFUND"
    COMMITTED = "COMMITTED"
    WAITLISTED = "WAITLISTED"
    ROLLED_BACK = "ROLLED_BACK"
    CONFIRMED = "CONFIRMED"

class JournalEntry(BaseModel):
    """Audit record of one attempted state transition"""
    pnr: str
    action: JournalAction
    outcome: JournalOutcome
    recorded_at: datetime

    def as_tuple(self):
        return (self.pnr, self.action.value, self.outcome.value)

class TransactionJournal:
    """Append-only audit trail of booking, payment, cancellation and promotion events.

    Entries are kept in memory and, when a session factory is given, also
    written to the ``transaction_journal`` table. The engine only writes
    here; ``history`` exists for reporting.
    """

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self.session_factory = session_factory
        self._entries: List[JournalEntry] = []
        self._lock = threading.Lock()

    def record(self, pnr: str, action: JournalAction, outcome: JournalOutcome) -> JournalEntry:
        entry = JournalEntry(
            pnr=pnr,
            action=action,
            outcome=outcome,
            recorded_at=datetime.now(timezone.utc)
        )
        with self._lock:
            self._entries.append(entry)
            if self.session_factory is not None:
                with self.session_factory() as db:
                    db.add(JournalRecord(
                        pnr=entry.pnr,
                        action=entry.action.value,
                        outcome=entry.outcome.value,
                        recorded_at=entry.recorded_at
                    ))
                    db.commit()

        log.bind(pnr=pnr).debug(f"{action.value}/{outcome.value}")
        return entry

    def history(self, pnr: str) -> List[JournalEntry]:
        """All recorded events for a PNR, oldest first"""
        if self.session_factory is None:
            return [e for e in self._entries if e.pnr == pnr]

        with self.session_factory() as db:
            rows = (
                db.query(JournalRecord)
                .filter(JournalRecord.pnr == pnr)
                .order_by(JournalRecord.id)
                .all()
            )
            return [
                JournalEntry(
                    pnr=row.pnr,
                    action=JournalAction(row.action),
                    outcome=JournalOutcome(row.outcome),
                    recorded_at=row.recorded_at
                )
                for row in rows
            ]

    def entries(self) -> List[JournalEntry]:
        """Entries written by this process"""
        return list(self._entries)
