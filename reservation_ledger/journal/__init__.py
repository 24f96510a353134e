"""Append-only transaction journal keyed by PNR."""

from .service import TransactionJournal, JournalEntry, JournalAction, JournalOutcome

__all__ = ["TransactionJournal", "JournalEntry", "JournalAction", "JournalOutcome"]
