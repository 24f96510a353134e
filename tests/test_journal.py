from reservation_ledger.journal.service import JournalAction, JournalOutcome, TransactionJournal


def test_history_is_filtered_and_ordered():
    journal = TransactionJournal()
    journal.record("1", JournalAction.BOOKING_ATTEMPT, JournalOutcome.PENDING_PAYMENT)
    journal.record("2", JournalAction.BOOKING_ATTEMPT, JournalOutcome.PENDING_PAYMENT)
    journal.record("1", JournalAction.PAYMENT_SUCCESS, JournalOutcome.COMMITTED)

    assert [e.as_tuple() for e in journal.history("1")] == [
        ("1", "BOOKING_ATTEMPT", "PENDING_PAYMENT"),
        ("1", "PAYMENT_SUCCESS", "COMMITTED"),
    ]
    assert len(journal.entries()) == 3
    assert journal.history("3") == []


def test_entries_are_written_to_the_database(session_factory):
    journal = TransactionJournal(session_factory)
    journal.record("1", JournalAction.CANCELLATION_ATTEMPT, JournalOutcome.PENDING_REFUND)
    journal.record("1", JournalAction.CANCELLATION_SUCCESS, JournalOutcome.COMMITTED)

    # a fresh journal on the same database sees the earlier entries
    reader = TransactionJournal(session_factory)
    assert reader.entries() == []
    assert [(e.action, e.outcome) for e in reader.history("1")] == [
        (JournalAction.CANCELLATION_ATTEMPT, JournalOutcome.PENDING_REFUND),
        (JournalAction.CANCELLATION_SUCCESS, JournalOutcome.COMMITTED),
    ]
