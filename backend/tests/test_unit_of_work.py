import pytest

from clubledger.extensions import db
from clubledger.models import DocumentSequence
from clubledger.services.concurrency import run_in_unit_of_work
from clubledger.services.document_service import next_document_number
from clubledger.services.errors import ConcurrencyConflict, PersistenceFailure


def test_not_null_violation_is_a_persistence_failure_without_retry(db_session):
    calls = []

    def _op():
        calls.append(1)
        db.session.add(DocumentSequence(prefix=None, next_number=1))
        db.session.flush()

    with pytest.raises(PersistenceFailure):
        run_in_unit_of_work(_op, attempts=3, backoff_base=0)
    assert len(calls) == 1
    assert db.session.query(DocumentSequence).count() == 0


def test_unique_violation_is_retried_until_conflict(db_session):
    run_in_unit_of_work(lambda: db.session.add(DocumentSequence(prefix="RE-2026-", next_number=2)))
    calls = []

    def _op():
        calls.append(1)
        db.session.add(DocumentSequence(prefix="RE-2026-", next_number=2))
        db.session.flush()

    with pytest.raises(ConcurrencyConflict):
        run_in_unit_of_work(_op, attempts=2, backoff_base=0)
    assert len(calls) == 2


def test_lost_insert_race_recovers_on_retry(db_session):
    run_in_unit_of_work(lambda: db.session.add(DocumentSequence(prefix="LS-2026-", next_number=2)))
    calls = []

    def _op():
        calls.append(1)
        if len(calls) == 1:
            # what a second writer allocating the first number would do
            db.session.add(DocumentSequence(prefix="LS-2026-", next_number=2))
            db.session.flush()
        return next_document_number("LS-2026-")

    assert run_in_unit_of_work(_op, attempts=3, backoff_base=0) == "LS-2026-0002"
    assert len(calls) == 2
