"""
Unit tests for the serializable unit-of-work runner.
"""

import pytest

from app.db.session import is_serialization_conflict, run_serializable, sqlstate_of


class RecordingSession:
    def __init__(self, log):
        self.log = log

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    async def connection(self, execution_options=None):
        self.log.append(("begin", (execution_options or {}).get("isolation_level")))

    async def commit(self):
        self.log.append(("commit", None))

    async def rollback(self):
        self.log.append(("rollback", None))


@pytest.fixture
def log():
    return []


@pytest.fixture
def factory(log):
    return lambda: RecordingSession(log)


def failing_work(errors, result="done"):
    """Work that raises the given errors in turn, then returns ``result``."""
    calls = []

    async def work(db):
        calls.append(db)
        if len(calls) <= len(errors):
            raise errors[len(calls) - 1]
        return result

    work.calls = calls
    return work


@pytest.mark.unit
@pytest.mark.parametrize("sqlstate", ["40001", "40P01", "23505"])
def test_conflict_sqlstates_are_retryable(db_error, sqlstate):
    exc = db_error(sqlstate)
    assert sqlstate_of(exc) == sqlstate
    assert is_serialization_conflict(exc)


@pytest.mark.unit
def test_other_errors_are_not_conflicts(db_error):
    assert not is_serialization_conflict(db_error("23503"))
    assert not is_serialization_conflict(RuntimeError("40001"))


@pytest.mark.unit
@pytest.mark.asyncio
async def test_conflicts_rerun_the_whole_unit_of_work(factory, log, db_error):
    work = failing_work([db_error("40001"), db_error("23505")])

    result = await run_serializable(work, session_factory=factory, max_attempts=5)

    assert result == "done"
    assert len(work.calls) == 3
    # every run gets a fresh session, and only the last one commits
    assert len({id(db) for db in work.calls}) == 3
    assert log.count(("begin", "SERIALIZABLE")) == 3
    assert log.count(("rollback", None)) == 2
    assert log[-1] == ("commit", None)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_non_conflict_database_error_is_raised_at_once(factory, log, db_error):
    error = db_error("23503")
    work = failing_work([error])

    with pytest.raises(type(error)) as raised:
        await run_serializable(work, session_factory=factory, max_attempts=5)

    assert raised.value is error
    assert len(work.calls) == 1
    assert ("commit", None) not in log


@pytest.mark.unit
@pytest.mark.asyncio
async def test_application_error_rolls_back_without_retry(factory, log):
    work = failing_work([ValueError("bad input")])

    with pytest.raises(ValueError):
        await run_serializable(work, session_factory=factory, max_attempts=5)

    assert len(work.calls) == 1
    assert log == [("begin", "SERIALIZABLE"), ("rollback", None)]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_gives_up_after_attempt_limit(factory, log, db_error):
    work = failing_work([db_error("40001")] * 3)

    with pytest.raises(Exception) as raised:
        await run_serializable(work, session_factory=factory, max_attempts=3)

    assert sqlstate_of(raised.value) == "40001"
    assert len(work.calls) == 3
    assert ("commit", None) not in log
