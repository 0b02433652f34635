"""Unit tests for the retry-with-fallback helper."""

from contextlib import contextmanager

from sqlalchemy import text

from tutorapi.core.retry import ErrorHandler
from tutorapi.database.models import AppErrorLog, Profile


class _Flaky:
    """Callable failing a fixed number of times before succeeding."""

    def __init__(self, failures: int, result="ok"):
        self.failures = failures
        self.result = result
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise RuntimeError(f"boom {self.calls}")
        return self.result


def _handler(session, sleeps=None, max_attempts=3):
    @contextmanager
    def session_factory():
        yield session
        session.commit()

    return ErrorHandler(
        max_attempts=max_attempts,
        retry_delay=1.0,
        session_factory=session_factory,
        sleep=(sleeps.append if sleeps is not None else lambda _: None),
    )


def test_retry_succeeds_after_failures(session) -> None:
    """Two failures then success returns the result with linear backoff."""
    sleeps = []
    operation = _Flaky(failures=2)

    result = _handler(session, sleeps).handle_with_retry(operation, lambda: "fallback", "load_profile")

    assert result == "ok"
    assert operation.calls == 3
    assert sleeps == [1.0, 2.0]
    assert session.query(AppErrorLog).count() == 2


def test_retry_falls_back_after_last_attempt(session) -> None:
    """Exhausted attempts return the fallback without sleeping after the last one."""
    sleeps = []
    operation = _Flaky(failures=10)

    result = _handler(session, sleeps).handle_with_retry(operation, lambda: "fallback", "load_profile")

    assert result == "fallback"
    assert operation.calls == 3
    assert sleeps == [1.0, 2.0]

    rows = session.query(AppErrorLog).all()
    assert {row.location for row in rows} == {"load_profile"}
    assert sorted(row.payload["attempt"] for row in rows) == [1, 2, 3]
    assert all(row.source == "unified_system" for row in rows)


def test_database_operation_fallback_on_none_and_error(session) -> None:
    handler = _handler(session)

    assert handler.handle_database_operation(lambda: {"a": 1}, {}, "read") == {"a": 1}
    assert handler.handle_database_operation(lambda: None, {"default": True}, "read") == {"default": True}
    assert handler.handle_database_operation(_Flaky(failures=1), "fallback", "read") == "fallback"
    assert session.query(AppErrorLog).count() == 1


def test_log_error_swallows_logging_failures() -> None:
    """A broken error sink never masks the original error path."""

    @contextmanager
    def broken_factory():
        raise RuntimeError("database down")
        yield

    handler = ErrorHandler(max_attempts=1, session_factory=broken_factory, sleep=lambda _: None)

    assert handler.handle_with_retry(_Flaky(failures=5), lambda: "fallback", "ctx") == "fallback"


def test_savepoint_discards_only_the_failed_attempt(session) -> None:
    """Writes of a failed attempt roll back; earlier work in the transaction survives."""
    session.add(Profile(user_id="kept"))
    session.flush()

    def _write_then_fail():
        session.add(Profile(user_id="discarded"))
        session.flush()
        session.execute(text("SELECT * FROM missing_table"))

    result = _handler(session, max_attempts=2).handle_with_retry(
        _write_then_fail, lambda: "fallback", "profile_write", savepoint=session,
    )

    assert result == "fallback"
    assert session.query(Profile).filter_by(user_id="kept").count() == 1
    assert session.query(Profile).filter_by(user_id="discarded").count() == 0
    assert session.query(AppErrorLog).filter_by(location="profile_write").count() == 2


def test_savepoint_keeps_successful_attempt(session) -> None:
    def _create():
        session.add(Profile(user_id="created"))
        session.flush()
        return "created"

    handler = _handler(session)

    assert handler.handle_with_retry(_create, lambda: None, "create", savepoint=session) == "created"
    assert handler.handle_database_operation(lambda: None, "empty", "read", savepoint=session) == "empty"
    assert session.query(Profile).filter_by(user_id="created").count() == 1
