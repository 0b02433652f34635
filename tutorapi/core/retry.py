"""
Error Handler - retry-with-fallback around flaky operations.

Every failed attempt is logged and written to the `app_error_logs` table
through its own session, so the record survives even when the caller's
transaction is rolled back.

Pass the request session as `savepoint` when the operation runs on it:
each attempt then runs inside a SAVEPOINT, so a failed statement rolls
back alone and the request transaction stays usable (Postgres aborts the
whole transaction otherwise).
"""
import time
import traceback
from datetime import datetime
from typing import Callable, Optional, TypeVar

from sqlalchemy.orm import Session

from tutorapi.core.config import get_settings
from tutorapi.core.logging_config import get_logger
from tutorapi.database.connection import get_database
from tutorapi.database.models import AppErrorLog

logger = get_logger(__name__)

T = TypeVar("T")


class ErrorHandler:
    """
    Retry and fallback strategies for handler operations.

    Example:
        >>> handler = ErrorHandler()
        >>> profile = handler.handle_with_retry(
        ...     lambda: service.load_profile(user_id),
        ...     lambda: DEFAULT_PROFILE,
        ...     "load_profile",
        ...     savepoint=session,
        ... )
    """

    def __init__(
        self,
        max_attempts: Optional[int] = None,
        retry_delay: Optional[float] = None,
        session_factory: Optional[Callable] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            max_attempts: Attempts before falling back (default from settings, 3)
            retry_delay: Base delay in seconds; attempt N waits delay * N
            session_factory: Context manager factory used to write error logs
            sleep: Injectable sleep function
        """
        settings = get_settings()
        self.max_attempts = max_attempts or settings.retry_max_attempts
        self.retry_delay = settings.retry_delay_seconds if retry_delay is None else retry_delay
        self._session_factory = session_factory
        self._sleep = sleep

    @staticmethod
    def _run(operation: Callable[[], T], savepoint: Optional[Session]) -> T:
        if savepoint is None:
            return operation()
        with savepoint.begin_nested():
            return operation()

    def handle_with_retry(
        self,
        operation: Callable[[], T],
        fallback: Callable[[], T],
        context: str,
        savepoint: Optional[Session] = None,
    ) -> T:
        """
        Run `operation`, retrying with linear backoff, then fall back.

        Args:
            operation: Zero-argument callable to attempt
            fallback: Zero-argument callable producing the fallback value
            context: Location name used in logs
            savepoint: Session to scope each attempt in a SAVEPOINT

        Returns:
            The operation's result, or the fallback's after the last failure
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                return self._run(operation, savepoint)
            except Exception as e:
                logger.error(f"{context} failed (attempt {attempt}/{self.max_attempts}): {e}")
                self.log_error(e, context, attempt)

                if attempt < self.max_attempts:
                    self._sleep(self.retry_delay * attempt)

        logger.warning(f"{context} failed after {self.max_attempts} attempts, using fallback")
        return fallback()

    def handle_database_operation(
        self,
        operation: Callable[[], Optional[T]],
        fallback: T,
        context: str,
        savepoint: Optional[Session] = None,
    ) -> T:
        """
        Run a single database read, returning `fallback` on error or no data.
        """
        try:
            result = self._run(operation, savepoint)
        except Exception as e:
            logger.error(f"Database operation failed in {context}: {e}")
            self.log_error(e, context, 1)
            return fallback

        if result is None:
            logger.warning(f"No data returned from {context}, using fallback")
            return fallback

        return result

    def log_error(self, error: Exception, context: str, attempt: int) -> None:
        """Persist an error row; failures here are logged and swallowed."""
        try:
            session_factory = self._session_factory or get_database().get_session
            with session_factory() as session:
                session.add(AppErrorLog(
                    message=str(error) or error.__class__.__name__,
                    stack="".join(traceback.format_exception(type(error), error, error.__traceback__)),
                    location=context,
                    source="unified_system",
                    payload={"attempt": attempt, "timestamp": datetime.utcnow().isoformat()},
                ))
        except Exception as log_error:
            logger.error(f"Failed to log error: {log_error}")
