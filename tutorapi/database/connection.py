"""
Database Connection Management.

One SQLAlchemy engine per process, pointed at the hosted Postgres
instance (DATABASE_URL). Request handlers get a session through the
`get_db_session` dependency: the transaction commits when the handler
returns and rolls back when it raises, so a failed referral step never
leaves half-written rewards behind.
"""
from contextlib import contextmanager
from typing import Any, Dict, Generator, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from tutorapi.core.config import get_settings
from tutorapi.core.logging_config import get_logger

logger = get_logger(__name__)

POOL_SIZE = 5
MAX_OVERFLOW = 10


def engine_options(database_url: str) -> Dict[str, Any]:
    """
    create_engine keyword arguments for a URL.

    Pool sizing applies to server databases only; SQLite (local runs)
    needs cross-thread access for the FastAPI threadpool instead.
    """
    if make_url(database_url).get_backend_name() == "sqlite":
        return {"connect_args": {"check_same_thread": False}}
    # pool_pre_ping: hosted Postgres drops idle connections
    return {"pool_pre_ping": True, "pool_size": POOL_SIZE, "max_overflow": MAX_OVERFLOW}


class DatabaseConnection:
    """
    Engine plus session factory.

    Example:
        >>> db = DatabaseConnection()
        >>> with db.get_session() as session:
        ...     session.execute(text("SELECT 1"))
    """

    def __init__(self, connection_url: Optional[str] = None, engine: Optional[Engine] = None):
        """
        Args:
            connection_url: Overrides DATABASE_URL
            engine: Pre-built engine (tests use in-memory SQLite)
        """
        if engine is None:
            db_url = connection_url or get_settings().database_url
            engine = create_engine(db_url, echo=False, **engine_options(db_url))
            logger.info(f"Database engine created for {make_url(db_url).render_as_string(hide_password=True)}")

        self.engine = engine
        self._session_factory = sessionmaker(
            bind=self.engine,
            autoflush=False,
            expire_on_commit=False,
        )

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Transactional session: commit on normal exit, rollback on error."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Database error, rolling back: {e}")
            raise
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def check_connection(self) -> bool:
        """True when `SELECT 1` succeeds."""
        try:
            with self.get_session() as session:
                session.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.error(f"Database connection check failed: {e}")
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()
        logger.info("Database connections closed")


_db_connection: Optional[DatabaseConnection] = None


def get_database() -> DatabaseConnection:
    """Process-wide connection, created on first use so imports stay offline."""
    global _db_connection
    if _db_connection is None:
        _db_connection = DatabaseConnection()
    return _db_connection


def set_database(connection: Optional[DatabaseConnection]) -> None:
    """Replace the process-wide connection (tests, scripts)."""
    global _db_connection
    _db_connection = connection


def get_db_session() -> Generator[Session, None, None]:
    """FastAPI dependency yielding one transactional session per request."""
    with get_database().get_session() as session:
        yield session
