"""
Database Initialization - Create the tables the handlers use.

Run directly to create the tables against DATABASE_URL:
    python -m tutorapi.database.init_db
"""
from tutorapi.core.logging_config import get_logger
from tutorapi.database.connection import get_database
from tutorapi.database.models import Base

logger = get_logger(__name__)


def init_tables() -> bool:
    """
    Create all tables if they don't exist.

    Returns:
        True if tables were created successfully
    """
    try:
        Base.metadata.create_all(get_database().engine)
        logger.info("Database tables initialized successfully")
        return True
    except Exception as e:
        logger.error(f"Failed to initialize tables: {e}")
        raise


def drop_tables() -> bool:
    """
    Drop all tables (use with caution!).

    This is mainly for testing/development purposes.
    """
    try:
        Base.metadata.drop_all(get_database().engine)
        logger.warning("Database tables dropped")
        return True
    except Exception as e:
        logger.error(f"Failed to drop tables: {e}")
        raise


if __name__ == "__main__":
    print("Initializing tables...")
    init_tables()
    print("Done!")
