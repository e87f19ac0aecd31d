import logging
from typing import Generator

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.orm import sessionmaker, Session, declarative_base

from messenger.config import settings

logger = logging.getLogger(__name__)

_SQLITE = settings.DATABASE_URL.startswith("sqlite")

# SQLite connections are shared with FastAPI's threadpool
engine = create_engine(
    settings.DATABASE_URL,
    connect_args={"check_same_thread": False} if _SQLITE else {},
)

if _SQLITE:
    @event.listens_for(engine, "connect")
    def _sqlite_foreign_keys(dbapi_connection, connection_record):
        # ON DELETE CASCADE is a no-op in SQLite without this pragma
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

SessionLocal = sessionmaker(bind=engine, autoflush=False)

Base = declarative_base()


def init_db() -> None:
    """Create any missing tables. Runs once at application startup."""
    # registers the mapped classes on Base.metadata
    from messenger import models  # noqa: F401

    try:
        Base.metadata.create_all(bind=engine)
    except Exception:
        logger.exception("Could not create messenger schema")
        raise
    logger.info("Messenger schema ready", extra={"tables": len(Base.metadata.tables)})


def get_db() -> Generator[Session, None, None]:
    """Request-scoped session dependency."""
    with SessionLocal() as db:
        yield db


def check_db_health() -> bool:
    """
    Readiness check: the database answers and the users table exists.

    Returns:
        False on any connection error or a missing schema.
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            schema_applied = inspect(conn).has_table("users")
    except Exception as e:
        logger.error(f"Database unreachable: {e}")
        return False

    if not schema_applied:
        logger.error("Database schema not applied: 'users' table not found")
    return schema_applied
