import logging

from sqlalchemy import create_engine, event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import Session, sessionmaker
from app.config import get_settings
from app.errors import UnexpectedError

logger = logging.getLogger(__name__)
settings = get_settings()


def enable_sqlite_foreign_keys(engine):
    """
    SQLite ignores ON DELETE CASCADE unless foreign keys are switched on
    for every new connection.
    """
    if engine.dialect.name != "sqlite":
        return

    @event.listens_for(engine, "connect")
    def _set_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# check_same_thread=False needed for SQLite with FastAPI
engine = create_engine(
    settings.database_url,
    connect_args={"check_same_thread": False} if "sqlite" in settings.database_url else {},
    echo=settings.sql_echo
)
enable_sqlite_foreign_keys(engine)

# Session factory for database operations
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for all models
Base = declarative_base()


def get_db():
    """
    Dependency that provides database session to route handlers.
    Ensures session is properly closed after request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def commit(db: Session, action: str) -> None:
    """
    Commit the current unit of work.

    Store failures are rolled back and re-raised as UnexpectedError so the
    API layer answers with a clean 500 envelope.
    """
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Database commit failed while trying to %s", action)
        raise UnexpectedError(f"An error occurred while trying to {action}") from exc


def init_db():
    """
    Initialize database schema.
    Creates all tables defined in models.
    Call this on application startup.
    """
    # Make sure every model is registered on Base.metadata
    import app.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
