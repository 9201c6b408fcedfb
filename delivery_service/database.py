"""
Database engine, session factory and transaction helpers
"""
import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from delivery_service.config import settings

logger = logging.getLogger(__name__)

Base = declarative_base()


def build_engine(url: str, echo: bool = False):
    """Create an engine; SQLite connections get a busy timeout and FK enforcement"""
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": 30}
    engine = create_engine(url, echo=echo, future=True, connect_args=connect_args)
    
    if url.startswith("sqlite"):
        @event.listens_for(engine, "connect")
        def _sqlite_pragmas(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()
    
    return engine


engine = build_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=True)


def init_db(bind=None) -> None:
    """Create all tables"""
    # Import models so they register on Base.metadata
    from delivery_service import models  # noqa: F401
    
    Base.metadata.create_all(bind=bind or engine)


def get_db() -> Iterator[Session]:
    """FastAPI dependency yielding a session per request"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """
    Run a unit of work: commit on success, roll back on any error.
    
    Every state-changing business operation runs inside exactly one of these,
    so a rejected operation never leaves partial writes behind.
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise


def _log_retry(retry_state) -> None:
    logger.warning(
        "Transient database error, retrying (attempt %s): %s",
        retry_state.attempt_number,
        retry_state.outcome.exception(),
    )


# Bounded retry for lock contention / dropped connections. Applied by callers
# (API layer, jobs) around whole operations, never inside business logic.
retry_transient = retry(
    stop=stop_after_attempt(settings.MAX_RETRIES),
    wait=wait_exponential(multiplier=settings.RETRY_DELAY, min=0.05, max=2),
    retry=retry_if_exception_type(OperationalError),
    before_sleep=_log_retry,
    reraise=True,
)
