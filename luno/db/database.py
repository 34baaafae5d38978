"""
Engine, session and schema management.
"""
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

from sqlalchemy import func
from sqlmodel import SQLModel, Session, create_engine, select

from luno.config import get_settings
from luno.db.models import (
    Account,
    Budget,
    Category,
    Goal,
    Household,
    Notification,
    SubscriptionBill,
    Transaction,
    User,
)
from luno.logger import get_logger

logger = get_logger(__name__)

_engine: Optional[Any] = None


def get_engine():
    """Get or create the SQLModel engine."""
    global _engine
    if _engine is None:
        settings = get_settings()
        url = settings.DATABASE_URL
        connect_args = {}

        if url.startswith("sqlite"):
            # Ensure data directory exists
            db_file = url.replace("sqlite:///", "")
            if db_file and db_file != ":memory:" and not url.startswith("sqlite://:"):
                Path(db_file).parent.mkdir(parents=True, exist_ok=True)
            connect_args = {"check_same_thread": False, "timeout": 30.0}

        _engine = create_engine(
            url,
            connect_args=connect_args,
            echo=False,
            pool_pre_ping=True,
        )
    return _engine


def reset_engine() -> None:
    """Dispose the cached engine (settings changed, tests)."""
    global _engine
    if _engine is not None:
        _engine.dispose()
    _engine = None


def init_db(drop_all: bool = False) -> None:
    """
    Initialize database schema.

    Args:
        drop_all: If True, drop all tables before creating (DESTRUCTIVE!)
    """
    engine = get_engine()

    if drop_all:
        logger.warning("dropping_all_tables")
        SQLModel.metadata.drop_all(engine)

    SQLModel.metadata.create_all(engine)
    logger.info("database_initialized")


@contextmanager
def get_session_context() -> Iterator[Session]:
    """
    Context manager for database sessions in service layer and jobs.

    Usage:
        with get_session_context() as session:
            session.add(item)
            session.commit()
    """
    with Session(get_engine()) as session:
        yield session


def check_db_health() -> dict[str, Any]:
    """
    Check database connectivity and get basic stats.

    Returns:
        Dict with status and table counts
    """
    tables = {
        "users": User,
        "accounts": Account,
        "transactions": Transaction,
        "categories": Category,
        "budgets": Budget,
        "goals": Goal,
        "households": Household,
        "bills": SubscriptionBill,
        "notifications": Notification,
    }
    try:
        with get_session_context() as session:
            counts = {
                name: session.exec(select(func.count(model.id))).one()
                for name, model in tables.items()
            }
            return {"status": "healthy", "counts": counts}
    except Exception as e:
        logger.error("database_health_check_failed", error=str(e))
        return {"status": "unhealthy", "error": str(e)}
