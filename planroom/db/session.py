"""
Planroom Database Session Management.

One entry point to initialise the database plus the transaction scope every
service operation runs in. Uses the global EngineRegistry.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from planroom.db.base import Base, engine_registry
from planroom.engine.errors import PlanroomError, PlanroomRecordError

logger = logging.getLogger("planroom.db.session")

DEFAULT_CONNECTION = "planroom"


def init_db(
    db_url: str,
    name: str = DEFAULT_CONNECTION,
    create_tables: bool = False,
    pool_size: int = 10,
    max_overflow: int = 20,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    pool_pre_ping: bool = True,
) -> None:
    """
    Register the engine and optionally create the tables.

    What it does
    ────────────
    1. Registers a named engine in EngineRegistry (replacing any previous one).
    2. On SQLite, turns on foreign key enforcement for every connection so the
       ``nodes.parent_id`` RESTRICT rule holds there too.
    3. Optionally runs ``Base.metadata.create_all()`` (dev, tests, ``planroom init``).
    """
    # Table definitions must be imported before create_all
    import planroom.db.models  # noqa: F401

    engine = engine_registry.register(
        name, db_url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        pool_pre_ping=pool_pre_ping,
    )

    if engine.dialect.name == "sqlite":
        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    if create_tables:
        Base.metadata.create_all(engine)
        logger.info("Created tables on '%s'", name)


@contextmanager
def session_scope(
    name: str = DEFAULT_CONNECTION,
    operation: Optional[str] = None,
) -> Generator[Session, None, None]:
    """
    One transaction: commit on success, rollback on any error, always close.

    Planroom errors propagate unchanged. Backend failures are rolled back and
    re-raised as a single PlanroomRecordError so callers never see a
    partially-applied composite operation.

    Usage:
        with session_scope(operation="node.create") as session:
            session.add(row)
    """
    session = engine_registry.get_session(name)
    try:
        yield session
        session.commit()
    except PlanroomError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.error("Transaction '%s' rolled back: %s", operation or "unnamed", e)
        raise PlanroomRecordError(
            f"Database operation failed: {e.__class__.__name__}",
            operation=operation,
            cause=str(e),
        ) from e
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def close_all_sessions() -> None:
    """Dispose all engines. Used during shutdown."""
    engine_registry.dispose()
