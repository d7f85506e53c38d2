"""
Planroom Database Base — SQLAlchemy declarative base, mixins, and engine registry.

Provides:
- Base: SQLAlchemy declarative base for all Planroom tables
- AuditMixin: created_at, updated_at, created_by
- EngineRegistry: named engines with their session factories
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import Column, DateTime, String, create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool


def new_id() -> str:
    """Primary keys are UUID strings, generated client-side."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all Planroom models."""
    pass


class AuditMixin:
    """Adds created_at, updated_at, created_by columns."""
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
    created_by = Column(String(64), nullable=True)


class EngineRegistry:
    """
    Registry of named SQLAlchemy engines.

    Usage:
        registry = EngineRegistry()
        registry.register("planroom", "postgresql://...")
        session = registry.get_session("planroom")
    """

    def __init__(self):
        self._engines: Dict[str, Engine] = {}
        self._session_factories: Dict[str, sessionmaker] = {}

    def register(
        self,
        name: str,
        url: str,
        pool_size: int = 10,
        max_overflow: int = 20,
        pool_timeout: int = 30,
        pool_recycle: int = 1800,
        pool_pre_ping: bool = True,
        **kwargs: Any,
    ) -> Engine:
        """
        Register (or replace) a database engine.

        SQLite gets no pool sizing; in-memory SQLite shares one connection so
        every session sees the same database.
        """
        if name in self._engines:
            self._engines[name].dispose()

        parsed = make_url(url)
        if parsed.get_backend_name() == "sqlite":
            kwargs.setdefault("connect_args", {"check_same_thread": False})
            if parsed.database in (None, "", ":memory:"):
                kwargs.setdefault("poolclass", StaticPool)
            engine = create_engine(url, **kwargs)
        else:
            engine = create_engine(
                url,
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_timeout=pool_timeout,
                pool_recycle=pool_recycle,
                pool_pre_ping=pool_pre_ping,
                **kwargs,
            )
        self._engines[name] = engine
        self._session_factories[name] = sessionmaker(bind=engine, expire_on_commit=False)
        return engine

    def get(self, name: str) -> Engine:
        if name not in self._engines:
            raise KeyError(f"Engine '{name}' not registered. Available: {list(self._engines.keys())}")
        return self._engines[name]

    def get_session(self, name: str) -> Session:
        """Get a new session for a registered engine."""
        if name not in self._session_factories:
            raise KeyError(
                f"Session factory '{name}' not found. Available: {list(self._session_factories.keys())}"
            )
        return self._session_factories[name]()

    def dispose(self, name: Optional[str] = None) -> None:
        """Dispose one engine (and forget it) or all of them."""
        names = [name] if name else list(self._engines)
        for n in names:
            engine = self._engines.pop(n, None)
            self._session_factories.pop(n, None)
            if engine is not None:
                engine.dispose()

    @property
    def registered_names(self) -> list:
        return list(self._engines.keys())


# Global engine registry singleton
engine_registry = EngineRegistry()
