"""String key/value persistence backing the cache store."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Dict, Optional, Protocol

from sqlalchemy import Column, DateTime, String, Text, create_engine, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

logger = logging.getLogger(__name__)

DEFAULT_CONNECTION_STRING = "sqlite:///feedboard.db"


class StorageError(RuntimeError):
    """Raised when the underlying store rejects an operation."""


class StorageFullError(StorageError):
    """Raised when a write would exceed the store's capacity."""


class Storage(Protocol):
    """Minimal protocol for durable string stores."""

    def get(self, key: str) -> Optional[str]:
        """Return the stored value or ``None``."""

    def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``."""

    def remove(self, key: str) -> None:
        """Delete ``key`` if present."""


class Base(DeclarativeBase):
    pass


class CacheEntryModel(Base):
    """Serialized cache record."""

    __tablename__ = "cache_entries"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))


def init_engine(connection_string: Optional[str]) -> Optional[Engine]:
    """Initialize the database engine."""
    if not connection_string:
        return None

    logger.info("Initializing cache database: %s", connection_string)
    engine = create_engine(connection_string)
    Base.metadata.create_all(engine)
    return engine


def get_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Return a session factory for the given engine."""
    return sessionmaker(bind=engine)


class SqlStorage:
    """SQLAlchemy-backed implementation of :class:`Storage`."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    @classmethod
    def from_connection_string(cls, connection_string: str) -> "SqlStorage":
        engine = init_engine(connection_string)
        if engine is None:
            raise ValueError("A connection string is required for SQL storage.")
        return cls(get_session_factory(engine))

    def get(self, key: str) -> Optional[str]:
        try:
            with self._session_factory() as session:
                stmt = select(CacheEntryModel).where(CacheEntryModel.key == key)
                row = session.execute(stmt).scalar_one_or_none()
                return row.value if row else None
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to read {key}: {exc}") from exc

    def set(self, key: str, value: str) -> None:
        try:
            with self._session_factory() as session:
                stmt = select(CacheEntryModel).where(CacheEntryModel.key == key)
                existing = session.execute(stmt).scalar_one_or_none()
                if existing:
                    existing.value = value
                    existing.updated_at = datetime.now(timezone.utc)
                else:
                    session.add(CacheEntryModel(key=key, value=value))
                try:
                    session.commit()
                except Exception:
                    session.rollback()
                    raise
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to write {key}: {exc}") from exc

    def remove(self, key: str) -> None:
        try:
            with self._session_factory() as session:
                stmt = select(CacheEntryModel).where(CacheEntryModel.key == key)
                existing = session.execute(stmt).scalar_one_or_none()
                if existing is None:
                    return
                session.delete(existing)
                try:
                    session.commit()
                except Exception:
                    session.rollback()
                    raise
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to remove {key}: {exc}") from exc


class MemoryStorage:
    """Dictionary-backed store with an optional character quota."""

    def __init__(self, capacity: Optional[int] = None):
        self.capacity = capacity
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            if self.capacity is not None:
                used = sum(
                    len(k) + len(v) for k, v in self._data.items() if k != key
                )
                if used + len(key) + len(value) > self.capacity:
                    raise StorageFullError(f"Quota exceeded while writing {key}")
            self._data[key] = value

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self):
        with self._lock:
            return list(self._data)
