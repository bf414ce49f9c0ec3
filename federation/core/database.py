"""Database configuration and session helpers."""

from __future__ import annotations

from pathlib import Path
from typing import Iterator, Optional

from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from .config import DATABASE_URL

_PROJECT_ROOT = Path(__file__).resolve().parents[2]
_DATA_DIR = _PROJECT_ROOT / "data"


def _default_url() -> str:
    _DATA_DIR.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{_DATA_DIR / 'federation.db'}"


def make_engine(url: Optional[str] = None) -> Engine:
    """Create an engine for ``url`` (``DATABASE_URL`` or the local SQLite file)."""

    url = url or DATABASE_URL or _default_url()
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args)


_engine: Optional[Engine] = None


def get_engine() -> Engine:
    """Return the process-wide engine, creating it on first use."""

    global _engine
    if _engine is None:
        _engine = make_engine()
    return _engine


def create_db_and_tables(engine: Optional[Engine] = None) -> None:
    """Create the user and provider account tables.

    Schema migrations are handled outside this package.
    """

    from .. import models  # noqa: F401 - ensure models are registered with SQLModel

    SQLModel.metadata.create_all(engine or get_engine())


def get_session() -> Iterator[Session]:
    """Yield a database session bound to the process-wide engine."""

    with Session(get_engine()) as session:
        yield session


__all__ = ["create_db_and_tables", "get_engine", "get_session", "make_engine"]
