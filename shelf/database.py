"""Database engine creation using SQLModel."""

from __future__ import annotations

from pathlib import Path

from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine


def create_db_engine(db_path: Path) -> Engine:
    """Build a SQLite engine for db_path, creating its directory if needed."""
    db_path.parent.mkdir(parents=True, exist_ok=True)
    # check_same_thread=False is needed for SQLite if using across threads (FastAPI)
    return create_engine(f"sqlite:///{db_path}", connect_args={"check_same_thread": False})


def init_db(engine: Engine) -> None:
    """Create database tables."""
    # Import models to ensure they are registered with SQLModel.metadata
    from . import models  # noqa: F401

    with engine.connect() as conn:
        conn.exec_driver_sql("PRAGMA journal_mode=WAL;")

    SQLModel.metadata.create_all(engine)
