"""Alembic migration helpers for mangashelf.

This is the only module in the project that imports alembic directly.
The CLI goes through the functions below; each takes the database file to
operate on so the configured data directory is honoured.
"""

from __future__ import annotations

import shutil
import sqlite3
from pathlib import Path
from typing import Optional

from alembic import command as alembic_command
from alembic.config import Config as AlembicConfig
from alembic.script import ScriptDirectory

from .config import PROJECT_ROOT
from .logging_config import get_logger

logger = get_logger(__name__)


def _alembic_cfg(db_path: Path) -> AlembicConfig:
    """Build an AlembicConfig for our alembic.ini, bound to db_path."""
    cfg = AlembicConfig(str(PROJECT_ROOT / "alembic.ini"))
    # Absolute script_location so the CLI works from any working directory.
    cfg.set_main_option("script_location", str(PROJECT_ROOT / "migrations"))
    cfg.set_main_option("sqlalchemy.url", f"sqlite:///{db_path}")
    return cfg


def _backup_db(db_path: Path) -> Optional[Path]:
    """Copy mangashelf.db to mangashelf.db.bak, replacing any previous backup."""
    if not db_path.exists():
        return None
    backup = db_path.with_suffix(".db.bak")
    shutil.copy2(db_path, backup)
    return backup


def _read_version(db_path: Path) -> Optional[str]:
    """Return the stamped revision, or None for a missing or unversioned DB."""
    if not db_path.exists():
        return None
    conn = sqlite3.connect(db_path)
    try:
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='alembic_version'"
        )
        if cur.fetchone() is None:
            return None
        row = conn.execute("SELECT version_num FROM alembic_version").fetchone()
        return row[0] if row else None
    finally:
        conn.close()


def head_revision(db_path: Path) -> str:
    script = ScriptDirectory.from_config(_alembic_cfg(db_path))
    return script.get_current_head() or "unknown"


def get_status(db_path: Path) -> tuple[str | None, str]:
    """Return (current_revision, head_revision)."""
    return _read_version(db_path), head_revision(db_path)


def run_migrations(db_path: Path, backup: bool = True) -> None:
    """Upgrade db_path to head, backing it up first when it already exists."""
    if backup:
        saved = _backup_db(db_path)
        if saved:
            logger.info(f"Backed up database to {saved.name}")
    db_path.parent.mkdir(parents=True, exist_ok=True)
    alembic_command.upgrade(_alembic_cfg(db_path), "head")


def stamp_if_needed(db_path: Path) -> None:
    """Stamp a database created by create_all() so later upgrades know its baseline."""
    if not db_path.exists() or _read_version(db_path) is not None:
        return
    alembic_command.stamp(_alembic_cfg(db_path), "head")
