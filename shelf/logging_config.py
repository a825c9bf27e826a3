"""Logging setup for mangashelf.

One rotating log file in the data directory (everything from DEBUG up) and a
Rich console on stderr at the requested level. Modules only ever call
get_logger(); the CLI calls setup_logging() once per command.
"""

from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme


LOG_FILENAME = "mangashelf.log"
LOG_MAX_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 5

FILE_FORMAT = "%(asctime)s - %(levelname)-8s - %(name)s - %(message)s"

# Third-party loggers capped at WARNING on both handlers.
NOISY_LOGGERS = ("watchdog", "PIL")

_handlers: list[logging.Handler] = []


def _default_log_dir() -> Path:
    # Mirrors config.DATA_DIR; config imports this module so it can't be used here.
    env = os.environ.get("DATA_DIR")
    if env:
        return Path(env)
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent
    return Path(__file__).resolve().parents[1]


def _file_handler(log_file: Path) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        log_file,
        maxBytes=LOG_MAX_BYTES,
        backupCount=LOG_BACKUPS,
        encoding="utf-8",
    )
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def _console_handler(level: int) -> RichHandler:
    console = Console(theme=Theme({"logging.level.info": "bold red"}), stderr=True)
    handler = RichHandler(
        console=console,
        rich_tracebacks=True,
        show_time=False,
        show_path=False,
    )
    handler.setLevel(level)
    return handler


def setup_logging(log_level: str = "INFO", log_dir: Optional[Path] = None) -> None:
    """Install the file and console handlers on the root logger.

    Calling it again is a no-op until reset_logging() is called.
    """
    if _handlers:
        return

    level = getattr(logging, log_level.upper(), logging.INFO)
    directory = log_dir or _default_log_dir()
    directory.mkdir(parents=True, exist_ok=True)

    _handlers.extend([_file_handler(directory / LOG_FILENAME), _console_handler(level)])

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    for handler in _handlers:
        root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    # alembic logs through the root handlers
    alembic_logger = logging.getLogger("alembic")
    alembic_logger.handlers = []
    alembic_logger.propagate = True


def reset_logging() -> None:
    """Detach and close the handlers installed by setup_logging()."""
    root_logger = logging.getLogger()
    while _handlers:
        handler = _handlers.pop()
        root_logger.removeHandler(handler)
        handler.close()


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
