"""Config management for mangashelf.

Reads `config.ini` from DATA_DIR (beside main.py unless the DATA_DIR
environment variable points elsewhere).
"""

from __future__ import annotations

import configparser
import dataclasses
import os
import pathlib
import sys
from typing import Optional

from .logging_config import get_logger

logger = get_logger(__name__)


def _get_project_root() -> pathlib.Path:
    if getattr(sys, "frozen", False):
        return pathlib.Path(sys.executable).resolve().parent
    return pathlib.Path(__file__).resolve().parents[1]


PROJECT_ROOT = _get_project_root()

# DATA_DIR holds all persistent state (config.ini, mangashelf.db, archives/, thumbnails/).
DATA_DIR = pathlib.Path(os.environ.get("DATA_DIR", str(PROJECT_ROOT)))
DEFAULT_CONFIG_PATH = DATA_DIR / "config.ini"

STORAGE_BACKENDS = ("sqlite", "memory")
VIEW_MODES = ("single", "double")


@dataclasses.dataclass
class StorageConfig:
    namespace: str = "manga-reader"
    backend: str = "sqlite"


@dataclasses.dataclass
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 8181


@dataclasses.dataclass
class ReaderConfig:
    controls_hide_seconds: float = 3.0
    default_view_mode: str = "single"


@dataclasses.dataclass
class ThumbnailConfig:
    width: int = 300
    height: int = 450
    quality: int = 85


@dataclasses.dataclass
class InboxConfig:
    """Folder watched for dropped .cbz files. Disabled when no path is set."""

    path: Optional[pathlib.Path] = None
    enabled: bool = False
    debounce_seconds: int = 2


@dataclasses.dataclass
class ShelfConfig:
    storage: StorageConfig = dataclasses.field(default_factory=StorageConfig)
    server: ServerConfig = dataclasses.field(default_factory=ServerConfig)
    reader: ReaderConfig = dataclasses.field(default_factory=ReaderConfig)
    thumbnails: ThumbnailConfig = dataclasses.field(default_factory=ThumbnailConfig)
    inbox: InboxConfig = dataclasses.field(default_factory=InboxConfig)
    data_dir: pathlib.Path = DATA_DIR

    @property
    def server_host(self) -> str:
        return self.server.host

    @property
    def server_port(self) -> int:
        return self.server.port

    @property
    def database_path(self) -> pathlib.Path:
        return self.data_dir / "mangashelf.db"

    @property
    def archives_dir(self) -> pathlib.Path:
        return self.data_dir / "archives"

    @property
    def thumbnails_dir(self) -> pathlib.Path:
        return self.data_dir / "thumbnails"


def _parse_bool(value: str, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _parse_choice(value: str, choices: tuple[str, ...], default: str, option: str) -> str:
    value = value.strip().lower()
    if value not in choices:
        logger.warning(f"Unknown {option} '{value}', falling back to '{default}'")
        return default
    return value


def load_config(
    config_path: Optional[pathlib.Path] = None,
    data_dir: Optional[pathlib.Path] = None,
) -> ShelfConfig:
    """Load configuration from config.ini.

    Defaults to `config.ini` in DATA_DIR.
    """
    path = config_path or DEFAULT_CONFIG_PATH
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    parser = configparser.ConfigParser()
    parser.read(path)

    storage = StorageConfig(
        namespace=parser.get("storage", "namespace", fallback="manga-reader").strip()
        or "manga-reader",
        backend=_parse_choice(
            parser.get("storage", "backend", fallback="sqlite"),
            STORAGE_BACKENDS,
            "sqlite",
            "storage backend",
        ),
    )

    server = ServerConfig(
        host=parser.get("server", "host", fallback="127.0.0.1"),
        port=parser.getint("server", "port", fallback=8181),
    )

    reader = ReaderConfig(
        controls_hide_seconds=parser.getfloat(
            "reader", "controls_hide_seconds", fallback=3.0
        ),
        default_view_mode=_parse_choice(
            parser.get("reader", "default_view_mode", fallback="single"),
            VIEW_MODES,
            "single",
            "view mode",
        ),
    )

    thumbs = ThumbnailConfig(
        width=parser.getint("thumbnails", "width", fallback=300),
        height=parser.getint("thumbnails", "height", fallback=450),
        quality=parser.getint("thumbnails", "quality", fallback=85),
    )

    inbox_path = parser.get("inbox", "path", fallback="").strip()
    inbox = InboxConfig(
        path=pathlib.Path(inbox_path).expanduser() if inbox_path else None,
        enabled=_parse_bool(parser.get("inbox", "enabled", fallback="false"), False),
        debounce_seconds=parser.getint("inbox", "debounce_seconds", fallback=2),
    )

    return ShelfConfig(
        storage=storage,
        server=server,
        reader=reader,
        thumbnails=thumbs,
        inbox=inbox,
        data_dir=data_dir or path.parent,
    )


def write_default_config(
    config_path: Optional[pathlib.Path] = None,
    inbox_path: Optional[pathlib.Path] = None,
) -> pathlib.Path:
    """Write a config.ini with default settings and return its path."""
    path = config_path or DEFAULT_CONFIG_PATH
    parser = configparser.ConfigParser()

    parser["storage"] = {
        "namespace": "manga-reader",
        "backend": "sqlite",
    }
    parser["server"] = {
        "host": "127.0.0.1",
        "port": "8181",
    }
    parser["reader"] = {
        "controls_hide_seconds": "3",
        "default_view_mode": "single",
    }
    parser["thumbnails"] = {
        "width": "300",
        "height": "450",
        "quality": "85",
    }
    parser["inbox"] = {
        "path": str(inbox_path.expanduser()) if inbox_path else "",
        "enabled": "true" if inbox_path else "false",
        "debounce_seconds": "2",
    }

    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w") as handle:
        parser.write(handle)
    return path


_cached_config: Optional[ShelfConfig] = None


def get_config() -> ShelfConfig:
    """Return the cached config singleton. Loads from disk on first call."""
    global _cached_config
    if _cached_config is None:
        _cached_config = load_config()
    return _cached_config


def reset_config_cache() -> None:
    """Clear the cached config (useful for tests)."""
    global _cached_config
    _cached_config = None
