"""On-disk cache of imported archive bytes, keyed by manga id.

Lets a manga be reopened in a later session without asking for the file again.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import NamedTuple, Optional

from .errors import StorageError
from .logging_config import get_logger

logger = get_logger(__name__)


class CachedArchiveInfo(NamedTuple):
    path: Path
    size: int
    created_at: datetime
    modified_at: datetime


class ArchiveCache:
    def __init__(self, directory: Path):
        self.directory = directory

    def path_for(self, manga_id: str) -> Path:
        return self.directory / f"{manga_id}.cbz"

    def put(self, manga_id: str, data: bytes) -> Path:
        path = self.path_for(manga_id)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_suffix(".cbz.part")
            tmp_path.write_bytes(data)
            tmp_path.replace(path)
        except OSError as exc:
            raise StorageError(f"Failed to cache archive {manga_id}: {exc}") from exc
        return path

    def get(self, manga_id: str) -> Optional[bytes]:
        path = self.path_for(manga_id)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageError(f"Failed to read cached archive {manga_id}: {exc}") from exc

    def info(self, manga_id: str) -> Optional[CachedArchiveInfo]:
        path = self.path_for(manga_id)
        try:
            stat = path.stat()
        except FileNotFoundError:
            return None
        return CachedArchiveInfo(
            path=path,
            size=stat.st_size,
            created_at=datetime.fromtimestamp(stat.st_ctime, tz=timezone.utc),
            modified_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
        )

    def remove(self, manga_id: str) -> bool:
        path = self.path_for(manga_id)
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as exc:
            logger.error(f"Failed to delete cached archive {path}: {exc}")
            return False

    def cleanup_orphans(self, valid_ids: set[str]) -> int:
        """Delete cached archives whose manga is no longer in the library."""
        if not self.directory.exists():
            return 0
        deleted = 0
        for archive_file in self.directory.glob("*.cbz"):
            if archive_file.stem not in valid_ids and self.remove(archive_file.stem):
                deleted += 1
        return deleted
