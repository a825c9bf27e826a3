"""Library store: the manga collection, reading progress and theme preference.

State is held in memory and written through the PersistenceGateway on every
mutation. Stored documents are validated against their versioned schemas on
load; anything that does not match is discarded. When the gateway fails the
store keeps working in memory only for the rest of its lifetime.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, ValidationError

from .errors import StorageError, StoredValueError
from .logging_config import get_logger
from .models import (
    LibrarySnapshot,
    MangaRecord,
    ProgressRecord,
    ProgressSnapshot,
    SCHEMA_VERSION,
    ThemePreference,
    utcnow,
)
from .storage import PersistenceGateway

logger = get_logger(__name__)

LIBRARY_KEY = "library"
PROGRESS_KEY = "progress"
THEME_KEY = "theme"

THEMES = ("dark", "light")


class LibraryStore:
    def __init__(
        self,
        gateway: PersistenceGateway,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.gateway = gateway
        self.clock = clock or utcnow
        self.memory_only = False
        self._manga: List[MangaRecord] = []
        self._progress: Dict[str, ProgressRecord] = {}
        self._theme = "dark"
        self._load()

    # --- Loading ---

    def _read(self, key: str, schema: type[BaseModel]) -> Optional[BaseModel]:
        try:
            raw = self.gateway.get(key)
        except StoredValueError as exc:
            self._discard(key, str(exc))
            return None
        except StorageError as exc:
            self._enter_memory_only(exc)
            return None
        if raw is None:
            return None
        try:
            return schema.model_validate(raw)
        except ValidationError as exc:
            self._discard(
                key, f"does not match schema v{SCHEMA_VERSION} ({exc.error_count()} errors)"
            )
            return None

    def _discard(self, key: str, reason: str) -> None:
        """Drop an unusable stored value so the next start does not trip over it."""
        logger.warning(f"Discarding stored '{key}': {reason}")
        try:
            self.gateway.remove(key)
        except StorageError as exc:
            self._enter_memory_only(exc)

    def _load(self) -> None:
        library = self._read(LIBRARY_KEY, LibrarySnapshot)
        if library is not None:
            seen = set()
            for record in library.items:
                if record.id in seen:
                    logger.warning(f"Dropping duplicate manga record {record.id}")
                    continue
                seen.add(record.id)
                self._manga.append(record)

        if self.memory_only:
            return

        progress = self._read(PROGRESS_KEY, ProgressSnapshot)
        if progress is not None:
            for manga_id, record in progress.entries.items():
                manga = self.get_manga(manga_id)
                if manga is None or record.manga_id != manga_id:
                    logger.debug(f"Dropping orphaned progress for {manga_id}")
                    continue
                self._progress[manga_id] = record.model_copy(
                    update={"current_page_index": self._clamp(manga, record.current_page_index)}
                )

        if self.memory_only:
            return

        theme = self._read(THEME_KEY, ThemePreference)
        if theme is not None:
            self._theme = theme.theme

    def reload(self) -> None:
        """Re-read stored state, picking up writes made by other processes.

        In memory-only mode the in-process state is all there is, so it is kept.
        """
        if self.memory_only:
            return
        previous = self._manga, self._progress, self._theme
        self._manga, self._progress, self._theme = [], {}, "dark"
        self._load()
        if self.memory_only:
            self._manga, self._progress, self._theme = previous

    # --- Persistence ---

    def _enter_memory_only(self, exc: StorageError) -> None:
        if not self.memory_only:
            logger.warning(f"Storage unavailable, continuing in memory only: {exc}")
        self.memory_only = True

    def _write(self, key: str, value: Any) -> None:
        if self.memory_only:
            return
        try:
            self.gateway.set(key, value)
        except StorageError as exc:
            self._enter_memory_only(exc)

    def _persist_library(self) -> None:
        self._write(LIBRARY_KEY, LibrarySnapshot(items=self._manga).model_dump(mode="json"))

    def _persist_progress(self) -> None:
        self._write(PROGRESS_KEY, ProgressSnapshot(entries=self._progress).model_dump(mode="json"))

    # --- Manga collection ---

    def add_manga(self, record: MangaRecord) -> None:
        if self.get_manga(record.id) is not None:
            raise ValueError(f"Manga {record.id} is already in the library")
        self._manga.append(record)
        self._persist_library()
        logger.info(f"Added '{record.name}' ({record.page_count} pages)")

    def remove_manga(self, manga_id: str) -> bool:
        """Remove a manga and, unconditionally, its progress. Returns whether it existed."""
        remaining = [m for m in self._manga if m.id != manga_id]
        removed = len(remaining) != len(self._manga)
        self._manga = remaining
        self._progress.pop(manga_id, None)
        self._persist_library()
        self._persist_progress()
        if removed:
            logger.info(f"Removed manga {manga_id}")
        return removed

    def get_manga(self, manga_id: str) -> Optional[MangaRecord]:
        return next((m for m in self._manga if m.id == manga_id), None)

    def list_manga(self) -> List[MangaRecord]:
        return list(self._manga)

    # --- Progress ---

    @staticmethod
    def _clamp(manga: MangaRecord, page_index: int) -> int:
        return max(0, min(page_index, max(manga.page_count - 1, 0)))

    def get_progress(self, manga_id: str) -> Optional[ProgressRecord]:
        return self._progress.get(manga_id)

    def set_progress(
        self,
        manga_id: str,
        page_index: int,
        timestamp: Optional[datetime] = None,
    ) -> Optional[ProgressRecord]:
        """Upsert progress. Progress for a manga not in the library is dropped."""
        manga = self.get_manga(manga_id)
        if manga is None:
            logger.debug(f"Ignoring progress for unknown manga {manga_id}")
            return None
        record = ProgressRecord(
            manga_id=manga_id,
            current_page_index=self._clamp(manga, page_index),
            last_read_at=timestamp or self.clock(),
        )
        self._progress[manga_id] = record
        self._persist_progress()
        return record

    def progress_percent(self, manga_id: str) -> int:
        manga = self.get_manga(manga_id)
        progress = self._progress.get(manga_id)
        if manga is None or progress is None or manga.page_count == 0:
            return 0
        return round(progress.current_page_index / manga.page_count * 100)

    # --- Theme ---

    @property
    def theme(self) -> str:
        return self._theme

    def set_theme(self, theme: str) -> None:
        if theme not in THEMES:
            raise ValueError(f"Unknown theme '{theme}', expected one of {', '.join(THEMES)}")
        self._theme = theme
        self._write(THEME_KEY, ThemePreference(theme=theme).model_dump(mode="json"))

    def toggle_theme(self) -> str:
        self.set_theme("light" if self._theme == "dark" else "dark")
        return self._theme
