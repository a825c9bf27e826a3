"""Reader session: the live state of the open manga.

Owns the page cursor, zoom, view mode, controls visibility and fullscreen
flag, and commits progress to the library on every page change. All
transitions run to completion on the calling thread; only archive
extraction is awaited off the event loop.
"""

from __future__ import annotations

import asyncio
import dataclasses
import enum
from datetime import datetime
from typing import Callable, List, Optional

from shelf.logging_config import get_logger
from shelf.models import MangaRecord, Page, utcnow
from shelf.services import LibraryService

from .controls import ControlsTimer, LoopScheduler, Scheduler
from .fullscreen import FullscreenPlatform, HeadlessFullscreen

logger = get_logger(__name__)

ZOOM_MIN = 0.5
ZOOM_MAX = 3.0
ZOOM_STEP = 0.25
CONTROLS_HIDE_SECONDS = 3.0


class SessionState(str, enum.Enum):
    LIBRARY = "library"
    READING = "reading"


class ViewMode(str, enum.Enum):
    SINGLE = "single"
    DOUBLE = "double"


@dataclasses.dataclass(frozen=True)
class ReaderViewState:
    view_mode: ViewMode
    zoom: float
    current_page_index: int
    controls_visible: bool
    fullscreen: bool


def snap_zoom(value: float) -> float:
    """Clamp to [ZOOM_MIN, ZOOM_MAX] on the ZOOM_STEP grid."""
    snapped = round(value / ZOOM_STEP) * ZOOM_STEP
    return min(ZOOM_MAX, max(ZOOM_MIN, snapped))


class ReaderSession:
    def __init__(
        self,
        services: LibraryService,
        *,
        fullscreen: Optional[FullscreenPlatform] = None,
        scheduler: Optional[Scheduler] = None,
        controls_hide_seconds: float = CONTROLS_HIDE_SECONDS,
        view_mode: ViewMode = ViewMode.SINGLE,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.services = services
        self.clock = clock or utcnow

        self.state = SessionState.LIBRARY
        self.manga: Optional[MangaRecord] = None
        self.pages: List[Page] = []
        self.current_page_index = 0
        self.view_mode = ViewMode(view_mode)
        self.zoom = 1.0
        self.controls_visible = True
        self.loading = False

        self._controls = ControlsTimer(
            scheduler or LoopScheduler(), controls_hide_seconds, self._hide_controls
        )
        self._platform = fullscreen or HeadlessFullscreen()
        self.fullscreen = self._platform.is_active()
        self._unsubscribe: Optional[Callable[[], None]] = self._platform.subscribe(
            self._on_fullscreen_change
        )

    # --- Lifecycle ---

    def __enter__(self) -> "ReaderSession":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        """Tear down: release pages, cancel the timer, drop the fullscreen subscription."""
        self._close_archive()
        self.state = SessionState.LIBRARY
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    @property
    def is_reading(self) -> bool:
        return self.state is SessionState.READING

    @property
    def page_count(self) -> int:
        return len(self.pages)

    @property
    def view_state(self) -> ReaderViewState:
        return ReaderViewState(
            view_mode=self.view_mode,
            zoom=self.zoom,
            current_page_index=self.current_page_index,
            controls_visible=self.controls_visible,
            fullscreen=self.fullscreen,
        )

    # --- Opening and closing archives ---

    def _adopt(self, manga: MangaRecord, pages: List[Page]) -> None:
        old_pages = self.pages
        self.pages = pages
        for page in old_pages:
            page.resource.release()

        self.manga = manga
        progress = self.services.library.get_progress(manga.id)
        start = progress.current_page_index if progress else 0
        self.current_page_index = max(0, min(start, len(pages) - 1))
        self.state = SessionState.READING
        self.show_controls()
        logger.info(f"Reading '{manga.name}' from page {self.current_page_index + 1}/{len(pages)}")

    def _close_archive(self) -> None:
        for page in self.pages:
            page.resource.release()
        self.pages = []
        self.manga = None
        self.current_page_index = 0
        self._controls.cancel()

    def open_manga(self, manga_id: str) -> bool:
        """Resume a manga from the library. Returns False if the id is unknown.

        Raises ArchiveUnavailableError or CorruptArchiveError when its pages
        cannot be reloaded; the session is left as it was.
        """
        manga = self.services.library.get_manga(manga_id)
        if manga is None:
            logger.warning(f"Cannot open unknown manga {manga_id}")
            return False
        pages = self.services.load_pages(manga_id)
        self._adopt(manga, pages)
        return True

    async def load_archive(self, data: bytes, filename: str) -> Optional[MangaRecord]:
        """Import and open an archive.

        Returns None without doing anything when another load is in flight.
        CorruptArchiveError, EmptyArchiveError and UnsupportedArchiveError
        propagate with session and library state untouched.
        """
        if self.loading:
            logger.warning(f"Ignoring '{filename}': another archive is still loading")
            return None

        self.loading = True
        try:
            result = await asyncio.to_thread(self.services.extract, data, filename)
        finally:
            self.loading = False

        try:
            manga = self.services.register(result, data)
        except Exception:
            result.release()
            raise
        self._adopt(manga, result.pages)
        return manga

    def back(self) -> None:
        """Close the open archive and return to the library."""
        if self.is_reading:
            logger.debug(f"Closing '{self.manga.name if self.manga else ''}'")
        self._close_archive()
        self.state = SessionState.LIBRARY

    def remove_manga(self, manga_id: str) -> bool:
        if self.manga is not None and self.manga.id == manga_id:
            self.back()
        return self.services.remove(manga_id)

    # --- Navigation ---

    @property
    def step(self) -> int:
        return 2 if self.view_mode is ViewMode.DOUBLE else 1

    def commit(self) -> None:
        """Push the current cursor into the library's progress records."""
        if self.manga is not None:
            self.services.library.set_progress(
                self.manga.id, self.current_page_index, self.clock()
            )

    def _go_to(self, index: int) -> None:
        self.current_page_index = index
        self.commit()
        self.show_controls()

    def next_page(self) -> bool:
        """Advance by one step, or do nothing if that would pass the last page."""
        if not self.is_reading:
            return False
        target = self.current_page_index + self.step
        if target > self.page_count - 1:
            return False
        self._go_to(target)
        return True

    def prev_page(self) -> bool:
        """Retreat by one step, clamping to the first page."""
        if not self.is_reading or self.current_page_index == 0:
            return False
        self._go_to(max(0, self.current_page_index - self.step))
        return True

    def go_to_page(self, index: int) -> bool:
        if not self.is_reading:
            return False
        target = max(0, min(index, self.page_count - 1))
        if target == self.current_page_index:
            return False
        self._go_to(target)
        return True

    def visible_pages(self) -> List[Page]:
        """Pages shown for the current cursor: the spread in double mode."""
        if not self.is_reading:
            return []
        current = self.pages[self.current_page_index]
        if self.view_mode is ViewMode.DOUBLE and self.current_page_index > 0:
            return [self.pages[self.current_page_index - 1], current]
        return [current]

    def toggle_view_mode(self) -> ViewMode:
        self.view_mode = ViewMode.DOUBLE if self.view_mode is ViewMode.SINGLE else ViewMode.SINGLE
        return self.view_mode

    # --- Zoom ---

    def zoom_in(self) -> float:
        self.zoom = snap_zoom(self.zoom + ZOOM_STEP)
        return self.zoom

    def zoom_out(self) -> float:
        self.zoom = snap_zoom(self.zoom - ZOOM_STEP)
        return self.zoom

    def reset_zoom(self) -> float:
        self.zoom = 1.0
        return self.zoom

    # --- Controls ---

    def show_controls(self) -> None:
        self.controls_visible = True
        self._controls.restart()

    def toggle_controls(self) -> bool:
        self.controls_visible = not self.controls_visible
        if self.controls_visible:
            self._controls.restart()
        else:
            self._controls.cancel()
        return self.controls_visible

    def _hide_controls(self) -> None:
        self.controls_visible = False

    # --- Fullscreen ---

    def toggle_fullscreen(self) -> None:
        if self.fullscreen:
            self._platform.exit()
        else:
            self._platform.request()

    def exit_fullscreen(self) -> None:
        if self.fullscreen:
            self._platform.exit()

    def _on_fullscreen_change(self, active: bool) -> None:
        self.fullscreen = active
