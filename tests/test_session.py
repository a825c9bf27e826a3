"""Tests for the reader session state machine."""

import asyncio
import io
import zipfile
from datetime import datetime, timezone

import pytest

from reader.controls import ManualScheduler
from reader.fullscreen import HeadlessFullscreen
from reader.session import ZOOM_MAX, ZOOM_MIN, ReaderSession, SessionState, ViewMode
from shelf.cache import ArchiveCache
from shelf.errors import CorruptArchiveError, EmptyArchiveError
from shelf.library import LibraryStore
from shelf.services import LibraryService
from shelf.storage import MemoryGateway

T0 = datetime(2024, 3, 1, tzinfo=timezone.utc)


def _make_cbz(pages: int) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for i in range(1, pages + 1):
            zf.writestr(f"{i:03d}.jpg", f"page {i}".encode())
    return buffer.getvalue()


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler(clock):
    return ManualScheduler(clock=clock)


@pytest.fixture
def services(tmp_path):
    return LibraryService(LibraryStore(MemoryGateway()), cache=ArchiveCache(tmp_path / "archives"))


@pytest.fixture
def session(services, scheduler):
    session = ReaderSession(services, scheduler=scheduler, clock=lambda: T0)
    yield session
    session.close()


def _load(session: ReaderSession, pages: int = 5, filename: str = "test.cbz"):
    return asyncio.run(session.load_archive(_make_cbz(pages), filename))


def test_initial_state(session):
    assert session.state is SessionState.LIBRARY
    assert session.view_state.zoom == 1.0
    assert session.view_state.view_mode is ViewMode.SINGLE
    assert session.view_state.controls_visible
    assert not session.view_state.fullscreen
    assert not session.loading


def test_load_archive_opens_reader(session, services):
    manga = _load(session, pages=5, filename="Dorohedoro 01.cbz")

    assert manga.name == "Dorohedoro 01"
    assert session.is_reading
    assert session.page_count == 5
    assert session.current_page_index == 0
    assert services.library.list_manga() == [manga]


def test_next_page_commits_progress(session, services):
    manga = _load(session)

    assert session.next_page()
    assert session.next_page()

    progress = services.library.get_progress(manga.id)
    assert progress.current_page_index == 2
    assert progress.last_read_at == T0


def test_single_mode_stops_at_last_page(session):
    _load(session, pages=5)
    session.go_to_page(4)

    assert session.next_page() is False
    assert session.current_page_index == 4


def test_double_mode_overshoot_is_noop(session):
    _load(session, pages=5)
    session.go_to_page(3)
    session.toggle_view_mode()

    assert session.next_page() is False
    assert session.current_page_index == 3

    session.go_to_page(4)
    assert session.next_page() is False
    assert session.current_page_index == 4


def test_double_mode_prev_clamps_to_first_page(session):
    _load(session, pages=5)
    session.go_to_page(1)
    session.toggle_view_mode()

    assert session.prev_page()
    assert session.current_page_index == 0
    assert session.prev_page() is False


def test_double_mode_shows_spread(session):
    _load(session, pages=5)
    session.toggle_view_mode()

    assert [p.index for p in session.visible_pages()] == [0]
    session.next_page()
    assert [p.index for p in session.visible_pages()] == [1, 2]


def test_toggle_view_mode_twice_restores(session):
    original = session.view_mode
    session.toggle_view_mode()
    assert session.toggle_view_mode() is original


def test_zoom_stays_in_bounds(session):
    for _ in range(20):
        session.zoom_in()
    assert session.zoom == ZOOM_MAX

    for _ in range(20):
        session.zoom_out()
    assert session.zoom == ZOOM_MIN

    session.zoom_in()
    assert session.zoom == 0.75
    assert session.reset_zoom() == 1.0


def test_controls_hide_after_inactivity(session, scheduler, clock):
    _load(session)
    assert session.controls_visible

    clock.advance(2.9)
    scheduler.run_due()
    assert session.controls_visible

    clock.advance(0.2)
    scheduler.run_due()
    assert not session.controls_visible


def test_activity_restarts_hide_timer(session, scheduler, clock):
    _load(session)

    clock.advance(2.0)
    session.next_page()
    clock.advance(2.0)
    scheduler.run_due()
    assert session.controls_visible
    assert scheduler.pending == 1

    clock.advance(1.5)
    scheduler.run_due()
    assert not session.controls_visible


def test_toggle_controls_cancels_timer(session, scheduler, clock):
    _load(session)

    assert session.toggle_controls() is False
    assert scheduler.pending == 0
    assert session.toggle_controls() is True
    clock.advance(3.0)
    scheduler.run_due()
    assert not session.controls_visible


def test_fullscreen_follows_platform_notifications(services, scheduler):
    platform = HeadlessFullscreen(auto_settle=False)
    session = ReaderSession(services, fullscreen=platform, scheduler=scheduler)

    session.toggle_fullscreen()
    assert session.fullscreen is False

    platform.settle()
    assert session.fullscreen is True

    session.exit_fullscreen()
    platform.settle()
    assert session.fullscreen is False

    session.close()
    assert platform.listener_count == 0


def test_unsupported_fullscreen_is_ignored(services, scheduler):
    session = ReaderSession(
        services, fullscreen=HeadlessFullscreen(supported=False), scheduler=scheduler
    )
    session.toggle_fullscreen()
    assert session.fullscreen is False
    session.close()


def test_concurrent_load_is_rejected(session, services):
    async def load_twice():
        return await asyncio.gather(
            session.load_archive(_make_cbz(3), "first.cbz"),
            session.load_archive(_make_cbz(4), "second.cbz"),
        )

    first, second = asyncio.run(load_twice())

    assert first is not None
    assert second is None
    assert [m.name for m in services.library.list_manga()] == ["first"]
    assert session.page_count == 3
    assert not session.loading


def test_failed_load_keeps_current_manga(session, services):
    manga = _load(session, pages=5)
    session.go_to_page(2)
    pages = list(session.pages)

    with pytest.raises(CorruptArchiveError):
        asyncio.run(session.load_archive(b"garbage", "broken.cbz"))
    with pytest.raises(EmptyArchiveError):
        asyncio.run(session.load_archive(_make_cbz(0), "empty.cbz"))

    assert session.manga == manga
    assert session.current_page_index == 2
    assert session.pages == pages
    assert not any(p.resource.released for p in pages)
    assert services.library.list_manga() == [manga]
    assert not session.loading


def test_loading_new_archive_releases_previous_pages(session):
    _load(session, pages=3, filename="old.cbz")
    old_pages = list(session.pages)

    _load(session, pages=2, filename="new.cbz")

    assert all(p.resource.released for p in old_pages)
    assert session.manga.name == "new"
    assert session.current_page_index == 0


def test_open_manga_resumes_progress(session, services, scheduler):
    manga = _load(session, pages=6)
    session.go_to_page(4)
    session.back()

    assert session.state is SessionState.LIBRARY
    resumed = ReaderSession(services, scheduler=scheduler)
    assert resumed.open_manga(manga.id)
    assert resumed.current_page_index == 4
    assert resumed.visible_pages()[0].resource.read() == b"page 5"
    resumed.close()

    assert session.open_manga("unknown") is False


def test_back_releases_pages(session):
    _load(session)
    pages = list(session.pages)

    session.back()

    assert all(p.resource.released for p in pages)
    assert session.pages == []
    assert session.visible_pages() == []
    assert session.next_page() is False


def test_removing_open_manga_returns_to_library(session, services):
    manga = _load(session)
    session.next_page()

    assert session.remove_manga(manga.id)

    assert session.state is SessionState.LIBRARY
    assert services.library.list_manga() == []
    assert services.library.get_progress(manga.id) is None


def test_default_scheduler_navigates_outside_event_loop(services):
    session = ReaderSession(services)
    manga = asyncio.run(session.load_archive(_make_cbz(5), "default.cbz"))

    assert session.next_page()
    assert session.go_to_page(3)
    assert session.prev_page()
    session.show_controls()

    assert session.current_page_index == 2
    assert session.controls_visible
    assert services.library.get_progress(manga.id).current_page_index == 2

    session.back()
    assert session.open_manga(manga.id)
    assert session.current_page_index == 2
    session.close()
