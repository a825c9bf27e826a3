"""mangashelf CLI entry point."""

from __future__ import annotations

import logging
import queue
from pathlib import Path
from threading import Event
from typing import Optional

import typer

from reader import InputController, ReaderSession, ViewMode
from reader.controls import ManualScheduler
from shelf.config import DEFAULT_CONFIG_PATH, ShelfConfig, load_config, write_default_config
from shelf.database import create_db_engine, init_db
from shelf.errors import ShelfError
from shelf.logging_config import setup_logging
from shelf.migrations import get_status, run_migrations, stamp_if_needed
from shelf.services import LibraryService, build_services


__version__ = "0.1.0"

app = typer.Typer(add_completion=False, help="mangashelf comic archive reader")
logger = logging.getLogger("mangashelf")

STARTUP_BANNER = r"""
                                  __         ____
  __ _  ___ ____  ___ ____ _ ___ / /  ___ _/ / /
 /  ' \/ _ `/ _ \/ _ `/ _ `/(_-</ _ \/ -_) / _/
/_/_/_/\_,_/_//_/\_, /\_,_//___/_//_/\__/_/_/
                /___/
"""

# Terminal key sequences mapped to the key names the input controller expects.
TERMINAL_KEYS = {
    "\x1b[D": "ArrowLeft",
    "\x1b[C": "ArrowRight",
    "\xe0K": "ArrowLeft",
    "\xe0M": "ArrowRight",
    " ": "Space",
    "f": "f",
    "\x1b": "Escape",
}


def _ensure_config() -> ShelfConfig:
    try:
        return load_config()
    except FileNotFoundError:
        typer.echo("[ERROR] config.ini not found. Run: mangashelf init")
        raise typer.Exit(code=1)


def _services() -> LibraryService:
    return build_services(_ensure_config())


def _prepare_database(config: ShelfConfig) -> None:
    """Create tables, stamp legacy DBs, then upgrade to head."""
    if config.storage.backend != "sqlite":
        return
    init_db(create_db_engine(config.database_path))
    stamp_if_needed(config.database_path)
    current, head = get_status(config.database_path)
    if current != head:
        logger.info(f"Migrating database {current} -> {head} ...")
        run_migrations(config.database_path, backup=True)
        logger.info("Migration complete.")


@app.command()
def init(
    inbox: Optional[Path] = typer.Option(None, "--inbox", help="Folder to watch for new .cbz files"),
) -> None:
    """Initialize config.ini with default settings."""
    path = write_default_config(DEFAULT_CONFIG_PATH, inbox)
    typer.echo(f"[OK] Config created at {path}")


@app.command()
def add(
    files: list[Path] = typer.Argument(..., help="CBZ archives to import"),
) -> None:
    """Import one or more archives into the library."""
    setup_logging()
    services = _services()

    failed = 0
    for path in files:
        try:
            manga = services.import_file(path)
        except (ShelfError, OSError) as exc:
            typer.echo(f"[ERROR] {path.name}: {exc}")
            failed += 1
            continue
        typer.echo(f"[OK] {manga.name} ({manga.page_count} pages) -> {manga.id}")

    if failed:
        raise typer.Exit(code=1)


@app.command("list")
def list_library() -> None:
    """List the library in import order."""
    services = _services()
    library = services.library
    records = library.list_manga()
    if not records:
        typer.echo("Library is empty. Add archives with: mangashelf add FILE.cbz")
        return
    for manga in records:
        percent = library.progress_percent(manga.id)
        added = manga.added_at.strftime("%Y-%m-%d")
        typer.echo(f"{manga.id}  {manga.name}  {manga.page_count} pages  {percent}%  added {added}")


@app.command()
def remove(manga_id: str = typer.Argument(..., help="Manga id (see `list`)")) -> None:
    """Remove a manga together with its progress, cached archive and thumbnail."""
    setup_logging()
    services = _services()
    if not services.remove(manga_id):
        typer.echo(f"[WARN] No manga with id {manga_id}")
        raise typer.Exit(code=1)
    typer.echo(f"[OK] Removed {manga_id}")


def _status_line(session: ReaderSession) -> str:
    pages = session.visible_pages()
    names = " | ".join(Path(page.name).name for page in pages)
    flags = [session.view_mode.value, f"zoom {session.zoom:.2f}"]
    if session.fullscreen:
        flags.append("fullscreen")
    if not session.controls_visible:
        flags.append("controls hidden")
    return f"[{session.current_page_index + 1}/{session.page_count}] {names}  ({', '.join(flags)})"


@app.command()
def read(
    manga_id: str = typer.Argument(..., help="Manga id (see `list`)"),
    double: bool = typer.Option(False, "--double", help="Start in double-page view"),
) -> None:
    """Read a manga in the terminal.

    Keys: left/right or space to turn pages, d double view, +/- zoom,
    f fullscreen, Esc or q back to the library.
    """
    setup_logging("WARNING")
    config = _ensure_config()
    services = build_services(config)

    scheduler = ManualScheduler()
    view_mode = ViewMode.DOUBLE if double else ViewMode(config.reader.default_view_mode)
    with ReaderSession(
        services,
        scheduler=scheduler,
        controls_hide_seconds=config.reader.controls_hide_seconds,
        view_mode=view_mode,
    ) as session:
        try:
            opened = session.open_manga(manga_id)
        except ShelfError as exc:
            typer.echo(f"[ERROR] {exc}")
            raise typer.Exit(code=1)
        if not opened:
            typer.echo(f"[ERROR] No manga with id {manga_id}")
            raise typer.Exit(code=1)

        controller = InputController(session)
        while session.is_reading:
            typer.echo(_status_line(session))
            char = typer.getchar()
            scheduler.run_due()
            if char == "q":
                session.back()
            elif char == "d":
                session.toggle_view_mode()
            elif char == "+":
                session.zoom_in()
            elif char == "-":
                session.zoom_out()
            elif char in TERMINAL_KEYS:
                controller.key(TERMINAL_KEYS[char])
            else:
                controller.pointer_move()


@app.command()
def theme(
    value: Optional[str] = typer.Argument(None, help="dark or light; omit to toggle"),
) -> None:
    """Show or change the display theme preference."""
    library = _services().library
    if value is None:
        library.toggle_theme()
    else:
        try:
            library.set_theme(value.lower())
        except ValueError as exc:
            typer.echo(f"[ERROR] {exc}")
            raise typer.Exit(code=1)
    typer.echo(f"Theme: {library.theme}")


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Server host"),
    port: Optional[int] = typer.Option(None, "--port", help="Server port"),
) -> None:
    """Start the listing API server."""
    from shelf.api import run_server

    setup_logging()

    typer.echo(typer.style(STARTUP_BANNER, fg=typer.colors.RED, bold=True))
    config = _ensure_config()
    _prepare_database(config)

    try:
        run_server(config, host=host, port=port)
    except KeyboardInterrupt:
        pass


@app.command()
def watch() -> None:
    """Import archives dropped into the inbox folder until interrupted."""
    from shelf.monitor import process_queue, start_inbox_observer

    setup_logging()
    config = _ensure_config()
    _prepare_database(config)
    services = build_services(config)

    task_queue: queue.Queue = queue.Queue()
    observer = start_inbox_observer(config, task_queue)
    if observer is None:
        typer.echo("[ERROR] Inbox watching is disabled. Set [inbox] path and enabled in config.ini")
        raise typer.Exit(code=1)

    stop_event = Event()
    try:
        process_queue(task_queue, services, stop_event)
    except KeyboardInterrupt:
        stop_event.set()
    finally:
        observer.stop()
        observer.join()


@app.command()
def cleanup() -> None:
    """Remove cached archives and thumbnails of manga no longer in the library."""
    deleted = _services().cleanup()
    typer.echo(f"[INFO] Removed {deleted} orphaned files")


@app.command()
def stats() -> None:
    """Show library statistics."""
    config = _ensure_config()
    services = build_services(config)
    records = services.library.list_manga()

    total_pages = sum(m.page_count for m in records)
    started = [m for m in records if services.library.get_progress(m.id) is not None]
    sizes = [services.cache.info(m.id) for m in records] if services.cache else []
    size_mb = sum(info.size for info in sizes if info) / (1024 ** 2)

    typer.echo("Library Statistics:")
    typer.echo(f"  Total manga: {len(records)}")
    typer.echo(f"  Total pages: {total_pages}")
    typer.echo(f"  Started reading: {len(started)} / {len(records)}")
    typer.echo(f"  Cached archives: {size_mb:.1f} MB")
    typer.echo(f"  Theme: {services.library.theme}")


@app.command()
def migrate(
    check: bool = typer.Option(False, "--check", help="Print status and exit (1 if not at head)"),
) -> None:
    """Run pending database migrations (or check status with --check)."""
    setup_logging()
    config = _ensure_config()
    db_path = config.database_path

    current, head = get_status(db_path)
    if check:
        if current == head:
            typer.echo(f"[OK] Database at {head} (head).")
            raise typer.Exit(code=0)
        typer.echo(f"[WARN] Database behind, current: {current}, head: {head}")
        raise typer.Exit(code=1)

    if current == head:
        logger.info(f"Database already at {head} (head). Nothing to do.")
        raise typer.Exit(code=0)

    logger.info(f"Migrating database {current} -> {head} ...")
    run_migrations(db_path, backup=True)
    logger.info("Migration complete.")


if __name__ == "__main__":
    app()
