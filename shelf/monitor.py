"""Inbox folder monitoring for mangashelf.

Uses Watchdog to notice .cbz files dropped (created or moved) into the inbox
folder and imports them into the library. The observer thread only queues
tasks; imports run on the thread that calls process_queue().
"""

from __future__ import annotations

import queue
import time
from pathlib import Path
from threading import Event
from typing import Dict, NamedTuple, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .archive import is_archive_name
from .config import ShelfConfig
from .errors import ShelfError
from .logging_config import get_logger
from .services import LibraryService

logger = get_logger(__name__)

BATCH_WINDOW = 1.0  # Seconds to wait for more events


class ImportTask(NamedTuple):
    path: Path


def _ignored(path: Path) -> bool:
    return path.name.startswith("._") or not is_archive_name(path.name)


class InboxHandler(FileSystemEventHandler):
    """Handle filesystem events and push import tasks to a queue."""

    def __init__(self, task_queue: queue.Queue, debounce_seconds: int = 2):
        super().__init__()
        self.task_queue = task_queue
        self.debounce_seconds = debounce_seconds
        self._last_queued: Dict[str, float] = {}

    def _queue(self, path: Path) -> None:
        now = time.time()
        key = str(path)
        if now - self._last_queued.get(key, 0) < self.debounce_seconds:
            return
        self._last_queued[key] = now
        self.task_queue.put(ImportTask(path))

        # Prune stale entries to prevent unbounded growth
        cutoff = now - self.debounce_seconds * 2
        self._last_queued = {k: v for k, v in self._last_queued.items() if v > cutoff}

    def on_created(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        path = Path(event.src_path)
        if not _ignored(path):
            self._queue(path)

    def on_moved(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        dest_path = Path(event.dest_path)
        if not _ignored(dest_path):
            self._queue(dest_path)


def optimize_tasks(tasks: list[ImportTask]) -> list[ImportTask]:
    """Drop duplicate imports of the same path, keeping first-seen order."""
    seen = set()
    optimized = []
    for task in tasks:
        if task.path in seen:
            continue
        seen.add(task.path)
        optimized.append(task)
    return optimized


def import_task(task: ImportTask, services: LibraryService) -> bool:
    if not task.path.exists():
        logger.debug(f"Skipping {task.path.name}: no longer in inbox")
        return False
    try:
        manga = services.import_file(task.path)
    except ShelfError as exc:
        logger.error(f"Could not import {task.path.name}: {exc}")
        return False
    except OSError as exc:
        logger.error(f"Could not read {task.path.name}: {exc}")
        return False
    logger.info(f"Imported '{manga.name}' from inbox")
    return True


def process_queue(task_queue: queue.Queue, services: LibraryService, stop_event: Event) -> None:
    """Process queued imports in batches until stop_event is set."""
    while not stop_event.is_set():
        try:
            first_task = task_queue.get(timeout=1.0)
        except queue.Empty:
            continue

        batch = [first_task]
        start_time = time.time()
        while (time.time() - start_time) < BATCH_WINDOW:
            try:
                batch.append(task_queue.get_nowait())
            except queue.Empty:
                time.sleep(0.1)

        for task in optimize_tasks(batch):
            import_task(task, services)


def start_inbox_observer(config: ShelfConfig, task_queue: queue.Queue) -> Optional[Observer]:
    """Start watching the inbox folder if configured."""
    inbox = config.inbox.path
    if not config.inbox.enabled or inbox is None:
        return None
    if not inbox.exists():
        logger.error(f"Inbox path does not exist: {inbox}")
        return None

    handler = InboxHandler(task_queue, config.inbox.debounce_seconds)
    observer = Observer()
    observer.schedule(handler, str(inbox), recursive=False)
    observer.start()
    logger.info(f"Watching {inbox} for new archives")
    return observer
