"""Controls auto-hide timer and the schedulers that drive it."""

from __future__ import annotations

import asyncio
import time
from typing import Callable, List, Optional, Protocol

from shelf.logging_config import get_logger

logger = get_logger(__name__)


class Cancellable(Protocol):
    def cancel(self) -> None:
        ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> Cancellable:
        ...


class _InertHandle:
    def cancel(self) -> None:
        pass


class LoopScheduler:
    """Schedules on an asyncio loop (the running one unless given).

    With no usable loop the callback is dropped: the controls simply stay
    visible until something hides them explicitly.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.loop = loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> Cancellable:
        loop = self.loop
        if loop is None or loop.is_closed():
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                logger.debug("No running event loop, timer not scheduled")
                return _InertHandle()
        return loop.call_later(delay, callback)


class _ManualHandle:
    def __init__(self, deadline: float, callback: Callable[[], None]):
        self.deadline = deadline
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Scheduler polled by its owner, for synchronous loops and tests.

    Callbacks run only from run_due(), on the caller's thread.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self._handles: List[_ManualHandle] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> _ManualHandle:
        handle = _ManualHandle(self.clock() + delay, callback)
        self._handles.append(handle)
        return handle

    @property
    def pending(self) -> int:
        return sum(1 for h in self._handles if not h.cancelled)

    def run_due(self) -> int:
        now = self.clock()
        due = [h for h in self._handles if not h.cancelled and h.deadline <= now]
        self._handles = [h for h in self._handles if not h.cancelled and h.deadline > now]
        for handle in sorted(due, key=lambda h: h.deadline):
            handle.callback()
        return len(due)


class ControlsTimer:
    """Inactivity timer. restart() always replaces the pending timer."""

    def __init__(self, scheduler: Scheduler, delay: float, on_expire: Callable[[], None]):
        self.scheduler = scheduler
        self.delay = delay
        self.on_expire = on_expire
        self._handle: Optional[Cancellable] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def restart(self) -> None:
        self.cancel()
        self._handle = self.scheduler.call_later(self.delay, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        self.on_expire()
