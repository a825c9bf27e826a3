"""Fullscreen platform abstraction.

A request to enter or leave fullscreen is only a request; the session learns
the real state from change notifications.
"""

from __future__ import annotations

from typing import Callable, List, Optional, Protocol

from shelf.logging_config import get_logger

logger = get_logger(__name__)

FullscreenListener = Callable[[bool], None]


class FullscreenPlatform(Protocol):
    def is_active(self) -> bool:
        ...

    def request(self) -> None:
        ...

    def exit(self) -> None:
        ...

    def subscribe(self, listener: FullscreenListener) -> Callable[[], None]:
        """Register a change listener; returns the function that unsubscribes it."""
        ...


class HeadlessFullscreen:
    """Platform without a real display.

    With auto_settle, requests take effect at once; otherwise they stay
    pending until settle() delivers the change notification.
    """

    def __init__(self, supported: bool = True, auto_settle: bool = True):
        self.supported = supported
        self.auto_settle = auto_settle
        self._active = False
        self._pending: Optional[bool] = None
        self._listeners: List[FullscreenListener] = []

    def is_active(self) -> bool:
        return self._active

    def request(self) -> None:
        self._change(True)

    def exit(self) -> None:
        self._change(False)

    def subscribe(self, listener: FullscreenListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def _change(self, active: bool) -> None:
        if not self.supported:
            logger.debug("Fullscreen not supported on this platform")
            return
        self._pending = active
        if self.auto_settle:
            self.settle()

    def settle(self) -> None:
        """Apply the pending request and notify listeners if the state changed."""
        if self._pending is None:
            return
        active, self._pending = self._pending, None
        if active == self._active:
            return
        self._active = active
        for listener in list(self._listeners):
            listener(active)
