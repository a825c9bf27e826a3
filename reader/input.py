"""Translate pointer, touch and keyboard events into reader session calls.

Tap zones split the page width: the right 30% goes forward, the left 30%
goes back, the middle toggles the controls. A quick horizontal touch
movement is a swipe; any other touch that wandered is a drag and does
nothing.
"""

from __future__ import annotations

import enum
import time
from typing import Callable, NamedTuple, Optional

from .session import ReaderSession

NEXT_ZONE = 0.7
PREV_ZONE = 0.3
SWIPE_MIN_DISTANCE = 50
SWIPE_MAX_MS = 600
DRAG_THRESHOLD = 10


class InputAction(str, enum.Enum):
    NEXT = "next"
    PREV = "prev"
    TOGGLE_CONTROLS = "toggle_controls"
    TOGGLE_FULLSCREEN = "toggle_fullscreen"
    EXIT_FULLSCREEN = "exit_fullscreen"
    BACK = "back"
    NONE = "none"


class KeyResult(NamedTuple):
    action: InputAction
    prevent_default: bool = False

    @property
    def handled(self) -> bool:
        return self.action is not InputAction.NONE


class _TouchStart(NamedTuple):
    x: float
    y: float
    time_ms: float


def _now_ms() -> float:
    return time.monotonic() * 1000


def tap_action(x: float, width: float) -> InputAction:
    """Map a horizontal position inside the page element to an action."""
    if width <= 0:
        return InputAction.NONE
    position = x / width
    if position > NEXT_ZONE:
        return InputAction.NEXT
    if position < PREV_ZONE:
        return InputAction.PREV
    return InputAction.TOGGLE_CONTROLS


class InputController:
    def __init__(self, session: ReaderSession, clock_ms: Optional[Callable[[], float]] = None):
        self.session = session
        self.clock_ms = clock_ms or _now_ms
        self._touch: Optional[_TouchStart] = None
        self._moved = False

    def _apply(self, action: InputAction) -> InputAction:
        if action is InputAction.NEXT:
            self.session.next_page()
        elif action is InputAction.PREV:
            self.session.prev_page()
        elif action is InputAction.TOGGLE_CONTROLS:
            self.session.toggle_controls()
        elif action is InputAction.TOGGLE_FULLSCREEN:
            self.session.toggle_fullscreen()
        elif action is InputAction.EXIT_FULLSCREEN:
            self.session.exit_fullscreen()
        elif action is InputAction.BACK:
            self.session.back()
        return action

    # --- Pointer ---

    def pointer_move(self) -> None:
        if self.session.is_reading:
            self.session.show_controls()

    def tap(self, x: float, width: float) -> InputAction:
        if not self.session.is_reading:
            return InputAction.NONE
        return self._apply(tap_action(x, width))

    # --- Touch ---

    def touch_start(self, x: float, y: float, touches: int = 1, time_ms: Optional[float] = None) -> None:
        if touches != 1:
            return
        self._touch = _TouchStart(x, y, self.clock_ms() if time_ms is None else time_ms)
        self._moved = False

    def touch_move(self, x: float, y: float) -> None:
        if self._touch is None:
            return
        if abs(x - self._touch.x) > DRAG_THRESHOLD or abs(y - self._touch.y) > DRAG_THRESHOLD:
            self._moved = True

    def touch_end(self, x: float, y: float, width: float, time_ms: Optional[float] = None) -> InputAction:
        start, self._touch = self._touch, None
        if start is None or not self.session.is_reading:
            return InputAction.NONE

        dx = x - start.x
        dy = y - start.y
        dt = (self.clock_ms() if time_ms is None else time_ms) - start.time_ms

        if abs(dx) > abs(dy) and abs(dx) > SWIPE_MIN_DISTANCE and dt < SWIPE_MAX_MS:
            action = self._apply(InputAction.NEXT if dx < 0 else InputAction.PREV)
            self.session.show_controls()
            return action

        if self._moved or abs(dx) > DRAG_THRESHOLD or abs(dy) > DRAG_THRESHOLD:
            return InputAction.NONE

        return self.tap(x, width)

    # --- Keyboard ---

    def key(self, key: str) -> KeyResult:
        """Handle a key press (DOM key names: ArrowLeft, ArrowRight, " ", f, Escape)."""
        if not self.session.is_reading:
            return KeyResult(InputAction.NONE)

        if key == "ArrowLeft":
            return KeyResult(self._apply(InputAction.PREV))
        if key == "ArrowRight":
            return KeyResult(self._apply(InputAction.NEXT))
        if key in (" ", "Space", "Spacebar"):
            return KeyResult(self._apply(InputAction.NEXT), prevent_default=True)
        if key == "f":
            return KeyResult(self._apply(InputAction.TOGGLE_FULLSCREEN))
        if key == "Escape":
            if self.session.fullscreen:
                return KeyResult(self._apply(InputAction.EXIT_FULLSCREEN))
            return KeyResult(self._apply(InputAction.BACK))
        return KeyResult(InputAction.NONE)
