"""Reader for mangashelf: the open-manga state machine and its input mapping."""

from .input import InputAction, InputController, KeyResult
from .session import ReaderSession, ReaderViewState, SessionState, ViewMode

__all__ = [
    "InputAction",
    "InputController",
    "KeyResult",
    "ReaderSession",
    "ReaderViewState",
    "SessionState",
    "ViewMode",
]
