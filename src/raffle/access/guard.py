"""Halt switch and call-depth guard shared by all components."""

from __future__ import annotations

from raffle.errors import PausedError, ReentrancyError, StateError


class Pausable:
    """Per-component halt switch.

    While paused, every state-mutating entry point fails fast with
    PausedError. Read-only queries are unaffected.
    """

    def __init__(self, name: str) -> None:
        self._name = name
        self._paused = False

    @property
    def paused(self) -> bool:
        return self._paused

    def require_not_paused(self) -> None:
        if self._paused:
            raise PausedError(f"{self._name} is paused")

    def pause(self) -> None:
        if self._paused:
            raise StateError(f"{self._name} is already paused")
        self._paused = True

    def unpause(self) -> None:
        if not self._paused:
            raise StateError(f"{self._name} is not paused")
        self._paused = False


class CallGuard:
    """In-progress flag held for the duration of one mutating operation.

    Entering while already entered raises ReentrancyError. The flag is
    cleared on every exit path, including exceptions.

    Usage:
        with self._guard:
            ...  # reward hooks may not call back into this component
    """

    def __init__(self, name: str) -> None:
        self._name = name
        self._entered = False

    @property
    def active(self) -> bool:
        return self._entered

    def __enter__(self) -> CallGuard:
        if self._entered:
            raise ReentrancyError(f"Re-entrant call into {self._name}")
        self._entered = True
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._entered = False
