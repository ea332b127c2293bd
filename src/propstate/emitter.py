"""Minimal synchronous event emitter."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable


class Emitter:
    """Calls listeners in the order they were added."""

    def __init__(self) -> None:
        self._listeners: list[Callable[..., object]] = []

    def add_listener(self, listener: Callable[..., object]) -> None:
        if listener in self._listeners:
            raise ValueError("listener already added")
        self._listeners.append(listener)

    def remove_listener(self, listener: Callable[..., object]) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError as exc:
            raise ValueError("listener was never added") from exc

    def has_listener(self, listener: Callable[..., object]) -> bool:
        return listener in self._listeners

    def remove_all_listeners(self) -> None:
        self._listeners.clear()

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def emit(self, *args: object) -> None:
        # listeners may unsubscribe while we iterate
        for listener in tuple(self._listeners):
            listener(*args)
