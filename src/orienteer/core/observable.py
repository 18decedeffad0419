"""
Observable state holder.

A current-value container with change callbacks, used wherever a screen needs to both
read "what is the state now" and be told when it changes (active hunt view, catalog).
Setting an equal value does not notify.
"""

from __future__ import annotations

import logging
from typing import Callable, Generic, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


class StateStore(Generic[T]):
    def __init__(self, initial: T):
        self._value = initial
        self._subscribers: list[Callable[[T], None]] = []

    @property
    def value(self) -> T:
        return self._value

    def set(self, value: T) -> None:
        if value == self._value:
            return
        self._value = value
        for callback in list(self._subscribers):
            _notify(callback, value)

    def update(self, fn: Callable[[T], T]) -> T:
        self.set(fn(self._value))
        return self._value

    def subscribe(self, callback: Callable[[T], None], *, emit_current: bool = True) -> Callable[[], None]:
        """Register `callback`; returns a function that unregisters it."""
        self._subscribers.append(callback)
        if emit_current:
            _notify(callback, self._value)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe


def _notify(callback: Callable[[T], None], value: T) -> None:
    try:
        callback(value)
    except Exception:
        # Observer failures are logged; the remaining observers still run.
        logger.exception("State subscriber %r failed", callback)
