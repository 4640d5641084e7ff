"""Observer lists for state and discovery notifications."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Generic, TypeVar

T = TypeVar("T")
LOGGER = logging.getLogger(__name__)


class Signal(Generic[T]):
    """Synchronous multi-listener notification channel.

    Listeners are called in subscription order on the emitting thread, so the
    delivery order always matches the emission order. A listener that raises
    is logged and skipped; the remaining listeners still run.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._listeners: list[Callable[[T], None]] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Callable[[T], None]) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def emit(self, value: T) -> None:
        with self._lock:
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(value)
            except Exception:
                LOGGER.exception("Listener for %s failed", self.name)

    def __len__(self) -> int:
        with self._lock:
            return len(self._listeners)
