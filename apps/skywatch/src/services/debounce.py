from __future__ import annotations

import asyncio
import logging
from typing import Callable, Generic, Optional, TypeVar

from .coordinates import Coordinate

logger = logging.getLogger("skywatch.hub.debounce")

T = TypeVar("T")


class Debouncer(Generic[T]):
    """Emit the last pushed value once it has been quiet for ``delay`` seconds.

    Timers run on the event loop that calls :meth:`push`, so emission happens on
    the same loop that owns the state it feeds.
    """

    def __init__(self, delay: float, on_emit: Callable[[T], None]) -> None:
        self._delay = max(delay, 0.0)
        self._on_emit = on_emit
        self._handle: Optional[asyncio.TimerHandle] = None
        self._pending: Optional[T] = None
        self._forced = False
        self.last_emitted: Optional[T] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def push(self, value: T, *, force: bool = False) -> None:
        """Restart the quiet period with ``value``.

        ``force`` marks the pending value as an explicit user request that must
        be emitted even when it matches the last emission.
        """
        if self._pending is None or not self._same(value, self._pending):
            self._pending = value
        self._forced = self._forced or force
        if self._handle is not None:
            self._handle.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self._delay, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
        self._handle = None
        self._pending = None
        self._forced = False

    def reset(self) -> None:
        self.cancel()
        self.last_emitted = None

    def _fire(self) -> None:
        value = self._pending
        forced = self._forced
        self._handle = None
        self._pending = None
        self._forced = False
        if value is None:
            return
        if not forced and self.last_emitted is not None and self._same(value, self.last_emitted):
            logger.debug("Suppressing duplicate emission %r", value)
            return
        self.last_emitted = value
        self._on_emit(value)

    def _same(self, left: T, right: T) -> bool:
        return left == right


class CoordinateDebouncer(Debouncer[Coordinate]):
    """Debouncer that treats coordinates within ``epsilon`` as unchanged."""

    def __init__(self, delay: float, epsilon: float, on_emit: Callable[[Coordinate], None]) -> None:
        super().__init__(delay, on_emit)
        self._epsilon = epsilon

    def _same(self, left: Coordinate, right: Coordinate) -> bool:
        return left.close_to(right, self._epsilon)


__all__ = ["Debouncer", "CoordinateDebouncer"]
