"""Quiet-period debouncing on the running event loop."""

from __future__ import annotations

import asyncio
from typing import Callable, Generic, TypeVar

T = TypeVar("T")


class Debouncer(Generic[T]):
    """Forward only the last value of a burst once ``delay_seconds`` pass quietly."""

    def __init__(self, delay_seconds: float, callback: Callable[[T], None]) -> None:
        self._delay_seconds = max(0.0, delay_seconds)
        self._callback = callback
        self._handle: asyncio.TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def push(self, value: T) -> None:
        self.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self._delay_seconds, self._fire, value)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self, value: T) -> None:
        self._handle = None
        self._callback(value)
