"""Scoped timers for the delay/timeout race.

Each activation owns its timers exclusively. A timer is started on the
event loop with call_later and cancelled on settlement, retry or
deactivation. Cancelling an idle timer is a no-op.
"""

from __future__ import annotations

import asyncio
from typing import Callable


class ScopedTimer:
    """A single cancellable one-shot timer, restartable."""

    __slots__ = ("_handle",)

    def __init__(self) -> None:
        self._handle: asyncio.TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def start(self, loop: asyncio.AbstractEventLoop, delay_ms: int, callback: Callable[[], None]) -> None:
        """(Re)start the timer. A previously pending firing is cancelled."""
        self.cancel()

        def _fire() -> None:
            self._handle = None
            callback()

        self._handle = loop.call_later(delay_ms / 1000, _fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def __repr__(self) -> str:
        return f"ScopedTimer({'pending' if self.pending else 'idle'})"
