# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Restartable, cancelable delay used as the page load timeout.

``start()`` hands out an awaitable; ``cancel()`` disarms it. A cancelled
or superseded delay never completes, it is not resolved or failed.
"""

from __future__ import annotations

import asyncio


class CancelableDelay:
    """Single-slot timer: at most one pending delay per instance."""

    __slots__ = ("_duration_ms", "_handle", "_future")

    def __init__(self, duration_ms: float | None = None) -> None:
        self._duration_ms = duration_ms
        self._handle: asyncio.TimerHandle | None = None
        self._future: asyncio.Future[None] | None = None

    @property
    def duration_ms(self) -> float | None:
        return self._duration_ms

    @property
    def pending(self) -> bool:
        """True while an armed delay has neither fired nor been cancelled."""
        return self._handle is not None and self._future is not None and not self._future.done()

    def start(self) -> asyncio.Future[None]:
        """Cancel any pending delay and return a future for a fresh one.

        Without a configured duration the future is never resolved.
        """
        self.cancel()
        loop = asyncio.get_running_loop()
        fut: asyncio.Future[None] = loop.create_future()
        self._future = fut
        if self._duration_ms is None:
            return fut
        self._handle = loop.call_later(self._duration_ms / 1000, _fire, fut)
        return fut

    def cancel(self) -> None:
        """Disarm the pending delay (idempotent)."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None


def _fire(fut: asyncio.Future[None]) -> None:
    if not fut.done():
        fut.set_result(None)
