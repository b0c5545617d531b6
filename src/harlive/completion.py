# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Single-resolution completion signal fed by a protocol event channel.

Protocol event handlers call ``feed()`` synchronously; a consumer task
drains the queue in arrival order and hands each event to the statistics
collaborator, which decides when to ``resolve`` or ``reject``. The first
decision wins, later events are still delivered and decisions ignored.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, MutableMapping
from contextlib import suppress
from typing import Any, Protocol

from .errors import CompletionError

logger = logging.getLogger(__name__)


class StatsCollector(Protocol):
    """Decision engine consuming protocol events for one page load."""

    entries: MutableMapping[str, Any]
    user: Any

    def process_event(
        self,
        resolve: Callable[[Any], None],
        reject: Callable[[BaseException], None],
        event: dict,
    ) -> None: ...


class CompletionSignal:
    """Channel + future pair driving a StatsCollector."""

    def __init__(self, stats: StatsCollector) -> None:
        self._stats = stats
        self._queue: asyncio.Queue[dict] = asyncio.Queue()
        self._future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._consumer: asyncio.Task | None = None
        self._closed = False
        self._fed = 0
        self._processed = 0
        self._progress = asyncio.Condition()

    @property
    def done(self) -> bool:
        return self._future.done()

    def start(self) -> None:
        if self._consumer is None and not self._closed:
            self._consumer = asyncio.ensure_future(self._consume())

    def feed(self, event: dict) -> None:
        """Enqueue a protocol event (safe to call from sync callbacks)."""
        if self._closed:
            return
        self._fed += 1
        self._queue.put_nowait(event)

    def resolve(self, value: Any = None) -> None:
        if not self._future.done():
            self._future.set_result(value)

    def reject(self, error: BaseException) -> None:
        if self._future.done() or self._closed:
            logger.debug("Late rejection ignored: %s", error)
            return
        if not isinstance(error, CompletionError):
            wrapped = CompletionError(str(error) or type(error).__name__)
            wrapped.__cause__ = error
            error = wrapped
        self._future.set_exception(error)

    async def _consume(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                self._stats.process_event(self.resolve, self.reject, event)
            except Exception as exc:
                logger.warning("Statistics collaborator failed on %s", event.get("method"), exc_info=True)
                self.reject(exc)
            finally:
                self._queue.task_done()
            self._processed += 1
            async with self._progress:
                self._progress.notify_all()

    async def flush(self) -> None:
        """Wait until every event fed so far has reached the collaborator."""
        target = self._fed
        async with self._progress:
            await self._progress.wait_for(lambda: self._processed >= target or self._closed)

    async def wait(self) -> Any:
        """Start consuming (if needed) and wait for the decision."""
        self.start()
        return await asyncio.shield(self._future)

    async def close(self) -> None:
        """Stop the consumer task. Pending events are dropped."""
        self._closed = True
        consumer, self._consumer = self._consumer, None
        if consumer is not None and not consumer.done():
            consumer.cancel()
            with suppress(asyncio.CancelledError):
                await consumer
        async with self._progress:
            self._progress.notify_all()
        if self._future.done() and not self._future.cancelled():
            # mark retrieved so an unobserved rejection does not log at GC
            self._future.exception()
