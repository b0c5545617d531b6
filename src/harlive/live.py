# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Page load orchestration: one URL, one isolated session, three-way race.

Lifecycle of a load::

    session -> pre_hook? -> race(completion | disconnection | timeout)
            -> post_hook? -> screenshot? -> done

The first branch to claim or settle the result cell decides the outcome.
A claiming branch keeps the cell while it tears the session down, so
failures its teardown provokes elsewhere cannot overtake it. The
completion branch keeps running after losing so its cleanup still
executes; the waiting-only branches are cancelled once the outcome is
known. ``SessionFactory.destroy()`` is idempotent, so every branch may
call it.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable, Coroutine
from contextlib import suppress
from typing import Any

from . import LoadRequest
from .completion import CompletionSignal, StatsCollector
from .config import Hook
from .errors import CompletionError, DisconnectedError, HarLiveError, HookError, TimedOutError
from .pipeline_timer import PipelineTimer
from .screenshot import capture_screenshot
from .session import PageSession, SessionFactory
from .stats import PageStats
from .timer import CancelableDelay

logger = logging.getLogger(__name__)


async def _call_hook(name: str, hook: Hook, args: tuple) -> Any:
    """Invoke a sync or async hook; failures become HookError."""
    try:
        result = hook(*args)
        if inspect.isawaitable(result):
            result = await result
    except Exception as exc:
        raise HookError(f"{name} failed: {exc}", hook=name) from exc
    return result


class _ResultCell:
    """First-writer-wins slot shared by the racing branches.

    A branch may ``claim()`` the slot before it finishes; the slot then
    settles from that branch's own result once it completes, and every
    other branch's result is ignored. A branch that finishes without
    claiming takes the slot if it is still free.
    """

    __slots__ = ("future", "_owner")

    def __init__(self) -> None:
        self.future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._owner: asyncio.Task | None = None

    def claim(self) -> None:
        if self._owner is None:
            self._owner = asyncio.current_task()

    def settle(self, task: asyncio.Task) -> None:
        if self._owner is None and not task.cancelled():
            self._owner = task
        if self._owner is not task or self.future.done():
            if not task.cancelled() and task.exception() is not None:
                logger.debug("Late branch failure ignored: %r", task.exception())
            return
        if task.cancelled():
            self.future.cancel()
        elif task.exception() is not None:
            self.future.set_exception(task.exception())
        else:
            self.future.set_result(task.result())


class PageLoader:
    """Load one URL and return its statistics record."""

    def __init__(
        self,
        request: LoadRequest,
        *,
        factory: SessionFactory | None = None,
        stats_factory: Callable[..., StatsCollector] = PageStats,
    ) -> None:
        self.request = request
        self.options = request.options
        self.factory = factory or SessionFactory(request.options.browser)
        self.stats_factory = stats_factory
        self.timer = PipelineTimer()
        self._lingering: asyncio.Task | None = None

    async def load(self) -> Any:
        """Run the load. Raises a HarLiveError subclass on failure."""
        url = self.request.url
        opts = self.options
        logger.info("Page load started: url=%s index=%d", url, self.request.index)

        self.timer.stage("session")
        session = await self.factory.create()
        hook_args = (url, session, self.request.index, self.request.urls)

        if opts.pre_hook is not None:
            self.timer.stage("pre_hook")
            try:
                await _call_hook("pre_hook", opts.pre_hook, hook_args)
            except HookError:
                # no branch owns the session yet
                await self.factory.destroy()
                raise

        delay = CancelableDelay(opts.timeout)
        cell = _ResultCell()

        async def page_load() -> Any:
            try:
                return await self._load_page(session, hook_args)
            except HarLiveError:
                raise
            except Exception as exc:
                # protocol errors (target closed, navigation refused, ...)
                raise CompletionError(f"Page load failed: {exc}") from exc
            finally:
                # disarm before teardown so a finished load cannot time out
                delay.cancel()
                await self.factory.destroy()

        async def disconnection() -> Any:
            await session.wait_for_disconnect()
            cell.claim()
            delay.cancel()
            raise DisconnectedError()

        async def timeout() -> Any:
            await delay.start()
            # claim before teardown: closing the target fails in-flight protocol calls
            cell.claim()
            report = self.timer.timeout_report()
            await self.factory.destroy()
            raise TimedOutError(f"Timed out after {opts.timeout:g}ms", report=report)

        return await self._race(cell, page_load(), disconnection(), timeout())

    async def _race(self, cell: _ResultCell, completion: Coroutine, *waiters: Coroutine) -> Any:
        completion_task = asyncio.ensure_future(completion)
        waiter_tasks = [asyncio.ensure_future(w) for w in waiters]
        for task in (completion_task, *waiter_tasks):
            task.add_done_callback(cell.settle)

        try:
            result = await cell.future
        except asyncio.CancelledError:
            completion_task.cancel()
            raise
        except Exception as exc:
            logger.warning("Page load failed: url=%s error=%s", self.request.url, exc)
            raise
        else:
            logger.info(
                "Page load finished: url=%s total_ms=%.1f",
                self.request.url,
                self.timer.total_ms(),
            )
            return result
        finally:
            for task in waiter_tasks:
                if not task.done():
                    task.cancel()
            if not completion_task.done():
                self._lingering = completion_task

    async def aclose(self) -> None:
        """Cancel a completion branch that lost the race and await its cleanup."""
        task, self._lingering = self._lingering, None
        if task is not None and not task.done():
            task.cancel()
            with suppress(asyncio.CancelledError, Exception):
                await task

    async def _load_page(self, session: PageSession, hook_args: tuple) -> Any:
        url = self.request.url
        opts = self.options
        network, page = session.network, session.page

        await network.enable()
        await page.enable()

        stats = self.stats_factory(url, opts)
        signal = CompletionSignal(stats)
        session.on_event(signal.feed)

        if opts.content:

            async def _on_loading_finished(params: dict) -> None:
                request_id = params.get("requestId")
                # let the collaborator see every earlier event before consulting its entries
                await signal.flush()
                # untracked requests (e.g. served from cache) have no body to fetch
                if request_id not in stats.entries:
                    return
                try:
                    reply = await network.get_response_body(request_id)
                except Exception as exc:
                    signal.reject(exc)
                    return
                signal.feed(
                    {
                        "method": "Network.getResponseBody",
                        "params": {
                            "requestId": request_id,
                            "body": reply.get("body"),
                            "base64Encoded": reply.get("base64Encoded", False),
                        },
                    }
                )

            network.on_loading_finished(_on_loading_finished)

        self.timer.stage("navigation")
        waiter = asyncio.ensure_future(signal.wait())
        navigation = asyncio.ensure_future(page.navigate(url))
        try:
            _, nav = await asyncio.gather(waiter, navigation)
        finally:
            for task in (waiter, navigation):
                if not task.done():
                    task.cancel()
            await signal.close()
        if nav and nav.get("errorText"):
            logger.info("Navigation reported %s for %s", nav["errorText"], url)

        if opts.post_hook is not None:
            self.timer.stage("post_hook")
            stats.user = await _call_hook("post_hook", opts.post_hook, hook_args)

        if opts.screenshot:
            self.timer.stage("screenshot")
            await capture_screenshot(session, url, opts.screenshot_settings, opts.output_dir)

        self.timer.finalize()
        return stats


async def load(request: LoadRequest, *, factory: SessionFactory | None = None) -> Any:
    """Convenience wrapper: load one URL and release any lingering branch."""
    loader = PageLoader(request, factory=factory)
    try:
        return await loader.load()
    finally:
        await loader.aclose()
