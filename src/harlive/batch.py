# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Sequential batch harness: one isolated session per URL, no retries."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from typing import Any

from . import LoadRequest, LoadResult
from .config import LoadOptions
from .errors import HarLiveError
from .live import PageLoader
from .logging_config import load_context
from .session import SessionFactory

logger = logging.getLogger(__name__)


async def run_batch(
    urls: Sequence[str],
    options: LoadOptions | None = None,
    *,
    factory_cls: Callable[..., SessionFactory] = SessionFactory,
    on_load: Callable[[str, int, Sequence[str]], None] | None = None,
    on_done: Callable[[str, int, Sequence[str], Any], None] | None = None,
    on_fail: Callable[[str, int, Sequence[str], BaseException], None] | None = None,
) -> list[LoadResult]:
    """Load every URL in order and collect one LoadResult per URL.

    A failing URL does not stop the batch; its error is recorded and
    reported through ``on_fail``. Only HarLiveError subclasses are
    treated as per-URL failures, anything else propagates.
    """
    options = options or LoadOptions()
    urls = tuple(urls)
    results: list[LoadResult] = []
    for index, url in enumerate(urls):
        with load_context(url, index):
            results.append(await _run_one(url, index, urls, options, factory_cls, on_load, on_done, on_fail))
    return results


async def _run_one(
    url: str,
    index: int,
    urls: tuple[str, ...],
    options: LoadOptions,
    factory_cls: Callable[..., SessionFactory],
    on_load: Callable[[str, int, Sequence[str]], None] | None,
    on_done: Callable[[str, int, Sequence[str], Any], None] | None,
    on_fail: Callable[[str, int, Sequence[str], BaseException], None] | None,
) -> LoadResult:
    if on_load is not None:
        on_load(url, index, urls)
    request = LoadRequest(url=url, index=index, urls=urls, options=options)
    loader = PageLoader(request, factory=factory_cls(options.browser))
    start = time.monotonic()
    try:
        stats = await loader.load()
    except HarLiveError as exc:
        elapsed = round((time.monotonic() - start) * 1000, 1)
        logger.warning("URL %d/%d failed: %s (%s)", index + 1, len(urls), url, type(exc).__name__)
        if on_fail is not None:
            on_fail(url, index, urls, exc)
        return LoadResult(url=url, index=index, error=exc, elapsed_ms=elapsed, timings=loader.timer.stages())
    finally:
        # a completion branch that lost the race must not outlive its URL
        await loader.aclose()
    elapsed = round((time.monotonic() - start) * 1000, 1)
    if on_done is not None:
        on_done(url, index, urls, stats)
    return LoadResult(url=url, index=index, stats=stats, elapsed_ms=elapsed, timings=loader.timer.stages())
