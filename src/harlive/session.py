# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Playwright-backed browser sessions for live page loads.

``SessionFactory`` owns the Chromium lifecycle for exactly one page load:
a fresh browser, an isolated BrowserContext, a page and a raw CDP session.
``PageSession`` exposes that CDP session as namespaced protocol domains,
a generic event stream and a one-time disconnect signal.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import sys
from collections.abc import Awaitable, Callable
from contextlib import suppress
from typing import Any

from playwright.async_api import (
    Browser,
    BrowserContext,
    CDPSession,
    Page,
    Playwright,
    async_playwright,
)
from playwright.async_api import Error as PlaywrightError

from .config import BrowserConfig
from .errors import SessionError

logger = logging.getLogger(__name__)

# CDP events forwarded to generic listeners
PROTOCOL_EVENTS = (
    "Network.requestWillBeSent",
    "Network.requestServedFromCache",
    "Network.responseReceived",
    "Network.dataReceived",
    "Network.loadingFinished",
    "Network.loadingFailed",
    "Network.resourceChangedPriority",
    "Page.frameStartedLoading",
    "Page.frameNavigated",
    "Page.frameStoppedLoading",
    "Page.domContentEventFired",
    "Page.loadEventFired",
)

_METHOD_NOT_FOUND_PATTERNS = ("wasn't found", "was not found", "method not found")


def _is_method_not_found(exc: Exception) -> bool:
    """Detect CDP commands removed from the running Chromium build."""
    msg = str(exc).lower()
    return any(p in msg for p in _METHOD_NOT_FOUND_PATTERNS)


# ── Protocol domains ──────────────────────────────────────────────


class PageDomain:
    def __init__(self, cdp: CDPSession) -> None:
        self._cdp = cdp

    async def enable(self) -> None:
        await self._cdp.send("Page.enable")

    async def navigate(self, url: str) -> dict:
        return await self._cdp.send("Page.navigate", {"url": url})

    async def capture_screenshot(self, format: str = "png") -> dict:
        return await self._cdp.send("Page.captureScreenshot", {"format": format})


class NetworkDomain:
    def __init__(self, cdp: CDPSession) -> None:
        self._cdp = cdp

    async def enable(self) -> None:
        await self._cdp.send("Network.enable")

    async def get_response_body(self, request_id: str) -> dict:
        return await self._cdp.send("Network.getResponseBody", {"requestId": request_id})

    def on_loading_finished(self, handler: Callable[[dict], Awaitable[None] | None]) -> None:
        """Subscribe to ``Network.loadingFinished`` (handler receives params)."""
        self._cdp.on("Network.loadingFinished", handler)


class EmulationDomain:
    def __init__(self, cdp: CDPSession) -> None:
        self._cdp = cdp

    async def set_device_metrics_override(
        self,
        width: int,
        height: int,
        device_scale_factor: float = 1,
        mobile: bool = False,
    ) -> None:
        await self._cdp.send(
            "Emulation.setDeviceMetricsOverride",
            {
                "width": width,
                "height": height,
                "deviceScaleFactor": device_scale_factor,
                "mobile": mobile,
            },
        )

    async def set_visible_size(self, width: int, height: int) -> None:
        """Resize the visible frame. No-op on builds that dropped the command."""
        try:
            await self._cdp.send("Emulation.setVisibleSize", {"width": width, "height": height})
        except PlaywrightError as exc:
            if not _is_method_not_found(exc):
                raise
            logger.debug("Emulation.setVisibleSize unsupported, relying on device metrics")


# ── Session ───────────────────────────────────────────────────────


class PageSession:
    """One CDP-instrumented page inside an isolated browser context."""

    def __init__(
        self,
        cdp: CDPSession,
        *,
        page: Page | None = None,
        browser: Browser | None = None,
    ) -> None:
        self.cdp = cdp
        self.page = PageDomain(cdp)
        self.network = NetworkDomain(cdp)
        self.emulation = EmulationDomain(cdp)
        self._pw_page = page
        self._closing = False
        self._disconnected: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        if browser is not None:
            browser.on("disconnected", self._on_disconnect)
        if page is not None:
            page.on("crash", self._on_disconnect)
            page.on("close", self._on_disconnect)

    @property
    def playwright_page(self) -> Page:
        if self._pw_page is None:
            raise RuntimeError("Session has no Playwright page attached.")
        return self._pw_page

    @property
    def is_disconnected(self) -> bool:
        return self._disconnected.done()

    def mark_closing(self) -> None:
        """Locally initiated teardown: later close events are not disconnections."""
        self._closing = True

    def _on_disconnect(self, *_args: Any) -> None:
        if self._closing or self._disconnected.done():
            return
        logger.warning("Browser session disconnected")
        self._disconnected.set_result(None)

    async def wait_for_disconnect(self) -> None:
        """Suspend until the remote side drops the session (fires once)."""
        await asyncio.shield(self._disconnected)

    def on_event(self, handler: Callable[[dict], None]) -> None:
        """Forward every Page/Network protocol event as ``{"method", "params"}``."""
        for method in PROTOCOL_EVENTS:
            self.cdp.on(method, functools.partial(_forward, handler, method))

    async def send(self, method: str, params: dict | None = None) -> dict:
        """Raw protocol command, for hooks."""
        return await self.cdp.send(method, params or {})


def _forward(handler: Callable[[dict], None], method: str, params: dict | None = None) -> None:
    handler({"method": method, "params": params or {}})


# ── Chromium install ──────────────────────────────────────────────

_INSTALL_TIMEOUT_S = 300.0
_install_outcome: bool | None = None


def _is_missing_executable(exc: BaseException) -> bool:
    return "executable doesn't exist" in str(exc).lower()


async def install_chromium(timeout_s: float = _INSTALL_TIMEOUT_S) -> bool:
    """Install Playwright's Chromium build, at most once per process.

    Every URL of a batch launches its own browser; the first launch that
    finds no executable runs the installer and later ones reuse its outcome.
    Returns whether a relaunch is worth trying.
    """
    global _install_outcome  # noqa: PLW0603
    if _install_outcome is None:
        _install_outcome = await _run_installer(timeout_s)
    return _install_outcome


async def _run_installer(timeout_s: float) -> bool:
    cmd = (sys.executable, "-m", "playwright", "install", "chromium")
    logger.warning("Chromium executable missing, running: playwright install chromium")
    proc = await asyncio.create_subprocess_exec(
        *cmd,
        stdout=asyncio.subprocess.DEVNULL,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        _, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout_s)
    except TimeoutError:
        proc.kill()
        await proc.wait()
        logger.warning("Chromium install gave up after %.0fs", timeout_s)
        return False
    if proc.returncode != 0:
        lines = stderr.decode(errors="replace").strip().splitlines()
        logger.warning("Chromium install exited with %d: %s", proc.returncode, lines[-1] if lines else "")
        return False
    logger.info("Chromium installed")
    return True


def chromium_launch_args(config: BrowserConfig) -> list[str]:
    """Chromium flags for measurement runs: no background traffic, no prompts."""
    return [
        "--disable-blink-features=AutomationControlled",
        f"--lang={config.locale}",
        "--disable-extensions",
        "--disable-dev-shm-usage",
        "--disable-background-networking",
        "--disable-sync",
        "--no-first-run",
        "--disable-component-update",
        "--disable-domain-reliability",
        "--no-pings",
        "--noerrdialogs",
    ]


# ── Factory ───────────────────────────────────────────────────────


class SessionFactory:
    """Creates and tears down the isolated browser for one page load.

    ``destroy()`` is guarded by a one-shot flag: the racing branches of a
    load may each call it, only the first one tears anything down.
    """

    def __init__(self, config: BrowserConfig | None = None) -> None:
        self.config = config or BrowserConfig()
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._session: PageSession | None = None
        self._destroyed = False

    @property
    def session(self) -> PageSession | None:
        return self._session

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    async def _launch_browser(self) -> None:
        """Launch Chromium; a missing executable triggers one install attempt."""
        args = chromium_launch_args(self.config)
        launch = functools.partial(
            self._playwright.chromium.launch,
            headless=self.config.headless,
            args=args,
            timeout=self.config.launch_timeout_ms,
        )
        try:
            self._browser = await launch()
        except Exception as exc:
            if not (self.config.auto_install and _is_missing_executable(exc)):
                raise
            if not await install_chromium():
                raise
            self._browser = await launch()

    async def create(self) -> PageSession:
        """Launch a browser and return a CDP session on a fresh page."""
        if self._session is not None:
            raise RuntimeError("SessionFactory.create() called twice")
        try:
            self._playwright = await async_playwright().start()
            await self._launch_browser()
            # fresh context: no cookies, cache or service workers shared with other loads
            self._context = await self._browser.new_context(
                locale=self.config.locale,
                user_agent=self.config.user_agent,
                service_workers="block",
                accept_downloads=False,
            )
            page = await self._context.new_page()
            cdp = await self._context.new_cdp_session(page)
        except Exception as exc:
            await self._teardown()
            raise SessionError(f"Cannot create browser session: {exc}") from exc
        self._session = PageSession(cdp, page=page, browser=self._browser)
        logger.info("Browser session created (headless=%s)", self.config.headless)
        return self._session

    async def destroy(self) -> None:
        """Close everything. Idempotent and safe on a crashed browser."""
        if self._destroyed:
            return
        self._destroyed = True
        if self._session is not None:
            self._session.mark_closing()
        await self._teardown()
        logger.info("Browser session destroyed")

    async def _teardown(self) -> None:
        if self._session is not None:
            with suppress(Exception):
                await self._session.cdp.detach()
        if self._context:
            with suppress(Exception):
                await self._context.close()
            self._context = None
        if self._browser:
            with suppress(Exception):
                await self._browser.close()
            self._browser = None
        if self._playwright:
            with suppress(Exception):
                await self._playwright.stop()
            self._playwright = None
