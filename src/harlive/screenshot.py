# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Screenshot capture at a fixed, emulated viewport."""

from __future__ import annotations

import base64
import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING

from .config import ScreenshotSettings

if TYPE_CHECKING:
    from .session import PageSession

logger = logging.getLogger(__name__)

_NON_WORD_RUN = re.compile(r"[\W_]+")


def screenshot_filename(url: str, fmt: str = "png") -> str:
    """Collapse every run of non-word characters in *url* to ``_``."""
    return f"{_NON_WORD_RUN.sub('_', url)}.{fmt}"


async def capture_screenshot(
    session: PageSession,
    url: str,
    settings: ScreenshotSettings | None = None,
    output_dir: Path | None = None,
) -> Path:
    """Emulate the viewport, capture the page and write the image file."""
    settings = settings or ScreenshotSettings()
    await session.emulation.set_device_metrics_override(
        width=settings.width,
        height=settings.height,
        device_scale_factor=settings.device_scale_factor,
        mobile=settings.mobile,
    )
    await session.emulation.set_visible_size(settings.width, settings.height)
    reply = await session.page.capture_screenshot(format=settings.format)
    path = (output_dir or Path.cwd()) / screenshot_filename(url, settings.format)
    path.write_bytes(base64.b64decode(reply["data"]))
    logger.info("Screenshot saved: %s (%dx%d)", path, settings.width, settings.height)
    return path
