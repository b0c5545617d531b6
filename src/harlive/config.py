# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Load configuration: browser launch, screenshot and per-load options.

Sources, lowest to highest precedence: dataclass defaults, optional YAML
file, ``HARLIVE_*`` environment variables, explicit CLI flags (applied by
the caller).
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Mapping
from contextlib import suppress
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)
DEFAULT_LOCALE = "en-US"

_TRUTHY = ("1", "true", "yes")

# (url, session, index, urls) -> value or awaitable
Hook = Callable[..., Any]


@dataclass
class BrowserConfig:
    """Browser launch configuration."""

    headless: bool = True
    locale: str = DEFAULT_LOCALE
    user_agent: str = DEFAULT_USER_AGENT
    launch_timeout_ms: int = 30000
    auto_install: bool = True  # run `playwright install chromium` when the executable is missing


@dataclass(frozen=True, slots=True)
class ScreenshotSettings:
    """Viewport emulation and image format for the screenshot step."""

    width: int = 1200
    height: int = 900
    device_scale_factor: float = 1
    mobile: bool = False
    format: str = "png"


@dataclass
class LoadOptions:
    """Options recognized by a single page load."""

    pre_hook: Hook | None = None
    post_hook: Hook | None = None
    timeout: float | None = None  # milliseconds, None = wait forever
    content: bool = False  # fetch response bodies
    screenshot: bool = False
    screenshot_settings: ScreenshotSettings = field(default_factory=ScreenshotSettings)
    output_dir: Path | None = None  # screenshot directory, None = cwd
    browser: BrowserConfig = field(default_factory=BrowserConfig)


def _parse_timeout(value: Any) -> float | None:
    if value is None or value == "":
        return None
    timeout = float(value)
    if timeout < 0:
        raise ValueError(f"timeout must be >= 0, got {value!r}")
    return timeout


def options_from_mapping(data: Mapping[str, Any], base: LoadOptions | None = None) -> LoadOptions:
    """Build LoadOptions from a plain mapping (YAML document, JSON, ...).

    Unknown keys are ignored with a warning. A nested ``browser`` mapping
    overrides BrowserConfig fields, ``screenshot_settings`` likewise.
    """
    opts = base or LoadOptions()
    known = {f.name for f in fields(LoadOptions)} - {"pre_hook", "post_hook"}
    updates: dict[str, Any] = {}
    for key, value in data.items():
        if key not in known:
            logger.warning("Ignoring unknown option %r", key)
            continue
        if key == "timeout":
            updates[key] = _parse_timeout(value)
        elif key in ("content", "screenshot"):
            updates[key] = bool(value)
        elif key == "output_dir":
            updates[key] = Path(value) if value else None
        elif key == "browser":
            updates[key] = replace(opts.browser, **dict(value))
        elif key == "screenshot_settings":
            updates[key] = replace(opts.screenshot_settings, **dict(value))
    return replace(opts, **updates)


def apply_env(opts: LoadOptions, env: Mapping[str, str] | None = None) -> LoadOptions:
    """Apply ``HARLIVE_*`` environment overrides."""
    env = os.environ if env is None else env

    env_timeout = env.get("HARLIVE_TIMEOUT", "").strip()
    if env_timeout:
        with suppress(ValueError):
            opts = replace(opts, timeout=_parse_timeout(env_timeout))

    env_content = env.get("HARLIVE_CONTENT", "").strip().lower()
    if env_content:
        opts = replace(opts, content=env_content in _TRUTHY)

    env_screenshot = env.get("HARLIVE_SCREENSHOT", "").strip().lower()
    if env_screenshot:
        opts = replace(opts, screenshot=env_screenshot in _TRUTHY)

    env_headed = env.get("HARLIVE_HEADED", "").strip().lower()
    if env_headed in _TRUTHY:
        opts = replace(opts, browser=replace(opts.browser, headless=False))

    return opts


def load_options(path: str | Path | None = None, env: Mapping[str, str] | None = None) -> LoadOptions:
    """Read options from an optional YAML file, then apply env overrides."""
    opts = LoadOptions()
    if path:
        import yaml

        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, Mapping):
            raise ValueError(f"{path}: expected a mapping at top level")
        opts = options_from_mapping(data, opts)
    return apply_env(opts, env)
