# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Shared test configuration and fixtures."""

try:
    import harlive  # noqa: F401
except ImportError:
    raise ImportError("harlive is not installed. Run: pip install -e '.[dev]'") from None

import pytest


@pytest.fixture(autouse=True)
def _block_real_browser(request, monkeypatch):
    """Safety net: prevent real Chromium launches in unit tests.

    Tests that exercise ``SessionFactory`` patch
    ``harlive.session.async_playwright`` themselves; that patch takes
    priority over this fixture. Tests that forget to patch get a clear
    error instead of silently trying to launch Chromium.

    Opt out with ``@pytest.mark.allow_real_browser``.
    """
    if "allow_real_browser" in request.keywords:
        return

    def _no_real_playwright():
        raise RuntimeError("Test tried to launch a real browser. Patch 'harlive.session.async_playwright'.")

    monkeypatch.setattr("harlive.session.async_playwright", _no_real_playwright)
