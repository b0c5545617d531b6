# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""harlive exception hierarchy.

All harlive-specific errors inherit from HarLiveError, allowing callers
to catch the base class for any page load failure or specific subclasses
to decide whether a URL is worth retrying.
"""

from __future__ import annotations


class HarLiveError(Exception):
    """Base exception for all harlive errors."""


class SessionError(HarLiveError):
    """Browser session could not be established."""


class HookError(HarLiveError):
    """A user-supplied pre/post hook raised."""

    def __init__(self, message: str, *, hook: str = "") -> None:
        super().__init__(message)
        self.hook = hook


class DisconnectedError(HarLiveError):
    """The remote browser session dropped before the page load completed."""

    def __init__(self, message: str = "Disconnected") -> None:
        super().__init__(message)


class TimedOutError(HarLiveError):
    """The configured timeout elapsed before the page load completed."""

    def __init__(self, message: str = "Timed out", *, report: dict | None = None) -> None:
        super().__init__(message)
        self.report = report or {}


class CompletionError(HarLiveError):
    """The statistics collaborator rejected the page load."""
