# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""harlive: live page loads in isolated Chromium sessions, observed over CDP.

Each URL gets a fresh browser session; protocol events are funnelled into a
statistics collaborator that decides when the load is complete, racing
against browser disconnection and an optional timeout.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from .config import LoadOptions


@dataclass(frozen=True)
class LoadRequest:
    """One URL of a batch, with the batch itself as read-only hook context."""

    url: str
    index: int = 0
    urls: Sequence[str] = ()
    options: LoadOptions = field(default_factory=LoadOptions)


@dataclass
class LoadResult:
    """Outcome of one URL in a batch run."""

    url: str
    index: int
    stats: Any = None
    error: BaseException | None = None
    elapsed_ms: float = 0.0
    timings: list[dict] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def error_kind(self) -> str:
        return type(self.error).__name__ if self.error is not None else ""
