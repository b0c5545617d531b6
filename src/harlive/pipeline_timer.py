# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Stage marks for one page load.

A load moves through ``session``, ``pre_hook``, ``navigation``,
``post_hook`` and ``screenshot``. The completion branch marks each stage as
it enters it; the timeout branch turns the marks into a report naming the
stage the load stalled in. Batch results carry the per-stage breakdown.
"""

from __future__ import annotations

import time

_STAGE_HINTS = {
    "session": "Browser launch is slow. Check that Chromium is installed and the host is not overloaded.",
    "pre_hook": "The pre-hook did not return in time.",
    "navigation": "Page may be slow to load or keep long-polling connections open.",
    "post_hook": "The post-hook did not return in time.",
    "screenshot": "Screenshot capture is stalling.",
}


def _ms(ns: int) -> float:
    return round(ns / 1e6, 1)


class PipelineTimer:
    """Ordered ``(stage, started_ns)`` marks; a stage ends where the next begins."""

    __slots__ = ("_origin_ns", "_marks", "_end_ns")

    def __init__(self) -> None:
        self._origin_ns = time.monotonic_ns()
        self._marks: list[tuple[str, int]] = []
        self._end_ns: int | None = None

    def stage(self, name: str) -> None:
        self._marks.append((name, time.monotonic_ns()))
        self._end_ns = None

    def finalize(self) -> None:
        """Close the running stage once the load has produced its record."""
        if self._end_ns is None:
            self._end_ns = time.monotonic_ns()

    @property
    def current_stage(self) -> str | None:
        if not self._marks or self._end_ns is not None:
            return None
        return self._marks[-1][0]

    def total_ms(self) -> float:
        end = self._end_ns if self._end_ns is not None else time.monotonic_ns()
        return _ms(end - self._origin_ns)

    def stages(self) -> list[dict]:
        """``[{"stage", "ms"}]`` in entry order; a running stage counts up to now."""
        end = self._end_ns if self._end_ns is not None else time.monotonic_ns()
        bounds = [start for _, start in self._marks[1:]] + [end]
        return [{"stage": name, "ms": _ms(stop - start)} for (name, start), stop in zip(self._marks, bounds)]

    def timeout_report(self) -> dict:
        rows = self.stages()
        current = self.current_stage
        if current is None:
            return {
                "error": "timeout",
                "timed_out_at": "unknown",
                "completed_stages": rows,
                "total_ms": self.total_ms(),
                "hint": hint_for_stage("unknown"),
            }
        return {
            "error": "timeout",
            "timed_out_at": current,
            "timed_out_stage_ms": rows[-1]["ms"],
            "completed_stages": rows[:-1],
            "total_ms": self.total_ms(),
            "hint": hint_for_stage(current),
        }


def hint_for_stage(stage: str) -> str:
    return _STAGE_HINTS.get(stage, f"Timed out during '{stage}' stage.")
