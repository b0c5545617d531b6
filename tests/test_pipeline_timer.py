# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for PipelineTimer: load stage marks and the timeout report."""

from __future__ import annotations

from harlive.pipeline_timer import PipelineTimer, hint_for_stage


class TestPipelineTimer:
    def test_stages_in_entry_order(self):
        timer = PipelineTimer()
        timer.stage("session")
        timer.stage("pre_hook")
        timer.stage("navigation")
        timer.finalize()

        rows = timer.stages()
        assert [r["stage"] for r in rows] == ["session", "pre_hook", "navigation"]
        assert all(isinstance(r["ms"], float) and r["ms"] >= 0 for r in rows)

    def test_current_stage(self):
        timer = PipelineTimer()
        assert timer.current_stage is None
        timer.stage("navigation")
        assert timer.current_stage == "navigation"
        timer.finalize()
        assert timer.current_stage is None

    def test_total_frozen_after_finalize(self):
        timer = PipelineTimer()
        timer.stage("session")
        timer.finalize()
        assert timer.total_ms() == timer.total_ms()

    def test_timeout_report_names_stalled_stage(self):
        timer = PipelineTimer()
        timer.stage("session")
        timer.stage("navigation")

        report = timer.timeout_report()
        assert report["error"] == "timeout"
        assert report["timed_out_at"] == "navigation"
        assert [s["stage"] for s in report["completed_stages"]] == ["session"]
        assert isinstance(report["total_ms"], float)
        assert "slow to load" in report["hint"]

    def test_timeout_report_no_stages(self):
        report = PipelineTimer().timeout_report()
        assert report["timed_out_at"] == "unknown"
        assert report["completed_stages"] == []

    def test_hint_for_unknown_stage(self):
        assert "custom_stage" in hint_for_stage("custom_stage")
