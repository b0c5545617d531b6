# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for LoadOptions defaults, YAML loading and HARLIVE_* overrides."""

from __future__ import annotations

from pathlib import Path

import pytest

from harlive.config import (
    BrowserConfig,
    LoadOptions,
    ScreenshotSettings,
    apply_env,
    load_options,
    options_from_mapping,
)


class TestDefaults:
    def test_load_options(self):
        opts = LoadOptions()
        assert opts.timeout is None
        assert opts.content is False
        assert opts.screenshot is False
        assert opts.pre_hook is None
        assert opts.post_hook is None
        assert opts.output_dir is None

    def test_screenshot_settings(self):
        s = ScreenshotSettings()
        assert (s.width, s.height) == (1200, 900)
        assert s.device_scale_factor == 1
        assert s.mobile is False
        assert s.format == "png"

    def test_browser_config(self):
        cfg = BrowserConfig()
        assert cfg.headless is True
        assert "Chrome" in cfg.user_agent


class TestFromMapping:
    def test_basic_keys(self):
        opts = options_from_mapping({"timeout": "2500", "content": 1, "screenshot": True, "output_dir": "shots"})
        assert opts.timeout == 2500.0
        assert opts.content is True
        assert opts.screenshot is True
        assert opts.output_dir == Path("shots")

    def test_nested_sections(self):
        opts = options_from_mapping({"browser": {"headless": False}, "screenshot_settings": {"width": 640}})
        assert opts.browser.headless is False
        assert opts.screenshot_settings.width == 640
        assert opts.screenshot_settings.height == 900

    def test_hooks_cannot_come_from_mapping(self, caplog):
        opts = options_from_mapping({"pre_hook": "os.system"})
        assert opts.pre_hook is None
        assert "pre_hook" in caplog.text

    def test_negative_timeout_rejected(self):
        with pytest.raises(ValueError, match="timeout"):
            options_from_mapping({"timeout": -1})

    def test_null_timeout(self):
        assert options_from_mapping({"timeout": None}).timeout is None


class TestEnvOverrides:
    def test_timeout(self):
        assert apply_env(LoadOptions(), {"HARLIVE_TIMEOUT": "1000"}).timeout == 1000.0

    def test_invalid_timeout_ignored(self):
        assert apply_env(LoadOptions(timeout=5), {"HARLIVE_TIMEOUT": "soon"}).timeout == 5

    def test_booleans(self):
        opts = apply_env(LoadOptions(), {"HARLIVE_CONTENT": "yes", "HARLIVE_SCREENSHOT": "0"})
        assert opts.content is True
        assert opts.screenshot is False

    def test_headed(self):
        assert apply_env(LoadOptions(), {"HARLIVE_HEADED": "1"}).browser.headless is False

    def test_empty_env_is_noop(self):
        assert apply_env(LoadOptions(timeout=7), {}) == LoadOptions(timeout=7)


class TestLoadOptions:
    def test_yaml_file_then_env(self, tmp_path):
        path = tmp_path / "options.yaml"
        path.write_text("timeout: 3000\ncontent: true\nbrowser:\n  locale: de-DE\n")
        opts = load_options(path, env={"HARLIVE_TIMEOUT": "9000"})
        assert opts.timeout == 9000.0
        assert opts.content is True
        assert opts.browser.locale == "de-DE"

    def test_empty_yaml(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_options(path, env={}) == LoadOptions()

    def test_non_mapping_yaml_rejected(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError, match="mapping"):
            load_options(path, env={})

    def test_no_file(self):
        assert load_options(None, env={}) == LoadOptions()
