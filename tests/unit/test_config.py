"""
Unit tests for SuperegoConfig and Settings.

Tests configuration loading, saving, defaults and environment priority.
"""

import json
from pathlib import Path

import pytest

from superego.config import Settings, SuperegoConfig, resolve_project_dir


class TestSuperegoConfigDefaults:
    """Tests for default configuration values."""

    def test_default_values(self):
        config = SuperegoConfig()

        assert config.mode == "always"
        assert config.phase_source == "llm"
        assert config.backend == "claude-cli"
        assert config.model == "sonnet"
        assert config.change_threshold_lines == 50
        assert config.carryover_decision_count == 2
        assert config.carryover_window_minutes == 5
        assert config.cas_max_attempts == 5


class TestSuperegoConfigLoad:
    """Tests for SuperegoConfig.load() method."""

    def test_load_without_file_returns_defaults(self, tmp_path: Path):
        assert SuperegoConfig.load(tmp_path / "missing.json") == SuperegoConfig()

    def test_load_partial_config(self, tmp_path: Path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"mode": "pull", "model": "haiku"}))

        config = SuperegoConfig.load(path)

        assert config.mode == "pull"
        assert config.model == "haiku"
        assert config.change_threshold_lines == 50

    def test_unknown_keys_ignored(self, tmp_path: Path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"mode": "pull", "future_option": True}))

        assert SuperegoConfig.load(path).mode == "pull"

    def test_invalid_json_returns_defaults(self, tmp_path: Path):
        path = tmp_path / "config.json"
        path.write_text("{ not json")

        assert SuperegoConfig.load(path) == SuperegoConfig()

    def test_invalid_mode_falls_back(self, tmp_path: Path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"mode": "sometimes", "phase_source": "vibes"}))

        config = SuperegoConfig.load(path)
        assert config.mode == "always"
        assert config.phase_source == "llm"

    def test_save_and_load_roundtrip(self, tmp_path: Path):
        path = tmp_path / "nested" / "config.json"
        SuperegoConfig(mode="pull", change_threshold_lines=10).save(path)

        loaded = SuperegoConfig.load(path)
        assert loaded.mode == "pull"
        assert loaded.change_threshold_lines == 10


class TestEnvironmentPriority:
    def test_env_overrides_file(self, tmp_path: Path):
        config = SuperegoConfig(change_threshold_lines=10).apply_env(
            {"SUPEREGO_CHANGE_THRESHOLD": "200", "SUPEREGO_MODEL": "opus"}
        )
        assert config.change_threshold_lines == 200
        assert config.model == "opus"

    def test_non_numeric_threshold_ignored(self):
        config = SuperegoConfig().apply_env({"SUPEREGO_CHANGE_THRESHOLD": "lots"})
        assert config.change_threshold_lines == 50

    def test_project_dir_priority(self, tmp_path: Path):
        a, b = tmp_path / "a", tmp_path / "b"
        assert resolve_project_dir({"SUPEREGO_PROJECT_DIR": str(a), "CLAUDE_PROJECT_DIR": str(b)}) == a
        assert resolve_project_dir({"CLAUDE_PROJECT_DIR": str(b)}, cwd=a) == b
        assert resolve_project_dir({}, cwd=a) == a


class TestSettings:
    def test_from_environment(self, project_dir):
        settings = Settings.from_environment({"SUPEREGO_DISABLED": "1", "SUPEREGO_DEBUG": "1"}, cwd=project_dir)

        assert settings.project_dir == project_dir
        assert settings.initialized
        assert settings.disabled
        assert settings.debug

    def test_not_initialized(self, tmp_path: Path):
        settings = Settings.from_environment({}, cwd=tmp_path)
        assert not settings.initialized

    def test_project_disabled_marker(self, settings):
        assert not settings.project_disabled
        settings.paths.disabled_marker.touch()
        assert settings.project_disabled
