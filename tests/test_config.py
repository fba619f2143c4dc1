"""Tests for config module."""

from __future__ import annotations

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from plan_loop_runner.config import LoopSettings, get_loop_settings, load_runner_config


def _write_config(project_dir: Path, text: str) -> None:
    path = project_dir / ".opencode" / "plan-loop.yaml"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)


class TestLoadRunnerConfig:
    """Test load_runner_config function."""

    def test_missing_file(self, tmp_path):
        assert load_runner_config(tmp_path) == ({}, None)

    def test_empty_file(self, tmp_path):
        _write_config(tmp_path, "")

        assert load_runner_config(tmp_path) == ({}, None)

    def test_valid_file(self, tmp_path):
        _write_config(tmp_path, "plan_dir: plans/\ncommit: false\n")

        config, err = load_runner_config(tmp_path)

        assert err is None
        assert config == {"plan_dir": "plans/", "commit": False}

    def test_malformed_file(self, tmp_path):
        _write_config(tmp_path, "plan_dir: [unclosed\n")

        config, err = load_runner_config(tmp_path)

        assert config == {}
        assert "YAMLError" in err

    def test_non_mapping(self, tmp_path):
        _write_config(tmp_path, "- a\n- b\n")

        config, err = load_runner_config(tmp_path)

        assert config == {}
        assert "expected object" in err


class TestGetLoopSettings:
    """Test get_loop_settings function."""

    def test_defaults(self):
        settings = get_loop_settings({})

        assert settings == LoopSettings()
        assert settings.plan_dir == ".opencode/plans"
        assert settings.default_plan_file == ".opencode/plans/PLAN.md"
        assert settings.commit_tag == "feat(loop)"
        assert settings.freeform_max_iterations == 2
        assert settings.plan_max_iterations == 0
        assert settings.host_url is None

    def test_overrides(self):
        settings = get_loop_settings(
            {
                "plan_dir": "plans/",
                "commit_tag": "chore(plan)",
                "commit": False,
                "freeform_max_iterations": 7,
                "plan_max_iterations": "3",
                "message_lookback": 10,
                "host_url": "http://127.0.0.1:4096",
                "log_level": "debug",
            }
        )

        assert settings.plan_dir == "plans"
        assert settings.default_plan_file == "plans/PLAN.md"
        assert settings.commit_tag == "chore(plan)"
        assert settings.commit is False
        assert settings.freeform_max_iterations == 7
        assert settings.plan_max_iterations == 3
        assert settings.message_lookback == 10
        assert settings.host_url == "http://127.0.0.1:4096"
        assert settings.log_level == "DEBUG"

    def test_invalid_values_fall_back(self):
        settings = get_loop_settings(
            {
                "plan_dir": "  ",
                "commit": "yes",
                "freeform_max_iterations": -1,
                "plan_max_iterations": "many",
                "message_lookback": True,
                "log_level": "chatty",
            }
        )

        assert settings == LoopSettings()
