"""Tests for eyemate.config: TOML loading, env resolution and validation."""

from __future__ import annotations

from pathlib import Path

import pytest

from eyemate.config import (
    ConfigError,
    EyeMateConfig,
    load_config,
    resolve_env_vars,
)
from eyemate.push import EXPO_PUSH_URL

pytestmark = pytest.mark.unit


def _write(tmp_path: Path, body: str) -> Path:
    path = tmp_path / "eyemate.toml"
    path.write_text(body)
    return path


class TestResolveEnvVars:
    def test_substitutes_nested_values(self, monkeypatch):
        monkeypatch.setenv("EXPO_URL", "https://push.example.test/send")
        data = {"a": {"b": ["${EXPO_URL}", 3]}, "c": "x-${EXPO_URL}"}

        assert resolve_env_vars(data) == {
            "a": {"b": ["https://push.example.test/send", 3]},
            "c": "x-https://push.example.test/send",
        }

    def test_missing_variable_raises(self, monkeypatch):
        monkeypatch.delenv("EYEMATE_MISSING", raising=False)
        with pytest.raises(ConfigError, match="EYEMATE_MISSING"):
            resolve_env_vars("${EYEMATE_MISSING}")


class TestLoadConfig:
    def test_defaults_without_file(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("EYEMATE_TIMEZONE", raising=False)

        config = load_config()

        assert isinstance(config, EyeMateConfig)
        assert config.database.db_name == "eyemate"
        assert config.logging.format == "text"
        assert config.reminders.timezone == "Asia/Bangkok"
        assert config.reminders.lookahead_days == 7
        assert config.reminders.expo_push_url == EXPO_PUSH_URL

    def test_full_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PUSH_URL", "http://localhost:9999/push")
        _write(
            tmp_path,
            """
[eyemate]
db_name = "eyemate_test"
min_pool_size = 1
max_pool_size = 4

[eyemate.logging]
level = "debug"
format = "JSON"
log_dir = "/var/log/eyemate"

[eyemate.reminders]
timezone = "Europe/Berlin"
lookahead_days = 14
upcoming_hours = 12
cron = "*/5 * * * *"
expo_push_url = "${PUSH_URL}"
push_timeout_s = 3
""",
        )

        config = load_config(tmp_path)

        assert config.database.db_name == "eyemate_test"
        assert config.database.max_pool_size == 4
        assert config.logging.level == "DEBUG"
        assert config.logging.format == "json"
        assert config.logging.log_dir == "/var/log/eyemate"
        assert config.reminders.timezone == "Europe/Berlin"
        assert config.reminders.lookahead_days == 14
        assert config.reminders.upcoming_hours == 12
        assert config.reminders.cron == "*/5 * * * *"
        assert config.reminders.expo_push_url == "http://localhost:9999/push"
        assert config.reminders.push_timeout_s == 3.0

    def test_explicit_missing_path_raises(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "nope.toml")

    def test_invalid_toml(self, tmp_path):
        path = _write(tmp_path, "[eyemate\n")
        with pytest.raises(ConfigError, match="Invalid TOML"):
            load_config(path)

    @pytest.mark.parametrize(
        ("body", "match"),
        [
            ('[eyemate.logging]\nformat = "xml"', "logging.format"),
            ('[eyemate.reminders]\ntimezone = "Mars/Olympus"', "timezone"),
            ('[eyemate.reminders]\ncron = "every minute"', "cron"),
            ("[eyemate.reminders]\nlookahead_days = 0", "lookahead_days"),
            ('[eyemate.reminders]\nupcoming_hours = "soon"', "upcoming_hours"),
            ("[eyemate]\nmin_pool_size = 5\nmax_pool_size = 2", "min_pool_size"),
            ('[eyemate]\ndb_name = "  "', "db_name"),
        ],
    )
    def test_invalid_values(self, tmp_path, body, match):
        path = _write(tmp_path, body)
        with pytest.raises(ConfigError, match=match):
            load_config(path)
