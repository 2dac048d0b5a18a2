"""EyeMate configuration loading and validation.

Reads ``eyemate.toml``, resolves ``${VAR}`` references against the
environment, and returns a validated EyeMateConfig dataclass.  Every
section is optional; a missing file is an error only when a path was given
explicitly.

Example::

    [eyemate]
    db_name = "eyemate"

    [eyemate.logging]
    level = "INFO"
    format = "json"

    [eyemate.reminders]
    timezone = "Asia/Bangkok"
    lookahead_days = 7    # dose logs generated by create-schedule
    upcoming_hours = 24   # default window of the upcoming command
    cron = "* * * * *"
    expo_push_url = "${EXPO_PUSH_URL}"
"""

from __future__ import annotations

import os
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import croniter

from eyemate.push import EXPO_PUSH_URL
from eyemate.reminders._helpers import DEFAULT_TIMEZONE, TIMEZONE_ENV

CONFIG_FILENAME = "eyemate.toml"

# Pattern matching ${VAR_NAME}.
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


class ConfigError(Exception):
    """Raised when configuration is missing, malformed, or invalid."""


@dataclass
class DatabaseConfig:
    db_name: str = "eyemate"
    min_pool_size: int = 2
    max_pool_size: int = 10


@dataclass
class LoggingConfig:
    """Logging configuration from the [eyemate.logging] section."""

    level: str = "INFO"
    format: str = "text"  # "text" or "json"
    log_dir: str | None = None


@dataclass
class ReminderConfig:
    """Reminder engine settings from the [eyemate.reminders] section.

    ``cron`` drives the ``eyemate run`` loop; ``timezone`` is the wall clock
    in which dose times are stored and compared.  ``lookahead_days`` and
    ``upcoming_hours`` are the defaults of the ``create-schedule`` and
    ``upcoming`` commands.
    """

    timezone: str = DEFAULT_TIMEZONE
    lookahead_days: int = 7
    upcoming_hours: int = 24
    cron: str = "* * * * *"
    expo_push_url: str = EXPO_PUSH_URL
    push_timeout_s: float = 10.0


@dataclass
class EyeMateConfig:
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    reminders: ReminderConfig = field(default_factory=ReminderConfig)


def resolve_env_vars(value: Any) -> Any:
    """Recursively resolve ``${VAR_NAME}`` references in config values.

    Raises ConfigError if a referenced environment variable is not set.
    """
    if isinstance(value, dict):
        return {k: resolve_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [resolve_env_vars(item) for item in value]
    if isinstance(value, str):
        return _resolve_string(value)
    return value


def _resolve_string(s: str) -> str:
    missing: list[str] = []

    def _replace(match: re.Match) -> str:
        env_value = os.environ.get(match.group(1))
        if env_value is None:
            missing.append(match.group(1))
            return match.group(0)
        return env_value

    result = _ENV_VAR_PATTERN.sub(_replace, s)
    if missing:
        raise ConfigError(
            f"Unresolved environment variable(s) in config value: {', '.join(missing)} "
            f"(original: {s!r})"
        )
    return result


def _positive_int(section: dict[str, Any], key: str, default: int, where: str) -> int:
    raw = section.get(key, default)
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid {where}.{key}: {raw!r}. Must be an integer.") from None
    if value <= 0:
        raise ConfigError(f"Invalid {where}.{key}: {value!r}. Must be a positive integer.")
    return value


def _parse_database(section: dict[str, Any]) -> DatabaseConfig:
    db_name = str(section.get("db_name", "eyemate")).strip()
    if not db_name:
        raise ConfigError("eyemate.db_name must be a non-empty string")
    min_size = _positive_int(section, "min_pool_size", 2, "eyemate")
    max_size = _positive_int(section, "max_pool_size", 10, "eyemate")
    if min_size > max_size:
        raise ConfigError("eyemate.min_pool_size must not exceed eyemate.max_pool_size")
    return DatabaseConfig(db_name=db_name, min_pool_size=min_size, max_pool_size=max_size)


def _parse_logging(section: dict[str, Any]) -> LoggingConfig:
    log_format = str(section.get("format", "text")).lower()
    if log_format not in ("text", "json"):
        raise ConfigError(
            f"Invalid eyemate.logging.format: {log_format!r}. Expected 'text' or 'json'."
        )
    return LoggingConfig(
        level=str(section.get("level", "INFO")).upper(),
        format=log_format,
        log_dir=section.get("log_dir"),
    )


def _parse_reminders(section: dict[str, Any]) -> ReminderConfig:
    where = "eyemate.reminders"
    timezone = str(section.get("timezone", os.environ.get(TIMEZONE_ENV, DEFAULT_TIMEZONE)))
    try:
        ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError):
        raise ConfigError(f"Invalid {where}.timezone: {timezone!r}") from None

    cron = str(section.get("cron", "* * * * *"))
    if not croniter.is_valid(cron):
        raise ConfigError(f"Invalid {where}.cron expression: {cron!r}")

    return ReminderConfig(
        timezone=timezone,
        lookahead_days=_positive_int(section, "lookahead_days", 7, where),
        upcoming_hours=_positive_int(section, "upcoming_hours", 24, where),
        cron=cron,
        expo_push_url=str(section.get("expo_push_url", EXPO_PUSH_URL)),
        push_timeout_s=float(section.get("push_timeout_s", 10.0)),
    )


def load_config(path: Path | None = None) -> EyeMateConfig:
    """Load ``eyemate.toml`` from *path* (a file or a directory holding one).

    With no *path*, ``./eyemate.toml`` is read when present and defaults are
    used otherwise.

    Raises
    ------
    ConfigError
        If an explicit path is missing, the TOML is invalid, or a value fails
        validation.
    """
    if path is None:
        toml_path = Path.cwd() / CONFIG_FILENAME
        if not toml_path.exists():
            return EyeMateConfig(reminders=_parse_reminders({}))
    else:
        toml_path = Path(path)
        if toml_path.is_dir():
            toml_path = toml_path / CONFIG_FILENAME
        if not toml_path.exists():
            raise ConfigError(f"Config file not found: {toml_path}")

    try:
        data = tomllib.loads(toml_path.read_bytes().decode())
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {toml_path}: {exc}") from exc

    data = resolve_env_vars(data)

    section = data.get("eyemate", {})
    if not isinstance(section, dict):
        raise ConfigError("[eyemate] must be a table")

    return EyeMateConfig(
        database=_parse_database(section),
        logging=_parse_logging(section.get("logging", {})),
        reminders=_parse_reminders(section.get("reminders", {})),
    )
