"""Shared helpers for the reminder operations."""

from __future__ import annotations

import enum
import os
from datetime import date, datetime, time
from typing import Any, TypeVar
from zoneinfo import ZoneInfo

import asyncpg
import pydantic

from eyemate.errors import ValidationError

DEFAULT_TIMEZONE = "Asia/Bangkok"
TIMEZONE_ENV = "EYEMATE_TIMEZONE"

BaseModelT = TypeVar("BaseModelT", bound=pydantic.BaseModel)


def service_timezone(name: str | None = None) -> ZoneInfo:
    """Timezone in which dose clock times are interpreted."""
    return ZoneInfo(name or os.environ.get(TIMEZONE_ENV, DEFAULT_TIMEZONE))


def wall_clock(value: datetime, tz: str | None = None) -> datetime:
    """Express *value* as a naive wall-clock datetime in the service timezone.

    Dose datetimes are stored as ``TIMESTAMP`` in local wall-clock time;
    aware values are converted first, naive values are taken as-is.
    """
    if value.tzinfo is None:
        return value
    return value.astimezone(service_timezone(tz)).replace(tzinfo=None)


def local_now(tz: str | None = None) -> datetime:
    """Current wall-clock time in the service timezone (naive)."""
    return datetime.now(service_timezone(tz)).replace(tzinfo=None)


def _json_safe(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return value


def _row_to_dict(row: asyncpg.Record | dict[str, Any]) -> dict[str, Any]:
    """Convert a Record to a dict with ISO-formatted temporal values."""
    return {key: _json_safe(value) for key, value in dict(row).items()}


def _affected_rows(status: str) -> int:
    """Parse the row count out of an asyncpg command tag like ``UPDATE 3``."""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (AttributeError, ValueError):
        return 0


def _set_clause(changes: dict[str, Any], first_param: int = 1) -> tuple[str, list[Any]]:
    """Build ``col = $n`` assignments for a patch, numbering from *first_param*.

    Column names come from patch model fields, never from caller strings.
    """
    assignments = []
    values = []
    for offset, (column, value) in enumerate(changes.items()):
        assignments.append(f"{column} = ${first_param + offset}")
        values.append(value)
    return ", ".join(assignments), values


def _parse_input(model: type[BaseModelT], data: BaseModelT | dict[str, Any]) -> BaseModelT:
    """Validate caller input into *model*, raising the engine's ValidationError."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as exc:
        details = [
            {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
            for err in exc.errors()
        ]
        raise ValidationError(
            f"Invalid {model.__name__}: {exc.error_count()} error(s)", errors=details
        ) from exc
