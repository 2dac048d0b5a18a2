"""Data models for the reminder engine.

Enums for every closed vocabulary, dataclasses that map 1:1 to the schedule,
dose-time and notification-settings tables, and pydantic models for caller
input (schedule definitions and explicit optional-field patches).
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, fields
from datetime import date, time
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, model_validator


class FrequencyType(enum.StrEnum):
    FIXED_TIMES = "fixed_times"
    INTERVAL = "interval"
    CUSTOM = "custom"


class DoseStatus(enum.StrEnum):
    """Lifecycle states of a single dose log."""

    PENDING = "pending"
    SNOOZED = "snoozed"
    COMPLETED = "completed"
    SKIPPED = "skipped"


class TimeSlot(enum.StrEnum):
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"


class SlotStatus(enum.StrEnum):
    NO_MEDICATION = "no_medication"
    COMPLETED = "completed"
    PARTIAL = "partial"
    MISSED = "missed"


class AdjustmentType(enum.StrEnum):
    ONE_TIME = "one_time"
    PERMANENT = "permanent"


def _from_mapping(cls: type, row: Any) -> dict[str, Any]:
    """Pick the dataclass fields out of an asyncpg Record or dict."""
    data = dict(row)
    return {f.name: data[f.name] for f in fields(cls) if f.name in data}


@dataclass
class MedicationSchedule:
    """A prescription-driven reminder configuration.

    Maps 1:1 to the ``medication_schedules`` table.
    """

    schedule_id: str
    patient_id: str
    prescription_id: str
    medication_id: str
    frequency_type: FrequencyType
    start_date: date
    interval_hours: float | None = None
    times_per_day: int = 1
    calculate_from_actual: bool = True
    dose_spacing_minutes: int = 5
    end_date: date | None = None
    sleep_mode_enabled: bool = False
    sleep_start_time: time | None = time(22, 0)
    sleep_end_time: time | None = time(6, 0)
    sleep_skip_dose: bool = True
    reminder_advance_minutes: int = 5
    is_active: bool = True
    notes: str | None = None

    def __post_init__(self) -> None:
        self.frequency_type = FrequencyType(self.frequency_type)

    @classmethod
    def from_row(cls, row: Any) -> MedicationSchedule:
        return cls(**_from_mapping(cls, row))


@dataclass
class DoseTime:
    """A named time-of-day slot of a fixed_times schedule."""

    dose_time_id: str
    schedule_id: str
    dose_time: time
    dose_label: str
    dose_order: int
    is_active: bool = True

    @classmethod
    def from_row(cls, row: Any) -> DoseTime:
        return cls(**_from_mapping(cls, row))


@dataclass
class NotificationSettings:
    """Per-patient push delivery and snooze preferences."""

    patient_id: str
    push_enabled: bool = True
    sound_enabled: bool = True
    vibration_enabled: bool = True
    remind_before_minutes: int = 5
    snooze_enabled: bool = True
    snooze_duration_minutes: int = 10
    max_snooze_count: int = 2
    quiet_hours_enabled: bool = False
    quiet_hours_start: time | None = time(22, 0)
    quiet_hours_end: time | None = time(7, 0)
    persistent_notification: bool = False
    setting_id: str | None = None

    @classmethod
    def from_row(cls, row: Any) -> NotificationSettings:
        return cls(**_from_mapping(cls, row))


# ---------------------------------------------------------------------------
# Caller input
# ---------------------------------------------------------------------------


class DoseTimeInput(BaseModel):
    """One fixed clock time in a schedule definition."""

    dose_time: time
    dose_label: str | None = None


class ScheduleDefinition(BaseModel):
    """Everything needed to create a medication schedule."""

    model_config = ConfigDict(extra="forbid")

    prescription_id: str
    medication_id: str | None = None
    frequency_type: FrequencyType
    interval_hours: float | None = Field(default=None, gt=0, le=24)
    times_per_day: int = Field(default=1, ge=1)
    dose_times: list[DoseTimeInput] = Field(default_factory=list)
    calculate_from_actual: bool = True
    dose_spacing_minutes: int = Field(default=5, ge=0)
    start_date: date
    end_date: date | None = None
    sleep_mode_enabled: bool = False
    sleep_start_time: time = time(22, 0)
    sleep_end_time: time = time(6, 0)
    sleep_skip_dose: bool = True
    reminder_advance_minutes: int = Field(default=5, ge=0)
    notes: str | None = None

    @model_validator(mode="after")
    def _check_frequency(self) -> ScheduleDefinition:
        if self.frequency_type == FrequencyType.INTERVAL and self.interval_hours is None:
            raise ValueError("interval_hours is required when frequency_type is 'interval'")
        if self.frequency_type != FrequencyType.INTERVAL and self.interval_hours is not None:
            raise ValueError("interval_hours is only valid when frequency_type is 'interval'")
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class _Patch(BaseModel):
    """Optional-field patch; only the fields a caller sets are applied."""

    model_config = ConfigDict(extra="forbid")

    # Fields that may be explicitly cleared with ``None``.
    nullable: ClassVar[frozenset[str]] = frozenset()

    @model_validator(mode="after")
    def _reject_null_for_required(self) -> _Patch:
        for name in self.model_fields_set:
            if getattr(self, name) is None and name not in self.nullable:
                raise ValueError(f"{name} cannot be null")
        return self

    def changes(self) -> dict[str, Any]:
        """Return ``{column: value}`` for every field present in the patch."""
        return self.model_dump(exclude_unset=True)


class SchedulePatch(_Patch):
    nullable: ClassVar[frozenset[str]] = frozenset({"end_date", "notes"})

    times_per_day: int | None = Field(default=None, ge=1)
    dose_spacing_minutes: int | None = Field(default=None, ge=0)
    end_date: date | None = None
    sleep_mode_enabled: bool | None = None
    sleep_start_time: time | None = None
    sleep_end_time: time | None = None
    sleep_skip_dose: bool | None = None
    reminder_advance_minutes: int | None = Field(default=None, ge=0)
    is_active: bool | None = None
    notes: str | None = None


class NotificationSettingsPatch(_Patch):
    nullable: ClassVar[frozenset[str]] = frozenset({"quiet_hours_start", "quiet_hours_end"})

    push_enabled: bool | None = None
    sound_enabled: bool | None = None
    vibration_enabled: bool | None = None
    remind_before_minutes: int | None = Field(default=None, ge=0)
    snooze_enabled: bool | None = None
    snooze_duration_minutes: int | None = Field(default=None, ge=1)
    max_snooze_count: int | None = Field(default=None, ge=0)
    quiet_hours_enabled: bool | None = None
    quiet_hours_start: time | None = None
    quiet_hours_end: time | None = None
    persistent_notification: bool | None = None
