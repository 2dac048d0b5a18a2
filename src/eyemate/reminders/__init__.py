"""Medication reminder engine: schedules, dose logs, adjustments, compliance.

Re-exports the public operations so callers can use
``from eyemate.reminders import confirm_dose`` without knowing the module
layout.
"""

from eyemate.reminders.adjustments import adjust_dose_time
from eyemate.reminders.collisions import check_dose_collision, find_collisions
from eyemate.reminders.compliance import (
    get_compliance,
    get_compliance_history,
    get_compliance_report,
    summarize_slots,
    summarize_status_counts,
)
from eyemate.reminders.doses import (
    confirm_dose,
    get_upcoming_doses,
    skip_dose,
    snooze_dose,
    validate_transition,
)
from eyemate.reminders.generator import (
    DEFAULT_LOOKAHEAD_DAYS,
    PlannedDose,
    dose_times_for_date,
    generate_upcoming_logs,
    plan_doses,
)
from eyemate.reminders.models import (
    AdjustmentType,
    DoseStatus,
    DoseTime,
    FrequencyType,
    MedicationSchedule,
    NotificationSettings,
    NotificationSettingsPatch,
    ScheduleDefinition,
    SchedulePatch,
    SlotStatus,
    TimeSlot,
)
from eyemate.reminders.notifications import (
    get_notification_history,
    get_notification_settings,
    notify_patient,
    process_due_reminders,
    register_push_token,
    should_send_notification,
    update_notification_settings,
)
from eyemate.reminders.schedules import (
    create_schedule,
    delete_schedule,
    list_schedules,
    update_schedule,
    update_sleep_mode,
)
from eyemate.reminders.timeslots import (
    classify_slot,
    is_within_sleep_window,
    minutes_since_midnight,
    parse_time_of_day,
    shift_time_of_day,
)

__all__ = [
    "DEFAULT_LOOKAHEAD_DAYS",
    "AdjustmentType",
    "DoseStatus",
    "DoseTime",
    "FrequencyType",
    "MedicationSchedule",
    "NotificationSettings",
    "NotificationSettingsPatch",
    "PlannedDose",
    "ScheduleDefinition",
    "SchedulePatch",
    "SlotStatus",
    "TimeSlot",
    "adjust_dose_time",
    "check_dose_collision",
    "classify_slot",
    "confirm_dose",
    "create_schedule",
    "delete_schedule",
    "dose_times_for_date",
    "find_collisions",
    "generate_upcoming_logs",
    "get_compliance",
    "get_compliance_history",
    "get_compliance_report",
    "get_notification_history",
    "get_notification_settings",
    "get_upcoming_doses",
    "is_within_sleep_window",
    "list_schedules",
    "minutes_since_midnight",
    "notify_patient",
    "parse_time_of_day",
    "plan_doses",
    "process_due_reminders",
    "register_push_token",
    "shift_time_of_day",
    "should_send_notification",
    "skip_dose",
    "snooze_dose",
    "summarize_slots",
    "summarize_status_counts",
    "update_notification_settings",
    "update_schedule",
    "update_sleep_mode",
    "validate_transition",
]
