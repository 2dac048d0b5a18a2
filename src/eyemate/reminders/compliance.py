"""Compliance aggregation over dose logs.

Daily compliance groups a day's doses into morning, afternoon and evening
slots.  The range report counts dose statuses, treating unresolved doses
that are already past due as ``missed``.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Any

import asyncpg

from eyemate.reminders._helpers import _json_safe, local_now, wall_clock
from eyemate.reminders.models import DoseStatus, SlotStatus, TimeSlot
from eyemate.reminders.timeslots import classify_slot

logger = logging.getLogger(__name__)

_UNRESOLVED = (DoseStatus.PENDING, DoseStatus.SNOOZED)
_REPORT_STATUSES = ("completed", "skipped", "snoozed", "pending", "missed")


def _rate(completed: int, scheduled: int) -> float:
    if scheduled == 0:
        return 0
    return round(completed / scheduled * 100, 2)


def slot_status(scheduled_count: int, completed_count: int) -> SlotStatus:
    if scheduled_count == 0:
        return SlotStatus.NO_MEDICATION
    if completed_count == scheduled_count:
        return SlotStatus.COMPLETED
    if completed_count > 0:
        return SlotStatus.PARTIAL
    return SlotStatus.MISSED


def summarize_slots(logs: list[Any]) -> dict[str, dict[str, Any]]:
    """Group dose logs by time slot and derive each slot's counts and status.

    Every slot is present in the result, including empty ones.
    """
    slots: dict[str, dict[str, Any]] = {
        slot.value: {"medications": [], "scheduled_count": 0, "completed_count": 0}
        for slot in TimeSlot
    }
    for log in logs:
        slot = slots[classify_slot(log["scheduled_datetime"]).value]
        slot["scheduled_count"] += 1
        if log["status"] == DoseStatus.COMPLETED:
            slot["completed_count"] += 1
        slot["medications"].append(
            {
                "log_id": log["log_id"],
                "medication_id": log["medication_id"],
                "medication_name": log.get("medication_name"),
                "scheduled_time": _json_safe(log["scheduled_datetime"].time()),
                "status": str(log["status"]),
                "actual_datetime": _json_safe(log.get("actual_datetime")),
            }
        )

    for slot in slots.values():
        slot["status"] = slot_status(slot["scheduled_count"], slot["completed_count"]).value
        slot["compliance_rate"] = _rate(slot["completed_count"], slot["scheduled_count"])
    return slots


def overall_compliance(slots: dict[str, dict[str, Any]]) -> float:
    scheduled = sum(s["scheduled_count"] for s in slots.values())
    completed = sum(s["completed_count"] for s in slots.values())
    return _rate(completed, scheduled)


async def _fetch_day_logs(conn: Any, patient_id: str, day: date) -> list[dict[str, Any]]:
    rows = await conn.fetch(
        """
        SELECT ml.log_id, ml.medication_id, ml.scheduled_datetime, ml.actual_datetime,
               ml.status, m.name AS medication_name
        FROM medication_logs ml
        LEFT JOIN medications m ON m.medication_id = ml.medication_id
        WHERE ml.patient_id = $1 AND ml.scheduled_datetime::date = $2
        ORDER BY ml.scheduled_datetime
        """,
        patient_id,
        day,
    )
    return [dict(r) for r in rows]


async def get_compliance(pool: asyncpg.Pool, patient_id: str, day: date) -> dict[str, Any]:
    async with pool.acquire() as conn:
        logs = await _fetch_day_logs(conn, patient_id, day)
    slots = summarize_slots(logs)
    return {
        "date": day.isoformat(),
        "overall_compliance": overall_compliance(slots),
        **slots,
    }


async def get_compliance_history(
    pool: asyncpg.Pool,
    patient_id: str,
    days: int = 7,
    today: date | None = None,
) -> list[dict[str, Any]]:
    """Daily compliance for the *days* days ending *today*, oldest first."""
    today = today or local_now().date()
    history = []
    async with pool.acquire() as conn:
        for offset in range(days - 1, -1, -1):
            day = today - timedelta(days=offset)
            slots = summarize_slots(await _fetch_day_logs(conn, patient_id, day))
            history.append(
                {
                    "date": day.isoformat(),
                    "overall_compliance": overall_compliance(slots),
                    **{f"{name}_status": slot["status"] for name, slot in slots.items()},
                }
            )
    return history


def summarize_status_counts(rows: list[Any]) -> dict[str, Any]:
    """Fold grouped status counts into a summary plus a per-schedule breakdown.

    Each row carries ``schedule_id``, ``medication_id``, ``medication_name``,
    ``status``, ``count`` and ``overdue`` (unresolved and past due).  Overdue
    doses are counted as ``missed`` and not as pending/snoozed, so the status
    counts always add up to ``total_doses``.
    """
    summary = {"total_doses": 0, **{status: 0 for status in _REPORT_STATUSES}}
    by_schedule: dict[str, dict[str, Any]] = {}

    for row in rows:
        entry = by_schedule.setdefault(
            row["schedule_id"],
            {
                "schedule_id": row["schedule_id"],
                "medication_id": row["medication_id"],
                "medication_name": row["medication_name"],
                "total_doses": 0,
                **{status: 0 for status in _REPORT_STATUSES},
            },
        )
        count = row["count"]
        overdue = row["overdue"] if row["status"] in _UNRESOLVED else 0
        for target in (summary, entry):
            target["total_doses"] += count
            target[str(row["status"])] += count - overdue
            target["missed"] += overdue

    summary["compliance_rate"] = _rate(summary["completed"], summary["total_doses"])
    breakdown = []
    for entry in by_schedule.values():
        entry["compliance_rate"] = _rate(entry["completed"], entry["total_doses"])
        breakdown.append(entry)
    return {"summary": summary, "by_medication": breakdown}


async def get_compliance_report(
    pool: asyncpg.Pool,
    patient_id: str,
    start_date: date,
    end_date: date,
    schedule_id: str | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    now = wall_clock(now) if now is not None else local_now()
    query = """
        SELECT ml.schedule_id, ml.medication_id, m.name AS medication_name, ml.status,
               COUNT(*) AS count,
               COUNT(*) FILTER (
                   WHERE ml.status IN ('pending', 'snoozed') AND ml.scheduled_datetime < $4
               ) AS overdue
        FROM medication_logs ml
        LEFT JOIN medications m ON m.medication_id = ml.medication_id
        WHERE ml.patient_id = $1
          AND ml.scheduled_datetime::date BETWEEN $2 AND $3
    """
    params: list[Any] = [patient_id, start_date, end_date, now]
    if schedule_id is not None:
        query += " AND ml.schedule_id = $5"
        params.append(schedule_id)
    query += " GROUP BY ml.schedule_id, ml.medication_id, m.name, ml.status ORDER BY m.name"

    async with pool.acquire() as conn:
        rows = await conn.fetch(query, *params)

    report = summarize_status_counts(rows)
    logger.debug(
        "Compliance report for %s %s..%s: %s",
        patient_id,
        start_date,
        end_date,
        report["summary"],
    )
    return {
        "period": {"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
        **report,
    }
