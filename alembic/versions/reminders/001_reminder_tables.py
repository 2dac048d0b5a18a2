"""create_reminder_tables

Revision ID: reminders_001
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""

from __future__ import annotations

from alembic import op

# revision identifiers, used by Alembic.
revision = "reminders_001"
down_revision = None
branch_labels = ("reminders",)
depends_on = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE IF NOT EXISTS medications (
            medication_id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            generic_name TEXT
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS patient_medications (
            prescription_id TEXT PRIMARY KEY,
            patient_id TEXT NOT NULL,
            medication_id TEXT NOT NULL REFERENCES medications(medication_id),
            eye TEXT,
            status TEXT NOT NULL DEFAULT 'active'
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS medication_schedules (
            schedule_id TEXT PRIMARY KEY,
            patient_id TEXT NOT NULL,
            prescription_id TEXT NOT NULL REFERENCES patient_medications(prescription_id),
            medication_id TEXT NOT NULL REFERENCES medications(medication_id),
            frequency_type TEXT NOT NULL
                CHECK (frequency_type IN ('fixed_times', 'interval', 'custom')),
            interval_hours DOUBLE PRECISION CHECK (interval_hours IS NULL OR interval_hours > 0),
            times_per_day INTEGER NOT NULL DEFAULT 1,
            calculate_from_actual BOOLEAN NOT NULL DEFAULT true,
            dose_spacing_minutes INTEGER NOT NULL DEFAULT 5,
            start_date DATE NOT NULL,
            end_date DATE,
            sleep_mode_enabled BOOLEAN NOT NULL DEFAULT false,
            sleep_start_time TIME DEFAULT '22:00:00',
            sleep_end_time TIME DEFAULT '06:00:00',
            sleep_skip_dose BOOLEAN NOT NULL DEFAULT true,
            reminder_advance_minutes INTEGER NOT NULL DEFAULT 5,
            is_active BOOLEAN NOT NULL DEFAULT true,
            notes TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CHECK (frequency_type <> 'interval' OR interval_hours IS NOT NULL)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_medication_schedules_patient
        ON medication_schedules (patient_id, is_active)
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS medication_dose_times (
            dose_time_id TEXT PRIMARY KEY,
            schedule_id TEXT NOT NULL
                REFERENCES medication_schedules(schedule_id) ON DELETE CASCADE,
            dose_time TIME NOT NULL,
            dose_label TEXT NOT NULL,
            dose_order INTEGER NOT NULL,
            is_active BOOLEAN NOT NULL DEFAULT true,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS medication_logs (
            log_id TEXT PRIMARY KEY,
            schedule_id TEXT NOT NULL
                REFERENCES medication_schedules(schedule_id) ON DELETE CASCADE,
            dose_time_id TEXT
                REFERENCES medication_dose_times(dose_time_id) ON DELETE CASCADE,
            patient_id TEXT NOT NULL,
            medication_id TEXT NOT NULL,
            scheduled_datetime TIMESTAMP NOT NULL,
            actual_datetime TIMESTAMP,
            status TEXT NOT NULL DEFAULT 'pending'
                CHECK (status IN ('pending', 'completed', 'skipped', 'snoozed')),
            dose_sequence INTEGER NOT NULL DEFAULT 1,
            snooze_count INTEGER NOT NULL DEFAULT 0,
            snooze_until TIMESTAMP,
            skip_reason TEXT,
            skip_notes TEXT,
            notes TEXT,
            wait_started_at TIMESTAMP,
            wait_completed_at TIMESTAMP,
            is_adjusted BOOLEAN NOT NULL DEFAULT false,
            adjustment_type TEXT CHECK (adjustment_type IN ('one_time', 'permanent')),
            adjustment_minutes INTEGER,
            adjustment_reason TEXT,
            reminder_sent_at TIMESTAMP,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_medication_logs_patient_scheduled
        ON medication_logs (patient_id, scheduled_datetime)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_medication_logs_due
        ON medication_logs (status, scheduled_datetime)
        WHERE status IN ('pending', 'snoozed')
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS notification_settings (
            setting_id TEXT PRIMARY KEY,
            patient_id TEXT NOT NULL UNIQUE,
            push_enabled BOOLEAN NOT NULL DEFAULT true,
            sound_enabled BOOLEAN NOT NULL DEFAULT true,
            vibration_enabled BOOLEAN NOT NULL DEFAULT true,
            remind_before_minutes INTEGER NOT NULL DEFAULT 5,
            snooze_enabled BOOLEAN NOT NULL DEFAULT true,
            snooze_duration_minutes INTEGER NOT NULL DEFAULT 10,
            max_snooze_count INTEGER NOT NULL DEFAULT 2,
            quiet_hours_enabled BOOLEAN NOT NULL DEFAULT false,
            quiet_hours_start TIME DEFAULT '22:00:00',
            quiet_hours_end TIME DEFAULT '07:00:00',
            persistent_notification BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS push_tokens (
            token_id TEXT PRIMARY KEY,
            patient_id TEXT NOT NULL,
            expo_push_token TEXT NOT NULL UNIQUE,
            device_type TEXT,
            device_name TEXT,
            is_active BOOLEAN NOT NULL DEFAULT true,
            last_used_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS notification_history (
            notification_id TEXT PRIMARY KEY,
            patient_id TEXT NOT NULL,
            notification_type TEXT NOT NULL,
            title TEXT NOT NULL,
            body TEXT NOT NULL,
            sent_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            delivered BOOLEAN NOT NULL DEFAULT false,
            opened BOOLEAN NOT NULL DEFAULT false
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_notification_history_patient_sent
        ON notification_history (patient_id, sent_at DESC)
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS notification_history")
    op.execute("DROP TABLE IF EXISTS push_tokens")
    op.execute("DROP TABLE IF EXISTS notification_settings")
    op.execute("DROP TABLE IF EXISTS medication_logs")
    op.execute("DROP TABLE IF EXISTS medication_dose_times")
    op.execute("DROP TABLE IF EXISTS medication_schedules")
    op.execute("DROP TABLE IF EXISTS patient_medications")
    op.execute("DROP TABLE IF EXISTS medications")
