"""
Reminder models - reminder configuration, the append-only reminder log and
the dispatch claims that back the send-once guarantee
"""
from datetime import datetime, timezone as dt_timezone
from sqlalchemy import (
    Boolean, CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, Uuid,
    event, text,
)
from sqlalchemy.orm import relationship
import uuid

from studyplanner.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(dt_timezone.utc)


LOG_STATUSES = ("sent", "failed", "snoozed", "completed")
ACTIONS_TAKEN = ("snooze", "complete", "none")
LANGUAGES = ("en", "ar")


class Reminder(Base):
    """Binds a schedule item to a lead time; read-only to the scheduler."""
    __tablename__ = "schedule_reminders"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    schedule_item_id = Column(
        Uuid(as_uuid=True), ForeignKey("schedule_items.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(String, nullable=False, index=True)
    recipient = Column(String, nullable=False)  # delivery address (email)
    reminder_time_minutes = Column(Integer, nullable=False)
    reminder_method = Column(String, nullable=False, default="email")
    is_enabled = Column(Boolean, nullable=False, default=True)
    language = Column(String, nullable=False, default="en")
    timezone = Column(String, nullable=True)  # IANA name; settings.DEFAULT_TIMEZONE when NULL
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    schedule_item = relationship("ScheduleItem")

    __table_args__ = (
        CheckConstraint("reminder_time_minutes > 0", name="ck_schedule_reminders_lead_time"),
        CheckConstraint("reminder_method IN ('email', 'notification')", name="ck_schedule_reminders_method"),
        CheckConstraint("language IN ('ar', 'en')", name="ck_schedule_reminders_language"),
        Index("ix_schedule_reminders_item_id", "schedule_item_id"),
        Index("ix_schedule_reminders_enabled", "is_enabled"),
    )


class ReminderLog(Base):
    """Append-only audit of dispatch attempts and user actions."""
    __tablename__ = "reminder_logs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    reminder_id = Column(
        Uuid(as_uuid=True), ForeignKey("schedule_reminders.id", ondelete="CASCADE"), nullable=False
    )
    sent_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    status = Column(String, nullable=False)
    error_message = Column(Text, nullable=True)
    action_taken = Column(String, nullable=True)
    snoozed_until = Column(DateTime(timezone=True), nullable=True)
    occurrence_at = Column(DateTime(timezone=True), nullable=True)  # study occurrence this entry refers to
    slot_at = Column(DateTime(timezone=True), nullable=True)  # dispatch key instant

    __table_args__ = (
        CheckConstraint("status IN ('sent', 'failed', 'snoozed', 'completed')", name="ck_reminder_logs_status"),
        CheckConstraint(
            "action_taken IS NULL OR action_taken IN ('snooze', 'complete', 'none')",
            name="ck_reminder_logs_action",
        ),
        Index("ix_reminder_logs_reminder_id", "reminder_id"),
        Index("ix_reminder_logs_reminder_status", "reminder_id", "status"),
        # At most one successful send per dispatch slot
        Index(
            "uq_reminder_logs_sent_slot",
            "reminder_id",
            "slot_at",
            unique=True,
            postgresql_where=text("status = 'sent'"),
            sqlite_where=text("status = 'sent'"),
        ),
    )


class DispatchClaim(Base):
    """One row per (reminder, slot); inserted atomically before a send."""
    __tablename__ = "reminder_dispatch_claims"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    reminder_id = Column(
        Uuid(as_uuid=True), ForeignKey("schedule_reminders.id", ondelete="CASCADE"), nullable=False
    )
    slot_at = Column(DateTime(timezone=True), nullable=False)
    occurrence_at = Column(DateTime(timezone=True), nullable=True)
    state = Column(String, nullable=False, default="in_flight")
    claimed_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    claimed_by = Column(String, nullable=True)

    __table_args__ = (
        UniqueConstraint("reminder_id", "slot_at", name="uq_reminder_dispatch_claims_slot"),
        CheckConstraint("state IN ('in_flight', 'sent')", name="ck_reminder_dispatch_claims_state"),
        Index("ix_reminder_dispatch_claims_state_claimed_at", "state", "claimed_at"),
    )


@event.listens_for(ReminderLog, "before_update")
def _reject_log_update(mapper, connection, target) -> None:
    raise ValueError("reminder_logs is append-only")


@event.listens_for(ReminderLog, "before_delete")
def _reject_log_delete(mapper, connection, target) -> None:
    raise ValueError("reminder_logs is append-only")
