"""
Study schedule models - schedules own recurring or one-off study blocks
"""
from datetime import datetime, timezone as dt_timezone
from sqlalchemy import (
    Boolean, CheckConstraint, Column, Date, DateTime, ForeignKey, Index, Integer, String, Text, Time, Uuid,
)
from sqlalchemy.orm import relationship
import uuid

from studyplanner.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(dt_timezone.utc)


RECURRENCE_PATTERNS = ("once", "daily", "weekly", "biweekly", "monthly")
PRIORITIES = ("low", "medium", "high")
SCHEDULE_TYPES = ("manual", "imported_excel", "imported_csv", "ai_generated")


class StudySchedule(Base):
    __tablename__ = "study_schedules"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    schedule_type = Column(String, nullable=False, default="manual")
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    items = relationship("ScheduleItem", back_populates="schedule", passive_deletes=True)

    __table_args__ = (
        CheckConstraint(
            "schedule_type IN ('manual', 'imported_excel', 'imported_csv', 'ai_generated')",
            name="ck_study_schedules_type",
        ),
    )


class ScheduleItem(Base):
    """A single study block; `completed` is only changed by the action handler or user edits."""
    __tablename__ = "schedule_items"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    schedule_id = Column(Uuid(as_uuid=True), ForeignKey("study_schedules.id", ondelete="CASCADE"), nullable=False)
    subject = Column(String, nullable=False)
    topic = Column(String, nullable=True)
    day_of_week = Column(Integer, nullable=True)  # 0=Sunday .. 6=Saturday
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    scheduled_date = Column(Date, nullable=True)  # Required for 'once' items
    duration_minutes = Column(Integer, nullable=True)
    recurrence_pattern = Column(String, nullable=False, default="once")
    priority = Column(String, nullable=False, default="medium")
    notes = Column(Text, nullable=True)
    completed = Column(Boolean, nullable=False, default=False)
    color = Column(String, nullable=False, default="#3B82F6")
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    schedule = relationship("StudySchedule", back_populates="items")

    __table_args__ = (
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_schedule_items_day_of_week"),
        CheckConstraint(
            "recurrence_pattern IN ('daily', 'weekly', 'biweekly', 'monthly', 'once')",
            name="ck_schedule_items_recurrence",
        ),
        CheckConstraint("priority IN ('low', 'medium', 'high')", name="ck_schedule_items_priority"),
        Index("ix_schedule_items_schedule_id", "schedule_id"),
        Index("ix_schedule_items_day_of_week", "day_of_week"),
    )
