"""
Schemas for study schedules, reminders, reminder logs and the dispatch trigger
"""
from datetime import date, datetime, time
from typing import Literal, Optional
import uuid

from pydantic import BaseModel, Field, model_validator

from .recurrence_models import RecurrenceType


Language = Literal["en", "ar"]
ReminderMethod = Literal["email", "notification"]
Priority = Literal["low", "medium", "high"]
ScheduleType = Literal["manual", "imported_excel", "imported_csv", "ai_generated"]
LogStatus = Literal["sent", "failed", "snoozed", "completed"]


class ScheduleCreate(BaseModel):
    """Schema for creating a study schedule"""
    user_id: str
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    schedule_type: ScheduleType = "manual"
    is_active: bool = True
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @model_validator(mode="after")
    def _check_range(self) -> "ScheduleCreate":
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class ScheduleRead(BaseModel):
    id: uuid.UUID
    user_id: str
    title: str
    description: Optional[str] = None
    schedule_type: str
    is_active: bool
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ScheduleItemCreate(BaseModel):
    """Schema for adding a study block to a schedule"""
    schedule_id: uuid.UUID
    subject: str = Field(..., min_length=1)
    topic: Optional[str] = None
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6, description="0=Sunday .. 6=Saturday")
    start_time: time
    end_time: time
    scheduled_date: Optional[date] = None
    duration_minutes: Optional[int] = Field(default=None, gt=0)
    recurrence_pattern: RecurrenceType = RecurrenceType.ONCE
    priority: Priority = "medium"
    notes: Optional[str] = None
    color: str = Field(default="#3B82F6", pattern=r"^#[0-9A-Fa-f]{6}$")

    model_config = {"use_enum_values": True}

    @model_validator(mode="after")
    def _check_recurrence(self) -> "ScheduleItemCreate":
        weekly = (RecurrenceType.WEEKLY.value, RecurrenceType.BIWEEKLY.value)
        if self.recurrence_pattern in weekly and self.day_of_week is None:
            raise ValueError(f"{self.recurrence_pattern} items require day_of_week")
        if self.recurrence_pattern == RecurrenceType.ONCE.value and self.scheduled_date is None:
            raise ValueError("once items require scheduled_date")
        return self


class ScheduleItemUpdate(BaseModel):
    """Schema for editing a study block; unset fields are left alone"""
    subject: Optional[str] = Field(default=None, min_length=1)
    topic: Optional[str] = None
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    scheduled_date: Optional[date] = None
    duration_minutes: Optional[int] = Field(default=None, gt=0)
    recurrence_pattern: Optional[RecurrenceType] = None
    priority: Optional[Priority] = None
    completed: Optional[bool] = None
    notes: Optional[str] = None
    color: Optional[str] = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")

    model_config = {"use_enum_values": True}

    @model_validator(mode="after")
    def _check_required(self) -> "ScheduleItemUpdate":
        required = ("subject", "start_time", "end_time", "recurrence_pattern", "priority", "completed", "color")
        cleared = [name for name in required if name in self.model_fields_set and getattr(self, name) is None]
        if cleared:
            raise ValueError(f"{', '.join(cleared)} cannot be null")
        return self


class ScheduleItemRead(BaseModel):
    id: uuid.UUID
    schedule_id: uuid.UUID
    subject: str
    topic: Optional[str] = None
    day_of_week: Optional[int] = None
    start_time: time
    end_time: time
    scheduled_date: Optional[date] = None
    recurrence_pattern: str
    priority: str
    completed: bool

    model_config = {"from_attributes": True}


class ReminderCreate(BaseModel):
    """Schema for attaching a reminder to a schedule item"""
    schedule_item_id: uuid.UUID
    user_id: str
    recipient: str = Field(..., min_length=3)
    reminder_time_minutes: int = Field(default=30, gt=0)
    reminder_method: ReminderMethod = "email"
    is_enabled: bool = True
    language: Language = "en"
    timezone: Optional[str] = None


class ReminderUpdate(BaseModel):
    """Schema for updating reminders"""
    recipient: Optional[str] = Field(default=None, min_length=3)
    reminder_time_minutes: Optional[int] = Field(default=None, gt=0)
    reminder_method: Optional[ReminderMethod] = None
    is_enabled: Optional[bool] = None
    language: Optional[Language] = None
    timezone: Optional[str] = None


class ReminderRead(BaseModel):
    id: uuid.UUID
    schedule_item_id: uuid.UUID
    user_id: str
    recipient: str
    reminder_time_minutes: int
    reminder_method: str
    is_enabled: bool
    language: str
    timezone: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ReminderLogRead(BaseModel):
    id: uuid.UUID
    reminder_id: uuid.UUID
    sent_at: datetime
    status: LogStatus
    error_message: Optional[str] = None
    action_taken: Optional[str] = None
    snoozed_until: Optional[datetime] = None
    occurrence_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ReminderStats(BaseModel):
    """Counters for the reminders screen; `*_today` are since local midnight"""
    total_reminders: int
    enabled_reminders: int
    sent_today: int
    failed_today: int
    snoozed_today: int
    completed_today: int


class DispatchRequest(BaseModel):
    """Body of the dispatch trigger; mirrors what a scheduled dispatch composes from the store"""
    user_email: str = Field(..., min_length=3)
    subject: str
    topic: Optional[str] = None
    start_time: time
    day: Optional[str] = None
    language: Language = "en"
    reminder_id: uuid.UUID
    schedule_item_id: uuid.UUID
    occurrence_at: Optional[datetime] = None


class DispatchResponse(BaseModel):
    success: bool
    message: str
    email_sent: bool
