from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterator, List, Optional, Tuple, Union
import uuid

from sqlalchemy import and_, exists, func, select, update
from sqlalchemy.orm import aliased, sessionmaker

from studyplanner.models import Reminder, ReminderLog, ScheduleItem, StudySchedule
from studyplanner.utils.timezone import to_utc_aware, utcnow
from .schemas import ReminderCreate, ReminderUpdate, ScheduleCreate, ScheduleItemCreate, ScheduleItemUpdate

IdLike = Union[str, uuid.UUID]


def as_uuid(value: IdLike) -> uuid.UUID:
    """Coerce a path/query identifier to UUID; raises ValueError when malformed."""
    if isinstance(value, uuid.UUID):
        return value
    return uuid.UUID(str(value).strip())


@dataclass(frozen=True)
class DispatchTarget:
    """An enabled reminder together with the rows the scanner needs to resolve it"""
    reminder: Reminder
    item: ScheduleItem
    schedule: StudySchedule


class ScheduleRepository:
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def create_schedule(self, data: ScheduleCreate) -> StudySchedule:
        with self.session_factory() as db:
            schedule = StudySchedule(**data.model_dump())
            db.add(schedule)
            db.commit()
            db.refresh(schedule)
            return schedule

    def create_item(self, data: ScheduleItemCreate) -> ScheduleItem:
        with self.session_factory() as db:
            item = ScheduleItem(**data.model_dump())
            db.add(item)
            db.commit()
            db.refresh(item)
            return item

    def get_schedule(self, schedule_id: IdLike) -> Optional[StudySchedule]:
        with self.session_factory() as db:
            return db.get(StudySchedule, as_uuid(schedule_id))

    def get_item(self, item_id: IdLike) -> Optional[ScheduleItem]:
        with self.session_factory() as db:
            return db.get(ScheduleItem, as_uuid(item_id))

    def mark_item_completed(self, item_id: IdLike) -> bool:
        """Set completed=True; returns False when the item does not exist. Repeat calls are no-ops."""
        with self.session_factory() as db:
            result = db.execute(
                update(ScheduleItem)
                .where(ScheduleItem.id == as_uuid(item_id))
                .values(completed=True, updated_at=utcnow())
            )
            db.commit()
            return result.rowcount > 0

    def list_schedules(self, user_id: Optional[str] = None) -> List[StudySchedule]:
        stmt = select(StudySchedule).order_by(StudySchedule.created_at.asc())
        if user_id:
            stmt = stmt.where(StudySchedule.user_id == user_id)
        with self.session_factory() as db:
            return list(db.execute(stmt).scalars())

    def list_items(self, schedule_id: IdLike) -> List[ScheduleItem]:
        stmt = (
            select(ScheduleItem)
            .where(ScheduleItem.schedule_id == as_uuid(schedule_id))
            .order_by(ScheduleItem.day_of_week.asc(), ScheduleItem.start_time.asc())
        )
        with self.session_factory() as db:
            return list(db.execute(stmt).scalars())

    def update_item(self, item_id: IdLike, data: ScheduleItemUpdate) -> Optional[ScheduleItem]:
        """Apply the set fields; the merged item must still satisfy the creation rules (ValueError otherwise)."""
        with self.session_factory() as db:
            item = db.get(ScheduleItem, as_uuid(item_id))
            if not item:
                return None
            for field, value in data.model_dump(exclude_unset=True).items():
                setattr(item, field, value)
            merged = {name: getattr(item, name) for name in ScheduleItemCreate.model_fields}
            ScheduleItemCreate.model_validate(merged)
            item.updated_at = utcnow()
            db.commit()
            db.refresh(item)
            return item

    def delete_item(self, item_id: IdLike) -> bool:
        """Delete an item; its reminders, their logs and claims go with it through the foreign keys."""
        with self.session_factory() as db:
            item = db.get(ScheduleItem, as_uuid(item_id))
            if not item:
                return False
            db.delete(item)
            db.commit()
            return True


class ReminderRepository:
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def create(self, data: ReminderCreate) -> Reminder:
        with self.session_factory() as db:
            reminder = Reminder(**data.model_dump())
            db.add(reminder)
            db.commit()
            db.refresh(reminder)
            return reminder

    def get(self, reminder_id: IdLike) -> Optional[Reminder]:
        with self.session_factory() as db:
            return db.get(Reminder, as_uuid(reminder_id))

    def list(
        self,
        user_id: Optional[str] = None,
        is_enabled: Optional[bool] = None,
        schedule_item_id: Optional[IdLike] = None,
        limit: int = 100,
    ) -> List[Reminder]:
        stmt = select(Reminder).order_by(Reminder.created_at.desc()).limit(limit)
        if user_id:
            stmt = stmt.where(Reminder.user_id == user_id)
        if is_enabled is not None:
            stmt = stmt.where(Reminder.is_enabled == is_enabled)
        if schedule_item_id:
            stmt = stmt.where(Reminder.schedule_item_id == as_uuid(schedule_item_id))
        with self.session_factory() as db:
            return list(db.execute(stmt).scalars())

    def update(self, reminder_id: IdLike, data: ReminderUpdate) -> Optional[Reminder]:
        with self.session_factory() as db:
            reminder = db.get(Reminder, as_uuid(reminder_id))
            if not reminder:
                return None
            for field, value in data.model_dump(exclude_unset=True).items():
                setattr(reminder, field, value)
            db.commit()
            db.refresh(reminder)
            return reminder

    def set_enabled(self, reminder_id: IdLike, enabled: bool) -> bool:
        with self.session_factory() as db:
            result = db.execute(
                update(Reminder).where(Reminder.id == as_uuid(reminder_id)).values(is_enabled=enabled)
            )
            db.commit()
            return result.rowcount > 0

    def delete(self, reminder_id: IdLike) -> bool:
        with self.session_factory() as db:
            reminder = db.get(Reminder, as_uuid(reminder_id))
            if not reminder:
                return False
            db.delete(reminder)
            db.commit()
            return True

    def get_target(self, reminder_id: IdLike) -> Optional[DispatchTarget]:
        """Reminder with its item and schedule, regardless of enabled/completed state."""
        stmt = (
            select(Reminder, ScheduleItem, StudySchedule)
            .join(ScheduleItem, ScheduleItem.id == Reminder.schedule_item_id)
            .join(StudySchedule, StudySchedule.id == ScheduleItem.schedule_id)
            .where(Reminder.id == as_uuid(reminder_id))
        )
        with self.session_factory() as db:
            row = db.execute(stmt).first()
            return DispatchTarget(*row) if row else None

    def iter_dispatchable(self, batch_size: int = 500) -> Iterator[DispatchTarget]:
        """Enabled reminders of active schedules whose item is not completed, in id order."""
        last_id = None
        while True:
            stmt = (
                select(Reminder, ScheduleItem, StudySchedule)
                .join(ScheduleItem, ScheduleItem.id == Reminder.schedule_item_id)
                .join(StudySchedule, StudySchedule.id == ScheduleItem.schedule_id)
                .where(Reminder.is_enabled.is_(True))
                .where(StudySchedule.is_active.is_(True))
                .where(ScheduleItem.completed.is_(False))
                .order_by(Reminder.id.asc())
                .limit(batch_size)
            )
            if last_id is not None:
                stmt = stmt.where(Reminder.id > last_id)
            with self.session_factory() as db:
                rows = db.execute(stmt).all()
            if not rows:
                return
            for row in rows:
                yield DispatchTarget(*row)
            if len(rows) < batch_size:
                return
            last_id = rows[-1][0].id


class LogRepository:
    """Append-only access to reminder_logs"""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def append(
        self,
        reminder_id: IdLike,
        status: str,
        *,
        action_taken: Optional[str] = None,
        snoozed_until: Optional[datetime] = None,
        occurrence_at: Optional[datetime] = None,
        slot_at: Optional[datetime] = None,
        error_message: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> ReminderLog:
        with self.session_factory() as db:
            entry = self.build_entry(
                reminder_id,
                status,
                action_taken=action_taken,
                snoozed_until=snoozed_until,
                occurrence_at=occurrence_at,
                slot_at=slot_at,
                error_message=error_message,
                at=at,
            )
            db.add(entry)
            db.commit()
            db.refresh(entry)
            return entry

    @staticmethod
    def build_entry(reminder_id: IdLike, status: str, *, at: Optional[datetime] = None, **fields) -> ReminderLog:
        for key in ("snoozed_until", "occurrence_at", "slot_at"):
            if fields.get(key) is not None:
                fields[key] = to_utc_aware(fields[key])
        return ReminderLog(
            reminder_id=as_uuid(reminder_id),
            status=status,
            sent_at=to_utc_aware(at) if at else utcnow(),
            **fields,
        )

    def list_for_reminder(self, reminder_id: IdLike, limit: int = 100) -> List[ReminderLog]:
        stmt = (
            select(ReminderLog)
            .where(ReminderLog.reminder_id == as_uuid(reminder_id))
            .order_by(ReminderLog.sent_at.desc())
            .limit(limit)
        )
        with self.session_factory() as db:
            return list(db.execute(stmt).scalars())

    def list_for_user(self, user_id: str, status: Optional[str] = None, limit: int = 100) -> List[ReminderLog]:
        stmt = (
            select(ReminderLog)
            .join(Reminder, Reminder.id == ReminderLog.reminder_id)
            .where(Reminder.user_id == user_id)
            .order_by(ReminderLog.sent_at.desc())
            .limit(limit)
        )
        if status:
            stmt = stmt.where(ReminderLog.status == status)
        with self.session_factory() as db:
            return list(db.execute(stmt).scalars())

    def count_sent(self, reminder_id: IdLike, slot_at: datetime) -> int:
        stmt = (
            select(func.count(ReminderLog.id))
            .where(ReminderLog.reminder_id == as_uuid(reminder_id))
            .where(ReminderLog.slot_at == to_utc_aware(slot_at))
            .where(ReminderLog.status == "sent")
        )
        with self.session_factory() as db:
            return int(db.execute(stmt).scalar() or 0)

    def latest(self, reminder_id: IdLike, status: str) -> Optional[ReminderLog]:
        stmt = (
            select(ReminderLog)
            .where(ReminderLog.reminder_id == as_uuid(reminder_id))
            .where(ReminderLog.status == status)
            .order_by(ReminderLog.sent_at.desc())
            .limit(1)
        )
        with self.session_factory() as db:
            return db.execute(stmt).scalars().first()

    def snoozes_due(self, start: datetime, end: datetime) -> List[ReminderLog]:
        """Latest snooze of each reminder, when its snoozed_until falls in [start, end].

        A later snooze replaces an earlier one, so superseded entries are never due.
        """
        latest = (
            select(ReminderLog.reminder_id, func.max(ReminderLog.sent_at).label("sent_at"))
            .where(ReminderLog.status == "snoozed")
            .group_by(ReminderLog.reminder_id)
            .subquery()
        )
        stmt = (
            select(ReminderLog)
            .join(
                latest,
                and_(ReminderLog.reminder_id == latest.c.reminder_id, ReminderLog.sent_at == latest.c.sent_at),
            )
            .where(ReminderLog.status == "snoozed")
            .where(ReminderLog.snoozed_until >= to_utc_aware(start))
            .where(ReminderLog.snoozed_until <= to_utc_aware(end))
            .order_by(ReminderLog.snoozed_until.asc())
        )
        with self.session_factory() as db:
            return list(db.execute(stmt).scalars())

    def failed_unsent_slots(self, since: datetime) -> List[Tuple[uuid.UUID, datetime, Optional[datetime]]]:
        """Distinct (reminder_id, slot_at, occurrence_at) that failed since `since` and were never sent."""
        sent = aliased(ReminderLog)
        stmt = (
            select(ReminderLog.reminder_id, ReminderLog.slot_at, ReminderLog.occurrence_at)
            .where(ReminderLog.status == "failed")
            .where(ReminderLog.slot_at.is_not(None))
            .where(ReminderLog.sent_at >= to_utc_aware(since))
            .where(
                ~exists().where(
                    and_(
                        sent.reminder_id == ReminderLog.reminder_id,
                        sent.slot_at == ReminderLog.slot_at,
                        sent.status == "sent",
                    )
                )
            )
            .distinct()
        )
        with self.session_factory() as db:
            return [(row[0], to_utc_aware(row[1]), to_utc_aware(row[2])) for row in db.execute(stmt).all()]

    def stats(self, user_id: Optional[str], since: datetime) -> Dict[str, int]:
        """Counts shown on the reminders screen: totals and activity since `since`."""
        reminders = select(func.count(Reminder.id))
        enabled = select(func.count(Reminder.id)).where(Reminder.is_enabled.is_(True))
        by_status = (
            select(ReminderLog.status, func.count(ReminderLog.id))
            .join(Reminder, Reminder.id == ReminderLog.reminder_id)
            .where(ReminderLog.sent_at >= to_utc_aware(since))
            .group_by(ReminderLog.status)
        )
        if user_id:
            reminders = reminders.where(Reminder.user_id == user_id)
            enabled = enabled.where(Reminder.user_id == user_id)
            by_status = by_status.where(Reminder.user_id == user_id)
        with self.session_factory() as db:
            counts = {status: int(count) for status, count in db.execute(by_status).all()}
            return {
                "total_reminders": int(db.execute(reminders).scalar() or 0),
                "enabled_reminders": int(db.execute(enabled).scalar() or 0),
                "sent_since": counts.get("sent", 0),
                "failed_since": counts.get("failed", 0),
                "snoozed_since": counts.get("snoozed", 0),
                "completed_since": counts.get("completed", 0),
            }
