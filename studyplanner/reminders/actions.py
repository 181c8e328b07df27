"""
Handlers for the complete/snooze links embedded in reminder messages

Links can be opened any number of times (mail clients prefetch, users double
click), so every call is safe to repeat: `complete` converges on
completed=True and `snooze` only appends. Each call appends one log entry.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional
import uuid

from studyplanner.utils.timezone import to_utc_aware, utcnow
from .config import settings
from .errors import InvalidActionError, NotFoundError
from .metrics import reminder_actions_total
from .repository import LogRepository, ReminderRepository, ScheduleRepository, as_uuid

logger = logging.getLogger(__name__)

ACTIONS = ("complete", "snooze")


@dataclass(frozen=True)
class ActionResult:
    action: str
    reminder_id: uuid.UUID
    language: str
    minutes: Optional[int] = None
    snoozed_until: Optional[datetime] = None


def _parse_id(value, name: str) -> uuid.UUID:
    try:
        return as_uuid(value)
    except (TypeError, ValueError, AttributeError):
        raise InvalidActionError(f"Invalid {name}", code="invalid_id", name=name)


class ActionHandler:
    def __init__(
        self,
        schedules: ScheduleRepository,
        reminders: ReminderRepository,
        logs: LogRepository,
        *,
        max_snooze_minutes: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.schedules = schedules
        self.reminders = reminders
        self.logs = logs
        self.max_snooze_minutes = max_snooze_minutes or settings.MAX_SNOOZE_MINUTES
        self.clock = clock

    def handle(
        self,
        action: Optional[str],
        reminder_id: Optional[str],
        item_id: Optional[str] = None,
        minutes: Optional[str] = None,
        occurrence: Optional[str] = None,
    ) -> ActionResult:
        """Validate raw link parameters and run the action. Nothing is written when validation fails."""
        if not action or not reminder_id:
            raise InvalidActionError("Missing required parameters", code="missing_parameters")
        if action not in ACTIONS:
            raise InvalidActionError("Invalid action", code="invalid_action")
        if action == "complete":
            if not item_id:
                raise InvalidActionError("Missing item_id", code="missing_item")
            return self.complete(reminder_id, item_id)
        if not minutes:
            raise InvalidActionError("Missing minutes", code="missing_minutes")
        try:
            snooze_minutes = int(minutes)
        except ValueError:
            raise InvalidActionError("minutes must be a whole number", code="invalid_minutes")
        occurrence_at = None
        if occurrence:
            try:
                occurrence_at = to_utc_aware(datetime.fromisoformat(occurrence.replace("Z", "+00:00")))
            except ValueError:
                raise InvalidActionError("Invalid occurrence", code="invalid_occurrence")
        return self.snooze(reminder_id, snooze_minutes, occurrence_at=occurrence_at)

    def complete(self, reminder_id, schedule_item_id) -> ActionResult:
        rid = _parse_id(reminder_id, "reminder_id")
        iid = _parse_id(schedule_item_id, "item_id")
        reminder = self.reminders.get(rid)
        if reminder is None:
            raise NotFoundError("Reminder not found", code="reminder_not_found")
        if reminder.schedule_item_id != iid:
            raise InvalidActionError("Schedule item does not belong to this reminder", code="item_mismatch")
        if not self.schedules.mark_item_completed(iid):
            raise NotFoundError("Schedule item not found", code="item_not_found")

        self.logs.append(rid, "completed", action_taken="complete", at=self.clock())
        reminder_actions_total.labels(action="complete").inc()
        logger.info(f"✅ [Action] Item {iid} completed via reminder {rid}")
        return ActionResult(action="complete", reminder_id=rid, language=reminder.language)

    def snooze(self, reminder_id, minutes: int, occurrence_at: Optional[datetime] = None) -> ActionResult:
        rid = _parse_id(reminder_id, "reminder_id")
        if minutes <= 0 or minutes > self.max_snooze_minutes:
            raise InvalidActionError(
                f"minutes must be between 1 and {self.max_snooze_minutes}",
                code="minutes_out_of_range",
                maximum=self.max_snooze_minutes,
            )
        reminder = self.reminders.get(rid)
        if reminder is None:
            raise NotFoundError("Reminder not found", code="reminder_not_found")

        if occurrence_at is None:
            last_sent = self.logs.latest(rid, "sent")
            occurrence_at = to_utc_aware(last_sent.occurrence_at) if last_sent else None

        now = self.clock()
        snoozed_until = now + timedelta(minutes=minutes)
        self.logs.append(
            rid,
            "snoozed",
            action_taken="snooze",
            snoozed_until=snoozed_until,
            occurrence_at=occurrence_at,
            at=now,
        )
        reminder_actions_total.labels(action="snooze").inc()
        logger.info(f"⏰ [Action] Reminder {rid} snoozed until {snoozed_until.isoformat()}")
        return ActionResult(
            action="snooze",
            reminder_id=rid,
            language=reminder.language,
            minutes=minutes,
            snoozed_until=snoozed_until,
        )
