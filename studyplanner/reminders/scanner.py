"""
Due-reminder scanner

Runs once per tick. For every enabled reminder it resolves the item's
occurrences near `now` and emits a candidate when the reminder deadline
(occurrence minus lead time) is within the tolerance window. Emitting the
same candidate on consecutive ticks is expected; the dispatch gate turns
that into a single send.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from studyplanner.utils.timezone import get_zoneinfo, to_utc_aware, utcnow
from .config import settings
from .gate import DispatchGate
from .metrics import scheduler_candidates_total, scheduler_scans_total
from .recurrence_models import RecurrenceResolver, RecurrenceRule, RecurrenceType
from .repository import DispatchTarget, LogRepository, ReminderRepository

logger = logging.getLogger(__name__)

REASON_SCHEDULED = "scheduled"
REASON_RETRY = "retry"
REASON_SNOOZE = "snooze"


@dataclass(frozen=True)
class DispatchCandidate:
    reminder_id: uuid.UUID
    occurrence_at: datetime
    slot_at: datetime
    deadline: datetime
    reason: str = REASON_SCHEDULED

    @property
    def key(self) -> Tuple[uuid.UUID, datetime]:
        return (self.reminder_id, self.slot_at)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "reminder_id": str(self.reminder_id),
            "occurrence_at": self.occurrence_at.isoformat(),
            "slot_at": self.slot_at.isoformat(),
            "deadline": self.deadline.isoformat(),
            "reason": self.reason,
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "DispatchCandidate":
        return cls(
            reminder_id=uuid.UUID(payload["reminder_id"]),
            occurrence_at=to_utc_aware(datetime.fromisoformat(payload["occurrence_at"])),
            slot_at=to_utc_aware(datetime.fromisoformat(payload["slot_at"])),
            deadline=to_utc_aware(datetime.fromisoformat(payload["deadline"])),
            reason=payload.get("reason", REASON_SCHEDULED),
        )


def is_dispatchable(target: DispatchTarget) -> bool:
    return bool(target.reminder.is_enabled and target.schedule.is_active and not target.item.completed)


def within_schedule(target: DispatchTarget, occurrence: datetime) -> bool:
    """Whether the occurrence's local date lies inside the schedule's start/end dates."""
    schedule = target.schedule
    if schedule.start_date is None and schedule.end_date is None:
        return True
    local_day = occurrence.astimezone(get_zoneinfo(target.reminder.timezone)).date()
    if schedule.start_date and local_day < schedule.start_date:
        return False
    if schedule.end_date and local_day > schedule.end_date:
        return False
    return True


class DueReminderScanner:
    def __init__(
        self,
        reminders: ReminderRepository,
        logs: LogRepository,
        gate: Optional[DispatchGate] = None,
        *,
        tolerance_seconds: Optional[int] = None,
        lookahead_seconds: Optional[int] = None,
        retry_window_seconds: Optional[int] = None,
        snooze_redispatch: Optional[bool] = None,
        batch_size: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.reminders = reminders
        self.logs = logs
        self.gate = gate
        self.tolerance = timedelta(
            seconds=settings.SCAN_TOLERANCE_SECONDS if tolerance_seconds is None else tolerance_seconds
        )
        self.lookahead = timedelta(
            seconds=settings.SCAN_LOOKAHEAD_SECONDS if lookahead_seconds is None else lookahead_seconds
        )
        self.retry_window = timedelta(
            seconds=settings.RETRY_WINDOW_SECONDS if retry_window_seconds is None else retry_window_seconds
        )
        self.snooze_redispatch = settings.SNOOZE_REDISPATCH_ENABLED if snooze_redispatch is None else snooze_redispatch
        self.batch_size = batch_size or settings.SCHEDULER_BATCH_SIZE
        self.clock = clock

    def scan(self, now: Optional[datetime] = None) -> List[DispatchCandidate]:
        now = to_utc_aware(now) if now else self.clock()
        scheduler_scans_total.inc()

        found: List[DispatchCandidate] = []
        seen: Set[Tuple[uuid.UUID, datetime]] = set()

        def emit(candidate: DispatchCandidate) -> None:
            if candidate.key in seen:
                return
            seen.add(candidate.key)
            found.append(candidate)
            scheduler_candidates_total.labels(reason=candidate.reason).inc()

        targets = 0
        for target in self.reminders.iter_dispatchable(self.batch_size):
            targets += 1
            for candidate in self.candidates_for(target, now):
                emit(candidate)

        if self.gate is not None:
            # Abandoned claims become failed attempts for the retry sweep below
            self.gate.reap_stale(now)

        for candidate in self._retry_candidates(now):
            emit(candidate)

        if self.snooze_redispatch:
            for candidate in self._snooze_candidates(now):
                emit(candidate)

        logger.info(f"🔍 [Scanner] {now.isoformat()} scanned={targets} candidates={len(found)}")
        return found

    def candidates_for(self, target: DispatchTarget, now: datetime) -> List[DispatchCandidate]:
        """Scheduled candidates for one reminder at `now`."""
        reminder, item = target.reminder, target.item
        lead = timedelta(minutes=reminder.reminder_time_minutes)

        if item.recurrence_pattern == RecurrenceType.ONCE.value and item.scheduled_date is None:
            logger.warning(f"⚠️ [Scanner] Item {item.id} is 'once' without scheduled_date; no occurrences")
            return []

        try:
            rule = RecurrenceRule.for_item(item, get_zoneinfo(reminder.timezone))
        except ValueError as e:
            logger.warning(f"⚠️ [Scanner] Item {item.id} has an unusable recurrence: {e}")
            return []

        result = []
        for occurrence in RecurrenceResolver.expand(rule, now - self.tolerance, now + self.lookahead + lead):
            if not within_schedule(target, occurrence):
                continue
            deadline = occurrence - lead
            if deadline - self.tolerance <= now <= deadline + self.tolerance:
                result.append(
                    DispatchCandidate(
                        reminder_id=reminder.id,
                        occurrence_at=occurrence,
                        slot_at=occurrence,
                        deadline=deadline,
                    )
                )
        return result

    def _retry_candidates(self, now: datetime) -> List[DispatchCandidate]:
        """Slots whose last attempt failed and whose deadline is still inside the retry window."""
        result = []
        for reminder_id, slot_at, occurrence_at in self.logs.failed_unsent_slots(since=now - self.retry_window - self.tolerance):
            target = self.reminders.get_target(reminder_id)
            if target is None or not is_dispatchable(target):
                continue
            occurrence = occurrence_at or slot_at
            if slot_at == occurrence:
                deadline = occurrence - timedelta(minutes=target.reminder.reminder_time_minutes)
            else:
                deadline = slot_at
            if deadline + self.tolerance < now <= deadline + self.retry_window:
                result.append(
                    DispatchCandidate(
                        reminder_id=reminder_id,
                        occurrence_at=occurrence,
                        slot_at=slot_at,
                        deadline=deadline,
                        reason=REASON_RETRY,
                    )
                )
        return result

    def _snooze_candidates(self, now: datetime) -> List[DispatchCandidate]:
        latest: Dict[uuid.UUID, Any] = {}
        for entry in self.logs.snoozes_due(now - self.tolerance, now + self.tolerance):
            current = latest.get(entry.reminder_id)
            if current is None or to_utc_aware(entry.sent_at) > to_utc_aware(current.sent_at):
                latest[entry.reminder_id] = entry

        result = []
        for reminder_id, entry in latest.items():
            target = self.reminders.get_target(reminder_id)
            if target is None or not is_dispatchable(target):
                continue
            snoozed_until = to_utc_aware(entry.snoozed_until)
            result.append(
                DispatchCandidate(
                    reminder_id=reminder_id,
                    occurrence_at=to_utc_aware(entry.occurrence_at) or snoozed_until,
                    slot_at=snoozed_until,
                    deadline=snoozed_until,
                    reason=REASON_SNOOZE,
                )
            )
        return result
