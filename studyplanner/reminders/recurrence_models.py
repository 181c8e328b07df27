"""
Recurrence patterns for study schedule items

Schedule items store a wall-clock `start_time` plus a small recurrence grammar
(once/daily/weekly/biweekly/monthly). The resolver turns that description into
concrete UTC instants inside a time window. Everything here is pure.
"""
from calendar import monthrange
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone as dt_timezone
from enum import Enum
from typing import List, Optional
from zoneinfo import ZoneInfo


class RecurrenceType(Enum):
    """Types of recurrence patterns"""
    ONCE = "once"
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"


class Weekday(Enum):
    """Days of the week, Sunday-first as stored on schedule items"""
    SUNDAY = 0
    MONDAY = 1
    TUESDAY = 2
    WEDNESDAY = 3
    THURSDAY = 4
    FRIDAY = 5
    SATURDAY = 6

    @classmethod
    def of(cls, d: date) -> "Weekday":
        # date.weekday() is Monday=0
        return cls((d.weekday() + 1) % 7)


def week_start(d: date) -> date:
    """Sunday of the week containing `d`."""
    return d - timedelta(days=Weekday.of(d).value)


@dataclass(frozen=True)
class RecurrenceRule:
    """Everything needed to expand one schedule item into occurrences"""
    pattern: RecurrenceType
    start_time: time
    day_of_week: Optional[int] = None
    anchor_date: Optional[date] = None  # creation date; anchors biweekly parity and monthly day
    on_date: Optional[date] = None  # absolute date for 'once'
    tz: ZoneInfo = ZoneInfo("UTC")

    def __post_init__(self):
        if self.day_of_week is not None and not 0 <= self.day_of_week <= 6:
            raise ValueError(f"day_of_week must be 0-6, got {self.day_of_week}")
        if self.pattern in (RecurrenceType.WEEKLY, RecurrenceType.BIWEEKLY) and self.day_of_week is None:
            raise ValueError(f"{self.pattern.value} recurrence requires day_of_week")
        if self.pattern in (RecurrenceType.BIWEEKLY, RecurrenceType.MONTHLY) and self.anchor_date is None:
            raise ValueError(f"{self.pattern.value} recurrence requires an anchor date")

    @classmethod
    def for_item(cls, item, tz: ZoneInfo) -> "RecurrenceRule":
        """Build a rule from a ScheduleItem row, anchoring on its creation date in `tz`."""
        anchor = None
        if item.created_at is not None:
            created = item.created_at if item.created_at.tzinfo else item.created_at.replace(tzinfo=dt_timezone.utc)
            anchor = created.astimezone(tz).date()
        return cls(
            pattern=RecurrenceType(item.recurrence_pattern),
            start_time=item.start_time,
            day_of_week=item.day_of_week,
            anchor_date=anchor,
            on_date=item.scheduled_date,
            tz=tz,
        )

    def matches(self, d: date) -> bool:
        """Whether local calendar day `d` carries an occurrence."""
        if self.pattern == RecurrenceType.DAILY:
            return True
        if self.pattern == RecurrenceType.WEEKLY:
            return Weekday.of(d).value == self.day_of_week
        if self.pattern == RecurrenceType.BIWEEKLY:
            if Weekday.of(d).value != self.day_of_week:
                return False
            weeks = (week_start(d) - week_start(self.anchor_date)).days // 7
            return weeks % 2 == 0
        if self.pattern == RecurrenceType.MONTHLY:
            # Clip to month length: an item created on the 31st recurs on the 30th in April
            target_day = min(self.anchor_date.day, monthrange(d.year, d.month)[1])
            return d.day == target_day
        if self.pattern == RecurrenceType.ONCE:
            return self.on_date is not None and d == self.on_date
        return False

    def instant_on(self, d: date) -> datetime:
        """UTC instant of the occurrence on local day `d`."""
        return datetime.combine(d, self.start_time, tzinfo=self.tz).astimezone(dt_timezone.utc)


class RecurrenceResolver:
    """Expands recurrence rules into occurrence instants"""

    @staticmethod
    def occurrences(
        pattern,
        day_of_week: Optional[int],
        start_time: time,
        window_start: datetime,
        window_end: datetime,
        *,
        anchor_date: Optional[date] = None,
        on_date: Optional[date] = None,
        tz: Optional[ZoneInfo] = None,
    ) -> List[datetime]:
        """Ordered UTC instants of `pattern` falling in [window_start, window_end]."""
        rule = RecurrenceRule(
            pattern=pattern if isinstance(pattern, RecurrenceType) else RecurrenceType(pattern),
            start_time=start_time,
            day_of_week=day_of_week,
            anchor_date=anchor_date,
            on_date=on_date,
            tz=tz or ZoneInfo("UTC"),
        )
        return RecurrenceResolver.expand(rule, window_start, window_end)

    @staticmethod
    def expand(rule: RecurrenceRule, window_start: datetime, window_end: datetime) -> List[datetime]:
        if window_start.tzinfo is None or window_end.tzinfo is None:
            raise ValueError("window bounds must be timezone-aware")
        if window_end < window_start:
            return []

        # Pad by a day on each side so local dates near the UTC boundary are not missed
        first_day = window_start.astimezone(rule.tz).date() - timedelta(days=1)
        last_day = window_end.astimezone(rule.tz).date() + timedelta(days=1)

        if rule.pattern == RecurrenceType.ONCE:
            candidates = [rule.on_date] if rule.on_date and first_day <= rule.on_date <= last_day else []
        else:
            span = (last_day - first_day).days
            candidates = [first_day + timedelta(days=i) for i in range(span + 1)]

        result = []
        for d in candidates:
            if not rule.matches(d):
                continue
            instant = rule.instant_on(d)
            if window_start <= instant <= window_end:
                result.append(instant)
        return sorted(set(result))

    @staticmethod
    def next_occurrence(
        rule: RecurrenceRule,
        after: datetime,
        horizon: timedelta = timedelta(days=62),
    ) -> Optional[datetime]:
        """First occurrence strictly after `after`, or None within `horizon`."""
        found = RecurrenceResolver.expand(rule, after + timedelta(microseconds=1), after + horizon)
        return found[0] if found else None
