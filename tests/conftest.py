"""Pytest configuration for the study reminder test suite."""

import os


def _ensure_test_env() -> None:
    """Seed required environment variables for tests."""
    os.environ.setdefault("SQLALCHEMY_DATABASE_URI", "sqlite://")
    os.environ.setdefault("VALID_API_KEYS", "test-key")
    os.environ.setdefault("REQUIRE_API_KEY", "true")
    os.environ.setdefault("PUBLIC_BASE_URL", "http://testserver")
    os.environ.setdefault("DEFAULT_TIMEZONE", "UTC")
    os.environ.setdefault("REMINDER_TRANSPORT", "console")
    os.environ.setdefault("REMINDER_METRICS_ENABLED", "false")


_ensure_test_env()

from dataclasses import dataclass  # noqa: E402
from datetime import date, datetime, time, timedelta, timezone  # noqa: E402
from typing import List, Optional  # noqa: E402

import pytest  # noqa: E402

from studyplanner.db.base import Base  # noqa: E402
from studyplanner.db.session import build_engine, build_session_factory  # noqa: E402
from studyplanner.models import Reminder, ScheduleItem, StudySchedule  # noqa: E402
from studyplanner.reminders.actions import ActionHandler  # noqa: E402
from studyplanner.reminders.dispatcher import ReminderDispatcher  # noqa: E402
from studyplanner.reminders.gate import DispatchGate  # noqa: E402
from studyplanner.reminders.repository import LogRepository, ReminderRepository, ScheduleRepository  # noqa: E402
from studyplanner.reminders.runtime import ReminderComponents  # noqa: E402
from studyplanner.reminders.scanner import DueReminderScanner  # noqa: E402
from studyplanner.reminders.templates import NotificationComposer  # noqa: E402
from studyplanner.services.email_service import DeliveryOutcome  # noqa: E402

# Sunday 2026-10-18 starts the reference week; Monday 2026-10-19 09:00 UTC is the usual occurrence
MONDAY_0900 = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)
ACTION_BASE_URL = "http://testserver/api/v1/reminders/action"


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@dataclass
class SentMessage:
    to: str
    subject: str
    body: str
    text_body: Optional[str]


class RecordingTransport:
    """Transport double that records deliveries and raises scripted errors in order."""

    name = "recording"

    def __init__(self) -> None:
        self.sent: List[SentMessage] = []
        self.errors: List[Optional[Exception]] = []
        self.attempts = 0

    def fail_with(self, *errors: Optional[Exception]) -> None:
        self.errors.extend(errors)

    def send(self, to: str, subject: str, body: str, text_body: Optional[str] = None) -> DeliveryOutcome:
        self.attempts += 1
        if self.errors:
            error = self.errors.pop(0)
            if error is not None:
                raise error
        self.sent.append(SentMessage(to, subject, body, text_body))
        return DeliveryOutcome(transport=self.name, recipient=to)


@dataclass
class Seeded:
    schedule: StudySchedule
    item: ScheduleItem
    reminder: Reminder


@pytest.fixture
def engine():
    test_engine = build_engine("sqlite://")
    Base.metadata.create_all(test_engine)
    yield test_engine
    Base.metadata.drop_all(test_engine)
    test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(MONDAY_0900 - timedelta(minutes=30))


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def schedules(session_factory) -> ScheduleRepository:
    return ScheduleRepository(session_factory)


@pytest.fixture
def reminders(session_factory) -> ReminderRepository:
    return ReminderRepository(session_factory)


@pytest.fixture
def logs(session_factory) -> LogRepository:
    return LogRepository(session_factory)


@pytest.fixture
def gate(session_factory, clock) -> DispatchGate:
    return DispatchGate(session_factory, lease_seconds=300, worker_id="test-worker", clock=clock)


@pytest.fixture
def composer() -> NotificationComposer:
    return NotificationComposer(action_base_url=ACTION_BASE_URL, snooze_minutes=30)


@pytest.fixture
def scanner(reminders, logs, gate, clock) -> DueReminderScanner:
    return DueReminderScanner(
        reminders,
        logs,
        gate,
        tolerance_seconds=90,
        lookahead_seconds=120,
        retry_window_seconds=900,
        snooze_redispatch=True,
        batch_size=2,
        clock=clock,
    )


@pytest.fixture
def actions(schedules, reminders, logs, clock) -> ActionHandler:
    return ActionHandler(schedules, reminders, logs, max_snooze_minutes=1440, clock=clock)


@pytest.fixture
def dispatcher(reminders, logs, gate, composer, transport, sleeps, clock) -> ReminderDispatcher:
    return ReminderDispatcher(
        reminders,
        logs,
        gate,
        composer,
        transport,
        max_attempts=3,
        backoff_base_seconds=1.0,
        sleep=sleeps.append,
        clock=clock,
    )


@pytest.fixture
def components(schedules, reminders, logs, gate, composer, scanner, actions, transport, dispatcher) -> ReminderComponents:
    return ReminderComponents(
        schedules=schedules,
        reminders=reminders,
        logs=logs,
        gate=gate,
        composer=composer,
        scanner=scanner,
        actions=actions,
        transport=transport,
        dispatcher=dispatcher,
    )


@pytest.fixture
def seed(session_factory):
    """Insert a schedule, one item and one reminder; returns a Seeded triple."""

    def _seed(
        *,
        pattern: str = "weekly",
        day_of_week: Optional[int] = 1,
        start_time: time = time(9, 0),
        lead_minutes: int = 30,
        language: str = "en",
        tz: Optional[str] = None,
        scheduled_date: Optional[date] = None,
        created_at: datetime = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc),
        enabled: bool = True,
        completed: bool = False,
        active: bool = True,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        subject: str = "Mathematics",
        topic: Optional[str] = "Algebra",
        recipient: str = "student@example.com",
        user_id: str = "user-1",
    ) -> Seeded:
        end_time = (datetime.combine(date(2000, 1, 1), start_time) + timedelta(hours=1)).time()
        with session_factory() as db:
            schedule = StudySchedule(
                user_id=user_id,
                title="Term plan",
                is_active=active,
                start_date=start_date,
                end_date=end_date,
            )
            db.add(schedule)
            db.flush()
            item = ScheduleItem(
                schedule_id=schedule.id,
                subject=subject,
                topic=topic,
                day_of_week=day_of_week,
                start_time=start_time,
                end_time=end_time,
                scheduled_date=scheduled_date,
                recurrence_pattern=pattern,
                completed=completed,
                created_at=created_at,
            )
            db.add(item)
            db.flush()
            reminder = Reminder(
                schedule_item_id=item.id,
                user_id=user_id,
                recipient=recipient,
                reminder_time_minutes=lead_minutes,
                language=language,
                timezone=tz,
                is_enabled=enabled,
            )
            db.add(reminder)
            db.commit()
            return Seeded(schedule=schedule, item=item, reminder=reminder)

    return _seed
