"""
Wiring of the reminder components; built once per process
"""
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from sqlalchemy.orm import sessionmaker

from studyplanner.db.session import SessionLocal
from studyplanner.services.email_service import NotificationTransport, build_transport
from .actions import ActionHandler
from .config import settings
from .dispatcher import ReminderDispatcher
from .errors import ConfigurationError
from .gate import DispatchGate
from .repository import LogRepository, ReminderRepository, ScheduleRepository
from .scanner import DueReminderScanner
from .templates import NotificationComposer

logger = logging.getLogger(__name__)


@dataclass
class ReminderComponents:
    schedules: ScheduleRepository
    reminders: ReminderRepository
    logs: LogRepository
    gate: DispatchGate
    composer: NotificationComposer
    scanner: DueReminderScanner
    actions: ActionHandler
    transport: Optional[NotificationTransport] = None
    dispatcher: Optional[ReminderDispatcher] = None


def build_components(
    session_factory: sessionmaker = SessionLocal,
    transport: Optional[NotificationTransport] = None,
    with_transport: bool = True,
) -> ReminderComponents:
    """Assemble repositories and services over one session factory.

    With `with_transport`, a missing or misconfigured transport raises
    ConfigurationError here, before any scan or send happens.
    """
    schedules = ScheduleRepository(session_factory)
    reminders = ReminderRepository(session_factory)
    logs = LogRepository(session_factory)
    gate = DispatchGate(session_factory)
    composer = NotificationComposer()
    components = ReminderComponents(
        schedules=schedules,
        reminders=reminders,
        logs=logs,
        gate=gate,
        composer=composer,
        scanner=DueReminderScanner(reminders, logs, gate),
        actions=ActionHandler(schedules, reminders, logs),
    )
    if transport is None and with_transport:
        transport = build_transport(settings.TRANSPORT, timeout=settings.SEND_TIMEOUT_SECONDS)
    if transport is not None:
        components.transport = transport
        components.dispatcher = ReminderDispatcher(reminders, logs, gate, composer, transport)
        logger.info(f"🔧 [Reminders] Components ready with {transport.name} transport")
    return components


@lru_cache(maxsize=1)
def get_components() -> ReminderComponents:
    """Components for the HTTP service; without a transport only the dispatch trigger is unavailable."""
    try:
        return build_components()
    except ConfigurationError as e:
        logger.error(f"❌ [Reminders] Transport unavailable, dispatch trigger disabled: {e}")
        return build_components(with_transport=False)


@lru_cache(maxsize=1)
def get_worker_components() -> ReminderComponents:
    """Components for Celery workers; raises ConfigurationError when the transport is not configured."""
    return build_components()
