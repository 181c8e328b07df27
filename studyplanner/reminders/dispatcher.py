import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional
import uuid

from sqlalchemy.exc import OperationalError

from studyplanner.services.email_service import DeliveryOutcome, NotificationTransport
from studyplanner.utils.timezone import to_utc_aware, utcnow
from .config import settings
from .errors import DeliveryError, NotFoundError, TransientDeliveryError
from .gate import DispatchGate, GateResult
from .metrics import reminders_dispatch_failed_total, reminders_dispatch_success_total, reminders_gate_skipped_total
from .repository import LogRepository, ReminderRepository
from .scanner import DispatchCandidate, is_dispatchable
from .schemas import DispatchRequest
from .templates import ComposedNotification, NotificationComposer

logger = logging.getLogger(__name__)

REASON_MANUAL = "manual"


def compute_backoff_delay_seconds(attempt: int, base_seconds: float) -> float:
    """Exponential delay before retry number `attempt` (1-based)."""
    if attempt <= 0:
        raise ValueError("attempt must be >= 1")
    return base_seconds * (2 ** (attempt - 1))


@dataclass
class DispatchResult:
    reminder_id: uuid.UUID
    status: str  # sent | failed | already_sent | in_flight | skipped
    slot_at: Optional[datetime] = None
    language: str = "en"
    error: Optional[str] = None

    @property
    def email_sent(self) -> bool:
        return self.status == "sent"

    @property
    def success(self) -> bool:
        return self.status in ("sent", GateResult.ALREADY_SENT.value)


class ReminderDispatcher:
    """Sends one dispatch candidate through the gate and the transport, recording the outcome."""

    def __init__(
        self,
        reminders: ReminderRepository,
        logs: LogRepository,
        gate: DispatchGate,
        composer: NotificationComposer,
        transport: NotificationTransport,
        *,
        max_attempts: Optional[int] = None,
        backoff_base_seconds: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.reminders = reminders
        self.logs = logs
        self.gate = gate
        self.composer = composer
        self.transport = transport
        self.max_attempts = max_attempts or settings.SEND_MAX_ATTEMPTS
        self.backoff_base_seconds = (
            settings.SEND_BACKOFF_BASE_SECONDS if backoff_base_seconds is None else backoff_base_seconds
        )
        self.sleep = sleep
        self.clock = clock

    def dispatch(
        self,
        candidate: DispatchCandidate,
        message: Optional[ComposedNotification] = None,
        recipient: Optional[str] = None,
    ) -> DispatchResult:
        target = self.reminders.get_target(candidate.reminder_id)
        if target is None:
            logger.warning(f"⚠️ [Dispatch] Reminder {candidate.reminder_id} no longer exists")
            return DispatchResult(candidate.reminder_id, "skipped", candidate.slot_at, error="reminder not found")

        reminder, item = target.reminder, target.item
        if not is_dispatchable(target):
            logger.info(f"⏭️ [Dispatch] Reminder {reminder.id} disabled or item completed, skipping")
            return DispatchResult(reminder.id, "skipped", candidate.slot_at, language=reminder.language)

        gate_result = self.gate.try_acquire(reminder.id, candidate.slot_at, occurrence_at=candidate.occurrence_at)
        if gate_result != GateResult.ACQUIRED:
            reminders_gate_skipped_total.labels(result=gate_result.value).inc()
            logger.info(f"⏭️ [Dispatch] {reminder.id} @ {candidate.slot_at.isoformat()} {gate_result.value}")
            return DispatchResult(reminder.id, gate_result.value, candidate.slot_at, language=reminder.language)

        try:
            message = message or self.composer.compose(reminder, item, candidate.occurrence_at)
            self.send(recipient or reminder.recipient, message)
        except DeliveryError as e:
            self.gate.release(reminder.id, candidate.slot_at, error_message=str(e), occurrence_at=candidate.occurrence_at)
            reminders_dispatch_failed_total.labels(kind=type(e).__name__).inc()
            logger.error(f"❌ [Dispatch] Failed {reminder.id} @ {candidate.slot_at.isoformat()}: {e}")
            return DispatchResult(reminder.id, "failed", candidate.slot_at, language=reminder.language, error=str(e))
        except Exception as e:
            # Do not leave the slot claimed until the lease runs out
            self.gate.release(reminder.id, candidate.slot_at, error_message=repr(e), occurrence_at=candidate.occurrence_at)
            reminders_dispatch_failed_total.labels(kind="unexpected").inc()
            raise

        if not self._record_sent(candidate):
            # The message went out but the slot already had a sent row
            reminders_dispatch_failed_total.labels(kind="duplicate_send").inc()
            logger.error(f"❌ [Dispatch] {reminder.id} @ {candidate.slot_at.isoformat()} was already recorded as sent")
            return DispatchResult(
                reminder.id, "sent", candidate.slot_at, language=message.language, error="sent entry already recorded"
            )
        reminders_dispatch_success_total.inc()
        logger.info(
            f"✅ [Dispatch] Sent {reminder.id} ({candidate.reason}) for {candidate.occurrence_at.isoformat()}"
        )
        return DispatchResult(reminder.id, "sent", candidate.slot_at, language=message.language)

    def dispatch_request(self, request: DispatchRequest) -> DispatchResult:
        """Dispatch trigger: gated when the request names an occurrence, otherwise an ad-hoc send."""
        target = self.reminders.get_target(request.reminder_id)
        if target is None:
            raise NotFoundError(f"Reminder {request.reminder_id} not found")
        if target.item.id != request.schedule_item_id:
            raise NotFoundError(f"Reminder {request.reminder_id} does not belong to item {request.schedule_item_id}")

        message = self.composer.compose_request(request)
        if request.occurrence_at is not None:
            occurrence = to_utc_aware(request.occurrence_at)
            candidate = DispatchCandidate(
                reminder_id=target.reminder.id,
                occurrence_at=occurrence,
                slot_at=occurrence,
                deadline=occurrence - timedelta(minutes=target.reminder.reminder_time_minutes),
                reason=REASON_MANUAL,
            )
            return self.dispatch(candidate, message=message, recipient=request.user_email)

        try:
            self.send(request.user_email, message)
        except DeliveryError as e:
            self.logs.append(target.reminder.id, "failed", error_message=str(e), at=self.clock())
            reminders_dispatch_failed_total.labels(kind=type(e).__name__).inc()
            logger.error(f"❌ [Dispatch] Ad-hoc send for {target.reminder.id} failed: {e}")
            return DispatchResult(target.reminder.id, "failed", language=message.language, error=str(e))

        self.logs.append(target.reminder.id, "sent", at=self.clock())
        reminders_dispatch_success_total.inc()
        logger.info(f"✅ [Dispatch] Ad-hoc send for {target.reminder.id} to {request.user_email}")
        return DispatchResult(target.reminder.id, "sent", language=message.language)

    def send(self, to: str, message: ComposedNotification) -> DeliveryOutcome:
        """Send with bounded retries; transient errors back off exponentially, permanent ones raise at once."""
        attempt = 1
        while True:
            try:
                return self.transport.send(to, message.subject, message.body, message.text_body)
            except TransientDeliveryError as e:
                if attempt >= self.max_attempts:
                    raise
                delay = compute_backoff_delay_seconds(attempt, self.backoff_base_seconds)
                logger.warning(
                    f"⚠️ [Dispatch] Transient failure to {to} (attempt {attempt}/{self.max_attempts}), "
                    f"retrying in {delay:.1f}s: {e}"
                )
                self.sleep(delay)
                attempt += 1

    def _record_sent(self, candidate: DispatchCandidate) -> bool:
        """Persist a delivered send, retrying store errors since the message cannot be recalled."""
        attempt = 1
        while True:
            try:
                return self.gate.mark_sent(
                    candidate.reminder_id, candidate.slot_at, occurrence_at=candidate.occurrence_at
                )
            except OperationalError as e:
                if attempt >= self.max_attempts:
                    logger.critical(
                        f"❌ [Dispatch] Sent {candidate.reminder_id} @ {candidate.slot_at.isoformat()} "
                        f"but could not record it: {e}"
                    )
                    raise
                delay = compute_backoff_delay_seconds(attempt, self.backoff_base_seconds)
                logger.warning(
                    f"⚠️ [Dispatch] Store error recording send (attempt {attempt}/{self.max_attempts}), "
                    f"retrying in {delay:.1f}s: {e}"
                )
                self.sleep(delay)
                attempt += 1
