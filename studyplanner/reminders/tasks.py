from celery import shared_task
from celery.utils.log import get_task_logger
from kombu.exceptions import OperationalError

from .celery_app import celery_app
from .config import settings
from .runtime import get_worker_components
from .scanner import DispatchCandidate

logger = get_task_logger(__name__)


def publish_candidate(candidate: DispatchCandidate) -> None:
    celery_app.send_task(
        "reminders.dispatch",
        args=[candidate.to_payload()],
        queue=settings.RABBITMQ_OUTPUT_QUEUE,
        routing_key=settings.RABBITMQ_OUTPUT_ROUTING_KEY,
    )


@shared_task(name="reminders.scan_and_dispatch")
def scan_and_dispatch_task() -> int:
    """Scan for due reminders and publish each candidate to the output queue. Returns number published."""
    components = get_worker_components()
    published = 0
    for candidate in components.scanner.scan():
        try:
            publish_candidate(candidate)
        except OperationalError as e:
            # The candidate is re-emitted on the next tick while its deadline is in tolerance
            logger.error(f"❌ [Scanner] Could not publish {candidate.reminder_id}: {e}")
            continue
        published += 1
    return published


@shared_task(name="reminders.dispatch")
def dispatch_task(payload: dict) -> dict:
    """Consume the output queue: gate, compose and send one reminder."""
    components = get_worker_components()
    candidate = DispatchCandidate.from_payload(payload)
    result = components.dispatcher.dispatch(candidate)
    return {"reminder_id": str(result.reminder_id), "status": result.status, "error": result.error}
