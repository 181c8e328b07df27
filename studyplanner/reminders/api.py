from datetime import datetime, time
from typing import List, Optional
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from fastapi.responses import HTMLResponse, JSONResponse

from studyplanner.api.deps import verify_api_key_dependency
from studyplanner.utils.timezone import get_zoneinfo, utcnow
from .errors import InvalidActionError, NotFoundError
from .repository import as_uuid
from .runtime import ReminderComponents, get_components
from .schemas import (
    DispatchRequest, DispatchResponse, ReminderCreate, ReminderLogRead, ReminderRead, ReminderStats, ReminderUpdate,
    ScheduleCreate, ScheduleItemCreate, ScheduleItemRead, ScheduleItemUpdate, ScheduleRead,
)
from .templates import (
    RESPONSE_MESSAGES, localized_error, render_completed_page, render_error_page, render_snoozed_page,
    response_message,
)


# Opened from email clients; these cannot carry an API key
public_router = APIRouter()
router = APIRouter(dependencies=[Depends(verify_api_key_dependency)])


def _parse_id(value: str, name: str = "reminder_id") -> uuid.UUID:
    try:
        return as_uuid(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {name}")


def _language_for(components: ReminderComponents, reminder_id: Optional[str]) -> Optional[str]:
    if not reminder_id:
        return None
    try:
        reminder = components.reminders.get(reminder_id)
    except ValueError:
        return None
    return reminder.language if reminder else None


@public_router.get("/health")
def health() -> dict:
    return {"status": "ok", "time": utcnow().isoformat()}


@public_router.get("/action", response_class=HTMLResponse)
def reminder_action_endpoint(
    action: Optional[str] = None,
    reminder_id: Optional[str] = None,
    item_id: Optional[str] = None,
    minutes: Optional[str] = None,
    occurrence: Optional[str] = None,
    components: ReminderComponents = Depends(get_components),
):
    """Complete or snooze link target; always answers with an HTML page."""
    try:
        result = components.actions.handle(action, reminder_id, item_id=item_id, minutes=minutes, occurrence=occurrence)
    except (InvalidActionError, NotFoundError) as e:
        language = _language_for(components, reminder_id)
        status_code = 404 if isinstance(e, NotFoundError) else 400
        return HTMLResponse(render_error_page(localized_error(e, language), language), status_code=status_code)

    if result.action == "complete":
        return HTMLResponse(render_completed_page(result.language))
    return HTMLResponse(render_snoozed_page(result.minutes, result.language))


@router.post("/dispatch", response_model=DispatchResponse)
def dispatch_reminder_endpoint(payload: DispatchRequest, components: ReminderComponents = Depends(get_components)):
    """Send a reminder now. With `occurrence_at` the send goes through the send-once gate."""
    if components.dispatcher is None:
        raise HTTPException(status_code=503, detail="Notification transport is not configured")
    try:
        result = components.dispatcher.dispatch_request(payload)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    key = result.status if result.status in RESPONSE_MESSAGES["en"] else "failed"
    body = DispatchResponse(
        success=result.success,
        message=response_message(key, payload.language),
        email_sent=result.email_sent,
    )
    if result.status == "failed":
        return JSONResponse(status_code=502, content=body.model_dump())
    return body


@router.post("/schedules", response_model=ScheduleRead, status_code=201)
def create_schedule_endpoint(payload: ScheduleCreate, components: ReminderComponents = Depends(get_components)):
    return components.schedules.create_schedule(payload)


@router.get("/schedules", response_model=List[ScheduleRead])
def list_schedules_endpoint(user_id: Optional[str] = None, components: ReminderComponents = Depends(get_components)):
    return components.schedules.list_schedules(user_id)


@router.post("/schedules/{schedule_id}/items", response_model=ScheduleItemRead, status_code=201)
def create_schedule_item_endpoint(
    schedule_id: str,
    payload: ScheduleItemCreate,
    components: ReminderComponents = Depends(get_components),
):
    sid = _parse_id(schedule_id, "schedule_id")
    if payload.schedule_id != sid:
        raise HTTPException(status_code=400, detail="schedule_id does not match the path")
    if not components.schedules.get_schedule(sid):
        raise HTTPException(status_code=404, detail="Schedule not found")
    return components.schedules.create_item(payload)


@router.get("/schedules/{schedule_id}/items", response_model=List[ScheduleItemRead])
def list_schedule_items_endpoint(schedule_id: str, components: ReminderComponents = Depends(get_components)):
    sid = _parse_id(schedule_id, "schedule_id")
    if not components.schedules.get_schedule(sid):
        raise HTTPException(status_code=404, detail="Schedule not found")
    return components.schedules.list_items(sid)


@router.patch("/items/{item_id}", response_model=ScheduleItemRead)
def update_schedule_item_endpoint(
    item_id: str,
    payload: ScheduleItemUpdate,
    components: ReminderComponents = Depends(get_components),
):
    """Edit a study block; setting `completed` to false reopens an item closed from a reminder link."""
    try:
        item = components.schedules.update_item(_parse_id(item_id, "item_id"), payload)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    if not item:
        raise HTTPException(status_code=404, detail="Schedule item not found")
    return item


@router.delete("/items/{item_id}", status_code=204)
def delete_schedule_item_endpoint(item_id: str, components: ReminderComponents = Depends(get_components)):
    if not components.schedules.delete_item(_parse_id(item_id, "item_id")):
        raise HTTPException(status_code=404, detail="Schedule item not found")
    return Response(status_code=204)


@router.get("/stats", response_model=ReminderStats)
def reminder_stats_endpoint(
    user_id: Optional[str] = None,
    timezone: Optional[str] = None,
    components: ReminderComponents = Depends(get_components),
):
    """Counters for the reminders screen; "today" starts at local midnight in `timezone`."""
    local_now = utcnow().astimezone(get_zoneinfo(timezone))
    midnight = datetime.combine(local_now.date(), time.min, tzinfo=local_now.tzinfo)
    counts = components.logs.stats(user_id, since=midnight)
    return ReminderStats(
        total_reminders=counts["total_reminders"],
        enabled_reminders=counts["enabled_reminders"],
        sent_today=counts["sent_since"],
        failed_today=counts["failed_since"],
        snoozed_today=counts["snoozed_since"],
        completed_today=counts["completed_since"],
    )


@router.get("/logs", response_model=List[ReminderLogRead])
def list_user_logs_endpoint(
    user_id: str,
    status: Optional[str] = Query(default=None, pattern="^(sent|failed|snoozed|completed)$"),
    limit: int = Query(default=100, ge=1, le=500),
    components: ReminderComponents = Depends(get_components),
):
    return components.logs.list_for_user(user_id, status=status, limit=limit)


@router.post("/", response_model=ReminderRead, status_code=201)
def create_reminder_endpoint(payload: ReminderCreate, components: ReminderComponents = Depends(get_components)):
    if not components.schedules.get_item(payload.schedule_item_id):
        raise HTTPException(status_code=404, detail="Schedule item not found")
    return components.reminders.create(payload)


@router.get("/", response_model=List[ReminderRead])
def list_reminders_endpoint(
    user_id: Optional[str] = None,
    is_enabled: Optional[bool] = None,
    schedule_item_id: Optional[str] = None,
    limit: int = Query(default=100, ge=1, le=500),
    components: ReminderComponents = Depends(get_components),
):
    item_id = _parse_id(schedule_item_id, "schedule_item_id") if schedule_item_id else None
    return components.reminders.list(user_id=user_id, is_enabled=is_enabled, schedule_item_id=item_id, limit=limit)


@router.get("/{reminder_id}", response_model=ReminderRead)
def get_reminder_endpoint(reminder_id: str, components: ReminderComponents = Depends(get_components)):
    r = components.reminders.get(_parse_id(reminder_id))
    if not r:
        raise HTTPException(status_code=404, detail="Reminder not found")
    return r


@router.patch("/{reminder_id}", response_model=ReminderRead)
def update_reminder_endpoint(
    reminder_id: str,
    payload: ReminderUpdate,
    components: ReminderComponents = Depends(get_components),
):
    r = components.reminders.update(_parse_id(reminder_id), payload)
    if not r:
        raise HTTPException(status_code=404, detail="Reminder not found")
    return r


@router.post("/{reminder_id}/toggle", response_model=ReminderRead)
def toggle_reminder_endpoint(reminder_id: str, components: ReminderComponents = Depends(get_components)):
    rid = _parse_id(reminder_id)
    r = components.reminders.get(rid)
    if not r:
        raise HTTPException(status_code=404, detail="Reminder not found")
    components.reminders.set_enabled(rid, not r.is_enabled)
    return components.reminders.get(rid)


@router.delete("/{reminder_id}", status_code=204)
def delete_reminder_endpoint(reminder_id: str, components: ReminderComponents = Depends(get_components)):
    if not components.reminders.delete(_parse_id(reminder_id)):
        raise HTTPException(status_code=404, detail="Reminder not found")
    return Response(status_code=204)


@router.get("/{reminder_id}/logs", response_model=List[ReminderLogRead])
def list_reminder_logs_endpoint(
    reminder_id: str,
    limit: int = Query(default=100, ge=1, le=500),
    components: ReminderComponents = Depends(get_components),
):
    rid = _parse_id(reminder_id)
    if not components.reminders.get(rid):
        raise HTTPException(status_code=404, detail="Reminder not found")
    return components.logs.list_for_reminder(rid, limit=limit)
