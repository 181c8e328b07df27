"""
Reminder notification and action-page templates

Templates are plain functions registered per language tag in TEMPLATES and
PAGE_STRINGS; adding a language means adding an entry, not a branch.
"""
import html
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Optional
from urllib.parse import urlencode

from studyplanner.core.config import settings as app_settings
from studyplanner.utils.timezone import get_zoneinfo, to_utc_aware
from .config import settings
from .errors import ReminderError
from .recurrence_models import Weekday

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGE = "en"


@dataclass(frozen=True)
class TemplateContext:
    subject: str
    topic: Optional[str]
    day_name: str
    start_time: str
    complete_url: str
    snooze_url: str
    snooze_minutes: int


@dataclass(frozen=True)
class RenderedMessage:
    subject: str
    html: str
    text: str


@dataclass(frozen=True)
class ComposedNotification:
    subject: str
    body: str
    text_body: str
    language: str
    action_refs: Dict[str, str] = field(default_factory=dict)


DAY_NAMES = {
    "en": ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"],
    "ar": ["الأحد", "الاثنين", "الثلاثاء", "الأربعاء", "الخميس", "الجمعة", "السبت"],
}

_EMAIL_STYLE = """
    body {{ font-family: 'Segoe UI', Tahoma, Geneva, Verdana, sans-serif; background-color: #f4f6f9; margin: 0; padding: 20px; direction: {dir}; }}
    .container {{ max-width: 600px; margin: 0 auto; background: white; border-radius: 12px; box-shadow: 0 4px 6px rgba(0, 0, 0, 0.1); overflow: hidden; }}
    .header {{ background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); color: white; padding: 30px; text-align: center; }}
    .header h1 {{ margin: 0; font-size: 24px; }}
    .content {{ padding: 30px; }}
    .reminder-card {{ background: #f8f9fa; border-{edge}: 4px solid #667eea; padding: 20px; border-radius: 8px; margin: 20px 0; }}
    .reminder-card h2 {{ margin: 0 0 10px 0; color: #333; font-size: 20px; }}
    .time-info {{ background: white; padding: 15px; border-radius: 8px; margin: 10px 0; }}
    .btn {{ display: inline-block; padding: 12px 24px; text-decoration: none; border-radius: 8px; font-weight: 600; color: white; }}
    .btn-complete {{ background: #10b981; }}
    .btn-snooze {{ background: #f59e0b; }}
    .footer {{ text-align: center; padding: 20px; color: #999; font-size: 12px; }}
"""


def _email_html(ctx: TemplateContext, lang: str, direction: str, s: Dict[str, str]) -> str:
    style = _EMAIL_STYLE.format(dir=direction, edge="right" if direction == "rtl" else "left")
    topic_html = f"<p><strong>{s['topic']}:</strong> {html.escape(ctx.topic)}</p>" if ctx.topic else ""
    return f"""<!DOCTYPE html>
<html dir="{direction}" lang="{lang}">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <style>{style}</style>
</head>
<body>
  <div class="container">
    <div class="header"><h1>{s['header']}</h1></div>
    <div class="content">
      <p style="font-size: 16px; color: #333;">{s['greeting']}</p>
      <p style="color: #666;">{s['intro']}</p>
      <div class="reminder-card">
        <h2>{html.escape(ctx.subject)}</h2>
        {topic_html}
        <div class="time-info">
          <span>📅</span> <strong>{html.escape(ctx.day_name)}</strong><br>
          <span style="color: #667eea; font-size: 18px; font-weight: 600;">⏰ {ctx.start_time}</span>
        </div>
      </div>
      <p style="color: #666; margin: 20px 0;">{s['choose']}</p>
      <div class="actions">
        <a href="{html.escape(ctx.complete_url)}" class="btn btn-complete">{s['complete']}</a>
        <a href="{html.escape(ctx.snooze_url)}" class="btn btn-snooze">{s['snooze']}</a>
      </div>
      <p style="margin-top: 30px; color: #999; font-size: 14px;">💡 <strong>{s['tip_label']}:</strong> {s['tip']}</p>
    </div>
    <div class="footer">
      <p>{s['footer']}</p>
      <p>{s['no_reply']}</p>
    </div>
  </div>
</body>
</html>"""


def _email_text(ctx: TemplateContext, s: Dict[str, str]) -> str:
    lines = [s["greeting"], "", s["intro"], "", ctx.subject]
    if ctx.topic:
        lines.append(f"{s['topic']}: {ctx.topic}")
    lines += [
        f"{ctx.day_name} {ctx.start_time}",
        "",
        f"{s['complete']}: {ctx.complete_url}",
        f"{s['snooze']}: {ctx.snooze_url}",
    ]
    return "\n".join(lines)


def render_en(ctx: TemplateContext) -> RenderedMessage:
    s = {
        "header": "🎓 Study Session Reminder",
        "greeting": "Hello,",
        "intro": "You have an upcoming study session!",
        "topic": "Topic",
        "choose": "Choose an action:",
        "complete": "✓ Mark as Complete",
        "snooze": f"⏰ Snooze {ctx.snooze_minutes} mins",
        "tip_label": "Tip",
        "tip": "Stay consistent with your study schedule for the best results!",
        "footer": "Study Schedule Manager | Smart Study Organization",
        "no_reply": "This is an automated email, please do not reply",
    }
    subject = f"🔔 Reminder: {ctx.subject} - {ctx.topic or ''}"
    return RenderedMessage(subject=subject, html=_email_html(ctx, "en", "ltr", s), text=_email_text(ctx, s))


def render_ar(ctx: TemplateContext) -> RenderedMessage:
    s = {
        "header": "🎓 تذكير بموعد المذاكرة",
        "greeting": "مرحباً،",
        "intro": "لديك موعد مذاكرة قادم!",
        "topic": "الموضوع",
        "choose": "اختر إجراءً:",
        "complete": "✓ تم الإنجاز",
        "snooze": f"⏰ تأجيل {ctx.snooze_minutes} دقيقة",
        "tip_label": "نصيحة",
        "tip": "التزم بجدولك الدراسي لتحقيق أفضل النتائج!",
        "footer": "نظام إدارة الدراسة الذكي | تنظيم دراستك بذكاء",
        "no_reply": "هذا بريد إلكتروني تلقائي، الرجاء عدم الرد عليه",
    }
    subject = f"🔔 تذكير: {ctx.subject} - {ctx.topic or ''}"
    return RenderedMessage(subject=subject, html=_email_html(ctx, "ar", "rtl", s), text=_email_text(ctx, s))


TEMPLATES: Dict[str, Callable[[TemplateContext], RenderedMessage]] = {
    "en": render_en,
    "ar": render_ar,
}


def resolve_language(language: Optional[str]) -> str:
    if language in TEMPLATES:
        return language
    if language:
        logger.warning(f"⚠️ [Composer] No template for language {language!r}, using {DEFAULT_LANGUAGE}")
    return DEFAULT_LANGUAGE


def action_url(
    action: str,
    reminder_id,
    item_id=None,
    minutes: Optional[int] = None,
    occurrence: Optional[datetime] = None,
    base_url: Optional[str] = None,
) -> str:
    """Link to the action endpoint. Links are unsigned; anyone holding one can act on it."""
    base = base_url or f"{app_settings.PUBLIC_BASE_URL}{app_settings.API_V1_STR}/reminders/action"
    params = {"action": action, "reminder_id": str(reminder_id)}
    if item_id is not None:
        params["item_id"] = str(item_id)
    if minutes is not None:
        params["minutes"] = str(minutes)
    if occurrence is not None:
        params["occurrence"] = to_utc_aware(occurrence).strftime("%Y-%m-%dT%H:%M:%SZ")
    return f"{base}?{urlencode(params)}"


class NotificationComposer:
    """Builds localized reminder messages with complete/snooze links"""

    def __init__(self, action_base_url: Optional[str] = None, snooze_minutes: Optional[int] = None):
        self.action_base_url = action_base_url
        self.snooze_minutes = snooze_minutes or settings.DEFAULT_SNOOZE_MINUTES

    def compose(self, reminder, schedule_item, occurrence: datetime, language: Optional[str] = None) -> ComposedNotification:
        """Message for one occurrence, rendered in the reminder's language and timezone."""
        lang = resolve_language(language or reminder.language)
        local = occurrence.astimezone(get_zoneinfo(reminder.timezone))
        return self._render(
            lang,
            reminder.id,
            schedule_item.id,
            subject=schedule_item.subject,
            topic=schedule_item.topic,
            day_name=DAY_NAMES[lang][Weekday.of(local.date()).value],
            start_time=local.strftime("%H:%M"),
            occurrence=occurrence,
        )

    def compose_request(self, request) -> ComposedNotification:
        """Message built from the fields of a dispatch trigger request."""
        lang = resolve_language(request.language)
        return self._render(
            lang,
            request.reminder_id,
            request.schedule_item_id,
            subject=request.subject,
            topic=request.topic,
            day_name=request.day or "",
            start_time=request.start_time.strftime("%H:%M"),
            occurrence=request.occurrence_at,
        )

    def _render(self, lang, reminder_id, item_id, *, subject, topic, day_name, start_time, occurrence) -> ComposedNotification:
        refs = {
            "complete": action_url("complete", reminder_id, item_id=item_id, base_url=self.action_base_url),
            "snooze": action_url(
                "snooze", reminder_id, minutes=self.snooze_minutes, occurrence=occurrence, base_url=self.action_base_url
            ),
        }
        ctx = TemplateContext(
            subject=subject,
            topic=topic,
            day_name=day_name,
            start_time=start_time,
            complete_url=refs["complete"],
            snooze_url=refs["snooze"],
            snooze_minutes=self.snooze_minutes,
        )
        rendered = TEMPLATES[lang](ctx)
        return ComposedNotification(
            subject=rendered.subject,
            body=rendered.html,
            text_body=rendered.text,
            language=lang,
            action_refs=refs,
        )


# Action confirmation pages

PAGE_STRINGS = {
    "en": {
        "dir": "ltr",
        "completed_title": "Task Completed!",
        "completed_body": "Great job! You've marked this study session as complete.",
        "snoozed_title": "Reminder Snoozed",
        "snoozed_body": "We'll remind you again in {minutes} minutes.",
        "error_title": "Error",
    },
    "ar": {
        "dir": "rtl",
        "completed_title": "تم إنجاز المهمة!",
        "completed_body": "أحسنت! تم تسجيل جلسة المذاكرة كمكتملة.",
        "snoozed_title": "تم تأجيل التذكير",
        "snoozed_body": "سنذكرك مرة أخرى بعد {minutes} دقيقة.",
        "error_title": "خطأ",
    },
}

RESPONSE_MESSAGES = {
    "en": {
        "sent": "Reminder sent successfully",
        "already_sent": "Reminder already sent",
        "in_flight": "Reminder is already being sent",
        "failed": "Failed to send reminder",
        "skipped": "Reminder is disabled or already completed",
    },
    "ar": {
        "sent": "تم إرسال التذكير بنجاح",
        "already_sent": "تم إرسال التذكير مسبقاً",
        "in_flight": "جارٍ إرسال التذكير بالفعل",
        "failed": "فشل إرسال التذكير",
        "skipped": "التذكير معطل أو مكتمل بالفعل",
    },
}


ERROR_MESSAGES = {
    "en": {
        "missing_parameters": "Missing required parameters",
        "invalid_action": "Invalid action",
        "missing_item": "Missing item_id",
        "missing_minutes": "Missing minutes",
        "invalid_minutes": "minutes must be a whole number",
        "minutes_out_of_range": "minutes must be between 1 and {maximum}",
        "invalid_occurrence": "Invalid occurrence",
        "invalid_id": "Invalid {name}",
        "item_mismatch": "Schedule item does not belong to this reminder",
        "reminder_not_found": "Reminder not found",
        "item_not_found": "Schedule item not found",
        "request_failed": "The request could not be completed",
    },
    "ar": {
        "missing_parameters": "بعض البيانات المطلوبة مفقودة",
        "invalid_action": "الإجراء غير صالح",
        "missing_item": "لم يتم تحديد عنصر الجدول",
        "missing_minutes": "لم يتم تحديد مدة التأجيل",
        "invalid_minutes": "يجب أن تكون مدة التأجيل عدداً صحيحاً من الدقائق",
        "minutes_out_of_range": "يجب أن تكون مدة التأجيل بين 1 و {maximum} دقيقة",
        "invalid_occurrence": "موعد الجلسة غير صالح",
        "invalid_id": "الرابط يحتوي على معرّف غير صالح",
        "item_mismatch": "عنصر الجدول لا يتبع هذا التذكير",
        "reminder_not_found": "التذكير غير موجود",
        "item_not_found": "عنصر الجدول غير موجود",
        "request_failed": "تعذر إتمام الطلب",
    },
}


def localized_error(error: ReminderError, language: Optional[str]) -> str:
    """Text of `error` in the page language; unknown codes fall back to a generic line."""
    messages = ERROR_MESSAGES[resolve_language(language)]
    template = messages.get(error.code) or messages["request_failed"]
    return template.format(**error.params)


def response_message(key: str, language: Optional[str]) -> str:
    return RESPONSE_MESSAGES[resolve_language(language)][key]


def _page(icon: str, title: str, body: str, lang: str, direction: str, title_color: str = "#333") -> str:
    return f"""<!DOCTYPE html>
<html dir="{direction}" lang="{lang}">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{html.escape(title)}</title>
  <style>
    body {{ font-family: 'Segoe UI', Tahoma, Geneva, Verdana, sans-serif; background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); min-height: 100vh; display: flex; align-items: center; justify-content: center; margin: 0; }}
    .card {{ background: white; border-radius: 16px; padding: 40px; text-align: center; max-width: 400px; box-shadow: 0 10px 40px rgba(0, 0, 0, 0.2); }}
    .icon {{ font-size: 64px; margin-bottom: 20px; }}
    h1 {{ color: {title_color}; margin: 0 0 10px 0; }}
    p {{ color: #666; }}
  </style>
</head>
<body>
  <div class="card">
    <div class="icon">{icon}</div>
    <h1>{html.escape(title)}</h1>
    <p>{html.escape(body)}</p>
  </div>
</body>
</html>"""


def render_completed_page(language: Optional[str] = None) -> str:
    lang = resolve_language(language)
    s = PAGE_STRINGS[lang]
    return _page("✅", s["completed_title"], s["completed_body"], lang, s["dir"])


def render_snoozed_page(minutes: int, language: Optional[str] = None) -> str:
    lang = resolve_language(language)
    s = PAGE_STRINGS[lang]
    return _page("⏰", s["snoozed_title"], s["snoozed_body"].format(minutes=minutes), lang, s["dir"])


def render_error_page(message: str, language: Optional[str] = None) -> str:
    lang = resolve_language(language)
    s = PAGE_STRINGS[lang]
    return _page("❌", s["error_title"], message, lang, s["dir"], title_color="#ef4444")
