"""Tests for localized reminder messages and action pages."""

import html
import re
from types import SimpleNamespace
import uuid

import pytest

from studyplanner.reminders.errors import InvalidActionError, NotFoundError
from studyplanner.reminders.templates import (
    ERROR_MESSAGES,
    NotificationComposer,
    action_url,
    localized_error,
    render_completed_page,
    render_error_page,
    render_snoozed_page,
    response_message,
)

from conftest import ACTION_BASE_URL, MONDAY_0900

LATIN_WORD = re.compile(r"[A-Za-z]{2,}")
ARABIC_LETTER = re.compile(r"[\u0600-\u06FF]")


def _reminder(language="en", tz=None):
    return SimpleNamespace(id=uuid.uuid4(), language=language, timezone=tz)


def _item(subject="Mathematics", topic="Algebra"):
    return SimpleNamespace(id=uuid.uuid4(), subject=subject, topic=topic)


def _visible_text(body: str) -> str:
    """Reader-visible text: no style block, markup or link targets."""
    body = re.sub(r"<style>.*?</style>", " ", body, flags=re.DOTALL)
    body = re.sub(r"<[^>]+>", " ", body)
    return re.sub(r"https?://\S+", " ", html.unescape(body))


def test_english_message(composer) -> None:
    reminder, item = _reminder(), _item()

    message = composer.compose(reminder, item, MONDAY_0900)

    assert message.language == "en"
    assert message.subject == "🔔 Reminder: Mathematics - Algebra"
    assert 'dir="ltr"' in message.body
    assert "Monday" in message.body
    assert "09:00" in message.body
    assert "✓ Mark as Complete" in message.body
    assert "⏰ Snooze 30 mins" in message.body
    assert "Monday 09:00" in message.text_body


def test_action_links_identify_reminder_item_and_occurrence(composer) -> None:
    reminder, item = _reminder(), _item()

    refs = composer.compose(reminder, item, MONDAY_0900).action_refs

    assert refs["complete"] == (
        f"{ACTION_BASE_URL}?action=complete&reminder_id={reminder.id}&item_id={item.id}"
    )
    assert refs["snooze"] == (
        f"{ACTION_BASE_URL}?action=snooze&reminder_id={reminder.id}&minutes=30"
        "&occurrence=2026-10-19T09%3A00%3A00Z"
    )


def test_links_are_escaped_in_html_and_plain_in_text(composer) -> None:
    message = composer.compose(_reminder(), _item(), MONDAY_0900)
    complete = message.action_refs["complete"]
    assert html.escape(complete) in message.body
    assert complete in message.text_body


def test_arabic_message_uses_local_day_and_time(composer) -> None:
    """09:00 UTC on Monday is 12:00 Monday in Riyadh."""
    message = composer.compose(_reminder(language="ar", tz="Asia/Riyadh"), _item(), MONDAY_0900)

    assert message.language == "ar"
    assert message.subject == "🔔 تذكير: Mathematics - Algebra"
    assert 'dir="rtl"' in message.body
    assert "الاثنين" in message.body
    assert "12:00" in message.body
    assert "✓ تم الإنجاز" in message.body
    assert "⏰ تأجيل 30 دقيقة" in message.body


def test_local_day_can_differ_from_utc_day(composer) -> None:
    """Monday 22:00 UTC is already Tuesday in Riyadh."""
    late = MONDAY_0900.replace(hour=22)
    message = composer.compose(_reminder(tz="Asia/Riyadh"), _item(), late)
    assert "Tuesday 01:00" in message.text_body


def test_unknown_language_falls_back_to_english(composer) -> None:
    message = composer.compose(_reminder(language="fr"), _item(), MONDAY_0900)
    assert message.language == "en"
    assert message.subject.startswith("🔔 Reminder:")


def test_missing_topic(composer) -> None:
    message = composer.compose(_reminder(), _item(topic=None), MONDAY_0900)
    assert message.subject == "🔔 Reminder: Mathematics - "
    assert "Topic:" not in message.text_body


def test_user_text_is_escaped(composer) -> None:
    message = composer.compose(_reminder(), _item(subject="<script>alert(1)</script>"), MONDAY_0900)
    assert "<script>" not in message.body
    assert "&lt;script&gt;" in message.body


def test_snooze_minutes_are_configurable() -> None:
    composer = NotificationComposer(action_base_url=ACTION_BASE_URL, snooze_minutes=10)
    message = composer.compose(_reminder(), _item(), MONDAY_0900)
    assert "minutes=10" in message.action_refs["snooze"]
    assert "⏰ Snooze 10 mins" in message.body


def test_action_url_defaults_to_public_base_url() -> None:
    url = action_url("complete", "abc", item_id="def")
    assert url == "http://testserver/api/v1/reminders/action?action=complete&reminder_id=abc&item_id=def"


def test_pages_follow_language() -> None:
    assert "Task Completed!" in render_completed_page("en")
    assert 'dir="rtl"' in render_completed_page("ar")
    assert "تم إنجاز المهمة!" in render_completed_page("ar")
    assert "remind you again in 15 minutes" in render_snoozed_page(15)
    assert "سنذكرك مرة أخرى بعد 15 دقيقة." in render_snoozed_page(15, "ar")


def test_error_page_escapes_message() -> None:
    page = render_error_page("<b>Invalid action</b>")
    assert "&lt;b&gt;Invalid action&lt;/b&gt;" in page
    assert "<b>Invalid" not in page


def test_response_messages() -> None:
    assert response_message("sent", "en") == "Reminder sent successfully"
    assert response_message("sent", "ar") == "تم إرسال التذكير بنجاح"
    assert response_message("already_sent", None) == "Reminder already sent"


def test_arabic_message_has_no_english_text(composer) -> None:
    """With Arabic subject and topic, nothing the student reads is in English."""
    message = composer.compose(_reminder(language="ar", tz="Asia/Riyadh"), _item("رياضيات", "جبر"), MONDAY_0900)

    assert LATIN_WORD.findall(_visible_text(message.body)) == []
    assert LATIN_WORD.findall(_visible_text(message.text_body)) == []
    assert LATIN_WORD.findall(message.subject) == []


def test_english_message_has_no_arabic_text(composer) -> None:
    message = composer.compose(_reminder(), _item(), MONDAY_0900)

    assert ARABIC_LETTER.findall(message.body) == []
    assert ARABIC_LETTER.findall(message.text_body) == []


@pytest.mark.parametrize("code", sorted(ERROR_MESSAGES["ar"]))
def test_arabic_error_pages_have_no_english_text(code) -> None:
    error = InvalidActionError("English text", code=code, maximum=1440, name="reminder_id")

    page = render_error_page(localized_error(error, "ar"), "ar")

    assert 'dir="rtl"' in page
    assert LATIN_WORD.findall(_visible_text(page)) == []


def test_error_text_follows_language() -> None:
    error = NotFoundError("Reminder not found", code="reminder_not_found")
    assert localized_error(error, "en") == "Reminder not found"
    assert localized_error(error, "ar") == "التذكير غير موجود"
    assert localized_error(NotFoundError("boom"), "ar") == ERROR_MESSAGES["ar"]["request_failed"]


def test_every_error_code_is_translated() -> None:
    assert set(ERROR_MESSAGES["en"]) == set(ERROR_MESSAGES["ar"])
