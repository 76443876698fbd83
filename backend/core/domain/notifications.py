"""
core.domain.notifications — Reporter notification rendering and sending.

Centralises notification text and delivery so every service uses one
consistent entry-point rather than building e-mails inline.

Design decisions
----------------
* **Rendering is separate from sending.**  Services call
  ``render_notification`` while the transaction is open and store the
  result in the outbox; the dispatcher calls ``NotificationSender.send``
  after commit.
* **Best effort.**  ``send`` returns ``True``/``False`` (or raises); the
  caller logs failures and moves on.  Nothing here can fail a transition.
* **Pluggable.**  The sender class is chosen by
  ``settings.SIDE_EFFECTS["NOTIFICATION_SENDER"]`` (dotted path).

Usage::

    from core.domain.notifications import get_notification_sender, render_notification

    subject, body = render_notification(
        "meeting_scheduled",
        case_code=case.code,
        starts_at="02 Mar 2026, 10:00",
    )
    get_notification_sender().send("victim@example.com", subject, body)
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from django.conf import settings
from django.core.mail import send_mail
from django.utils.html import escape, strip_tags
from django.utils.module_loading import import_string

logger = logging.getLogger(__name__)

# ── Event-type → (subject, body) templates ──────────────────────────
# Bodies are HTML fragments; every interpolated value is escaped.
_EVENT_TEMPLATES: dict[str, tuple[str, str]] = {
    "case_received": (
        "Report ticket #{case_code}",
        "<p>Your report has been received. Keep this code to track it: "
        "<strong>{case_code}</strong>.</p>",
    ),
    "case_status_changed": (
        "Status update for report #{case_code}",
        "<p>There is an update on report <strong>{case_code}</strong>.</p>"
        "<p><strong>Current status:</strong> {status}</p>"
        "<p><strong>Details:</strong> {message}</p>",
    ),
    "meeting_scheduled": (
        "Consultation scheduled: {case_code}",
        "<p>A consultation session has been scheduled for report "
        "<strong>{case_code}</strong>.</p>"
        "<p><strong>Starts:</strong> {starts_at}<br>"
        "<strong>Ends:</strong> {ends_at}<br>"
        "<strong>Type:</strong> {meeting_type}<br>"
        "<strong>Place / link:</strong> {location}</p>"
        "<p>If you cannot attend, please contact the administrator.</p>",
    ),
    "notes_submitted": (
        "Psychologist updated report #{case_code}",
        "<p>The psychologist has submitted consultation notes for report "
        "<strong>{case_code}</strong>.</p>"
        "<p><strong>Summary:</strong> {summary}</p>"
        "<p>Please open the monitoring page to confirm or dispute the notes. "
        "The report stays open until you respond.</p>",
    ),
    "feedback_received": (
        "Feedback received for report #{case_code}",
        "<p>Thank you for your feedback on report <strong>{case_code}</strong>.</p>"
        "<p><strong>Type:</strong> {kind}<br>"
        "<strong>Case status:</strong> {status}</p>",
    ),
    "dispute_answered": (
        "Psychologist answered your objection on #{case_code}",
        "<p>The psychologist has responded to your objection on report "
        "<strong>{case_code}</strong> and revised the consultation notes.</p>"
        "<p>Please review them again.</p>",
    ),
    "case_escalated": (
        "Report #{case_code} referred to an administrator",
        "<p>Report <strong>{case_code}</strong> has been referred to an "
        "administrator for mediation after repeated objections.</p>",
    ),
}


class NotificationSender(Protocol):
    def send(self, recipient: str, subject: str, body: str) -> bool:
        ...


class EmailNotificationSender:
    """Sends HTML e-mail through Django's configured e-mail backend."""

    def send(self, recipient: str, subject: str, body: str) -> bool:
        sent = send_mail(
            subject=subject,
            message=strip_tags(body),
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[recipient],
            html_message=body,
            fail_silently=False,
        )
        return sent == 1


class NullNotificationSender:
    """Discards every message.  Used when e-mail is disabled."""

    def send(self, recipient: str, subject: str, body: str) -> bool:
        logger.debug("Notification to %s dropped (sender disabled): %s", recipient, subject)
        return False


def get_notification_sender() -> NotificationSender:
    dotted = settings.SIDE_EFFECTS.get(
        "NOTIFICATION_SENDER",
        "core.domain.notifications.EmailNotificationSender",
    )
    return import_string(dotted)()


def render_notification(event_type: str, **context: Any) -> tuple[str, str]:
    """
    Render ``(subject, html_body)`` for an event type.

    Unknown event types fall back to a generic message built from the
    event name, so a missing template never blocks a transition.
    """
    subject_tpl, body_tpl = _EVENT_TEMPLATES.get(
        event_type,
        (event_type.replace("_", " ").title() + " #{case_code}", "<p>Event: " + event_type + "</p>"),
    )
    safe = {key: escape("" if value is None else value) for key, value in context.items()}
    safe.setdefault("case_code", "")
    prefix = getattr(settings, "NOTIFICATION_SUBJECT_PREFIX", "")
    subject = subject_tpl.format_map(_Defaulting(safe))
    if prefix:
        subject = f"{prefix} {subject}"
    body = body_tpl.format_map(_Defaulting(safe))
    return subject, body


class _Defaulting(dict):
    def __missing__(self, key: str) -> str:
        return "-"
