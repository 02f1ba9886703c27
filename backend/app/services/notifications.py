"""
services/notifications.py — Outbound notification capability.

Services never send mail themselves. They build a NotificationEvent and hand
it to whichever Notifier the app factory registered in
app.extensions["notifier"]:

  MailNotifier     → Flask-Mail (plain-text body), production
  LoggingNotifier  → logs and keeps the latest events in memory; development/tests

A notifier that cannot deliver raises AppError(NOTIFICATIONS_UNAVAILABLE, 503).
Callers decide whether that aborts the request (manual reminders) or is
logged and skipped (expense-created notices).
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Protocol

from flask import Flask, current_app
from flask_mail import Message

from backend.app.errors import AppError, ErrorCode
from backend.app.extensions import mail

logger = logging.getLogger(__name__)

DEFAULT_MAX_EVENTS = 200


# ── Event ──────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class NotificationEvent:
    """
    One message to one recipient.

    kind is a short machine tag ("expense_created", "group_reminder",
    "contact_reminder", "scheduled_reminder") so tests and logs can tell
    events apart without parsing the text.
    """

    kind: str
    recipient_email: str
    subject: str
    body: str
    recipient_name: str | None = None
    context: dict = field(default_factory=dict)


class Notifier(Protocol):
    def notify(self, event: NotificationEvent) -> None: ...


# ── Implementations ────────────────────────────────────────────────────────

class LoggingNotifier:
    """
    Logs every event at INFO and keeps the most recent ones in `sent`.
    Never fails. Older events fall off once `max_events` is reached.
    """

    def __init__(self, max_events: int = DEFAULT_MAX_EVENTS) -> None:
        self.sent: deque[NotificationEvent] = deque(maxlen=max_events)

    def notify(self, event: NotificationEvent) -> None:
        self.sent.append(event)
        logger.info(
            "notification kind=%s to=%s subject=%r",
            event.kind, event.recipient_email, event.subject,
        )

    def clear(self) -> None:
        self.sent.clear()


class MailNotifier:
    """Sends each event as a plain-text email through Flask-Mail."""

    def __init__(self, sender: str | None) -> None:
        self.sender = sender

    def notify(self, event: NotificationEvent) -> None:
        if not self.sender:
            raise AppError(
                ErrorCode.NOTIFICATIONS_UNAVAILABLE,
                "Email is not configured on the server.",
                503,
            )

        message = Message(
            subject=event.subject,
            recipients=[event.recipient_email],
            body=event.body,
            sender=self.sender,
        )
        try:
            mail.send(message)
        except OSError as exc:
            # smtplib errors are OSError subclasses.
            logger.error("mail delivery to %s failed: %s", event.recipient_email, exc)
            raise AppError(
                ErrorCode.NOTIFICATIONS_UNAVAILABLE,
                "The email could not be sent. Please try again later.",
                503,
            ) from exc

        logger.info("mail kind=%s sent to %s", event.kind, event.recipient_email)


# ── Wiring ─────────────────────────────────────────────────────────────────

def build_notifier(app: Flask) -> Notifier:
    """Picks the notifier named by NOTIFIER_BACKEND ("mail" or "log")."""
    backend = app.config.get("NOTIFIER_BACKEND", "log")
    if backend == "mail":
        return MailNotifier(app.config.get("MAIL_DEFAULT_SENDER"))
    return LoggingNotifier()


def get_notifier() -> Notifier:
    """The notifier registered on the current app."""
    return current_app.extensions["notifier"]


def app_link(path: str) -> str:
    """Absolute link into the web app, or "" when APP_BASE_URL is unset."""
    base = current_app.config.get("APP_BASE_URL") or ""
    if not base:
        return ""
    return f"{base.rstrip('/')}/{path.lstrip('/')}"
