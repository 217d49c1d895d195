"""
auth/email.py -- Boundary to the transactional email service.

Delivery and templating are owned by an external service; this module defines
the narrow interface the auth subsystem needs and a logging implementation
used in development and tests. Sending is best-effort: dispatch() never
raises, so a mail outage cannot block password-reset issuance.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

logger = logging.getLogger("gameportal.email")

# Bounded message size -- the reset link is the only variable-length content.
_MAX_BODY_CHARS = 4000


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    text: str


class EmailSender(Protocol):
    def send(self, message: EmailMessage) -> None: ...


class LoggingEmailSender:
    """Writes messages to the log instead of sending them.

    The body is not logged: it contains the reset link, which is a credential.
    Nothing is retained after the call.
    """

    def send(self, message: EmailMessage) -> None:
        logger.info("Email queued to=%s subject=%r (%d chars)", message.to, message.subject, len(message.text))


def dispatch(sender: EmailSender, message: EmailMessage) -> bool:
    """Send message, logging (not raising) any failure. Returns True on success."""
    if len(message.text) > _MAX_BODY_CHARS:
        message = EmailMessage(to=message.to, subject=message.subject, text=message.text[:_MAX_BODY_CHARS])
    try:
        sender.send(message)
    except Exception:
        logger.exception("Failed to send email to %s (subject=%r)", message.to, message.subject)
        return False
    return True


def password_reset_message(username: str, email: str, reset_url: str) -> EmailMessage:
    return EmailMessage(
        to=email,
        subject="Password reset request",
        text=(
            f"Hello {username},\n\n"
            "A password reset was requested for your account. "
            "Use the link below within 1 hour to choose a new password:\n\n"
            f"{reset_url}\n\n"
            "If you did not request this, you can ignore this message."
        ),
    )


def password_changed_message(username: str, email: str) -> EmailMessage:
    return EmailMessage(
        to=email,
        subject="Your password was changed",
        text=(
            f"Hello {username},\n\n"
            "The password for your account was just changed. "
            "If this was not you, contact an administrator immediately."
        ),
    )
