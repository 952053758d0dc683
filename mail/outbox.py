"""
mail/outbox.py -- Outgoing account email.

The transport is a collaborator, not part of the account logic. Three
backends implement the same Mailer.send() contract:

  console -- log the message (default; local development)
  memory  -- keep messages in a list (tests inspect it)
  smtp    -- hand the message to an SMTP relay via smtplib

AccountMailer composes the three messages the account flows send and builds
links from Settings.public_url. Bodies are plain text; HTML templating is out
of scope.

Layer rule: no imports from api/, auth/, or storage/.
"""

from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from core.config import Settings
    from users.models import User

logger = logging.getLogger("accounts.mail")


@dataclass(frozen=True)
class OutgoingMessage:
    to: str
    subject: str
    body: str


class Mailer:
    """Base transport. Subclasses implement send()."""

    def send(self, message: OutgoingMessage) -> None:
        raise NotImplementedError


class ConsoleMailer(Mailer):
    def send(self, message: OutgoingMessage) -> None:
        logger.info("Mail to=%s subject=%r\n%s", message.to, message.subject, message.body)


class MemoryMailer(Mailer):
    """Collects messages in self.outbox instead of delivering them."""

    def __init__(self) -> None:
        self.outbox: list[OutgoingMessage] = []

    def send(self, message: OutgoingMessage) -> None:
        self.outbox.append(message)


class SmtpMailer(Mailer):
    """Deliver through an SMTP relay. One connection per message."""

    def __init__(self, host: str, port: int, sender: str) -> None:
        self._host = host
        self._port = port
        self._sender = sender

    def send(self, message: OutgoingMessage) -> None:
        email = EmailMessage()
        email["From"] = self._sender
        email["To"] = message.to
        email["Subject"] = message.subject
        email.set_content(message.body)
        with smtplib.SMTP(host=self._host, port=self._port) as conn:
            conn.send_message(email)
        logger.info("Mail sent to=%s subject=%r", message.to, message.subject)


def build_mailer(settings: Settings) -> Mailer:
    """Return the transport selected by Settings.mail_backend."""
    if settings.mail_backend == "smtp":
        return SmtpMailer(settings.smtp_host, settings.smtp_port, settings.mail_from)
    if settings.mail_backend == "memory":
        return MemoryMailer()
    return ConsoleMailer()


class AccountMailer:
    """Composes confirmation, reset and notice emails for a user.

    Delivery failures are logged and not raised. The account change is
    already committed when a message goes out.
    """

    def __init__(self, transport: Mailer, public_url: str) -> None:
        self.transport = transport
        self._public_url = public_url.rstrip("/")

    def send_confirm_email(self, user: User, token: str, to: str) -> None:
        link = f"{self._public_url}/api/auth/confirm-email/{token}"
        body = (
            f"Hi {user.first_name or user.display_username},\n\n"
            f"Please confirm your email address by opening this link:\n\n{link}\n\n"
            "If you did not ask for this, you can ignore this email.\n"
        )
        self._deliver(OutgoingMessage(to=to, subject="Confirm your email", body=body))

    def send_reset_password(self, user: User, token: str) -> None:
        link = f"{self._public_url}/api/auth/reset/{token}"
        body = (
            f"Hi {user.first_name or user.display_username},\n\n"
            f"Someone asked to reset the password for {user.display_username}.\n"
            f"Open this link to choose a new one:\n\n{link}\n\n"
            "The link works for a limited time. If you did not ask for this, ignore this email.\n"
        )
        self._deliver(OutgoingMessage(to=user.email, subject="Password reset", body=body))

    def send_password_changed(self, user: User) -> None:
        body = (
            f"Hi {user.first_name or user.display_username},\n\n"
            "The password of your account was just changed.\n"
            "If this was not you, reset your password right away.\n"
        )
        self._deliver(OutgoingMessage(to=user.email, subject="Your password was changed", body=body))

    def _deliver(self, message: OutgoingMessage) -> None:
        try:
            self.transport.send(message)
        except (OSError, smtplib.SMTPException):
            logger.exception("Could not deliver mail to=%s subject=%r", message.to, message.subject)
