"""
tests/test_mail_and_avatars.py -- AccountMailer composition and AvatarStorage.

Covers:
  - Confirmation and reset mails link to the API token endpoints
  - A failing transport is logged, never raised into the account flow
  - Image sniffing by magic bytes; storage replaces other formats
"""

from __future__ import annotations

import logging
import smtplib

from conftest import GIF_BYTES, JPEG_BYTES, PNG_BYTES
from core.config import get_settings
from mail.outbox import AccountMailer, ConsoleMailer, Mailer, MemoryMailer, SmtpMailer, build_mailer
from storage.avatars import AvatarStorage, sniff_image_format
from users.models import User


def _user() -> User:
    return User(id=1, username="jane", display_username="Jane", email="jane@example.com", first_name="Jane")


class _BrokenTransport(Mailer):
    def send(self, message):
        raise smtplib.SMTPServerDisconnected("gone")


class TestAccountMailer:
    def test_confirm_mail_links_token(self):
        transport = MemoryMailer()
        AccountMailer(transport, "https://example.org/").send_confirm_email(_user(), "abc123", to="new@example.com")
        [message] = transport.outbox
        assert message.to == "new@example.com"
        assert "https://example.org/api/auth/confirm-email/abc123" in message.body

    def test_reset_mail_goes_to_account_email(self):
        transport = MemoryMailer()
        AccountMailer(transport, "https://example.org").send_reset_password(_user(), "def456")
        [message] = transport.outbox
        assert message.to == "jane@example.com"
        assert "https://example.org/api/auth/reset/def456" in message.body

    def test_delivery_failure_is_logged(self, caplog):
        mailer = AccountMailer(_BrokenTransport(), "https://example.org")
        with caplog.at_level(logging.ERROR, logger="accounts.mail"):
            mailer.send_password_changed(_user())
        assert "Could not deliver mail" in caplog.text

    def test_build_mailer_picks_backend(self):
        base = get_settings()
        assert isinstance(build_mailer(base.model_copy(update={"mail_backend": "console"})), ConsoleMailer)
        assert isinstance(build_mailer(base.model_copy(update={"mail_backend": "memory"})), MemoryMailer)
        assert isinstance(build_mailer(base.model_copy(update={"mail_backend": "smtp"})), SmtpMailer)


class TestAvatars:
    def test_sniff_formats(self):
        assert sniff_image_format(JPEG_BYTES) == "jpg"
        assert sniff_image_format(PNG_BYTES) == "png"
        assert sniff_image_format(GIF_BYTES) == "gif"
        assert sniff_image_format(b"<svg></svg>") is None
        assert sniff_image_format(b"") is None

    def test_save_replaces_other_formats(self, tmp_path):
        storage = AvatarStorage(tmp_path)
        first = storage.save(3, JPEG_BYTES, "jpg")
        assert first == tmp_path / "3" / "avatar.jpg"
        assert first.read_bytes() == JPEG_BYTES

        second = storage.save(3, PNG_BYTES, "png")
        assert second.read_bytes() == PNG_BYTES
        assert not first.exists()
