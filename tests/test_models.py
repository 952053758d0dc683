"""
tests/test_models.py -- User dataclass properties and response sanitization.
"""

from __future__ import annotations

import hashlib

from api.models import PublicUserResponse, UserResponse
from users.models import User


def _user(**overrides) -> User:
    fields = dict(
        id=7,
        username="jane",
        display_username="Jane",
        email="Jane@Example.com",
        first_name="Jane",
        last_name="Doe",
        hashed_password="$2b$12$secret",
        email_token="email-tok",
        reset_password_token="reset-tok",
        created="2024-01-01T00:00:00.000000+00:00",
    )
    fields.update(overrides)
    return User(**fields)


def test_display_name_joins_present_parts():
    assert _user().display_name == "Jane Doe"
    assert _user(last_name="").display_name == "Jane"
    assert _user(first_name="", last_name="").display_name == ""


def test_email_hash_is_gravatar_md5():
    assert _user().email_hash == hashlib.md5(b"jane@example.com").hexdigest()


def test_user_response_never_carries_secrets():
    dumped = UserResponse.from_user(_user()).model_dump(by_alias=True)
    assert dumped["_id"] == "7"
    assert dumped["displayUsername"] == "Jane"
    for key in ("hashedPassword", "emailToken", "resetPasswordToken", "resetPasswordExpires", "salt", "password"):
        assert key not in dumped


def test_public_response_hides_account_fields():
    dumped = PublicUserResponse.from_user(_user()).model_dump(by_alias=True, exclude_none=True)
    for key in ("email", "emailTemporary", "roles", "provider", "updated"):
        assert key not in dumped
    assert dumped["emailHash"]
