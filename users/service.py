"""
users/service.py -- Reading and editing profiles, avatar uploads.

ProfileService only ever acts on behalf of a signed-in user; the HTTP layer
resolves that user from the session before calling in.

Mass-assignment guard: update_profile() copies only the keys listed in
EDITABLE_FIELDS. Everything else a client sends -- roles, username, public,
tokens -- is dropped without an error, so server-assigned roles stay exactly
as they were.
"""

from __future__ import annotations

import logging
from typing import Any

from auth.service import validate_email
from auth.tokens import TokenIssuer
from core.exceptions import ForbiddenError, NotFoundError, PayloadTooLargeError, ValidationError
from mail.outbox import AccountMailer
from storage.avatars import AvatarStorage, sniff_image_format
from users.models import AVATAR_SOURCES, User
from users.store import UserStore

logger = logging.getLogger("accounts.users")

EDITABLE_FIELDS: frozenset[str] = frozenset(
    {
        "first_name",
        "last_name",
        "gender",
        "tagline",
        "description",
        "languages",
        "locale",
        "avatar_source",
        "email",
    }
)


class ProfileService:
    def __init__(
        self,
        store: UserStore,
        tokens: TokenIssuer,
        mailer: AccountMailer,
        avatars: AvatarStorage,
        avatar_max_bytes: int,
    ) -> None:
        self.store = store
        self.tokens = tokens
        self.mailer = mailer
        self.avatars = avatars
        self.avatar_max_bytes = avatar_max_bytes

    def get_profile(self, viewer: User, username: str) -> tuple[User, bool]:
        """Return (user, is_own_profile).

        Users can always read their own profile, public or not. Other users'
        profiles are visible only once public; a non-public profile is
        reported as missing so its existence is not revealed.
        """
        if username.strip().lower() == viewer.username:
            return self.store.get_by_id(viewer.id) or viewer, True
        user = self.store.get_by_username(username)
        if user is None or not user.public:
            raise NotFoundError("User not found.", code="user_not_found")
        return user, False

    def update_profile(self, user: User, changes: dict[str, Any]) -> User:
        fields = {key: value for key, value in changes.items() if key in EDITABLE_FIELDS and value is not None}

        new_email = fields.pop("email", None)
        if "avatar_source" in fields and fields["avatar_source"] not in AVATAR_SOURCES:
            raise ValidationError("Unknown avatar source.", code="invalid_avatar_source")
        if "languages" in fields:
            fields["languages"] = [str(lang) for lang in fields["languages"]]
        for key in ("first_name", "last_name", "tagline"):
            if key in fields:
                fields[key] = fields[key].strip()

        token = None
        if new_email is not None:
            email_key = validate_email(new_email)
            if self.store.email_in_use(email_key, exclude_user_id=user.id):
                raise ForbiddenError("This email is already in use. Please use another one.", code="email_taken")
            if email_key == user.email:
                if user.email_temporary and user.email_temporary != user.email:
                    # Back to the confirmed address: drop the pending change and its link.
                    fields["email_temporary"] = ""
                    fields["email_token"] = None
            elif email_key != user.email_temporary:
                token = self.tokens.new_email_token()
                fields["email_temporary"] = email_key
                fields["email_token"] = token

        if fields:
            self.store.update_user(user.id, **fields)
        updated = self.store.get_by_id(user.id)
        if token is not None:
            logger.info("Email change requested: user_id=%s", user.id)
            self.mailer.send_confirm_email(updated, token, to=updated.email_temporary)
        return updated

    def upload_avatar(self, user: User, data: bytes) -> None:
        if len(data) > self.avatar_max_bytes:
            raise PayloadTooLargeError("Image too big.")
        ext = sniff_image_format(data)
        if ext is None:
            raise ValidationError("Unsupported image format.", code="invalid_image")
        self.avatars.save(user.id, data, ext)
        self.store.update_user(user.id, avatar_uploaded=True, avatar_source="local")
