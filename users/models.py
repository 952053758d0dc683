"""
users/models.py -- Domain dataclass for user accounts.

Pattern: Data class (pure data container, almost no logic). The store owns
persistence, the services own behaviour, api/models.py owns the client-facing
shape. Nothing in this module knows about HTTP.

Layer rule: no imports from api/, auth/, mail/, or storage/.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field

DEFAULT_ROLES: tuple[str, ...] = ("user",)
AVATAR_SOURCES: tuple[str, ...] = ("none", "gravatar", "local")


@dataclass
class User:
    """A user account as stored in the users table.

    username is the lowercase unique lookup key; display_username keeps the
    casing the user registered with. email_temporary holds an address that is
    waiting for confirmation and is "" once it has been promoted to email.

    hashed_password and the three token fields are secrets: they must never
    reach a client. api/models.py builds responses from an explicit field list
    so a new secret column cannot leak by accident.
    """

    username: str
    display_username: str
    email: str
    first_name: str = ""
    last_name: str = ""
    id: int | None = None
    email_temporary: str = ""
    hashed_password: str | None = None
    roles: list[str] = field(default_factory=lambda: list(DEFAULT_ROLES))
    public: bool = False
    gender: str = ""
    tagline: str = ""
    description: str = ""
    languages: list[str] = field(default_factory=list)
    locale: str = ""
    avatar_source: str = "gravatar"
    avatar_uploaded: bool = False
    provider: str = "local"
    created: str | None = None
    updated: str | None = None
    email_token: str | None = None
    reset_password_token: str | None = None
    reset_password_expires: str | None = None

    @property
    def display_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    @property
    def email_hash(self) -> str:
        # Gravatar convention: MD5 of the trimmed, lowercased address.
        return hashlib.md5(self.email.strip().lower().encode("utf-8")).hexdigest()  # noqa: S324
