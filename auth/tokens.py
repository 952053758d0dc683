"""
auth/tokens.py -- Password hashing and single-use token issuing.

Security design decisions:
  Passwords: bcrypt used directly (no passlib wrapper). The salt is embedded
       in the bcrypt hash, so there is no separate salt column to leak. The
       _DUMMY_HASH constant enables timing equalization in authenticate_user()
       so response time does not reveal whether an account exists [C1].

  Tokens: secrets.token_hex(20) gives 160 bits of entropy per email or reset
       token -- guessing one is infeasible. Tokens are opaque, stored in the
       users table and cleared when consumed.

  Reset tokens carry an expiry (Settings.reset_token_ttl_seconds). Every
       lookup checks the expiry, not just existence.

Layer rule: no imports from api/, mail/, or storage/. Imports from core/ and
users/ are allowed.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt

if TYPE_CHECKING:
    from users.models import User
    from users.store import UserStore

logger = logging.getLogger("accounts.auth")

_TOKEN_BYTES = 20

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt silently truncates input beyond 72 bytes. The API layer caps
    password fields at 128 characters; callers should not rely on anything
    past the first 72 bytes being significant.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed hash in the DB -- treat as a mismatch, never as a match.
        return False


# Timing equalization dummy hash [C1]. Computed once at module load.
_DUMMY_HASH: str = hash_password("accounts_timing_dummy")


def authenticate_user(store: UserStore, identifier: str, password: str) -> User | None:
    """Authenticate a username-or-email / password pair with timing equalization.

    Always runs bcrypt whether or not the account exists:
    - Unknown identifier: bcrypt runs against _DUMMY_HASH (same cost)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Returns the User on success, None on any failure.
    """
    user = store.get_by_username_or_email(identifier) if identifier.strip() else None
    if user is None or user.hashed_password is None:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user


# ---------------------------------------------------------------------------
# Single-use tokens
# ---------------------------------------------------------------------------


def generate_token() -> str:
    """Return a new opaque token: 40 hex chars, 160 bits of entropy."""
    return secrets.token_hex(_TOKEN_BYTES)


class TokenIssuer:
    """Issues and checks email-confirmation and password-reset tokens.

    Consumption (the check-and-clear step) is delegated to the store's
    conditional UPDATEs; this class only decides what a token looks like,
    when it expires, and whether one is currently valid.
    """

    def __init__(self, store: UserStore, reset_ttl_seconds: int = 3600) -> None:
        self._store = store
        self.reset_ttl = timedelta(seconds=reset_ttl_seconds)

    def new_email_token(self) -> str:
        return generate_token()

    def email_token_is_valid(self, token: str) -> bool:
        """Check an email token without consuming it."""
        if not token:
            return False
        return self._store.get_by_email_token(token) is not None

    def issue_reset_token(self, user: User) -> str:
        """Store a fresh reset token with an expiry on the user and return it."""
        token = generate_token()
        expires = datetime.now(timezone.utc) + self.reset_ttl
        self._store.set_reset_token(user.id, token, expires)
        logger.info("Password reset token issued for user_id=%s", user.id)
        return token

    def reset_token_is_valid(self, token: str) -> bool:
        """True if some user holds this reset token and it has not expired."""
        if not token:
            return False
        return self._store.get_by_reset_token(token, datetime.now(timezone.utc)) is not None
