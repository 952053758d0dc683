"""
auth/service.py -- Account lifecycle: sign-up, email confirmation, sign-in,
forgotten and changed passwords.

AuthService is constructed once in the application lifespan with its
collaborators passed in explicitly (store, token issuer, mailer); route
handlers receive it through auth.dependencies.get_auth_service(). Session
handling stays in the HTTP layer -- this service only answers "who is this"
and never touches cookies.

Email state machine per user:

    Unconfirmed(public=False, email_token set, email_temporary=email)
        -- POST confirm with the token -->
    Confirmed(public=True, email_token None, email_temporary "")

Errors are raised as core.exceptions subclasses; api/main.py maps them to
HTTP responses.

Layer rule: no imports from api/ or storage/.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError

from auth.tokens import TokenIssuer, authenticate_user, hash_password, verify_password
from core.exceptions import NotFoundError, ValidationError
from mail.outbox import AccountMailer
from users.models import User
from users.store import UserStore

logger = logging.getLogger("accounts.auth")

MIN_PASSWORD_LENGTH = 8

# Lowercase letters, digits, dot, dash, underscore; 3-34 chars; at least one
# letter or digit; no leading, trailing or doubled dots.
_USERNAME_RE = re.compile(r"^(?=.*[0-9a-z])(?!\.)(?!.*\.\.)(?!.*\.$)[0-9a-z._-]{3,34}$")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

RESERVED_USERNAMES: frozenset[str] = frozenset(
    {
        "admin",
        "administrator",
        "api",
        "root",
        "support",
        "system",
        "help",
        "signin",
        "signup",
        "signout",
        "profile",
        "password",
        "confirm-email",
        "users",
        "null",
        "undefined",
    }
)

CONFIRM_EMAIL_PAGE = "/confirm-email/{token}"
CONFIRM_EMAIL_INVALID_PAGE = "/confirm-email-invalid"
RESET_PASSWORD_PAGE = "/password/reset/{token}"
RESET_PASSWORD_INVALID_PAGE = "/password/reset/invalid"


def validate_username(username: str) -> str:
    """Return the lowercase lookup key for username or raise ValidationError."""
    key = username.strip().lower()
    if not _USERNAME_RE.match(key):
        raise ValidationError(
            "Username must be 3-34 characters long and may contain only letters, numbers, dots, dashes and underscores.",
            code="invalid_username",
        )
    if key in RESERVED_USERNAMES:
        raise ValidationError("This username is reserved.", code="reserved_username")
    return key


def validate_email(email: str) -> str:
    key = email.strip().lower()
    if not _EMAIL_RE.match(key):
        raise ValidationError("Please enter a valid email address.", code="invalid_email")
    return key


def check_new_password(new_password: str, verify_password_: str) -> None:
    """Shared rules for change-password and reset-password.

    Order matters: clients show the first failing rule.
    """
    if new_password != verify_password_:
        raise ValidationError("Passwords do not match.", code="password_mismatch")
    if not new_password:
        raise ValidationError("Please provide a new password.", code="password_missing")


class AuthService:
    def __init__(self, store: UserStore, tokens: TokenIssuer, mailer: AccountMailer) -> None:
        self.store = store
        self.tokens = tokens
        self.mailer = mailer

    # ------------------------------------------------------------------
    # Sign-up and email confirmation
    # ------------------------------------------------------------------

    def sign_up(
        self,
        *,
        username: str,
        email: str,
        password: str,
        first_name: str = "",
        last_name: str = "",
        roles: list[str] | None = None,
    ) -> User:
        """Register a local account and send the confirmation email.

        The username key is lowercased; the original casing is kept as
        display_username. The account starts non-public with its address
        pending in email_temporary until the email token is confirmed.

        roles is for trusted callers (the CLI); the HTTP layer never passes it.
        """
        key = validate_username(username)
        email_key = validate_email(email)
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters.", code="password_too_short"
            )
        if self.store.get_by_username(key) is not None:
            raise ValidationError("Username already exists.", code="username_taken")
        if self.store.email_in_use(email_key):
            raise ValidationError("This email is already in use. Please use another one.", code="email_taken")

        token = self.tokens.new_email_token()
        user_roles = list(roles) if roles else ["user"]
        if "user" not in user_roles:
            user_roles.insert(0, "user")
        new_user = User(
            username=key,
            display_username=username.strip(),
            email=email_key,
            email_temporary=email_key,
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            hashed_password=hash_password(password),
            roles=user_roles,
            public=False,
            email_token=token,
        )
        try:
            user_id = self.store.create_user(new_user)
        except IntegrityError as exc:
            # Lost a race against a concurrent sign-up with the same name or address.
            raise ValidationError("Username or email already exists.", code="account_exists") from exc

        created = self.store.get_by_id(user_id)
        logger.info("User signed up: username=%s user_id=%s", key, user_id)
        self.mailer.send_confirm_email(created, token, to=email_key)
        return created

    def confirm_email_location(self, token: str) -> str:
        """Where GET /confirm-email/{token} should redirect. Does not consume the token."""
        if self.tokens.email_token_is_valid(token):
            return CONFIRM_EMAIL_PAGE.format(token=token)
        return CONFIRM_EMAIL_INVALID_PAGE

    def confirm_email(self, token: str) -> tuple[User | None, bool]:
        """Consume an email token.

        Returns (user, profile_made_public). An unknown token returns
        (None, False) rather than raising: POST on an invalid token answers
        200 without any state change.
        """
        try:
            result = self.store.confirm_email(token) if token else None
        except IntegrityError as exc:
            raise ValidationError(
                "This email is already in use. Please use another one.", code="email_taken"
            ) from exc
        if result is None:
            logger.info("Email confirmation with unknown token")
            return None, False
        user, made_public = result
        logger.info("Email confirmed: user_id=%s made_public=%s", user.id, made_public)
        return user, made_public

    # ------------------------------------------------------------------
    # Sign-in
    # ------------------------------------------------------------------

    def sign_in(self, identifier: str, password: str) -> User:
        """Authenticate by username or email. Raises ValidationError on failure."""
        user = authenticate_user(self.store, identifier, password)
        if user is None:
            logger.info("Failed sign-in for identifier=%r", identifier.strip().lower()[:64])
            raise ValidationError("Invalid username or password.", code="bad_credentials")
        return user

    # ------------------------------------------------------------------
    # Forgotten password
    # ------------------------------------------------------------------

    def forgot_password(self, identifier: str | None) -> None:
        if not identifier or not identifier.strip():
            raise ValidationError("Please, we really need your username or email first...", code="identifier_missing")
        user = self.store.get_by_username_or_email(identifier)
        if user is None:
            raise NotFoundError(
                "We could not find an account with that username or email. Make sure you have it spelled correctly.",
                code="account_not_found",
            )
        token = self.tokens.issue_reset_token(user)
        self.mailer.send_reset_password(user, token)

    def reset_location(self, token: str) -> str:
        """Where GET /reset/{token} should redirect. Checks expiry, not just existence."""
        if self.tokens.reset_token_is_valid(token):
            return RESET_PASSWORD_PAGE.format(token=token)
        return RESET_PASSWORD_INVALID_PAGE

    def reset_password(self, token: str, new_password: str, verify_password_: str) -> User:
        check_new_password(new_password, verify_password_)
        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters.", code="password_too_short"
            )
        user = self.store.consume_reset_token(token, hash_password(new_password), datetime.now(timezone.utc))
        if user is None:
            raise ValidationError("Password reset token is invalid or has expired.", code="invalid_token")
        logger.info("Password reset completed: user_id=%s", user.id)
        self.mailer.send_password_changed(user)
        return user

    # ------------------------------------------------------------------
    # Change password (signed in)
    # ------------------------------------------------------------------

    def change_password(self, user: User, current_password: str, new_password: str, verify_password_: str) -> None:
        check_new_password(new_password, verify_password_)
        if not user.hashed_password or not verify_password(current_password or "", user.hashed_password):
            raise ValidationError("Current password is incorrect.", code="wrong_password")
        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters.", code="password_too_short"
            )
        self.store.update_user(user.id, hashed_password=hash_password(new_password))
        logger.info("Password changed: user_id=%s", user.id)
        self.mailer.send_password_changed(user)
