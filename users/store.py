"""
users/store.py -- SQLAlchemy Core persistence layer for user accounts.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user is the mapper. Services and route
code never touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  UNIQUE(username) and UNIQUE(email) are enforced by the schema, so two
  concurrent sign-ups for the same name cannot both succeed. The loser gets
  sqlalchemy.exc.IntegrityError, which the auth service turns into a 400.

  Single-use tokens are consumed with a conditional UPDATE
  (WHERE token = :token). Only one request can win the row; the other sees
  rowcount == 0 and is told the token is invalid.

DB path: accounts.db at the repository root unless DATABASE_URL says otherwise.

Layer rule: no imports from api/, auth/, mail/, or storage/.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, Boolean, Column, Integer, MetaData, String, Table, Text, create_engine, event, or_
from sqlalchemy.engine import Engine

from users.models import User

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(34), nullable=False, unique=True),  # lowercase key
    Column("display_username", String(34), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("email_temporary", String(255), nullable=False, server_default=""),
    Column("hashed_password", Text),
    Column("roles", JSON, nullable=False),
    Column("public", Boolean, nullable=False, server_default="0"),
    Column("first_name", String(255), nullable=False, server_default=""),
    Column("last_name", String(255), nullable=False, server_default=""),
    Column("gender", String(30), nullable=False, server_default=""),
    Column("tagline", String(255), nullable=False, server_default=""),
    Column("description", Text, nullable=False, server_default=""),
    Column("languages", JSON, nullable=False),
    Column("locale", String(10), nullable=False, server_default=""),
    Column("avatar_source", String(20), nullable=False, server_default="gravatar"),
    Column("avatar_uploaded", Boolean, nullable=False, server_default="0"),
    Column("provider", String(30), nullable=False, server_default="local"),
    Column("created", String(32), nullable=False),
    Column("updated", String(32)),
    Column("email_token", String(64), index=True),
    Column("reset_password_token", String(64), index=True),
    Column("reset_password_expires", String(32)),
)

# Columns update_user() accepts. Identity, roles and visibility are not
# among them: email and public change only through confirm_email(), and
# reset tokens have dedicated methods so their check-and-clear stays atomic.
_MUTABLE_COLUMNS: frozenset[str] = frozenset(
    {
        "email_temporary",
        "hashed_password",
        "first_name",
        "last_name",
        "gender",
        "tagline",
        "description",
        "languages",
        "locale",
        "avatar_source",
        "avatar_uploaded",
        "email_token",
    }
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block during writes."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def to_iso(moment: datetime) -> str:
    """Fixed-width UTC ISO-8601 so stored timestamps compare as strings."""
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _now_iso() -> str:
    return to_iso(datetime.now(timezone.utc))


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore("sqlite:///accounts.db")
        user_id = store.create_user(User(username="jane", display_username="Jane", email="jane@example.com"))
        user = store.get_by_username("JANE")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the username or email is
        already taken.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                _users.insert().values(
                    username=user.username.lower(),
                    display_username=user.display_username,
                    email=user.email.lower(),
                    email_temporary=user.email_temporary.lower(),
                    hashed_password=user.hashed_password,
                    roles=list(user.roles),
                    public=user.public,
                    first_name=user.first_name,
                    last_name=user.last_name,
                    gender=user.gender,
                    tagline=user.tagline,
                    description=user.description,
                    languages=list(user.languages),
                    locale=user.locale,
                    avatar_source=user.avatar_source,
                    avatar_uploaded=user.avatar_uploaded,
                    provider=user.provider,
                    created=_now_iso(),
                    email_token=user.email_token,
                )
            )
            return result.inserted_primary_key[0]

    def get_by_id(self, user_id: int) -> Optional[User]:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_username(self, username: str) -> Optional[User]:
        """Look up a user by username. Case-insensitive: the key is stored lowercase."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.username == username.strip().lower())).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> Optional[User]:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email.strip().lower())).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_username_or_email(self, identifier: str) -> Optional[User]:
        """Resolve a sign-in or forgot-password identifier.

        The same field accepts a username or an email address, so both
        columns are matched against the lowercased input.
        """
        key = identifier.strip().lower()
        with self.engine.connect() as conn:
            row = conn.execute(
                _users.select().where(or_(_users.c.username == key, _users.c.email == key))
            ).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email_token(self, token: str) -> Optional[User]:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email_token == token)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_reset_token(self, token: str, now: datetime) -> Optional[User]:
        """Return the user owning an unexpired reset token, else None."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _users.select().where(
                    (_users.c.reset_password_token == token) & (_users.c.reset_password_expires > to_iso(now))
                )
            ).fetchone()
        return _row_to_user(row) if row is not None else None

    def email_in_use(self, email: str, exclude_user_id: int | None = None) -> bool:
        """True if another account owns the address, confirmed or pending."""
        key = email.strip().lower()
        query = _users.select().where(or_(_users.c.email == key, _users.c.email_temporary == key))
        if exclude_user_id is not None:
            query = query.where(_users.c.id != exclude_user_id)
        with self.engine.connect() as conn:
            row = conn.execute(query.limit(1)).fetchone()
        return row is not None

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def update_user(self, user_id: int, **fields) -> bool:
        """Update mutable fields on an existing user and stamp `updated`.

        Unknown field names raise ValueError rather than being silently
        ignored -- column names come from this whitelist, never from clients.

        Returns True if a row was updated, False if user_id was not found.
        """
        unknown = set(fields) - _MUTABLE_COLUMNS
        if unknown:
            raise ValueError(f"Unknown user fields: {sorted(unknown)!r}")
        if not fields:
            return False
        with self.engine.begin() as conn:
            result = conn.execute(
                _users.update().where(_users.c.id == user_id).values(updated=_now_iso(), **fields)
            )
        return result.rowcount > 0

    def confirm_email(self, token: str) -> Optional[tuple[User, bool]]:
        """Consume an email token and promote the pending address.

        Returns (updated_user, made_public) or None when no user holds the
        token. made_public is True only if the account was not public before.

        The UPDATE repeats the token in its WHERE clause, so when two requests
        race for the same token exactly one of them sees rowcount == 1.

        Raises sqlalchemy.exc.IntegrityError if the pending address was taken
        by another account since it was requested.
        """
        with self.engine.begin() as conn:
            row = conn.execute(_users.select().where(_users.c.email_token == token)).fetchone()
            if row is None:
                return None
            result = conn.execute(
                _users.update()
                .where((_users.c.id == row.id) & (_users.c.email_token == token))
                .values(
                    email_token=None,
                    email=row.email_temporary or row.email,
                    email_temporary="",
                    public=True,
                    updated=_now_iso(),
                )
            )
            if result.rowcount != 1:
                return None
            updated = conn.execute(_users.select().where(_users.c.id == row.id)).fetchone()
        return _row_to_user(updated), not row.public

    def set_reset_token(self, user_id: int, token: str, expires: datetime) -> None:
        with self.engine.begin() as conn:
            conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(reset_password_token=token, reset_password_expires=to_iso(expires))
            )

    def consume_reset_token(self, token: str, hashed_password: str, now: datetime) -> Optional[User]:
        """Atomically swap the password for the holder of an unexpired reset token.

        Returns the updated user, or None if the token is unknown, expired, or
        was consumed by a concurrent request.
        """
        with self.engine.begin() as conn:
            row = conn.execute(
                _users.select().where(
                    (_users.c.reset_password_token == token) & (_users.c.reset_password_expires > to_iso(now))
                )
            ).fetchone()
            if row is None:
                return None
            result = conn.execute(
                _users.update()
                .where((_users.c.id == row.id) & (_users.c.reset_password_token == token))
                .values(
                    hashed_password=hashed_password,
                    reset_password_token=None,
                    reset_password_expires=None,
                    updated=_now_iso(),
                )
            )
            if result.rowcount != 1:
                return None
            updated = conn.execute(_users.select().where(_users.c.id == row.id)).fetchone()
        return _row_to_user(updated)

    def purge_expired_reset_tokens(self, now: datetime) -> int:
        """Clear reset tokens whose expiry has passed. Returns rows touched."""
        with self.engine.begin() as conn:
            result = conn.execute(
                _users.update()
                .where(_users.c.reset_password_expires <= to_iso(now))
                .values(reset_password_token=None, reset_password_expires=None)
            )
        return result.rowcount

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        display_username=row.display_username,
        email=row.email,
        email_temporary=row.email_temporary or "",
        hashed_password=row.hashed_password,
        roles=list(row.roles or []),
        public=bool(row.public),
        first_name=row.first_name,
        last_name=row.last_name,
        gender=row.gender,
        tagline=row.tagline,
        description=row.description,
        languages=list(row.languages or []),
        locale=row.locale,
        avatar_source=row.avatar_source,
        avatar_uploaded=bool(row.avatar_uploaded),
        provider=row.provider,
        created=row.created,
        updated=row.updated,
        email_token=row.email_token,
        reset_password_token=row.reset_password_token,
        reset_password_expires=row.reset_password_expires,
    )
