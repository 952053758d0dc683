"""
tests/conftest.py -- Shared fixtures for the account service tests.

This module provides:
  - store: a UserStore on a fresh SQLite file per test (tmp_path)
  - make_user(): inserts an account straight into the store, bypassing sign-up
  - seeded_user: the default account every route test starts from
  - mailer: a MemoryMailer whose outbox tests can inspect
  - client: TestClient on the real app with a patched lifespan

Design: a temp-file SQLite database per test rather than a shared in-memory
one. TestClient runs sync handlers in a thread pool, and a file DB is visible
from every thread without URI tricks. Each test gets a clean database.

Environment must be set before any app import: DEBUG lets get_settings()
auto-generate SECRET_KEY, RATE_LIMIT_ENABLED=false keeps the many sign-ins in
this suite from tripping the limiter.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: set before importing anything that calls get_settings().
os.environ.setdefault("DEBUG", "true")
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["MAIL_BACKEND"] = "memory"

import pytest
from fastapi.testclient import TestClient

from api.main import app, wire_services
from auth.tokens import hash_password
from core.config import Settings, get_settings
from mail.outbox import MemoryMailer
from users.models import User
from users.store import UserStore

CREDENTIALS = {"username": "TR_username", "password": "M3@n.jsI$Aw3$0m3"}
SEEDED_EMAIL = "test@test.com"

# Smallest byte strings that carry each format's magic number.
JPEG_BYTES = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01" + b"\x00" * 32
PNG_BYTES = b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR" + b"\x00" * 32
GIF_BYTES = b"GIF89a\x01\x00\x01\x00\x80\x00\x00" + b"\x00" * 32


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def make_user(
    store: UserStore,
    *,
    username: str,
    email: str,
    password: str = CREDENTIALS["password"],
    first_name: str = "Full",
    last_name: str = "Name",
    public: bool = False,
    roles: list[str] | None = None,
) -> User:
    """Insert an account directly, like saving a model in a test DB."""
    user_id = store.create_user(
        User(
            username=username.lower(),
            display_username=username,
            email=email,
            first_name=first_name,
            last_name=last_name,
            hashed_password=hash_password(password),
            public=public,
            roles=roles or ["user"],
        )
    )
    return store.get_by_id(user_id)


@pytest.fixture
def store(tmp_path) -> Generator[UserStore, None, None]:
    s = UserStore(f"sqlite:///{tmp_path / 'accounts.db'}")
    yield s
    s.close()


@pytest.fixture
def seeded_user(store: UserStore) -> User:
    return make_user(store, username=CREDENTIALS["username"], email=SEEDED_EMAIL)


@pytest.fixture
def mailer() -> MemoryMailer:
    return MemoryMailer()


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return get_settings().model_copy(update={"avatar_dir": str(tmp_path / "avatars")})


# ---------------------------------------------------------------------------
# App client
# ---------------------------------------------------------------------------


def _patch_lifespan(settings: Settings, store: UserStore, mailer: MemoryMailer):
    """Return a lifespan that wires the test store and mailer into app.state.

    Same wire_services() as production, so routes see the real services on
    top of the isolated database. No purge task: tests never run long enough.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        wire_services(app, settings, store, mailer)
        yield

    return test_lifespan


@pytest.fixture
def client(
    store: UserStore, seeded_user: User, mailer: MemoryMailer, test_settings: Settings
) -> Generator[TestClient, None, None]:
    """TestClient with cookies persisted across requests, like a browser agent.

    follow_redirects=False: redirect tests assert on the Location header,
    which is invisible once the client follows it.
    """
    app.router.lifespan_context = _patch_lifespan(test_settings, store, mailer)
    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as c:
        yield c


def sign_in(client: TestClient, username: str = CREDENTIALS["username"], password: str = CREDENTIALS["password"]):
    resp = client.post("/api/auth/signin", json={"username": username, "password": password})
    assert resp.status_code == 200, resp.text
    return resp
