"""
tests/test_tokens.py -- Password hashing, authenticate_user() and TokenIssuer.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from auth.tokens import TokenIssuer, authenticate_user, generate_token, hash_password, verify_password
from conftest import make_user
from users.store import UserStore


def test_hash_and_verify():
    hashed = hash_password("correct horse")
    assert hashed != "correct horse"
    assert verify_password("correct horse", hashed)
    assert not verify_password("wrong horse", hashed)


def test_verify_malformed_hash_is_false():
    assert verify_password("anything", "not-a-bcrypt-hash") is False


def test_generate_token_is_40_hex_chars():
    token = generate_token()
    assert len(token) == 40
    int(token, 16)
    assert generate_token() != token


class TestAuthenticateUser:
    def test_by_username_and_email(self, store: UserStore) -> None:
        user = make_user(store, username="jane", email="jane@example.com", password="s3cret-pass")
        assert authenticate_user(store, "JANE", "s3cret-pass").id == user.id
        assert authenticate_user(store, "jane@example.com", "s3cret-pass").id == user.id

    def test_wrong_password(self, store: UserStore) -> None:
        make_user(store, username="jane", email="jane@example.com", password="s3cret-pass")
        assert authenticate_user(store, "jane", "nope") is None

    def test_unknown_and_empty_identifier(self, store: UserStore) -> None:
        assert authenticate_user(store, "ghost", "whatever") is None
        assert authenticate_user(store, "  ", "whatever") is None


class TestTokenIssuer:
    def test_reset_token_expiry(self, store: UserStore) -> None:
        user = make_user(store, username="jane", email="jane@example.com")
        issuer = TokenIssuer(store, reset_ttl_seconds=3600)

        token = issuer.issue_reset_token(user)
        assert issuer.reset_token_is_valid(token)
        stored = store.get_by_id(user.id)
        assert stored.reset_password_token == token
        expires = datetime.fromisoformat(stored.reset_password_expires)
        assert timedelta(minutes=59) < expires - datetime.now(timezone.utc) <= timedelta(hours=1)

    def test_expired_reset_token_is_invalid(self, store: UserStore) -> None:
        user = make_user(store, username="jane", email="jane@example.com")
        issuer = TokenIssuer(store, reset_ttl_seconds=-1)
        token = issuer.issue_reset_token(user)
        assert not issuer.reset_token_is_valid(token)

    def test_new_reset_token_replaces_old(self, store: UserStore) -> None:
        user = make_user(store, username="jane", email="jane@example.com")
        issuer = TokenIssuer(store)
        first = issuer.issue_reset_token(user)
        second = issuer.issue_reset_token(user)
        assert not issuer.reset_token_is_valid(first)
        assert issuer.reset_token_is_valid(second)

    def test_email_token_validity(self, store: UserStore) -> None:
        user = make_user(store, username="jane", email="jane@example.com")
        issuer = TokenIssuer(store)
        token = issuer.new_email_token()
        assert not issuer.email_token_is_valid(token)
        store.update_user(user.id, email_token=token)
        assert issuer.email_token_is_valid(token)
        assert not issuer.email_token_is_valid("")
