"""
auth/dependencies.py -- FastAPI Depends() helpers for sessions and services.

Authentication is session based: a successful sign-in stores the user id in
the signed session cookie managed by Starlette's SessionMiddleware. Every
protected handler asks for get_current_user(), which turns that session into
a User or raises ForbiddenError -- there is no implicit middleware gate.

try_get_current_user() is the soft variant (returns None on failure).
get_current_user() wraps it and raises 403 "Forbidden." if unauthenticated.

The services themselves are built once in the lifespan (api/main.py) and
read from app.state here, so handlers get them injected instead of importing
module-level singletons.

Layer rule: no imports from web concerns beyond fastapi's Request.
"""

from __future__ import annotations

from fastapi import Request

from auth.service import AuthService
from core.exceptions import ForbiddenError
from users.models import User
from users.service import ProfileService

SESSION_USER_KEY = "user_id"


def sign_in_session(request: Request, user: User) -> None:
    """Bind the session to user. Clears first so no earlier state carries over."""
    request.session.clear()
    request.session[SESSION_USER_KEY] = user.id


def sign_out_session(request: Request) -> None:
    request.session.clear()


def try_get_current_user(request: Request) -> User | None:
    """Resolve the session to an existing User. Never raises.

    A session pointing at a deleted account is cleared so the stale cookie
    does not keep hitting the store.
    """
    user_id = request.session.get(SESSION_USER_KEY)
    if not isinstance(user_id, int):
        return None
    user = request.app.state.user_store.get_by_id(user_id)
    if user is None:
        request.session.clear()
    return user


def get_current_user(request: Request) -> User:
    """Require a signed-in user. Raises 403 "Forbidden." otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: User = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise ForbiddenError()
    return user


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_profile_service(request: Request) -> ProfileService:
    return request.app.state.profile_service
