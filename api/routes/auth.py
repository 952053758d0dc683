"""
api/routes/auth.py -- Sign-up, email confirmation, sign-in/out and password reset.

Routes:
  POST /api/auth/signup                 -- register; signs the new user in
  GET  /api/auth/confirm-email/{token}  -- 302 to the client confirm page (or the invalid page)
  POST /api/auth/confirm-email/{token}  -- consume the token, make the profile public
  POST /api/auth/signin                 -- username or email + password; sets the session
  GET  /api/auth/signout                -- clears the session; 302 to /
  POST /api/auth/forgot                 -- issue a reset token and email it
  GET  /api/auth/reset/{token}          -- 302 to the client reset page (or the invalid page)
  POST /api/auth/reset/{token}          -- set a new password with a reset token

Security:
  [H2] signin and forgot are rate-limited per client IP (Settings.*_rate_limit).
  [C1] AuthService.sign_in() goes through authenticate_user() for timing
       equalization -- never inline get_by_username() + verify_password().
  [M5] Cache-Control: no-store on responses that carry a fresh session.
  GET on a token only redirects; it never consumes the token. Mail scanners
  prefetch links, so consumption is reserved for POST.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import RedirectResponse

from api.limiter import limiter
from api.models import (
    ConfirmEmailResponse,
    ForgotRequest,
    MessageResponse,
    ResetPasswordRequest,
    SigninRequest,
    SignupRequest,
    UserResponse,
)
from auth.dependencies import get_auth_service, sign_in_session, sign_out_session
from auth.service import AuthService
from core.config import get_settings

_settings = get_settings()

router = APIRouter()


# ---------------------------------------------------------------------------
# Sign-up and email confirmation
# ---------------------------------------------------------------------------


@router.post("/auth/signup", response_model=UserResponse, response_model_exclude_none=True)
def signup(
    request: Request,
    response: Response,
    body: SignupRequest,
    auth: AuthService = Depends(get_auth_service),
) -> UserResponse:
    """Register a local account. The profile stays non-public until the email is confirmed."""
    user = auth.sign_up(
        username=body.username,
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
    )
    sign_in_session(request, user)
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return UserResponse.from_user(user)


@router.get("/auth/confirm-email/{token}")
def confirm_email_redirect(token: str, auth: AuthService = Depends(get_auth_service)) -> RedirectResponse:
    return RedirectResponse(auth.confirm_email_location(token), status_code=302)


@router.post(
    "/auth/confirm-email/{token}",
    response_model=ConfirmEmailResponse,
    response_model_exclude_none=True,
)
def confirm_email(
    request: Request,
    token: str,
    auth: AuthService = Depends(get_auth_service),
) -> ConfirmEmailResponse:
    """Consume an email token.

    An unknown token still answers 200, with profileMadePublic false and no
    user. Clients rely on this today; see DESIGN.md before changing it.
    """
    user, made_public = auth.confirm_email(token)
    if user is None:
        return ConfirmEmailResponse(
            profile_made_public=False,
            message="Email confirm token is invalid or has expired.",
        )
    sign_in_session(request, user)
    return ConfirmEmailResponse(profile_made_public=made_public, user=UserResponse.from_user(user))


# ---------------------------------------------------------------------------
# Sign-in / sign-out
# ---------------------------------------------------------------------------


@limiter.limit(_settings.signin_rate_limit)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/signin", response_model=UserResponse, response_model_exclude_none=True)
def signin(
    request: Request,
    response: Response,
    body: SigninRequest,
    auth: AuthService = Depends(get_auth_service),
) -> UserResponse:
    """Sign in with username or email. Same error for unknown account and wrong password."""
    user = auth.sign_in(body.username, body.password)
    sign_in_session(request, user)
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return UserResponse.from_user(user)


@router.get("/auth/signout")
def signout(request: Request) -> RedirectResponse:
    sign_out_session(request)
    return RedirectResponse("/", status_code=302)


# ---------------------------------------------------------------------------
# Forgotten password
# ---------------------------------------------------------------------------


@limiter.limit(_settings.forgot_rate_limit)  # [H2]
@router.post("/auth/forgot", response_model=MessageResponse)
def forgot(
    request: Request,
    body: Optional[ForgotRequest] = None,
    auth: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """A missing body or a null username gets the same 400 as an empty one."""
    auth.forgot_password(body.username if body is not None else None)
    return MessageResponse(message="Password reset sent.")


@router.get("/auth/reset/{token}")
def reset_redirect(token: str, auth: AuthService = Depends(get_auth_service)) -> RedirectResponse:
    return RedirectResponse(auth.reset_location(token), status_code=302)


@router.post("/auth/reset/{token}", response_model=UserResponse, response_model_exclude_none=True)
def reset_password(
    request: Request,
    response: Response,
    token: str,
    body: ResetPasswordRequest,
    auth: AuthService = Depends(get_auth_service),
) -> UserResponse:
    """Set a new password with a reset token and sign the user in."""
    user = auth.reset_password(token, body.new_password, body.verify_password)
    sign_in_session(request, user)
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return UserResponse.from_user(user)
