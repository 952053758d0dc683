"""
API request and response models for the account endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclass in users/models.py, which owns the
internal representation. Route handlers map between the two.

Wire format is camelCase (firstName, displayUsername, emailTemporary, ...);
the alias generator maps it onto snake_case attributes, and populate_by_name
lets Python code use the attribute names.

Sanitization: UserResponse is built from an explicit field list in
from_user(). hashed_password and the token columns have no field here, so
they cannot be serialized even by accident.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from users.models import User

_WIRE = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class SignupRequest(BaseModel):
    """Request body for POST /api/auth/signup.

    Unknown keys (roles, public, displayUsername, provider, ...) are ignored:
    those fields are assigned by the server.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)

    username: str = Field(min_length=1, max_length=34)
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=1, max_length=128)
    first_name: str = Field(default="", max_length=255)
    last_name: str = Field(default="", max_length=255)


class SigninRequest(BaseModel):
    """username accepts either the username or the email address."""

    model_config = _WIRE

    username: str = Field(default="", max_length=255)
    password: str = Field(default="", max_length=128)


class ForgotRequest(BaseModel):
    """username accepts the username or the email address. null counts as empty."""

    model_config = _WIRE

    username: Optional[str] = Field(default=None, max_length=255)


class ResetPasswordRequest(BaseModel):
    model_config = _WIRE

    new_password: str = Field(default="", max_length=128)
    verify_password: str = Field(default="", max_length=128)


class ChangePasswordRequest(BaseModel):
    model_config = _WIRE

    current_password: str = Field(default="", max_length=128)
    new_password: str = Field(default="", max_length=128)
    verify_password: str = Field(default="", max_length=128)


class ProfileUpdate(BaseModel):
    """Request body for PUT /api/users. All fields optional; unset means unchanged."""

    model_config = _WIRE

    first_name: Optional[str] = Field(default=None, max_length=255)
    last_name: Optional[str] = Field(default=None, max_length=255)
    gender: Optional[str] = Field(default=None, max_length=30)
    tagline: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = Field(default=None, max_length=10000)
    languages: Optional[list[str]] = Field(default=None, max_length=50)
    locale: Optional[str] = Field(default=None, max_length=10)
    avatar_source: Optional[str] = Field(default=None, max_length=20)
    email: Optional[str] = Field(default=None, max_length=255)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class PublicUserResponse(BaseModel):
    """What other signed-in users see: no email addresses, no roles."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str = Field(alias="_id")
    username: str
    display_username: str
    display_name: str
    first_name: str
    last_name: str
    email_hash: str
    gender: str
    tagline: str
    description: str
    languages: list[str]
    locale: str
    avatar_source: str
    avatar_uploaded: bool
    public: bool
    created: str
    updated: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "PublicUserResponse":
        return cls(**_profile_fields(user))


class UserResponse(PublicUserResponse):
    """Sanitized user record for the account owner."""

    email: str
    email_temporary: str
    roles: list[str]
    provider: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        """Factory Method: the mapping lives next to the output model."""
        return cls(
            **_profile_fields(user),
            email=user.email,
            email_temporary=user.email_temporary,
            roles=list(user.roles),
            provider=user.provider,
        )


def _profile_fields(user: User) -> dict:
    return {
        "id": str(user.id),
        "username": user.username,
        "display_username": user.display_username,
        "display_name": user.display_name,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "email_hash": user.email_hash,
        "gender": user.gender,
        "tagline": user.tagline,
        "description": user.description,
        "languages": list(user.languages),
        "locale": user.locale,
        "avatar_source": user.avatar_source,
        "avatar_uploaded": user.avatar_uploaded,
        "public": user.public,
        "created": user.created or "",
        "updated": user.updated,
    }


class ConfirmEmailResponse(BaseModel):
    """Response for POST /api/auth/confirm-email/{token}.

    user is None (and omitted) when the token did not match anyone.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    profile_made_public: bool
    user: Optional[UserResponse] = None
    message: Optional[str] = None


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class FieldError(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    message: str


class ErrorResponse(BaseModel):
    """Error envelope returned on every 4xx/5xx response."""

    model_config = ConfigDict(frozen=True)

    message: str
    code: str
    fields: Optional[list[FieldError]] = None


class HealthResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
