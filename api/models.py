"""
API request and response models for MoveMaster REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are kept
separate from the dataclasses in auth/models.py and moves/models.py, which own
the internal domain representation. Route handlers map between the two.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import User

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/auth/register.

    Only presence is checked. The email is stored exactly as sent, so
    "A@x.com" and "a@x.com" are different accounts.
    """

    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class OAuthProviderInfo(BaseModel):
    name: str
    label: str
    login_url: str


class LoginOptions(BaseModel):
    """Body of GET /api/auth/login -- what a client needs to draw a login page."""

    login_url: str = "/api/auth/login"
    username_field: str = "username"
    password_field: str = "password"
    providers: list[OAuthProviderInfo] = []
    error_msg: Optional[str] = None


class MeResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: int
    email: str
    provider: str
    roles: list[str]

    @classmethod
    def from_user(cls, user: User) -> "MeResponse":
        return cls(
            user_id=user.id,
            email=user.email,
            provider=user.provider.value,
            roles=sorted(role.value for role in user.roles),
        )


# ---------------------------------------------------------------------------
# Error envelope
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Uniform error envelope returned by every exception handler."""

    error: ErrorDetail
