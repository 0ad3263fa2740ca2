"""
api/routes/auth.py -- Registration, form login, and session endpoints.

Routes:
  POST /api/auth/register  -- create a local ROLE_USER account
  GET  /api/auth/login     -- login options (form fields, OAuth providers)
  POST /api/auth/login     -- form login; sets JWT cookie and redirects
  POST /api/auth/logout    -- clears cookie
  GET  /api/auth/me        -- current identity (401 when unauthenticated)

Every path here sits under /api/auth/**, which the access policy leaves
public. /me therefore enforces authentication itself through get_current_user.

Security:
  POST /login is rate-limited per client IP (LOGIN_RATE_LIMIT).
  authenticate_user() provides timing equalization -- use it, never inline.
  Cache-Control: no-store on login responses.
  The ?error= query param is mapped through a whitelist, never echoed back.
"""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import JSONResponse, RedirectResponse

from api.limiter import limiter
from api.models import LoginOptions, MeResponse, OAuthProviderInfo, RegisterRequest
from auth.dependencies import get_current_user
from auth.models import User
from auth.oauth import get_enabled_providers
from auth.registration import register_user
from auth.store import UserStore
from auth.tokens import AUTH_COOKIE, authenticate_user, create_access_token, set_auth_cookie
from core.config import get_settings

logger = logging.getLogger("movemaster.api.auth")

router = APIRouter()

LOGIN_PATH = "/api/auth/login"

_ERROR_MESSAGES: dict[str, str] = {
    "bad_credentials": "Invalid email or password.",
    "oauth_failed": "OAuth authentication failed. Please try again.",
}


def safe_next(next_url: Optional[str]) -> str:
    """Validate a post-login redirect target. Only relative, same-site paths pass.

    Rejects absolute URLs and protocol-relative "//host" forms that would send
    the browser off-site after login.
    """
    if next_url and next_url.startswith("/") and not next_url.startswith("//") and "\\" not in next_url:
        return next_url
    return "/"


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


@router.post("/auth/register")
def register(request: Request, body: RegisterRequest) -> dict[str, str]:
    """Register a local account.

    Always 200. A taken email is reported as {"error": "Email already exists"}
    rather than an error status.
    """
    user_store: UserStore = request.app.state.user_store
    return register_user(user_store, body.email, body.password)


# ---------------------------------------------------------------------------
# Form login
# ---------------------------------------------------------------------------


def _login_url(next_url: Optional[str]) -> str:
    """LOGIN_PATH, carrying a same-site next target through to the form POST."""
    if next_url and safe_next(next_url) == next_url:
        return f"{LOGIN_PATH}?next={quote(next_url, safe='/')}"
    return LOGIN_PATH


def _login_rate_limit() -> str:
    return get_settings().login_rate_limit


@router.get("/auth/login", response_model=LoginOptions)
async def login_options(request: Request) -> LoginOptions:
    """Describe how to log in: the form endpoint and any OAuth providers."""
    error_msg = _ERROR_MESSAGES.get(request.query_params.get("error", ""))
    return LoginOptions(
        login_url=_login_url(request.query_params.get("next")),
        providers=[OAuthProviderInfo(**p) for p in get_enabled_providers()],
        error_msg=error_msg,
    )


# The router must register the limiter's wrapper, so @router.post goes on top.
@router.post("/auth/login")
@limiter.limit(_login_rate_limit)
def login_submit(
    request: Request,
    username: str = Form(...),
    password: str = Form(...),
) -> RedirectResponse:
    """Handle the login form. username carries the account email."""
    user_store: UserStore = request.app.state.user_store
    user = authenticate_user(user_store, username, password)
    if user is None:
        logger.info("Form login failed")
        resp = RedirectResponse(f"{LOGIN_PATH}?error=bad_credentials", status_code=302)
        resp.headers["Cache-Control"] = "no-store"
        return resp

    token = create_access_token(user)
    resp = RedirectResponse(safe_next(request.query_params.get("next")), status_code=302)
    set_auth_cookie(resp, token)
    resp.headers["Cache-Control"] = "no-store"
    logger.info("Form login succeeded for user id=%d", user.id)
    return resp


@router.post("/auth/logout")
async def logout() -> JSONResponse:
    """Clear the JWT cookie and end the session."""
    resp = JSONResponse(content={"message": "Logged out."})
    resp.delete_cookie(AUTH_COOKIE)
    return resp


@router.get("/auth/me", response_model=MeResponse)
def me(current_user: User = Depends(get_current_user)) -> MeResponse:
    return MeResponse.from_user(current_user)
