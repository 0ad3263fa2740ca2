"""
auth/dependencies.py -- Identity resolution and FastAPI Depends() helpers.

Three authentication methods are checked in priority order:
  1. JWT cookie ("access_token") -- set by form login and the OAuth callback.
  2. Authorization: Bearer <token> -- API clients holding a JWT.
  3. Authorization: Basic <base64(email:password)> -- HTTP Basic.

All three converge on the same User object, reloaded from the UserStore.

try_get_current_user() is the soft variant (returns None on failure) and is
what the access middleware calls. It memoizes its result on request.state so
route dependencies do not repeat the lookup (or the bcrypt work for Basic).
get_current_user() wraps it and raises HTTP 401 if unauthenticated.

Layer rule: no imports from api/ or moves/.
"""

from __future__ import annotations

import base64
import binascii
import logging

from fastapi import HTTPException, Request

from auth.models import User
from auth.store import UserStore
from auth.tokens import AUTH_COOKIE, authenticate_user, decode_access_token

logger = logging.getLogger("movemaster.auth")

_UNRESOLVED = object()


def _parse_basic(header_value: str) -> tuple[str, str] | None:
    """Split a Basic credential into (email, password). None if malformed."""
    try:
        decoded = base64.b64decode(header_value, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None
    email, sep, password = decoded.partition(":")
    if not sep:
        return None
    return email, password


def _resolve_user(request: Request) -> User | None:
    user_store: UserStore = request.app.state.user_store
    auth_header = request.headers.get("Authorization", "")
    scheme, _, credentials = auth_header.partition(" ")

    # 1. Cookie, 2. Bearer. A stale cookie must not shadow a valid header.
    tokens = [request.cookies.get(AUTH_COOKIE)]
    if scheme.lower() == "bearer":
        tokens.append(credentials.strip())

    for token in tokens:
        if not token:
            continue
        payload = decode_access_token(token)
        if payload:
            user = user_store.get_by_id(payload["user_id"])
            if user is not None:
                return user

    # 3. HTTP Basic
    if scheme.lower() == "basic":
        parsed = _parse_basic(credentials.strip())
        if parsed is not None:
            user = authenticate_user(user_store, *parsed)
            if user is not None:
                return user
        logger.info("HTTP Basic authentication failed")

    return None


def try_get_current_user(request: Request) -> User | None:
    """Authenticate the request via cookie, Bearer token, or HTTP Basic.

    Returns the User on success, None on any failure. Never raises.
    """
    cached = getattr(request.state, "user", _UNRESOLVED)
    if cached is not _UNRESOLVED:
        return cached
    user = _resolve_user(request)
    request.state.user = user
    return user


def get_current_user(request: Request) -> User:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: User = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
            headers={"WWW-Authenticate": 'Basic realm="movemaster"'},
        )
    return user
