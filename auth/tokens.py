"""
auth/tokens.py -- JWT session tokens and password authentication.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       user_id, email, roles, and expiry. Verification returns None on any
       failure -- the access policy turns that into a 401. The roles claim is
       informational only; the identity resolver reloads the user from the
       store so a stale token never carries a revoked role.

  Password login: authenticate_user() always runs bcrypt, against a dummy
       hash when the email is unknown, so response time does not reveal
       whether an email is registered.

  Cookie: the same httpOnly access_token cookie is issued by form login and
       by the OAuth callback, so every login mechanism converges on one
       session contract.

Layer rule: no imports from api/ or moves/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from jose import JWTError, jwt

from auth.passwords import DUMMY_HASH, verify_password
from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("movemaster.auth")

_settings = get_settings()

_ALGORITHM = "HS256"

AUTH_COOKIE = "access_token"

# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def create_access_token(user: User, expire_seconds: int = 0) -> str:
    """Encode a signed JWT for the given user.

    Args:
        user:           A stored user (id must be set).
        expire_seconds: Session duration in seconds. If 0 (default), uses
                        Settings.token_expire_seconds.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    expire = datetime.now(timezone.utc) + timedelta(seconds=duration)
    payload = {
        "sub": user.email,
        "user_id": user.id,
        "roles": sorted(role.value for role in user.roles),
        "exp": expire,
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str) -> dict | None:
    """Decode and verify a JWT. Returns the payload dict or None on any failure."""
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if "user_id" not in payload:
        return None
    return payload


# ---------------------------------------------------------------------------
# Password authentication (constant-time)
# ---------------------------------------------------------------------------


def authenticate_user(store: UserStore, email: str, password: str) -> User | None:
    """Resolve a local email/password login to a User, or None.

    Always runs bcrypt whether or not the user exists:
    - Unknown email or OAuth-only account: bcrypt runs against DUMMY_HASH
    - Wrong password: bcrypt runs against the real hash
    """
    user = store.get_by_email(email)
    if user is None or user.hashed_password is None:
        verify_password(password, DUMMY_HASH)
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user


# ---------------------------------------------------------------------------
# Cookie helper
# ---------------------------------------------------------------------------


def set_auth_cookie(response, token: str, expire_seconds: int = 0) -> None:
    """Write the JWT as an httpOnly cookie on the response.

    samesite="lax" keeps the cookie off cross-site POSTs; secure is driven
    by SECURE_COOKIES so local http development still works. max_age matches
    the JWT expiry so both expire together.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    response.set_cookie(
        AUTH_COOKIE,
        value=token,
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
        max_age=duration,
    )
