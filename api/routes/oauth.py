"""
api/routes/oauth.py -- OAuth2 login flow (Google, Facebook).

Routes:
  GET /oauth2/authorization/{provider}  -- redirect to the provider
  GET /oauth2/callback/{provider}       -- code exchange, session cookie, redirect

Both live under /oauth2/**, which the access policy leaves public.

A successful callback always lands on OAUTH_SUCCESS_URL ("/" by default),
whatever page started the flow, and issues the same access_token cookie as
form login. Any failure redirects to the login options with
?error=oauth_failed.
"""

from __future__ import annotations

import logging

import httpx
from authlib.integrations.starlette_client import OAuthError
from fastapi import APIRouter, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.exc import IntegrityError

from api.routes.auth import LOGIN_PATH
from auth.models import Provider, Role, User
from auth.oauth import get_oauth_user_info, parse_provider
from auth.store import UserStore
from auth.tokens import create_access_token, set_auth_cookie
from core.config import get_settings

logger = logging.getLogger("movemaster.api.oauth")

router = APIRouter()

_FAILED = f"{LOGIN_PATH}?error=oauth_failed"


def _client_for(request: Request, provider_name: str):
    """Return (provider, authlib client) or (None, None) for unknown/unconfigured providers."""
    provider = parse_provider(provider_name)
    if provider is None:
        return None, None
    client = request.app.state.oauth.create_client(provider.value)
    if client is None:
        return None, None
    return provider, client


@router.get("/oauth2/authorization/{provider}")
async def oauth_redirect(request: Request, provider: str):
    """Redirect the browser to the provider's authorization page."""
    resolved, client = _client_for(request, provider)
    if client is None:
        return RedirectResponse(_FAILED, status_code=302)
    redirect_uri = str(request.url_for("oauth_callback", provider=resolved.value))
    return await client.authorize_redirect(request, redirect_uri)


@router.get("/oauth2/callback/{provider}", name="oauth_callback")
async def oauth_callback(request: Request, provider: str) -> RedirectResponse:
    """Handle the provider callback and open a session.

    Flow:
      1. Exchange the authorization code (authlib checks state via the session).
      2. Extract a verified email -- ValueError when unverified.
      3. Find the account by email, or create one tagged with the provider
         and holding ROLE_USER.
      4. Issue the JWT cookie and redirect to OAUTH_SUCCESS_URL.
    """
    resolved, client = _client_for(request, provider)
    if client is None:
        return RedirectResponse(_FAILED, status_code=302)

    try:
        token = await client.authorize_access_token(request)
    except OAuthError:
        logger.exception("OAuth token exchange failed for provider %r", resolved.value)
        return RedirectResponse(_FAILED, status_code=302)

    try:
        email, _subject = await get_oauth_user_info(client, resolved, token)
    except ValueError:
        logger.warning("OAuth login rejected: unverified or missing email from %r", resolved.value)
        return RedirectResponse(_FAILED, status_code=302)
    except httpx.HTTPError:
        logger.exception("OAuth profile lookup failed for provider %r", resolved.value)
        return RedirectResponse(_FAILED, status_code=302)

    user_store: UserStore = request.app.state.user_store
    user = _find_or_create(user_store, email, resolved)

    resp = RedirectResponse(get_settings().oauth_success_url, status_code=302)
    set_auth_cookie(resp, create_access_token(user))
    resp.headers["Cache-Control"] = "no-store"
    logger.info("OAuth login succeeded for user id=%d via %s", user.id, resolved.value)
    return resp


def _find_or_create(store: UserStore, email: str, provider: Provider) -> User:
    user = store.get_by_email(email)
    if user is not None:
        return user
    try:
        user_id = store.create_user(User(email=email, provider=provider, roles=frozenset({Role.USER})))
    except IntegrityError:
        # A concurrent callback or registration created the account first.
        existing = store.get_by_email(email)
        if existing is None:
            raise
        return existing
    created = store.get_by_id(user_id)
    if created is None:
        raise RuntimeError("User not found after write.")
    return created
