"""
auth/oauth.py -- Authlib OAuth2 provider configuration.

Reads configuration from core.config.get_settings() at module load to decide
which providers are active. Only providers with both client ID and secret
configured get registered.

Security notes:
  Email verification is mandatory. get_oauth_user_info() raises ValueError
  when the provider does not vouch for the email. An unverified address could
  belong to someone else, and the email is what links the external login to a
  MoveMaster account.

  The OAuth state parameter (CSRF protection) is handled by authlib through
  Starlette SessionMiddleware.

Supported providers:
  google   -- OIDC discovery; email_verified claim in the id_token.
  facebook -- Authorization code flow with static endpoints; the Graph API
              only returns an email the user has confirmed with Facebook.

Layer rule: no imports from api/ or moves/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging

from authlib.integrations.starlette_client import OAuth

from auth.models import Provider
from core.config import get_settings

logger = logging.getLogger("movemaster.auth.oauth")

_FACEBOOK_GRAPH = "https://graph.facebook.com/v19.0/"

# ---------------------------------------------------------------------------
# Authlib OAuth registry
# ---------------------------------------------------------------------------

oauth = OAuth()

_cfg = get_settings()

if _cfg.google_client_id and _cfg.google_client_secret:
    oauth.register(
        name=Provider.GOOGLE.value,
        client_id=_cfg.google_client_id,
        client_secret=_cfg.google_client_secret,
        server_metadata_url="https://accounts.google.com/.well-known/openid-configuration",
        client_kwargs={"scope": "openid email profile"},
    )
    logger.info("Google OAuth provider registered")

if _cfg.facebook_client_id and _cfg.facebook_client_secret:
    oauth.register(
        name=Provider.FACEBOOK.value,
        client_id=_cfg.facebook_client_id,
        client_secret=_cfg.facebook_client_secret,
        access_token_url=_FACEBOOK_GRAPH + "oauth/access_token",  # noqa: S106 -- URL, not a password
        authorize_url="https://www.facebook.com/v19.0/dialog/oauth",
        api_base_url=_FACEBOOK_GRAPH,
        client_kwargs={"scope": "email public_profile"},
    )
    logger.info("Facebook OAuth provider registered")


# ---------------------------------------------------------------------------
# Provider metadata
# ---------------------------------------------------------------------------


def get_enabled_providers() -> list[dict]:
    """Return {"name", "label", "login_url"} for every configured provider.

    The login options endpoint renders these as "sign in with" links.
    """
    cfg = get_settings()
    providers: list[dict] = []
    if cfg.google_client_id and cfg.google_client_secret:
        providers.append({"name": "google", "label": "Google", "login_url": "/oauth2/authorization/google"})
    if cfg.facebook_client_id and cfg.facebook_client_secret:
        providers.append({"name": "facebook", "label": "Facebook", "login_url": "/oauth2/authorization/facebook"})
    return providers


def parse_provider(name: str) -> Provider | None:
    """Map a URL path segment to an external Provider. "local" is not one."""
    try:
        provider = Provider(name)
    except ValueError:
        return None
    return None if provider is Provider.LOCAL else provider


# ---------------------------------------------------------------------------
# Email / subject extraction -- provider-specific normalization
# ---------------------------------------------------------------------------


async def get_oauth_user_info(client, provider: Provider, token: dict) -> tuple[str, str]:
    """Extract (email, subject_id) from a provider token response.

    Raises:
        ValueError: If a verified email cannot be confirmed.
    """
    if provider is Provider.GOOGLE:
        return _get_oidc_user_info(token, provider)
    if provider is Provider.FACEBOOK:
        return await _get_facebook_user_info(client, token)
    raise ValueError(f"Unknown OAuth provider: {provider!r}")


async def _get_facebook_user_info(client, token: dict) -> tuple[str, str]:
    """Fetch id and email from GET /me.

    Facebook omits the email field when the user signed up by phone or never
    confirmed an address; that is treated as unverified.
    """
    resp = await client.get("me", params={"fields": "id,email"}, token=token)
    resp.raise_for_status()
    profile = resp.json()

    email = profile.get("email")
    subject_id = profile.get("id")
    if not email or not subject_id:
        raise ValueError("facebook OAuth: no confirmed email on the account")
    return email, str(subject_id)


def _get_oidc_user_info(token: dict, provider: Provider) -> tuple[str, str]:
    """Extract (email, subject_id) from an OIDC id_token's userinfo claims.

    email_verified missing is treated as unverified.
    """
    userinfo = token.get("userinfo")
    if not userinfo:
        raise ValueError(f"{provider.value} OAuth: no userinfo in token response")

    if not userinfo.get("email_verified", False):
        raise ValueError(f"{provider.value} OAuth: email is not verified")

    email = userinfo.get("email")
    subject_id = userinfo.get("sub")
    if not email or not subject_id:
        raise ValueError(f"{provider.value} OAuth: missing email or sub claim in userinfo")

    return email, subject_id
