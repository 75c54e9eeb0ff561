"""
auth/oauth.py -- Authlib OAuth/OIDC provider registry.

A provider is active when both its client id and secret are set in the
environment (GITHUB_CLIENT_ID / GITHUB_CLIENT_SECRET, GOOGLE_CLIENT_ID /
GOOGLE_CLIENT_SECRET). Active providers are registered on the module-level
OAuth() registry, which api/main.py stores on app.state.oauth.

Security notes:
  Only verified emails are accepted: get_oauth_user_info() raises ValueError
  otherwise. The callback links provider identities to existing users by
  email, so an unverified address would let anyone claim an account.

  The OAuth state parameter is kept in the Starlette SessionMiddleware
  session by authlib.

Layer rule: no imports from api/, web/, rbac/, uploads/, or gatekeeper/.
"""

from __future__ import annotations

import logging

from authlib.integrations.starlette_client import OAuth

from core.config import Settings, get_settings

logger = logging.getLogger("starterkit.auth.oauth")

# name -> (label, authlib register() kwargs without the credentials)
_PROVIDERS: dict[str, tuple[str, dict]] = {
    "github": (
        "GitHub",
        {
            "access_token_url": "https://github.com/login/oauth/access_token",  # noqa: S106 -- URL, not a password
            "authorize_url": "https://github.com/login/oauth/authorize",
            "api_base_url": "https://api.github.com/",
            "client_kwargs": {"scope": "read:user user:email"},
        },
    ),
    "google": (
        "Google",
        {
            "server_metadata_url": "https://accounts.google.com/.well-known/openid-configuration",
            "client_kwargs": {"scope": "openid email profile"},
        },
    ),
}


def _credentials(settings: Settings, name: str) -> tuple[str, str] | None:
    client_id = getattr(settings, f"{name}_client_id")
    client_secret = getattr(settings, f"{name}_client_secret")
    if client_id and client_secret:
        return client_id, client_secret
    return None


def build_registry(settings: Settings) -> OAuth:
    """Return an OAuth registry holding every configured provider."""
    registry = OAuth()
    for name, (label, endpoints) in _PROVIDERS.items():
        creds = _credentials(settings, name)
        if creds is None:
            continue
        registry.register(name=name, client_id=creds[0], client_secret=creds[1], **endpoints)
        logger.info("%s OAuth provider registered", label)
    return registry


oauth = build_registry(get_settings())


def get_enabled_providers() -> list[dict]:
    """Return {"name", "label"} for every configured provider, in a fixed order."""
    settings = get_settings()
    return [
        {"name": name, "label": label}
        for name, (label, _) in _PROVIDERS.items()
        if _credentials(settings, name) is not None
    ]


async def get_oauth_user_info(client, provider: str, token: dict) -> dict:
    """Normalize a provider token response into {"email", "subject", "name", "image"}.

    Raises:
        ValueError: If a verified email cannot be confirmed.
    """
    if provider == "github":
        return await _github_user_info(client, token)
    if provider == "google":
        return _oidc_user_info(token, provider)
    raise ValueError(f"Unknown OAuth provider: {provider!r}")


async def _github_user_info(client, token: dict) -> dict:
    # /user has no email for private addresses; /user/emails lists them
    # with primary/verified flags.
    profile_resp = await client.get("user", token=token)
    profile_resp.raise_for_status()
    profile = profile_resp.json()

    emails_resp = await client.get("user/emails", token=token)
    emails_resp.raise_for_status()
    email = next(
        (e["email"] for e in emails_resp.json() if e.get("primary") and e.get("verified")),
        None,
    )
    if not email:
        raise ValueError("GitHub OAuth: no primary verified email found.")

    return {
        "email": email,
        "subject": str(profile["id"]),
        "name": profile.get("name") or profile.get("login") or email,
        "image": profile.get("avatar_url"),
    }


def _oidc_user_info(token: dict, provider: str) -> dict:
    claims = token.get("userinfo") or {}
    if not claims.get("email_verified", False):
        raise ValueError(f"{provider} OAuth: email is missing or not verified.")
    if not claims.get("email") or not claims.get("sub"):
        raise ValueError(f"{provider} OAuth: missing email or sub claim.")
    return {
        "email": claims["email"],
        "subject": claims["sub"],
        "name": claims.get("name") or claims["email"],
        "image": claims.get("picture"),
    }
