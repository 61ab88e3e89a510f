"""OIDC client configuration and claim handling using Authlib."""
from __future__ import annotations

from functools import lru_cache
from typing import Any

from authlib.integrations.starlette_client import OAuth
from starlette.requests import Request

from ..core.config import settings


@lru_cache(maxsize=1)
def get_oidc_client() -> OAuth:
    """Return a configured Authlib OAuth client for the OIDC provider."""

    oauth = OAuth()
    issuer = settings.OIDC_ISSUER.rstrip("/")
    oauth.register(
        name="oidc",
        server_metadata_url=f"{issuer}/.well-known/openid-configuration",
        client_id=settings.OIDC_CLIENT_ID,
        client_secret=settings.OIDC_CLIENT_SECRET,
        client_kwargs={"scope": "openid email profile"},
    )
    return oauth


async def fetch_claims(oauth: OAuth, request: Request) -> dict[str, Any]:
    """Exchange the authorization code and resolve the user's claims."""

    token = await oauth.oidc.authorize_access_token(request)
    userinfo = token.get("userinfo")
    if not userinfo:
        userinfo = await oauth.oidc.userinfo(token=token)
    return dict(userinfo or {})


def display_name_from(claims: dict[str, Any]) -> str | None:
    return (
        claims.get("name")
        or claims.get("preferred_username")
        or claims.get("given_name")
        or claims.get("email")
    )
