"""OAuth authorization-code exchange against Discord."""

from __future__ import annotations

import logging
import urllib.parse
from dataclasses import dataclass
from typing import Any, Final

import httpx

from .errors import IdentityExchangeFailure

log: Final = logging.getLogger("veribot")

AUTHORIZE_URL: Final[str] = "https://discord.com/api/oauth2/authorize"
TOKEN_URL: Final[str] = "https://discord.com/api/oauth2/token"
USER_URL: Final[str] = "https://discord.com/api/users/@me"
OAUTH_SCOPE: Final[str] = "identify"


@dataclass(slots=True)
class OAuthGrant:
    access_token: str
    token_type: str
    refresh_token: str | None = None
    expires_in: int | None = None
    scope: str | None = None


@dataclass(slots=True)
class DiscordIdentity:
    id: str
    username: str
    global_name: str | None = None

    @property
    def display(self) -> str:
        return self.global_name or self.username


@dataclass(slots=True)
class IdentityResult:
    identity: DiscordIdentity
    grant: OAuthGrant


class IdentityExchange:
    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
    ) -> None:
        self._client = client
        self._client_id = client_id
        self._client_secret = client_secret
        self._redirect_uri = redirect_uri

    def authorization_url(self, state_token: str) -> str:
        query = urllib.parse.urlencode(
            {
                "client_id": self._client_id,
                "redirect_uri": self._redirect_uri,
                "response_type": "code",
                "scope": OAUTH_SCOPE,
                "state": state_token,
            }
        )
        return f"{AUTHORIZE_URL}?{query}"

    async def _request_json(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = await self._client.request(method, url, **kwargs)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise IdentityExchangeFailure(f"{method} {url} failed: {exc}") from exc
        if not isinstance(data, dict):
            raise IdentityExchangeFailure(f"{method} {url} returned a non-object body")
        return data

    async def exchange_code(self, code: str) -> OAuthGrant:
        data = await self._request_json(
            "POST",
            TOKEN_URL,
            data={
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self._redirect_uri,
            },
        )
        access_token = data.get("access_token")
        if not access_token:
            raise IdentityExchangeFailure("Token response did not include an access token")
        expires_in = data.get("expires_in")
        return OAuthGrant(
            access_token=str(access_token),
            token_type=str(data.get("token_type") or "Bearer"),
            refresh_token=data.get("refresh_token"),
            expires_in=int(expires_in) if expires_in is not None else None,
            scope=data.get("scope"),
        )

    async def fetch_identity(self, grant: OAuthGrant) -> DiscordIdentity:
        data = await self._request_json(
            "GET",
            USER_URL,
            headers={"Authorization": f"Bearer {grant.access_token}"},
        )
        identity_id = data.get("id")
        if not identity_id:
            raise IdentityExchangeFailure("User response did not include an id")
        return DiscordIdentity(
            id=str(identity_id),
            username=str(data.get("username") or identity_id),
            global_name=data.get("global_name"),
        )

    async def resolve(self, code: str) -> IdentityResult:
        """Exchange ``code`` for a token and the identity behind it."""
        grant = await self.exchange_code(code)
        identity = await self.fetch_identity(grant)
        log.info("Resolved OAuth identity %s (%s)", identity.id, identity.username)
        return IdentityResult(identity=identity, grant=grant)


__all__ = ["DiscordIdentity", "IdentityExchange", "IdentityResult", "OAuthGrant"]
