# Token exchange and validation against the Twitch identity endpoints.
# Created: 2026-10-19

from __future__ import annotations

import logging

import httpx
from pydantic import BaseModel, ValidationError, field_validator

from twitchdesk.config import Settings, get_settings
from twitchdesk.errors import DecodeError, NetworkError

logger = logging.getLogger(__name__)


class TokenResult(BaseModel):
    """Raw token endpoint response."""

    access_token: str
    token_type: str
    expires_in: int


class Identity(BaseModel):
    """Who the token belongs to and what it may do."""

    login: str
    scopes: list[str] = []
    user_id: str | None = None
    client_id: str | None = None

    @field_validator("scopes", mode="before")
    @classmethod
    def _dedupe_scopes(cls, value):
        # Twitch sends null for tokens without scopes
        if value is None:
            return []
        return list(dict.fromkeys(value))


class TokenExchanger:
    """Exchanges authorization codes and validates access tokens.

    Each call is a single round trip with no retry. Transport failures and
    non-2xx statuses raise :class:`NetworkError`; bodies that don't fit the
    expected schema raise :class:`DecodeError`.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings or get_settings()
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.settings.http_timeout, transport=self._transport)

    async def exchange(
        self,
        code: str,
        code_verifier: str,
        client_id: str,
        redirect_uri: str,
    ) -> TokenResult:
        """Exchange an authorization code plus PKCE verifier for a token."""
        data = {
            "client_id": client_id,
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "code_verifier": code_verifier,
        }
        async with self._client() as client:
            resp = await self._send(client, "POST", self.settings.token_url, data=data)
        token = _decode(resp, TokenResult)
        logger.info("Exchanged authorization code (expires in %ds)", token.expires_in)
        return token

    async def validate(self, access_token: str) -> Identity:
        """Resolve the login and granted scopes of an access token."""
        headers = {"Authorization": f"Bearer {access_token}"}
        async with self._client() as client:
            resp = await self._send(client, "GET", self.settings.validate_url, headers=headers)
        identity = _decode(resp, Identity)
        logger.info("Validated token for %s", identity.login)
        return identity

    @staticmethod
    async def _send(client: httpx.AsyncClient, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            resp = await client.request(method, url, **kwargs)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise NetworkError(
                f"{method} {url} returned HTTP {status}: {_error_message(e.response)}",
                status_code=status,
            ) from e
        except httpx.HTTPError as e:
            raise NetworkError(f"{method} {url} failed: {e}") from e
        return resp


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body)
    return str(body)


def _decode(resp: httpx.Response, model: type[BaseModel]):
    try:
        return model.model_validate(resp.json())
    except (ValueError, ValidationError) as e:
        raise DecodeError(f"Unexpected response from {resp.request.url}: {e}") from e
