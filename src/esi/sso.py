"""EVE SSO token renewal.

Only the refresh-token grant lives here; the authorization-code handshake
happens in the web tier when a character first logs in.

Token endpoint: https://login.eveonline.com/v2/oauth/token
Client authentication: HTTP Basic (client_id:client_secret)
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import AsyncGenerator, Callable

import httpx

from src.config import Settings, get_settings
from src.errors import CredentialExpiredError, RemoteApiError
from src.models.base import utc_now

logger = logging.getLogger("evetracker.esi.sso")

# SSO answers a revoked or expired refresh token with one of these
_REJECTED_STATUSES = frozenset({400, 401})


@dataclass
class OAuthTokens:
    """OAuth token pair returned after a refresh.

    Attributes:
        access_token:  Bearer token for ESI calls.
        refresh_token: Long-lived token used to obtain the next access_token.
        expires_at:    UTC datetime when the access_token expires.
        token_type:    Token type, typically "Bearer".
        extra:         Any additional fields returned by SSO.
    """

    access_token: str
    refresh_token: str
    expires_at: datetime
    token_type: str = "Bearer"
    extra: dict = field(default_factory=dict)


class SsoClient:
    """Exchange refresh tokens for new access tokens at EVE SSO."""

    def __init__(
        self,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the SSO client.

        Args:
            settings:    Application settings (client id/secret, token URL).
            http_client: Optional shared httpx client (also used in tests).
            clock:       Returns the current UTC time.
        """
        s = settings or get_settings()
        self._token_url = s.sso_token_url
        self._auth = (s.eve_client_id, s.eve_client_secret)
        self._user_agent = s.user_agent
        self._http_client = http_client
        self._clock = clock

    @asynccontextmanager
    async def _session(self) -> AsyncGenerator[httpx.AsyncClient, None]:
        if self._http_client is not None:
            yield self._http_client
        else:
            async with httpx.AsyncClient() as client:
                yield client

    async def refresh(self, character_id: int, refresh_token: str) -> OAuthTokens:
        """Exchange a refresh token for a new token pair.

        Args:
            character_id:  Character the token belongs to (for errors and logs).
            refresh_token: Current refresh token.

        Returns:
            New OAuthTokens; the refresh token is rotated when SSO sends one.

        Raises:
            CredentialExpiredError: SSO rejected the refresh token.
            RemoteApiError:         Transport failure or unexpected response.
        """
        logger.debug("SSO: refreshing token for character %s", character_id)
        try:
            async with self._session() as client:
                response = await client.post(
                    self._token_url,
                    data={"grant_type": "refresh_token", "refresh_token": refresh_token},
                    auth=self._auth,
                    headers={"User-Agent": self._user_agent},
                )
        except httpx.HTTPError as exc:
            raise RemoteApiError(None, f"SSO request failed: {exc}") from exc

        if response.status_code in _REJECTED_STATUSES:
            raise CredentialExpiredError(character_id, error_text(response))
        if not response.is_success:
            raise RemoteApiError(response.status_code, error_text(response))

        try:
            data = response.json()
            access_token = data["access_token"]
            expires_in = int(data.get("expires_in", 1199))
        except (ValueError, KeyError, TypeError) as exc:
            raise RemoteApiError(response.status_code, f"Malformed SSO response: {exc}") from exc
        if expires_in <= 0:
            raise RemoteApiError(response.status_code, f"Non-positive expires_in: {expires_in}")

        return OAuthTokens(
            access_token=access_token,
            refresh_token=data.get("refresh_token") or refresh_token,
            expires_at=self._clock() + timedelta(seconds=expires_in),
            token_type=data.get("token_type", "Bearer"),
            extra={
                k: v
                for k, v in data.items()
                if k not in ("access_token", "refresh_token", "expires_in", "token_type")
            },
        )


def error_text(response: httpx.Response) -> str:
    """Pull a readable message out of an SSO or ESI error response."""
    try:
        data = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    if isinstance(data, dict):
        return str(
            data.get("error_description") or data.get("error") or data.get("message") or data
        )
    return str(data)[:200]
