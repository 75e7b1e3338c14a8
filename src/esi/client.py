"""ESI (EVE Swagger Interface) request layer.

Stateless apart from the shared httpx client: every authenticated call asks
the TokenManager for a valid access token first, which transparently renews
an expired one.

API base: https://esi.evetech.net/latest

Endpoints used:
    /status/                              — Server status (public)
    /characters/{id}/                     — Public character profile
    /characters/{id}/wallet/              — Wallet balance
    /characters/{id}/wallet/journal/      — Wallet journal (paged, newest first)
    /characters/{id}/assets/              — Assets (paged)
    /characters/{id}/skills/              — Trained skills
    /characters/{id}/standings/           — NPC standings
    /corporations/{id}/                   — Public corporation info
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from src.config import Settings, get_settings
from src.errors import RemoteApiError
from src.esi.sso import error_text
from src.esi.tokens import TokenManager

logger = logging.getLogger("evetracker.esi")


class EsiClient:
    """Thin async client for ESI.

    Usage::

        esi = EsiClient(tokens=token_manager, http_client=client)
        balance = await esi.request(character_id, "GET", f"/characters/{character_id}/wallet/")
    """

    def __init__(
        self,
        tokens: TokenManager,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            tokens:      Resolves (and renews) access tokens per character.
            settings:    Application settings (base URL, datasource, User-Agent).
            http_client: Shared httpx client; one is created if omitted and
                         must then be released with ``aclose()``.
        """
        s = settings or get_settings()
        self._tokens = tokens
        self._base_url = s.esi_base_url.rstrip("/")
        self._datasource = s.esi_datasource
        self._user_agent = s.user_agent
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    # ------------------------------------------------------------------
    # Public surface
    # ------------------------------------------------------------------

    async def request(
        self,
        character_id: int,
        method: str,
        path: str,
        body: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Call an authenticated ESI endpoint on behalf of a character.

        Raises:
            CredentialExpiredError: The token had expired and renewal was rejected.
            RemoteApiError:         Transport failure or non-2xx response.
        """
        response = await self._authed(character_id, method, path, body, params)
        return _json(response)

    async def request_all_pages(
        self,
        character_id: int,
        path: str,
        params: dict[str, Any] | None = None,
    ) -> list[Any]:
        """GET a paged collection, following the ``X-Pages`` header."""
        query = dict(params or {})
        response = await self._authed(character_id, "GET", path, None, {**query, "page": 1})
        items: list[Any] = list(_json(response) or [])
        pages = _page_count(response)
        for page in range(2, pages + 1):
            response = await self._authed(
                character_id, "GET", path, None, {**query, "page": page}
            )
            items.extend(_json(response) or [])
        if pages > 1:
            logger.debug("ESI %s: fetched %d pages, %d items", path, pages, len(items))
        return items

    async def request_public(
        self, method: str, path: str, params: dict[str, Any] | None = None
    ) -> Any:
        """Call an ESI endpoint that needs no bearer token."""
        response = await self._send(method, path, None, None, params)
        return _json(response)

    async def get_server_status(self) -> dict[str, Any]:
        return await self.request_public("GET", "/status/")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _authed(
        self,
        character_id: int,
        method: str,
        path: str,
        body: Any,
        params: dict[str, Any] | None,
    ) -> httpx.Response:
        access_token = await self._tokens.get_access_token(character_id)
        return await self._send(method, path, access_token, body, params)

    async def _send(
        self,
        method: str,
        path: str,
        access_token: str | None,
        body: Any,
        params: dict[str, Any] | None,
    ) -> httpx.Response:
        headers = {"User-Agent": self._user_agent, "Accept": "application/json"}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        query = {"datasource": self._datasource, **(params or {})}
        url = f"{self._base_url}{path}"

        try:
            response = await self._http.request(
                method, url, params=query, json=body, headers=headers
            )
        except httpx.HTTPError as exc:
            raise RemoteApiError(None, f"{method} {path} failed: {exc}") from exc

        if not response.is_success:
            message = error_text(response)
            logger.debug("ESI %s %s -> %d: %s", method, path, response.status_code, message)
            raise RemoteApiError(response.status_code, message)
        return response


def _json(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError as exc:
        raise RemoteApiError(response.status_code, f"Invalid JSON from ESI: {exc}") from exc


def _page_count(response: httpx.Response) -> int:
    try:
        return max(int(response.headers.get("X-Pages", "1")), 1)
    except ValueError:
        return 1
