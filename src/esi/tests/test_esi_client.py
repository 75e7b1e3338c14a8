"""Tests for EsiClient — headers, pagination and error mapping."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from src.errors import CredentialExpiredError, RemoteApiError
from src.esi.client import EsiClient


@pytest.fixture
def tokens() -> MagicMock:
    tokens = MagicMock()
    tokens.get_access_token = AsyncMock(return_value="access-token")
    return tokens


def _client(handler, tokens, settings) -> EsiClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return EsiClient(tokens, settings=settings, http_client=http)


class TestAuthenticatedRequest:
    @pytest.mark.asyncio
    async def test_request_sends_bearer_and_datasource(self, tokens, settings) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=1234567.89)

        esi = _client(handler, tokens, settings)
        balance = await esi.request(42, "GET", "/characters/42/wallet/")

        assert balance == 1234567.89
        request = seen[0]
        assert request.url.path == "/latest/characters/42/wallet/"
        assert request.url.params["datasource"] == "tranquility"
        assert request.headers["Authorization"] == "Bearer access-token"
        assert request.headers["User-Agent"] == settings.user_agent
        tokens.get_access_token.assert_awaited_once_with(42)

    @pytest.mark.asyncio
    async def test_request_passes_extra_params(self, tokens, settings) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[])

        await _client(handler, tokens, settings).request(
            42, "GET", "/characters/42/wallet/journal/", params={"page": 2}
        )
        assert seen[0].url.params["page"] == "2"
        assert seen[0].url.params["datasource"] == "tranquility"

    @pytest.mark.asyncio
    async def test_empty_body_returns_none(self, tokens, settings) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(204)

        assert await _client(handler, tokens, settings).request(42, "DELETE", "/x/") is None

    @pytest.mark.asyncio
    async def test_non_2xx_raises_remote_api_error(self, tokens, settings) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"error": "Character not found"})

        with pytest.raises(RemoteApiError) as exc_info:
            await _client(handler, tokens, settings).request(42, "GET", "/characters/42/")
        assert exc_info.value.status == 404
        assert exc_info.value.message == "Character not found"

    @pytest.mark.asyncio
    async def test_transport_error_raises_remote_api_error(self, tokens, settings) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(RemoteApiError) as exc_info:
            await _client(handler, tokens, settings).request(42, "GET", "/characters/42/")
        assert exc_info.value.status is None

    @pytest.mark.asyncio
    async def test_invalid_json_raises_remote_api_error(self, tokens, settings) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>maintenance</html>")

        with pytest.raises(RemoteApiError, match="Invalid JSON"):
            await _client(handler, tokens, settings).request(42, "GET", "/characters/42/")

    @pytest.mark.asyncio
    async def test_credential_expiry_propagates_without_http_call(self, tokens, settings) -> None:
        tokens.get_access_token = AsyncMock(side_effect=CredentialExpiredError(42))
        handler = MagicMock()

        with pytest.raises(CredentialExpiredError):
            await _client(handler, tokens, settings).request(42, "GET", "/characters/42/")
        handler.assert_not_called()


class TestPagination:
    @pytest.mark.asyncio
    async def test_request_all_pages_follows_x_pages(self, tokens, settings) -> None:
        pages: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            page = request.url.params["page"]
            pages.append(page)
            return httpx.Response(
                200,
                json=[{"item_id": int(page) * 10}, {"item_id": int(page) * 10 + 1}],
                headers={"X-Pages": "3"},
            )

        items = await _client(handler, tokens, settings).request_all_pages(
            42, "/characters/42/assets/"
        )

        assert pages == ["1", "2", "3"]
        assert [i["item_id"] for i in items] == [10, 11, 20, 21, 30, 31]

    @pytest.mark.asyncio
    async def test_missing_x_pages_means_single_page(self, tokens, settings) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(200, json=[{"item_id": 1}])

        items = await _client(handler, tokens, settings).request_all_pages(
            42, "/characters/42/assets/"
        )
        assert calls == 1
        assert items == [{"item_id": 1}]

    @pytest.mark.asyncio
    async def test_failed_page_raises(self, tokens, settings) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.params["page"] == "2":
                return httpx.Response(502, text="Bad Gateway")
            return httpx.Response(200, json=[{"item_id": 1}], headers={"X-Pages": "2"})

        with pytest.raises(RemoteApiError) as exc_info:
            await _client(handler, tokens, settings).request_all_pages(
                42, "/characters/42/assets/"
            )
        assert exc_info.value.status == 502


class TestPublicRequests:
    @pytest.mark.asyncio
    async def test_public_request_has_no_authorization(self, tokens, settings) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"name": "Test Corp", "ticker": "TST"})

        data = await _client(handler, tokens, settings).request_public(
            "GET", "/corporations/98000001/"
        )

        assert data["ticker"] == "TST"
        assert "Authorization" not in seen[0].headers
        tokens.get_access_token.assert_not_called()

    @pytest.mark.asyncio
    async def test_get_server_status(self, tokens, settings) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/latest/status/"
            return httpx.Response(200, json={"players": 21345, "server_version": "2547291"})

        status = await _client(handler, tokens, settings).get_server_status()
        assert status["players"] == 21345
