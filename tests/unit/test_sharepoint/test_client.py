"""Tests for the SharePoint REST client."""

from unittest.mock import AsyncMock

import httpx
import pytest

from sharepoint_fs.core.client import (
    ODATA_VERBOSE,
    SharePointRestClient,
    odata_literal,
)
from sharepoint_fs.core.exceptions import (
    SharePointAuthenticationError,
    SharePointNotFoundError,
    SharePointPermissionError,
    SharePointRateLimitError,
    SharePointRequestError,
)

SITE_URL = "https://contoso.sharepoint.com/sites/Test"


def make_client(handler, token="test_token", debug=False):
    client = SharePointRestClient(
        SITE_URL, debug=debug, transport=httpx.MockTransport(handler)
    )
    client.access_token = token
    return client


class TestOdataLiteral:
    """Tests for OData string literal encoding."""

    def test_encodes_slashes_and_spaces(self):
        assert odata_literal("/sites/Test/Shared Documents") == (
            "%2Fsites%2FTest%2FShared%20Documents"
        )

    def test_doubles_single_quotes(self):
        assert odata_literal("O'Brien.txt") == "O%27%27Brien.txt"


class TestSharePointRestClientInit:
    """Tests for client initialization."""

    def test_init_strips_trailing_slash(self):
        client = SharePointRestClient(SITE_URL + "/")

        assert client.site_url == SITE_URL
        assert client.access_token is None
        assert client._client is None

    def test_get_client_reuses_existing_client(self):
        client = SharePointRestClient(SITE_URL)

        assert client._get_client() is client._get_client()

    @pytest.mark.asyncio
    async def test_close_closes_client(self):
        client = SharePointRestClient(SITE_URL)
        mock_httpx_client = AsyncMock()
        client._client = mock_httpx_client

        await client.close()

        mock_httpx_client.aclose.assert_called_once()
        assert client._client is None

    @pytest.mark.asyncio
    async def test_close_handles_no_client(self):
        client = SharePointRestClient(SITE_URL)

        # Should not raise
        await client.close()


class TestCheckToken:
    """Tests for the authenticate-first guard."""

    def test_missing_token_raises(self):
        client = SharePointRestClient(SITE_URL)

        with pytest.raises(SharePointAuthenticationError) as exc_info:
            client.check_token()

        assert "please authenticate()" in str(exc_info.value)

    def test_auth_headers_merge_extra_headers(self):
        client = SharePointRestClient(SITE_URL)
        client.access_token = "abc"

        headers = client.auth_headers({"Accept": ODATA_VERBOSE})

        assert headers == {"Authorization": "Bearer abc", "Accept": ODATA_VERBOSE}

    @pytest.mark.asyncio
    async def test_request_without_token_sends_nothing(self):
        handler_calls = []

        def handler(request):
            handler_calls.append(request)
            return httpx.Response(200)

        client = make_client(handler, token=None)

        with pytest.raises(SharePointAuthenticationError):
            await client.request("GET", "/_api/web", "Unable to get web endpoint")

        assert handler_calls == []


class TestRequest:
    """Tests for request error mapping."""

    @pytest.mark.asyncio
    async def test_success_returns_response(self):
        def handler(request):
            assert request.url.path == "/sites/Test/_api/web"
            assert request.headers["Authorization"] == "Bearer test_token"
            return httpx.Response(200, json={"ok": True})

        client = make_client(handler)
        response = await client.request("GET", "/_api/web", "Unable to get web")

        assert response.json() == {"ok": True}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("status_code", "error_class"),
        [
            (401, SharePointAuthenticationError),
            (403, SharePointPermissionError),
            (404, SharePointNotFoundError),
            (429, SharePointRateLimitError),
            (400, SharePointRequestError),
            (500, SharePointRequestError),
        ],
    )
    async def test_status_codes_map_to_errors(self, status_code, error_class):
        def handler(request):
            return httpx.Response(status_code, text="error body")

        client = make_client(handler)

        with pytest.raises(error_class) as exc_info:
            await client.request("POST", "/_api/web/folders", "Unable to do it")

        assert str(exc_info.value) == (
            f"Unable to do it: server responded with status code {status_code}"
        )

    @pytest.mark.asyncio
    async def test_request_error_carries_status_code(self):
        def handler(request):
            return httpx.Response(502)

        client = make_client(handler)

        with pytest.raises(SharePointRequestError) as exc_info:
            await client.request("GET", "/_api/web", "Unable to get web")

        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_rate_limit_reads_retry_after(self):
        def handler(request):
            return httpx.Response(429, headers={"Retry-After": "30"})

        client = make_client(handler)

        with pytest.raises(SharePointRateLimitError) as exc_info:
            await client.request("GET", "/_api/web", "Unable to get web")

        assert exc_info.value.retry_after_seconds == 30

    @pytest.mark.asyncio
    async def test_connection_error_maps_to_request_error(self):
        def handler(request):
            raise httpx.ConnectError("Connection refused")

        client = make_client(handler)

        with pytest.raises(SharePointRequestError) as exc_info:
            await client.request("GET", "/_api/web", "Unable to get web")

        assert exc_info.value.status_code is None
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_request_is_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503)

        client = make_client(handler)

        with pytest.raises(SharePointRequestError):
            await client.request("GET", "/_api/web", "Unable to get web")

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_debug_mode_still_raises(self):
        def handler(request):
            return httpx.Response(500, text="detailed server error")

        client = make_client(handler, debug=True)

        with pytest.raises(SharePointRequestError):
            await client.request("GET", "/_api/web", "Unable to get web")


class TestSiteEndpoints:
    """Tests for web and contextinfo helpers."""

    @pytest.mark.asyncio
    async def test_get_web_returns_d_object(self):
        def handler(request):
            assert request.method == "GET"
            assert request.headers["Accept"] == ODATA_VERBOSE
            return httpx.Response(
                200, json={"d": {"ServerRelativeUrl": "/sites/Test"}}
            )

        client = make_client(handler)

        assert await client.get_web() == {"ServerRelativeUrl": "/sites/Test"}

    @pytest.mark.asyncio
    async def test_get_form_digest_value(self):
        def handler(request):
            assert request.method == "POST"
            assert request.url.path == "/sites/Test/_api/contextinfo"
            return httpx.Response(
                200,
                json={
                    "d": {
                        "GetContextWebInformation": {
                            "FormDigestValue": "0x1234,01 Jan 2024"
                        }
                    }
                },
            )

        client = make_client(handler)

        assert await client.get_form_digest_value() == "0x1234,01 Jan 2024"

    @pytest.mark.asyncio
    async def test_get_form_digest_value_failure(self):
        def handler(request):
            return httpx.Response(403)

        client = make_client(handler)

        with pytest.raises(SharePointPermissionError, match="form digest"):
            await client.get_form_digest_value()
