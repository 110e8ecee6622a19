"""SharePoint REST API client wrapper.

Provides low-level HTTP operations against a site's ``/_api`` endpoints:
- Bearer token handling (the token itself comes from SharePointAuthService)
- Request digest retrieval for state-changing calls
- Proper error mapping to SharePoint exception classes

Requests are sent exactly once. Nothing here retries or backs off.
"""

from typing import Any
from urllib.parse import quote

import httpx

from sharepoint_fs.core.exceptions import (
    SharePointAuthenticationError,
    SharePointError,
    SharePointNotFoundError,
    SharePointPermissionError,
    SharePointRateLimitError,
    SharePointRequestError,
)
from sharepoint_fs.core.logging import get_logger

logger = get_logger(__name__)

ODATA_VERBOSE = "application/json;odata=verbose"
ODATA_NOMETADATA = "application/json;odata=nometadata"


def odata_literal(value: str) -> str:
    """Encode a value for use inside a quoted OData string literal in a URL.

    Single quotes are doubled per OData rules, then everything is
    percent-encoded.
    """
    return quote(value.replace("'", "''"), safe="")


class SharePointRestClient:
    """Low-level SharePoint REST client for a single site.

    Attributes:
        site_url: Absolute site URL, e.g. https://example.sharepoint.com/sites/Site
        access_token: Bearer token set after authentication
    """

    def __init__(
        self,
        site_url: str,
        timeout: float = 60.0,
        debug: bool = False,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            site_url: Absolute URL of the SharePoint site
            timeout: Per-request timeout in seconds
            debug: Log response status and body of failed requests
            transport: Optional httpx transport (used by tests)
        """
        self.site_url = site_url.rstrip("/")
        self.access_token: str | None = None
        self._timeout = timeout
        self._debug = debug
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client bound to the site URL."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.site_url,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.debug("sharepoint_client_closed")

    def check_token(self) -> str:
        """Return the access token, or raise if authenticate() has not run.

        Raises:
            SharePointAuthenticationError: If no token is available
        """
        if not self.access_token:
            raise SharePointAuthenticationError(
                "Access token not available - please authenticate() prior to "
                "calling this function"
            )
        return self.access_token

    def auth_headers(self, headers: dict[str, str] | None = None) -> dict[str, str]:
        """Authorization header merged with any extra headers."""
        base_headers = {"Authorization": f"Bearer {self.check_token()}"}
        if headers is not None:
            return base_headers | headers
        return base_headers

    async def request(
        self,
        method: str,
        path: str,
        error_message: str,
        headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send one authenticated request and map failures to exceptions.

        Args:
            method: HTTP method (GET, POST)
            path: Path relative to the site URL (e.g. /_api/web)
            error_message: Operation description prefixed to any error
            headers: Extra request headers
            **kwargs: Additional arguments for httpx request

        Returns:
            httpx.Response on success (2xx)

        Raises:
            SharePointAuthenticationError: On HTTP 401
            SharePointPermissionError: On HTTP 403
            SharePointNotFoundError: On HTTP 404
            SharePointRateLimitError: On HTTP 429
            SharePointRequestError: On other errors and connection failures
        """
        client = self._get_client()
        request_headers = self.auth_headers(headers)

        logger.debug("sharepoint_request", method=method, path=path)

        try:
            response = await client.request(
                method, path, headers=request_headers, **kwargs
            )
        except httpx.RequestError as e:
            # request was made but no response was received
            logger.error(
                "sharepoint_connection_error",
                method=method,
                path=path,
                error=str(e),
            )
            raise SharePointRequestError(f"{error_message}: {e}") from e

        if response.is_success:
            logger.debug(
                "sharepoint_request_success",
                method=method,
                path=path,
                status_code=response.status_code,
            )
            return response

        raise self._map_error(response, method, path, error_message)

    def _map_error(
        self,
        response: httpx.Response,
        method: str,
        path: str,
        error_message: str,
    ) -> SharePointError:
        """Build the exception for a non-2xx response."""
        status_code = response.status_code
        if self._debug:
            logger.error(
                "sharepoint_request_failed",
                method=method,
                path=path,
                status_code=status_code,
                response=response.text[:500],
            )
        else:
            logger.error(
                "sharepoint_request_failed",
                method=method,
                path=path,
                status_code=status_code,
            )

        message = f"{error_message}: server responded with status code {status_code}"
        if status_code == 401:
            return SharePointAuthenticationError(message)
        if status_code == 403:
            return SharePointPermissionError(message)
        if status_code == 404:
            return SharePointNotFoundError(message)
        if status_code == 429:
            retry_after = response.headers.get("Retry-After")
            return SharePointRateLimitError(
                message,
                retry_after_seconds=(
                    int(retry_after) if retry_after and retry_after.isdigit() else None
                ),
            )
        return SharePointRequestError(message, status_code=status_code)

    async def get_web(self) -> dict[str, Any]:
        """Fetch the site's web resource (``/_api/web``).

        Returns:
            The ``d`` object of the verbose OData response
        """
        response = await self.request(
            "GET",
            "/_api/web",
            "Unable to get web endpoint",
            headers={"Accept": ODATA_VERBOSE},
        )
        return response.json()["d"]

    async def get_form_digest_value(self) -> str:
        """Fetch a request digest, required by every state-changing call.

        Returns:
            FormDigestValue from ``/_api/contextinfo``
        """
        response = await self.request(
            "POST",
            "/_api/contextinfo",
            "Unable to get form digest value",
            headers={"Accept": ODATA_VERBOSE},
            json={},
        )
        return response.json()["d"]["GetContextWebInformation"]["FormDigestValue"]
