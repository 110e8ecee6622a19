"""MSAL token management for SharePoint REST API authentication.

Provides app-only (client credentials) token acquisition using a client
certificate registered against an Azure AD application. The certificate
private key is read from a PEM file and may be passphrase protected.

MSAL handles token caching automatically via its TokenCache.
Cached tokens are served by acquire_token_silent until they expire.
"""

from pathlib import Path
from typing import Any

import msal

from sharepoint_fs.config import Settings, get_settings
from sharepoint_fs.core.exceptions import (
    SharePointAuthenticationError,
    SharePointConfigurationError,
)
from sharepoint_fs.core.logging import get_logger

logger = get_logger(__name__)

AUTHORITY_BASE_URL = "https://login.microsoftonline.com"


class SharePointAuthService:
    """MSAL-based authentication service for the SharePoint REST API.

    Attributes:
        _msal_app: MSAL ConfidentialClientApplication instance
        _settings: Library settings
    """

    def __init__(self, settings: Settings | None = None) -> None:
        """Initialize MSAL client with the certificate configuration.

        Args:
            settings: Settings to use (default: the cached environment settings)
        """
        self._settings = settings or get_settings()
        self._msal_app: msal.ConfidentialClientApplication | None = None

        if self.is_configured:
            self._msal_app = self._create_msal_app()
            logger.info(
                "sharepoint_auth_initialized",
                tenant_id=self._settings.sharepoint_tenant_id[:8] + "...",
            )
        else:
            logger.warning(
                "sharepoint_auth_not_configured",
                missing=self._settings.missing_sharepoint_settings,
            )

    def _create_msal_app(self) -> msal.ConfidentialClientApplication:
        """Create and configure MSAL ConfidentialClientApplication.

        Returns:
            Configured MSAL ConfidentialClientApplication

        Raises:
            SharePointConfigurationError: If the private key file cannot be read
        """
        key_file = Path(self._settings.sharepoint_cert_private_key_file)
        try:
            private_key = key_file.read_text(encoding="utf-8")
        except OSError as e:
            raise SharePointConfigurationError(
                f"Unable to read sharepoint certificate private key file "
                f"('{key_file}'): {e}"
            ) from e

        authority = f"{AUTHORITY_BASE_URL}/{self._settings.sharepoint_tenant_id}"
        client_id = self._settings.sharepoint_client_id

        logger.debug(
            "sharepoint_msal_app_creating",
            authority=authority,
            client_id=client_id[:8] + "...",
        )

        return msal.ConfidentialClientApplication(
            client_id=client_id,
            client_credential={
                "thumbprint": self._settings.sharepoint_cert_fingerprint,
                "private_key": private_key,
                "passphrase": self._settings.sharepoint_cert_passphrase,
            },
            authority=authority,
        )

    @property
    def scopes(self) -> list[str]:
        """Scopes requested for app-only tokens."""
        return [self._settings.sharepoint_auth_scope]

    async def get_app_token(self) -> str:
        """Acquire access token using client credentials (app-only flow).

        First attempts to retrieve a cached token, then falls back
        to acquiring a new token from Azure AD.

        Returns:
            Access token string

        Raises:
            SharePointAuthenticationError: If token acquisition fails or
                SharePoint is not configured
        """
        if not self.is_configured or self._msal_app is None:
            logger.error(
                "sharepoint_app_token_failed",
                reason="not_configured",
            )
            raise SharePointAuthenticationError(
                "SharePoint authentication is not configured"
            )

        logger.debug("sharepoint_app_token_acquiring")

        result = self._msal_app.acquire_token_silent(
            scopes=self.scopes,
            account=None,
        )

        if result and "access_token" in result:
            logger.debug(
                "sharepoint_app_token_cached",
                expires_in=result.get("expires_in"),
            )
            return self._handle_auth_result(result)

        logger.debug("sharepoint_app_token_acquiring_new")
        result = self._msal_app.acquire_token_for_client(scopes=self.scopes)

        return self._handle_auth_result(result)

    def _handle_auth_result(self, result: dict[str, Any] | None) -> str:
        """Process MSAL authentication result.

        Args:
            result: MSAL result dictionary containing access_token or error

        Returns:
            Access token string

        Raises:
            SharePointAuthenticationError: If result is None or contains error
        """
        if result is None:
            logger.error("sharepoint_app_token_failed", reason="null_result")
            raise SharePointAuthenticationError(
                "Failed to acquire app token: no result from MSAL"
            )

        if "error" in result:
            error_code = result.get("error", "unknown")
            error_description = result.get("error_description", "No description")

            logger.error(
                "sharepoint_app_token_failed",
                error_code=error_code,
                error_description=error_description[:100],
            )
            raise SharePointAuthenticationError(
                f"Failed to acquire app token: {error_code} - {error_description}"
            )

        access_token = result.get("access_token")
        if not access_token:
            logger.error(
                "sharepoint_app_token_failed",
                reason="missing_access_token",
            )
            raise SharePointAuthenticationError(
                "Failed to acquire app token: access_token not in response"
            )

        logger.info(
            "sharepoint_app_token_acquired",
            expires_in=result.get("expires_in"),
            token_type=result.get("token_type"),
        )

        return access_token

    @property
    def is_configured(self) -> bool:
        """Check if certificate authentication is properly configured.

        Returns:
            True if all required settings are present, False otherwise
        """
        return self._settings.is_sharepoint_configured


# Module-level singleton for efficiency
_auth_service: SharePointAuthService | None = None


def get_sharepoint_auth() -> SharePointAuthService:
    """Get the SharePoint authentication service singleton.

    Returns:
        SharePointAuthService instance
    """
    global _auth_service
    if _auth_service is None:
        _auth_service = SharePointAuthService()
    return _auth_service


def reset_sharepoint_auth() -> None:
    """Reset the SharePoint authentication service singleton.

    Used primarily for testing to ensure clean state between tests.
    """
    global _auth_service
    _auth_service = None
