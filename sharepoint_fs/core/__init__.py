"""SharePoint Online integration.

This package provides filesystem-style access to a SharePoint site via
its REST API.

Modules:
    - exceptions: SharePoint-specific exception classes
    - auth: MSAL token management for certificate-based app-only auth
    - client: REST client wrapper with error mapping
    - upload: chunked upload state machine and driver
    - filesystem: folder and file operations
"""

from sharepoint_fs.core.auth import (
    SharePointAuthService,
    get_sharepoint_auth,
    reset_sharepoint_auth,
)
from sharepoint_fs.core.client import SharePointRestClient
from sharepoint_fs.core.exceptions import (
    SharePointAuthenticationError,
    SharePointConfigurationError,
    SharePointError,
    SharePointNotFoundError,
    SharePointPermissionError,
    SharePointRateLimitError,
    SharePointRequestError,
    SharePointUploadError,
    SharePointValidationError,
    UploadStateError,
)
from sharepoint_fs.core.filesystem import SharePointFileSystem
from sharepoint_fs.core.upload import (
    RestUploadTransport,
    UploadAction,
    UploadDriver,
    UploadPhase,
    UploadSession,
    UploadStateMachine,
    UploadTransport,
    generate_upload_id,
)

__all__ = [
    # Exceptions
    "SharePointError",
    "SharePointConfigurationError",
    "SharePointValidationError",
    "SharePointAuthenticationError",
    "SharePointPermissionError",
    "SharePointNotFoundError",
    "SharePointRateLimitError",
    "SharePointRequestError",
    "SharePointUploadError",
    "UploadStateError",
    # Auth
    "SharePointAuthService",
    "get_sharepoint_auth",
    "reset_sharepoint_auth",
    # Client
    "SharePointRestClient",
    # Upload
    "UploadAction",
    "UploadPhase",
    "UploadSession",
    "UploadStateMachine",
    "UploadDriver",
    "UploadTransport",
    "RestUploadTransport",
    "generate_upload_id",
    # Filesystem
    "SharePointFileSystem",
]
