"""SharePoint-specific exception classes.

These exceptions map the SharePoint REST API failure modes, plus local
precondition and configuration failures, onto a single hierarchy.

Exception Hierarchy:
    SharePointError (base)
    +-- SharePointConfigurationError (missing/invalid settings)
    +-- SharePointValidationError (missing or invalid arguments)
    +-- SharePointAuthenticationError (HTTP 401, token acquisition)
    +-- SharePointPermissionError (HTTP 403)
    +-- SharePointNotFoundError (HTTP 404)
    +-- SharePointRateLimitError (HTTP 429)
    +-- SharePointRequestError (other HTTP errors, connection failures)
    +-- SharePointUploadError (chunked upload failures)
    +-- UploadStateError (illegal use of an upload state machine)
"""


class SharePointError(Exception):
    """Base exception for SharePoint operations.

    All SharePoint-related errors inherit from this class
    to allow catching all SharePoint errors with a single except clause.
    """

    pass


class SharePointConfigurationError(SharePointError):
    """Raised when the SharePoint settings are missing or invalid."""

    pass


class SharePointValidationError(SharePointError, ValueError):
    """Raised when a required argument is missing or invalid.

    Always raised before any request is sent to SharePoint.
    """

    pass


class SharePointAuthenticationError(SharePointError):
    """Raised when SharePoint authentication fails.

    This can occur when:
    - The client certificate or its passphrase is invalid
    - MSAL returns an error instead of a token
    - An operation is attempted before authenticate() was called
    """

    pass


class SharePointPermissionError(SharePointError):
    """Raised when the app lacks permission for the requested operation.

    This maps to HTTP 403 responses.
    Distinct from AuthenticationError which is about credential validity.
    """

    pass


class SharePointNotFoundError(SharePointError):
    """Raised when a requested file or folder does not exist.

    This maps to HTTP 404 responses.
    """

    pass


class SharePointRateLimitError(SharePointError):
    """Raised when SharePoint throttles the request (HTTP 429).

    The retry_after_seconds attribute carries the Retry-After header,
    if SharePoint sent one. Nothing in this library retries on it.
    """

    def __init__(self, message: str, retry_after_seconds: int | None = None):
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds


class SharePointRequestError(SharePointError):
    """Raised for any other failed request.

    status_code is None when no response was received at all
    (connection refused, timeout, DNS failure).
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class SharePointUploadError(SharePointError):
    """Raised when a chunked upload cannot complete.

    This can occur when:
    - The source stream ends before the upload was finished
    - SharePoint returns an offset that cannot be parsed
    """

    def __init__(
        self,
        message: str,
        filename: str | None = None,
        bytes_uploaded: int | None = None,
    ):
        super().__init__(message)
        self.filename = filename
        self.bytes_uploaded = bytes_uploaded


class UploadStateError(SharePointError):
    """Raised when an upload state machine is driven past a terminal phase."""

    pass
