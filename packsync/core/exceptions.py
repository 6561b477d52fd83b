"""Custom exceptions for the sync core.

All exceptions are namespaced under PackSyncError so callers can catch any
sync failure with a single except clause, and none of them shadow Python
builtins (ConnectionError, TimeoutError).

Every error carries a stable machine-readable ``code``; ``describe_error``
turns any exception into the user-facing details the presentation layer
renders (message, remediation hint, retry affordance).

Pattern: Namespaced Custom Exceptions
"""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict


class ErrorKind(str, Enum):
    """Classification used by RetryPolicy and the presentation layer."""

    NETWORK = "network"
    NOT_FOUND = "not_found"
    AUTH = "auth"
    MALFORMED = "malformed"
    INSTALL = "install"
    CACHE = "cache"
    UNKNOWN = "unknown"


class PackSyncError(Exception):
    """Base exception for all sync-core errors.

    Attributes:
        kind: Error classification
        code: Stable code, a key of ERROR_DEFINITIONS
        attempts: Number of attempts RetryPolicy made before surfacing
            this error (None when it was raised outside a retry loop)
    """

    kind: ErrorKind = ErrorKind.UNKNOWN
    default_code: str = "UNKNOWN_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize sync error.

        Args:
            message: Error description
            code: Override of the class default code
            cause: Original exception that caused this error
        """
        self.code = code or self.default_code
        self.cause = cause
        self.attempts: int | None = None
        if cause is not None:
            self.__cause__ = cause
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        """Whether RetryPolicy may retry this error."""
        return self.kind is ErrorKind.NETWORK


class SyncNetworkError(PackSyncError):
    """Raised when a transport failure, timeout or connection reset occurs.

    The only retryable kind.
    """

    kind = ErrorKind.NETWORK
    default_code = "NETWORK_ERROR"

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        code: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize network error.

        Args:
            message: Error description
            status_code: HTTP status code if the server answered
            code: Override of the default code
            cause: Original transport exception
        """
        self.status_code = status_code
        super().__init__(message, code=code, cause=cause)


class SyncNotFoundError(PackSyncError):
    """Raised when the remote store has no bundle for a repo/uuid."""

    kind = ErrorKind.NOT_FOUND
    default_code = "UPDATE_NOT_FOUND"


class SyncAuthError(PackSyncError):
    """Raised when the remote store rejects the credentials."""

    kind = ErrorKind.AUTH
    default_code = "GITHUB_AUTH_ERROR"


class MalformedManifestError(PackSyncError):
    """Raised when a manifest or remote payload cannot be decoded."""

    kind = ErrorKind.MALFORMED
    default_code = "INVALID_MANIFEST"


class InstallError(PackSyncError):
    """Raised when the install collaborator fails to apply a bundle.

    Fatal for the session; the caller may re-invoke the update.
    """

    kind = ErrorKind.INSTALL
    default_code = "INSTALL_FAILED"

    def __init__(
        self,
        message: str,
        *,
        target_path: str | None = None,
        code: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize install error.

        Args:
            message: Error description
            target_path: Modpack directory the install targeted
            code: Override of the default code
            cause: Original exception from the installer
        """
        self.target_path = target_path
        super().__init__(message, code=code, cause=cause)


class CacheCorruptionError(PackSyncError):
    """Raised when a durable cache entry cannot be decoded.

    Never escapes TieredCache; a corrupt entry is reported as a miss.
    """

    kind = ErrorKind.CACHE
    default_code = "CACHE_CORRUPTED"


# =============================================================================
# User-facing error details
# =============================================================================

Severity = Literal["low", "medium", "high", "critical"]


class ErrorDefinition(BaseModel):
    """Static, user-facing description of an error code."""

    model_config = ConfigDict(frozen=True)

    user_message: str
    suggestion: str
    can_retry: bool
    severity: Severity


class ErrorDetails(BaseModel):
    """What the presentation layer renders for a failed operation."""

    model_config = ConfigDict(frozen=True)

    code: str
    kind: ErrorKind
    message: str
    user_message: str
    suggestion: str
    can_retry: bool
    severity: Severity
    remaining_attempts: int | None = None


ERROR_DEFINITIONS: dict[str, ErrorDefinition] = {
    # File operations
    "FILE_NOT_FOUND": ErrorDefinition(
        user_message="The selected file could not be found.",
        suggestion="Please check if the file exists and try selecting it again.",
        can_retry=True,
        severity="medium",
    ),
    "FILE_READ_ERROR": ErrorDefinition(
        user_message="Unable to read the selected file.",
        suggestion="Check if the file is corrupted or in use by another application.",
        can_retry=True,
        severity="medium",
    ),
    "FILE_WRITE_ERROR": ErrorDefinition(
        user_message="Unable to write to the selected location.",
        suggestion="Check if you have write permissions and sufficient disk space.",
        can_retry=True,
        severity="medium",
    ),
    "INVALID_JSON": ErrorDefinition(
        user_message="The file contains invalid JSON data.",
        suggestion="Please select a valid manifest or minecraftinstance.json file.",
        can_retry=False,
        severity="medium",
    ),
    # Network operations
    "NETWORK_ERROR": ErrorDefinition(
        user_message="Network connection failed.",
        suggestion="Check your internet connection and try again.",
        can_retry=True,
        severity="medium",
    ),
    "GITHUB_AUTH_ERROR": ErrorDefinition(
        user_message="GitHub authentication failed.",
        suggestion="Check your GitHub token in settings and ensure it has the required permissions.",
        can_retry=False,
        severity="high",
    ),
    "GITHUB_REPO_NOT_FOUND": ErrorDefinition(
        user_message="GitHub repository not found.",
        suggestion="Verify the repository name in settings and check if it exists.",
        can_retry=False,
        severity="medium",
    ),
    "UPDATE_NOT_FOUND": ErrorDefinition(
        user_message="Update with this UUID was not found.",
        suggestion="Check the UUID code and ensure the update was uploaded correctly.",
        can_retry=False,
        severity="medium",
    ),
    "UPLOAD_FAILED": ErrorDefinition(
        user_message="Failed to upload update to GitHub.",
        suggestion="Check your internet connection and GitHub token permissions.",
        can_retry=True,
        severity="high",
    ),
    "DOWNLOAD_FAILED": ErrorDefinition(
        user_message="Failed to download update from GitHub.",
        suggestion="Check your internet connection and try again.",
        can_retry=True,
        severity="medium",
    ),
    # Validation
    "INVALID_UUID": ErrorDefinition(
        user_message="Invalid UUID format.",
        suggestion="Please enter a valid UUID code provided by the modpack creator.",
        can_retry=False,
        severity="low",
    ),
    "INVALID_REPO": ErrorDefinition(
        user_message="Invalid repository name.",
        suggestion="Enter the repository as owner/name.",
        can_retry=False,
        severity="low",
    ),
    "INVALID_MANIFEST": ErrorDefinition(
        user_message="Invalid manifest format.",
        suggestion="The manifest file is corrupted or in an unsupported format.",
        can_retry=False,
        severity="medium",
    ),
    "MISSING_GITHUB_SETTINGS": ErrorDefinition(
        user_message="GitHub settings not configured.",
        suggestion="Please configure your GitHub repository and token in settings.",
        can_retry=False,
        severity="medium",
    ),
    # Installation
    "INSTALL_FAILED": ErrorDefinition(
        user_message="Installation failed.",
        suggestion="Check disk space and ensure modpack directory is writable.",
        can_retry=True,
        severity="high",
    ),
    "CONFIG_INSTALL_FAILED": ErrorDefinition(
        user_message="Failed to install config files.",
        suggestion="Check if config directory is writable and try again.",
        can_retry=True,
        severity="medium",
    ),
    "ADDON_DOWNLOAD_FAILED": ErrorDefinition(
        user_message="Failed to download one or more addons.",
        suggestion="Check your internet connection and try again. Some addons may be temporarily unavailable.",
        can_retry=True,
        severity="medium",
    ),
    # Internal
    "CACHE_CORRUPTED": ErrorDefinition(
        user_message="A cached entry could not be read.",
        suggestion="The entry was discarded and will be downloaded again.",
        can_retry=True,
        severity="low",
    ),
    "UNKNOWN_ERROR": ErrorDefinition(
        user_message="An unexpected error occurred.",
        suggestion="Please try again. If the problem persists, check the logs for more details.",
        can_retry=True,
        severity="high",
    ),
}


# Ordered keyword rules for exceptions that did not originate in this package
_MESSAGE_RULES: tuple[tuple[tuple[str, ...], str, ErrorKind], ...] = (
    (("network", "fetch", "timeout", "timed out", "connection"), "NETWORK_ERROR", ErrorKind.NETWORK),
    (("file not found", "no such file"), "FILE_NOT_FOUND", ErrorKind.UNKNOWN),
    (("permission", "access denied"), "FILE_WRITE_ERROR", ErrorKind.UNKNOWN),
    (("json", "parse"), "INVALID_JSON", ErrorKind.MALFORMED),
    (("github", "repository"), "GITHUB_REPO_NOT_FOUND", ErrorKind.NOT_FOUND),
    (("auth",), "GITHUB_AUTH_ERROR", ErrorKind.AUTH),
)


def classify_exception(exc: BaseException) -> tuple[str, ErrorKind]:
    """Map any exception to an error code and kind.

    PackSyncError instances carry their own classification; foreign
    exceptions are categorised from their message.
    """
    if isinstance(exc, PackSyncError):
        return exc.code, exc.kind

    message = str(exc).lower()
    for keywords, code, kind in _MESSAGE_RULES:
        if any(keyword in message for keyword in keywords):
            return code, kind
    return "UNKNOWN_ERROR", ErrorKind.UNKNOWN


def describe_error(
    exc: BaseException,
    *,
    remaining_attempts: int | None = None,
) -> ErrorDetails:
    """Build user-facing details for an exception.

    Args:
        exc: The exception to describe
        remaining_attempts: Retry budget left, for the retry affordance

    Returns:
        ErrorDetails with code, remediation hint and retry flag
    """
    code, kind = classify_exception(exc)
    definition = ERROR_DEFINITIONS.get(code, ERROR_DEFINITIONS["UNKNOWN_ERROR"])
    return ErrorDetails(
        code=code,
        kind=kind,
        message=str(exc) or type(exc).__name__,
        user_message=definition.user_message,
        suggestion=definition.suggestion,
        can_retry=definition.can_retry,
        severity=definition.severity,
        remaining_attempts=remaining_attempts,
    )
