"""Core module - Configuration, logging, exceptions and shared constants.

Exports:
    - Settings, get_settings: Pydantic Settings configuration
    - configure_logging, get_logger: Structured logging (structlog)
    - Progress, UploadProgress: Session progress milestones
    - Exception classes: PackSyncError, SyncNetworkError, etc.
    - describe_error: User-facing error details
    - InitOnce: One-shot async initialization latch
"""

from packsync.core.config import Settings, get_settings
from packsync.core.constants import (
    BUNDLE_CACHE_NAMESPACE,
    CACHE_KEY_PREFIX,
    CONFIG_CACHE_NAMESPACE,
    Progress,
    UploadProgress,
)
from packsync.core.exceptions import (
    ERROR_DEFINITIONS,
    CacheCorruptionError,
    ErrorDetails,
    ErrorKind,
    InstallError,
    MalformedManifestError,
    PackSyncError,
    SyncAuthError,
    SyncNetworkError,
    SyncNotFoundError,
    describe_error,
)
from packsync.core.latch import InitOnce
from packsync.core.logging import configure_logging, get_logger


__all__ = [
    "BUNDLE_CACHE_NAMESPACE",
    "CACHE_KEY_PREFIX",
    "CONFIG_CACHE_NAMESPACE",
    "ERROR_DEFINITIONS",
    "CacheCorruptionError",
    "ErrorDetails",
    "ErrorKind",
    "InitOnce",
    "InstallError",
    "MalformedManifestError",
    # Exceptions
    "PackSyncError",
    "Progress",
    # Configuration
    "Settings",
    "SyncAuthError",
    "SyncNetworkError",
    "SyncNotFoundError",
    "UploadProgress",
    # Logging
    "configure_logging",
    "describe_error",
    "get_logger",
    "get_settings",
]
