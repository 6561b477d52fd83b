"""Shared constants for the sync core.

Provides centralized values for:
- Cache namespaces and default cache policies
- Remote store layout
- Progress milestones of a sync session
"""

from enum import IntEnum


# =============================================================================
# Cache Policies
# =============================================================================

CACHE_KEY_PREFIX = "packsync-cache:"

# Remote manifests + config bundles (durable)
BUNDLE_CACHE_NAMESPACE = "github"
BUNDLE_CACHE_TTL_SECONDS: float = 600.0  # 10 minutes
BUNDLE_CACHE_MAX_ENTRIES = 50

# Ephemeral config file text (memory only)
CONFIG_CACHE_NAMESPACE = "config"
CONFIG_CACHE_TTL_SECONDS: float = 900.0  # 15 minutes
CONFIG_CACHE_MAX_ENTRIES = 30


# =============================================================================
# Remote Store Layout
# =============================================================================

REMOTE_MANIFEST_FILENAME = "manifest.json"
PREVIOUS_MANIFEST_FILENAME = "packsync-manifest.json"


# =============================================================================
# Progress Milestones
# =============================================================================

class Progress(IntEnum):
    """Percentage reported when a session enters each phase."""

    FETCHING_MANIFEST = 10
    DIFFING = 40
    FETCHING_CONFIG = 55
    INSTALLING = 75
    COMPLETED = 100


class UploadProgress(IntEnum):
    """Percentage reported while publishing a bundle."""

    PREPARING = 10
    COMPLETED = 100
