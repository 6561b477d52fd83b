"""Schemas package - manifest, bundle and diff models."""

from packsync.schemas.diff import AddonUpgrade, UpdateDiff, UpdatePreview
from packsync.schemas.manifest import (
    ADDON_CATEGORIES,
    Addon,
    CachedBundle,
    ConfigFile,
    ConfigFileWithContent,
    Manifest,
    UpdateKind,
)


__all__ = [
    "ADDON_CATEGORIES",
    "Addon",
    "AddonUpgrade",
    "CachedBundle",
    "ConfigFile",
    "ConfigFileWithContent",
    "Manifest",
    "UpdateDiff",
    "UpdateKind",
    "UpdatePreview",
]
