"""Collaborator protocols consumed by the sync orchestrator.

Duck typing protocols for the remote bundle store, the installer and the
previous-manifest store - enables fake substitution in tests.

Pattern: Protocol duck typing
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from packsync.schemas.manifest import ConfigFileWithContent, Manifest


@runtime_checkable
class RemoteBundleStore(Protocol):
    """Protocol for the remote store holding published bundles.

    Implementations map their failures onto the PackSyncError hierarchy:
    SyncNetworkError for transient failures, SyncNotFoundError,
    SyncAuthError and MalformedManifestError otherwise.

    Methods:
        fetch_manifest: Download the manifest of a bundle
        fetch_config_files: Download the config files a manifest lists
        upload_bundle: Publish a manifest and its config files
    """

    async def fetch_manifest(self, repo: str, uuid: str) -> Manifest:
        """Download the manifest of a bundle.

        Args:
            repo: Repository, "owner/name"
            uuid: Bundle identifier

        Returns:
            Parsed remote manifest
        """
        ...

    async def fetch_config_files(
        self,
        repo: str,
        uuid: str,
        manifest: Manifest,
    ) -> list[ConfigFileWithContent]:
        """Download every config file listed by ``manifest``."""
        ...

    async def upload_bundle(
        self,
        repo: str,
        token: str,
        uuid: str,
        manifest: Manifest,
        config_files: list[ConfigFileWithContent],
    ) -> None:
        """Publish a manifest and its config files under ``uuid``."""
        ...


@runtime_checkable
class BundleInstaller(Protocol):
    """Protocol for the component that applies a bundle to a modpack.

    Raises InstallError on failure.
    """

    async def install_bundle(
        self,
        target_path: str,
        old_manifest: Manifest | None,
        new_manifest: Manifest,
        config_files: list[ConfigFileWithContent],
    ) -> None:
        ...


@runtime_checkable
class ManifestStore(Protocol):
    """Protocol for the record of the last installed manifest."""

    async def read_previous_manifest(self, target_path: str) -> Manifest | None:
        """Return the installed manifest, or None for a fresh install."""
        ...

    async def write_previous_manifest(self, target_path: str, manifest: Manifest) -> None:
        """Record ``manifest`` as installed."""
        ...
