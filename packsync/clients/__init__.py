"""Clients package - collaborator protocols and their bundled implementations.

Exports:
    - RemoteBundleStore, BundleInstaller, ManifestStore: Protocols
    - GitHubContentsClient: RemoteBundleStore over the GitHub contents API
    - LocalFileSystem, LocalManifestStore: Local file access
"""

from packsync.clients.filesystem import (
    LocalFileSystem,
    LocalManifestStore,
    WriteFileSet,
    WriteOp,
    WriteSingleFile,
    write_op_adapter,
)
from packsync.clients.github import GitHubContentsClient, raise_for_github_status, split_repo
from packsync.clients.protocols import BundleInstaller, ManifestStore, RemoteBundleStore


__all__ = [
    "BundleInstaller",
    # GitHub
    "GitHubContentsClient",
    # Local files
    "LocalFileSystem",
    "LocalManifestStore",
    "ManifestStore",
    # Protocols
    "RemoteBundleStore",
    "WriteFileSet",
    "WriteOp",
    "WriteSingleFile",
    "raise_for_github_status",
    "split_repo",
    "write_op_adapter",
]
