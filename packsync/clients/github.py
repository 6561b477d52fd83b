"""GitHub contents API client - the default RemoteBundleStore.

Bundle layout inside the repository:
    {uuid}/manifest.json
    {uuid}/{relative_path}      one file per config file of the manifest

Reads and writes go through ``/repos/{owner}/{repo}/contents/...``; file
content travels base64-encoded. HTTP failures are mapped onto the
PackSyncError hierarchy:
- 401 / 403:            SyncAuthError
- 404:                  SyncNotFoundError
- 408 / 429 / 5xx:      SyncNetworkError (retryable)
- transport errors:     SyncNetworkError (retryable)
- undecodable payloads: MalformedManifestError

Pattern: Connection pooling via a shared httpx.AsyncClient
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import json
from typing import Any
from urllib.parse import quote

import httpx

from packsync.cache.tiered import TieredCache
from packsync.core.config import Settings, get_settings
from packsync.core.constants import REMOTE_MANIFEST_FILENAME
from packsync.core.exceptions import (
    MalformedManifestError,
    PackSyncError,
    SyncAuthError,
    SyncNetworkError,
    SyncNotFoundError,
)
from packsync.core.logging import get_logger
from packsync.schemas.manifest import ConfigFile, ConfigFileWithContent, Manifest
from packsync.sync.batch import BatchProcessor


logger = get_logger(__name__)

RETRYABLE_STATUS_CODES = frozenset({408, 429})
BINARY_DATA_URI_PREFIX = "data:application/octet-stream;base64,"


def split_repo(repo: str) -> tuple[str, str]:
    """Split "owner/name" into its parts.

    Raises:
        PackSyncError: INVALID_REPO if the value is not "owner/name"
    """
    owner, sep, name = repo.partition("/")
    if not sep or not owner or not name or "/" in name:
        raise PackSyncError(f"Invalid repository '{repo}', expected 'owner/name'", code="INVALID_REPO")
    return owner, name


def decode_config_content(raw: bytes) -> tuple[str, bool]:
    """Return (content, is_binary) for downloaded config file bytes.

    Text files are returned as UTF-8 text; anything else as a base64 data URI.
    """
    try:
        return raw.decode("utf-8"), False
    except UnicodeDecodeError:
        return BINARY_DATA_URI_PREFIX + base64.b64encode(raw).decode("ascii"), True


def encode_config_content(config: ConfigFileWithContent) -> str:
    """Return the base64 body the contents API expects for a config file."""
    if config.is_binary:
        _, _, payload = config.content.partition(";base64,")
        return payload
    return base64.b64encode(config.content.encode("utf-8")).decode("ascii")


class GitHubContentsClient:
    """Async client for bundles stored in a GitHub repository.

    Attributes:
        base_url: GitHub REST API base URL
        branch: Branch uploads are committed to

    Example:
        >>> client = GitHubContentsClient()
        >>> manifest = await client.fetch_manifest("owner/pack", "1234")
        >>> files = await client.fetch_config_files("owner/pack", "1234", manifest)
        >>> await client.close()
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        token: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        batch: BatchProcessor | None = None,
        config_cache: TieredCache[ConfigFileWithContent] | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            settings: Library settings. Uses get_settings() if not provided.
            token: Optional token sent with read requests (private repos)
            http_client: Pre-built client, e.g. with an httpx.MockTransport
            batch: Batching of config file downloads
            config_cache: Memory cache of downloaded config files
        """
        self._settings = settings or get_settings()
        self.base_url = self._settings.github_api_url.rstrip("/")
        self.branch = self._settings.github_branch
        self._token = token
        self._client = http_client
        self._owns_client = http_client is None
        self._batch = batch or BatchProcessor(
            batch_size=self._settings.batch_size,
            delay_seconds=self._settings.batch_delay_seconds,
        )
        self._config_cache = config_cache

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client (lazy initialization).

        Returns:
            Shared httpx.AsyncClient instance (connection pooling)
        """
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self._settings.http_timeout_seconds,
                headers={
                    "Accept": "application/vnd.github+json",
                    "User-Agent": self._settings.user_agent,
                },
            )
            await asyncio.sleep(0)  # Yield to event loop on first init
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    # =========================================================================
    # RemoteBundleStore
    # =========================================================================

    async def fetch_manifest(self, repo: str, uuid: str) -> Manifest:
        """Download and parse ``{uuid}/manifest.json``."""
        raw = await self._get_file(repo, uuid, REMOTE_MANIFEST_FILENAME)
        manifest = Manifest.from_json(raw)
        logger.info("Fetched manifest", repo=repo, uuid=uuid, config_files=len(manifest.config_files))
        return manifest

    async def fetch_config_files(
        self,
        repo: str,
        uuid: str,
        manifest: Manifest,
    ) -> list[ConfigFileWithContent]:
        """Download every config file the manifest lists, in manifest order.

        Files already held by the config cache are not downloaded again.
        """

        async def fetch_one(config: ConfigFile) -> ConfigFileWithContent:
            cache_key = f"{repo}/{uuid}/{config.relative_path}"
            if self._config_cache is not None:
                cached = await self._config_cache.get(cache_key)
                if cached is not None:
                    return cached

            raw = await self._get_file(repo, uuid, config.relative_path)
            content, is_binary = decode_config_content(raw)
            result = ConfigFileWithContent(
                path=config.path,
                relative_path=config.relative_path,
                content=content,
                is_binary=is_binary,
            )
            if self._config_cache is not None:
                await self._config_cache.set(cache_key, result)
            return result

        def report(done: int, total: int) -> None:
            logger.debug("Config download progress", repo=repo, uuid=uuid, done=done, total=total)

        files = await self._batch.process(manifest.config_files, fetch_one, on_progress=report)
        logger.info("Fetched config files", repo=repo, uuid=uuid, files=len(files))
        return files

    async def upload_bundle(
        self,
        repo: str,
        token: str,
        uuid: str,
        manifest: Manifest,
        config_files: list[ConfigFileWithContent],
    ) -> None:
        """Commit the manifest, then each config file, under ``{uuid}/``."""
        manifest_body = base64.b64encode(manifest.to_json().encode("utf-8")).decode("ascii")
        await self._put_file(
            repo,
            token,
            uuid,
            REMOTE_MANIFEST_FILENAME,
            manifest_body,
            message=f"Upload manifest for update {uuid}",
        )
        for config in config_files:
            await self._put_file(
                repo,
                token,
                uuid,
                config.relative_path,
                encode_config_content(config),
                message=f"Upload config file {config.path} for update {uuid}",
            )
        logger.info("Uploaded bundle", repo=repo, uuid=uuid, config_files=len(config_files))

    # =========================================================================
    # HTTP helpers
    # =========================================================================

    def _contents_url(self, repo: str, uuid: str, path: str) -> str:
        owner, name = split_repo(repo)
        file_path = quote(f"{uuid}/{path.lstrip('/')}", safe="/")
        return f"/repos/{quote(owner, safe='')}/{quote(name, safe='')}/contents/{file_path}"

    def _auth_headers(self, token: str | None) -> dict[str, str]:
        token = token or self._token
        return {"Authorization": f"token {token}"} if token else {}

    async def _request(
        self,
        method: str,
        url: str,
        *,
        what: str,
        token: str | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        client = await self._get_client()
        try:
            response = await client.request(method, url, headers=self._auth_headers(token), **kwargs)
        except httpx.TransportError as e:
            raise SyncNetworkError(f"Network error while {what}: {e}", cause=e) from e
        raise_for_github_status(response, what)
        return response

    async def _get_file(self, repo: str, uuid: str, path: str) -> bytes:
        what = f"downloading {uuid}/{path}"
        response = await self._request("GET", self._contents_url(repo, uuid, path), what=what, params={"ref": self.branch})
        payload = _json_object(response, what)

        encoded = payload.get("content")
        if payload.get("encoding") == "base64" and isinstance(encoded, str) and encoded:
            try:
                return base64.b64decode(encoded, validate=False)
            except (binascii.Error, ValueError) as e:
                raise MalformedManifestError(f"Invalid base64 content for {uuid}/{path}", cause=e) from e

        # Files over the contents API size limit only come with a download URL
        download_url = payload.get("download_url")
        if not isinstance(download_url, str) or not download_url:
            raise MalformedManifestError(f"No content or download_url for {uuid}/{path}")
        response = await self._request("GET", download_url, what=what)
        return response.content

    async def _put_file(
        self,
        repo: str,
        token: str,
        uuid: str,
        path: str,
        content_b64: str,
        *,
        message: str,
    ) -> None:
        url = self._contents_url(repo, uuid, path)
        what = f"uploading {uuid}/{path}"
        body: dict[str, Any] = {"message": message, "content": content_b64, "branch": self.branch}

        client = await self._get_client()
        try:
            response = await client.put(url, json=body, headers=self._auth_headers(token))
        except httpx.TransportError as e:
            raise SyncNetworkError(f"Network error while {what}: {e}", cause=e) from e

        # Overwriting an existing file requires its blob sha
        if response.status_code == 422:
            existing = await self._request("GET", url, what=what, token=token, params={"ref": self.branch})
            sha = _json_object(existing, what).get("sha")
            if isinstance(sha, str) and sha:
                body["sha"] = sha
                await self._request("PUT", url, what=what, token=token, json=body)
                return
        raise_for_github_status(response, what)


def raise_for_github_status(response: httpx.Response, what: str) -> None:
    """Map a non-success response onto the PackSyncError hierarchy."""
    status = response.status_code
    if status < 400:
        return

    detail = _error_message(response)
    message = f"GitHub API error {status} while {what}: {detail}"
    if status in (401, 403):
        # Rate limiting also answers 403; treat it as transient
        if response.headers.get("x-ratelimit-remaining") == "0":
            raise SyncNetworkError(message, status_code=status)
        raise SyncAuthError(message)
    if status == 404:
        raise SyncNotFoundError(message)
    if status in RETRYABLE_STATUS_CODES or status >= 500:
        raise SyncNetworkError(message, status_code=status)
    raise PackSyncError(message, code="DOWNLOAD_FAILED" if response.request.method == "GET" else "UPLOAD_FAILED")


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return response.text[:200]
    if isinstance(payload, dict) and isinstance(payload.get("message"), str):
        return payload["message"]
    return response.text[:200]


def _json_object(response: httpx.Response, what: str) -> dict[str, Any]:
    try:
        payload = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedManifestError(f"Invalid JSON response while {what}", cause=e) from e
    if not isinstance(payload, dict):
        raise MalformedManifestError(f"Unexpected response while {what}: expected a file object")
    return payload
