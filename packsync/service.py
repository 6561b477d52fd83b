"""PackSyncService - explicitly owned composition root.

Builds the bundle and config caches, the GitHub client, the retry policy
and the orchestrator once, on first use. Concurrent callers share one
initialization (InitOnce); a failed initialization is retried by the next
caller. ``aclose()`` runs a final cache cleanup and closes the HTTP client.

Example:
    >>> service = PackSyncService(installer=my_installer)
    >>> result = await service.update("owner/pack", uuid, "/games/pack")
    >>> await service.aclose()
"""

from __future__ import annotations

from packsync.cache.codec import PydanticValueCodec
from packsync.cache.durable import DurableBackend, FileDurableBackend
from packsync.cache.tiered import TieredCache
from packsync.clients.filesystem import LocalManifestStore
from packsync.clients.github import GitHubContentsClient
from packsync.clients.protocols import BundleInstaller, ManifestStore, RemoteBundleStore
from packsync.core.config import Settings, get_settings
from packsync.core.constants import BUNDLE_CACHE_NAMESPACE, CONFIG_CACHE_NAMESPACE
from packsync.core.latch import InitOnce
from packsync.core.logging import get_logger
from packsync.schemas.manifest import CachedBundle, ConfigFileWithContent, Manifest
from packsync.sync.batch import BatchProcessor
from packsync.sync.orchestrator import RetryCallback, SyncOrchestrator
from packsync.sync.retry import RetryPolicy
from packsync.sync.session import CancellationToken, ProgressCallback, SyncResult


logger = get_logger(__name__)


class PackSyncService:
    """Owns every long-lived object of the sync core."""

    def __init__(
        self,
        installer: BundleInstaller,
        settings: Settings | None = None,
        *,
        remote: RemoteBundleStore | None = None,
        manifest_store: ManifestStore | None = None,
        durable: DurableBackend | None = None,
    ) -> None:
        """Initialize the service (nothing is built until first use).

        Args:
            installer: Applies bundles to a modpack directory
            settings: Library settings. Uses get_settings() if not provided.
            remote: Remote store; a GitHubContentsClient by default
            manifest_store: Installed-manifest store; LocalManifestStore by default
            durable: Durable layer of the bundle cache; a FileDurableBackend
                under ``settings.cache_dir`` by default when enabled
        """
        self._settings = settings or get_settings()
        self._installer = installer
        self._remote = remote
        self._manifest_store = manifest_store
        self._durable = durable
        self._latch = InitOnce()

        self._owned_client: GitHubContentsClient | None = None
        self._bundle_cache: TieredCache[CachedBundle] | None = None
        self._config_cache: TieredCache[ConfigFileWithContent] | None = None
        self._orchestrator: SyncOrchestrator | None = None

    @property
    def initialized(self) -> bool:
        return self._latch.done

    @property
    def orchestrator(self) -> SyncOrchestrator:
        """Return the orchestrator.

        Raises:
            RuntimeError: If initialize() has not completed
        """
        if self._orchestrator is None:
            raise RuntimeError("PackSyncService is not initialized; await initialize() first")
        return self._orchestrator

    @property
    def bundle_cache(self) -> TieredCache[CachedBundle]:
        if self._bundle_cache is None:
            raise RuntimeError("PackSyncService is not initialized; await initialize() first")
        return self._bundle_cache

    async def initialize(self) -> None:
        """Build the object graph once; concurrent callers share the work."""
        await self._latch.run(self._build)

    async def _build(self) -> None:
        settings = self._settings

        durable = self._durable
        if durable is None and settings.durable_cache_enabled:
            durable = FileDurableBackend(settings.cache_dir)

        bundle_cache: TieredCache[CachedBundle] = TieredCache(
            BUNDLE_CACHE_NAMESPACE,
            ttl_seconds=settings.bundle_cache_ttl_seconds,
            max_entries=settings.bundle_cache_max_entries,
            durable=durable,
            codec=PydanticValueCodec(CachedBundle),
        )
        config_cache: TieredCache[ConfigFileWithContent] = TieredCache(
            CONFIG_CACHE_NAMESPACE,
            ttl_seconds=settings.config_cache_ttl_seconds,
            max_entries=settings.config_cache_max_entries,
        )

        remote = self._remote
        if remote is None:
            self._owned_client = GitHubContentsClient(
                settings,
                batch=BatchProcessor(settings.batch_size, settings.batch_delay_seconds),
                config_cache=config_cache,
            )
            remote = self._owned_client

        self._orchestrator = SyncOrchestrator(
            remote=remote,
            installer=self._installer,
            manifest_store=self._manifest_store or LocalManifestStore(filename=settings.manifest_filename),
            bundle_cache=bundle_cache,
            retry=RetryPolicy(
                max_attempts=settings.retry_max_attempts,
                base_delay_seconds=settings.retry_base_delay_seconds,
            ),
        )
        self._bundle_cache = bundle_cache
        self._config_cache = config_cache
        logger.info(
            "Sync service initialized",
            durable_cache=type(durable).__name__ if durable else None,
            remote=type(remote).__name__,
        )

    async def aclose(self) -> None:
        """Dispose the caches and close the HTTP client."""
        if self._bundle_cache is not None:
            await self._bundle_cache.dispose()
        if self._config_cache is not None:
            await self._config_cache.dispose()
        if self._owned_client is not None:
            await self._owned_client.close()
        self._owned_client = None
        self._bundle_cache = None
        self._config_cache = None
        self._orchestrator = None
        self._latch.reset()
        logger.info("Sync service closed")

    # =========================================================================
    # Operations
    # =========================================================================

    async def check(
        self,
        repo: str,
        uuid: str,
        target_path: str,
        *,
        on_progress: ProgressCallback | None = None,
        on_retry: RetryCallback | None = None,
        cancel: CancellationToken | None = None,
    ) -> SyncResult:
        await self.initialize()
        return await self.orchestrator.check(
            repo, uuid, target_path,
            on_progress=on_progress, on_retry=on_retry, cancel=cancel,
        )

    async def update(
        self,
        repo: str,
        uuid: str,
        target_path: str,
        *,
        on_progress: ProgressCallback | None = None,
        on_retry: RetryCallback | None = None,
        cancel: CancellationToken | None = None,
    ) -> SyncResult:
        await self.initialize()
        return await self.orchestrator.update(
            repo, uuid, target_path,
            on_progress=on_progress, on_retry=on_retry, cancel=cancel,
        )

    async def publish(
        self,
        repo: str,
        token: str,
        uuid: str,
        manifest: Manifest,
        config_files: list[ConfigFileWithContent],
        *,
        on_progress: ProgressCallback | None = None,
        on_retry: RetryCallback | None = None,
    ) -> SyncResult:
        await self.initialize()
        return await self.orchestrator.publish(
            repo, token, uuid, manifest, config_files,
            on_progress=on_progress, on_retry=on_retry,
        )

    async def __aenter__(self) -> PackSyncService:
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
