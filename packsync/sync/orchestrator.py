"""SyncOrchestrator - two-phase update protocol over the collaborator protocols.

Check / update cycle:
1. fetching_manifest: bundle cache first, else remote (retry + single-flight);
   the manifest is cached before diffing
2. diffing: previous manifest from the ManifestStore vs. the remote one
3. fetching_config: cached config files first, else remote; cached on success
4. installing (update only): apply through the BundleInstaller, then record
   the new manifest as installed

Every session ends in exactly one of completed / failed / cancelled and is
released from ``active_sessions()`` before its result is returned. Errors
are converted to a failed SyncResult only here, at the orchestrator boundary.

Pattern: Staged pipeline with terminal result
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

from packsync.cache.tiered import TieredCache
from packsync.clients.protocols import BundleInstaller, ManifestStore, RemoteBundleStore
from packsync.core.constants import UploadProgress
from packsync.core.exceptions import InstallError, PackSyncError, describe_error
from packsync.core.logging import bind_context, get_logger
from packsync.schemas.diff import UpdatePreview
from packsync.schemas.manifest import CachedBundle, ConfigFileWithContent, Manifest
from packsync.sync.diff import build_preview
from packsync.sync.retry import RetryPolicy, RetryState, is_retryable
from packsync.sync.session import (
    CancellationToken,
    ProgressCallback,
    SyncPhase,
    SyncResult,
    SyncSession,
)
from packsync.sync.singleflight import SingleFlight


logger = get_logger(__name__)

T = TypeVar("T")

RetryCallback = Callable[[RetryState], None]

USING_CACHED_DATA = "Using cached data"


class SyncOrchestrator:
    """Drives check, update and publish sessions.

    Example:
        >>> orchestrator = SyncOrchestrator(
        ...     remote=GitHubContentsClient(http_client),
        ...     installer=installer,
        ...     manifest_store=LocalManifestStore(),
        ...     bundle_cache=bundle_cache,
        ...     retry=RetryPolicy(),
        ... )
        >>> result = await orchestrator.update("owner/pack", uuid, "/games/pack")
        >>> result.state
        <SyncPhase.COMPLETED: 'completed'>
    """

    def __init__(
        self,
        remote: RemoteBundleStore,
        installer: BundleInstaller,
        manifest_store: ManifestStore,
        bundle_cache: TieredCache[CachedBundle],
        retry: RetryPolicy,
        single_flight: SingleFlight | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            remote: Remote bundle store
            installer: Applies bundles to a modpack directory
            manifest_store: Record of the installed manifest
            bundle_cache: Cache of CachedBundle values keyed "{repo}-{uuid}"
            retry: Retry policy for remote calls
            single_flight: Deduplicates concurrent fetches of one bundle
            clock: Epoch-seconds time source for download/upload stamps
        """
        self._remote = remote
        self._installer = installer
        self._manifest_store = manifest_store
        self._cache = bundle_cache
        self._retry = retry
        self._single_flight = single_flight or SingleFlight()
        self._clock = clock
        self._sessions: dict[str, SyncSession] = {}

    def active_sessions(self) -> list[SyncSession]:
        """Return the sessions currently in flight."""
        return list(self._sessions.values())

    # =========================================================================
    # Public operations
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
        """Download and preview a bundle without installing it.

        A complete cached bundle short-circuits to completed without any
        remote call.
        """
        return await self._run(
            repo, uuid, target_path,
            install=False,
            on_progress=on_progress,
            on_retry=on_retry,
            cancel=cancel,
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
        """Run the full cycle including installation.

        Cached phases are skipped individually, so a session retried after a
        failure resumes with whatever the previous one already fetched.
        """
        return await self._run(
            repo, uuid, target_path,
            install=True,
            on_progress=on_progress,
            on_retry=on_retry,
            cancel=cancel,
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
        """Upload a bundle, then cache it as ``{repo}-{uuid}``.

        Args:
            repo: Repository, "owner/name"
            token: Credential for the remote store
            uuid: Bundle identifier
            manifest: Manifest to publish
            config_files: Config files with their content
            on_progress: Progress callback
            on_retry: Called before each upload retry

        Returns:
            SyncResult ending in completed or failed
        """
        session = self._open_session(repo, uuid)
        with bind_context(session_id=session.session_id, repo=repo, uuid=uuid, operation="publish"):
            try:
                self._emit(session, on_progress, SyncPhase.PUBLISHING, message="Preparing upload")
                logger.info("Publishing bundle", config_files=len(config_files))

                await self._retry.run(
                    lambda: self._remote.upload_bundle(repo, token, uuid, manifest, config_files),
                    on_retry=on_retry,
                )
                bundle = CachedBundle(
                    manifest=manifest,
                    config_files=list(config_files),
                    uploaded_at=self._clock(),
                )
                await self._cache.set(session.cache_key, bundle)

                self._emit(session, on_progress, SyncPhase.COMPLETED, UploadProgress.COMPLETED, "Upload complete")
                logger.info("Bundle published", duration_ms=session.elapsed_ms)
                return SyncResult(
                    session_id=session.session_id,
                    state=SyncPhase.COMPLETED,
                    duration_ms=session.elapsed_ms,
                    message="Upload complete",
                )
            except Exception as e:
                return self._fail(session, on_progress, e, preview=None)
            finally:
                self._close_session(session)

    # =========================================================================
    # Check / update cycle
    # =========================================================================

    async def _run(
        self,
        repo: str,
        uuid: str,
        target_path: str,
        *,
        install: bool,
        on_progress: ProgressCallback | None,
        on_retry: RetryCallback | None,
        cancel: CancellationToken | None,
    ) -> SyncResult:
        session = self._open_session(repo, uuid)
        operation = "update" if install else "check"
        with bind_context(session_id=session.session_id, repo=repo, uuid=uuid, operation=operation):
            preview: UpdatePreview | None = None
            try:
                # fetching_manifest
                if self._cancelled(cancel):
                    return self._cancel(session, on_progress, preview)
                self._emit(session, on_progress, SyncPhase.FETCHING_MANIFEST, message="Fetching manifest")

                bundle = await self._cache.get(session.cache_key)
                from_cache = bundle is not None

                if bundle is not None and not install and bundle.is_complete:
                    old = await self._manifest_store.read_previous_manifest(target_path)
                    preview = build_preview(old, bundle.manifest, bundle.config_files or [])
                    self._emit(session, on_progress, SyncPhase.COMPLETED, message=USING_CACHED_DATA)
                    logger.info("Using cached data", has_changes=preview.has_changes)
                    return self._complete(session, preview, from_cache=True, message=USING_CACHED_DATA)

                if bundle is None:
                    manifest = await self._fetch(
                        f"manifest:{session.cache_key}",
                        lambda: self._remote.fetch_manifest(repo, uuid),
                        on_retry,
                    )
                    bundle = CachedBundle(manifest=manifest, downloaded_at=self._clock())
                    await self._cache.set(session.cache_key, bundle)
                    logger.info("Manifest fetched", addons=sum(1 for _ in manifest.all_addons()))
                else:
                    logger.info("Manifest cache hit")
                manifest = bundle.manifest

                # diffing
                if self._cancelled(cancel):
                    return self._cancel(session, on_progress, preview)
                self._emit(session, on_progress, SyncPhase.DIFFING, message="Comparing manifests")

                old = await self._manifest_store.read_previous_manifest(target_path)
                preview = build_preview(old, manifest)
                logger.info(
                    "Manifest diff computed",
                    removed=len(preview.diff.removed),
                    upgraded=len(preview.diff.upgraded),
                    added=len(preview.diff.added),
                )

                # fetching_config
                if self._cancelled(cancel):
                    return self._cancel(session, on_progress, preview)
                self._emit(session, on_progress, SyncPhase.FETCHING_CONFIG, message="Fetching config files")

                if not manifest.config_files:
                    config_files: list[ConfigFileWithContent] = []
                elif bundle.config_files is not None:
                    config_files = bundle.config_files
                    logger.info("Config files cache hit", files=len(config_files))
                else:
                    from_cache = False
                    config_files = await self._fetch(
                        f"config:{session.cache_key}",
                        lambda: self._remote.fetch_config_files(repo, uuid, manifest),
                        on_retry,
                    )
                    bundle = bundle.model_copy(update={"config_files": config_files})
                    await self._cache.set(session.cache_key, bundle)
                    logger.info("Config files fetched", files=len(config_files))

                preview = preview.model_copy(update={"config_files": config_files})

                if not install:
                    self._emit(session, on_progress, SyncPhase.COMPLETED, message="Update ready")
                    return self._complete(session, preview, from_cache=from_cache, message="Update ready")

                # installing
                if self._cancelled(cancel):
                    return self._cancel(session, on_progress, preview)
                self._emit(session, on_progress, SyncPhase.INSTALLING, message="Installing update")

                await self._install(target_path, old, manifest, config_files)
                await self._manifest_store.write_previous_manifest(target_path, manifest)

                self._emit(session, on_progress, SyncPhase.COMPLETED, message="Update installed")
                logger.info("Update installed", duration_ms=session.elapsed_ms)
                return self._complete(session, preview, from_cache=from_cache, message="Update installed")
            except Exception as e:
                return self._fail(session, on_progress, e, preview=preview)
            finally:
                self._close_session(session)

    async def _fetch(
        self,
        key: str,
        operation: Callable[[], Awaitable[T]],
        on_retry: RetryCallback | None,
    ) -> T:
        """Retry-wrapped remote call, shared by concurrent sessions."""
        return await self._single_flight.run(
            key,
            lambda: self._retry.run(operation, on_retry=on_retry),
        )

    async def _install(
        self,
        target_path: str,
        old: Manifest | None,
        new: Manifest,
        config_files: list[ConfigFileWithContent],
    ) -> None:
        try:
            await self._installer.install_bundle(target_path, old, new, config_files)
        except PackSyncError:
            raise
        except Exception as e:
            raise InstallError(f"Install failed: {e}", target_path=target_path, cause=e) from e

    # =========================================================================
    # Session bookkeeping
    # =========================================================================

    def _open_session(self, repo: str, uuid: str) -> SyncSession:
        session = SyncSession(repo=repo, uuid=uuid)
        self._sessions[session.session_id] = session
        return session

    def _close_session(self, session: SyncSession) -> None:
        self._sessions.pop(session.session_id, None)

    @staticmethod
    def _cancelled(cancel: CancellationToken | None) -> bool:
        return cancel is not None and cancel.cancelled

    @staticmethod
    def _emit(
        session: SyncSession,
        on_progress: ProgressCallback | None,
        phase: SyncPhase,
        percent: int | None = None,
        message: str = "",
    ) -> None:
        event = session.advance(phase, percent, message)
        logger.debug("Sync phase", phase=phase.value, percent=event.percent)
        if on_progress is None:
            return
        try:
            on_progress(event)
        except Exception as e:
            # Observer errors never change the session outcome
            logger.warning("Progress callback failed", phase=phase.value, error=str(e))

    @staticmethod
    def _complete(
        session: SyncSession,
        preview: UpdatePreview,
        *,
        from_cache: bool,
        message: str,
    ) -> SyncResult:
        return SyncResult(
            session_id=session.session_id,
            state=SyncPhase.COMPLETED,
            preview=preview,
            from_cache=from_cache,
            duration_ms=session.elapsed_ms,
            message=message,
        )

    def _cancel(
        self,
        session: SyncSession,
        on_progress: ProgressCallback | None,
        preview: UpdatePreview | None,
    ) -> SyncResult:
        reached = session.phase
        self._emit(session, on_progress, SyncPhase.CANCELLED, message="Cancelled")
        logger.info("Sync cancelled", after=reached.value)
        return SyncResult(
            session_id=session.session_id,
            state=SyncPhase.CANCELLED,
            preview=preview,
            duration_ms=session.elapsed_ms,
            message="Cancelled",
        )

    def _fail(
        self,
        session: SyncSession,
        on_progress: ProgressCallback | None,
        error: Exception,
        *,
        preview: UpdatePreview | None,
    ) -> SyncResult:
        # A retryable error only reaches here once its retry budget is spent
        remaining = 0 if is_retryable(error) else None
        details = describe_error(error, remaining_attempts=remaining)
        failed_in = session.phase
        if not session.phase.is_terminal:
            self._emit(session, on_progress, SyncPhase.FAILED, message=details.user_message)
        logger.warning(
            "Sync failed",
            phase=failed_in.value,
            code=details.code,
            attempts=getattr(error, "attempts", None),
            error=str(error),
        )
        return SyncResult(
            session_id=session.session_id,
            state=SyncPhase.FAILED,
            preview=preview,
            error=error,
            error_details=details,
            duration_ms=session.elapsed_ms,
            message=details.user_message,
        )
