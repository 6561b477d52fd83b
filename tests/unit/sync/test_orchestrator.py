"""Unit tests for packsync.sync.orchestrator.

Drives check, update and publish sessions against in-memory fakes: the
remote store, installer and manifest store from tests.fakes, a FakeClock
for cache time and RecordingSleep for retry backoff.
"""

import asyncio
from collections.abc import Callable

import pytest
import structlog

from packsync.cache.tiered import TieredCache
from packsync.core.exceptions import (
    InstallError,
    MalformedManifestError,
    SyncAuthError,
    SyncNetworkError,
)
from packsync.schemas.manifest import CachedBundle, Manifest
from packsync.sync.orchestrator import USING_CACHED_DATA, SyncOrchestrator
from packsync.sync.retry import RetryPolicy, RetryState
from packsync.sync.session import CancellationToken, SyncPhase, SyncProgress
from tests.fakes.fake_clients import (
    REPO,
    TARGET,
    UUID,
    FakeClock,
    FakeDurableBackend,
    FakeInstaller,
    FakeManifestStore,
    FakeRemoteBundleStore,
    RecordingSleep,
    make_addon,
    make_config_files,
    make_manifest,
)


CACHE_KEY = f"{REPO}-{UUID}"


class FlakyManifestStore(FakeManifestStore):
    """Manifest store whose first read fails."""

    def __init__(self, manifests: dict[str, Manifest]) -> None:
        super().__init__(manifests)
        self.failures = 1

    async def read_previous_manifest(self, target_path: str) -> Manifest | None:
        if self.failures:
            self.failures -= 1
            raise MalformedManifestError("Installed manifest is unreadable")
        return await super().read_previous_manifest(target_path)


def percents(events: list[SyncProgress]) -> list[int]:
    return [event.percent for event in events]


def phases(events: list[SyncProgress]) -> list[SyncPhase]:
    return [event.phase for event in events]


# =============================================================================
# Update
# =============================================================================

class TestUpdate:
    """Tests for the full update cycle."""

    @pytest.mark.asyncio
    async def test_update_installs_and_records_manifest(
        self,
        orchestrator: SyncOrchestrator,
        remote: FakeRemoteBundleStore,
        installer: FakeInstaller,
        manifest_store: FakeManifestStore,
        old_manifest: Manifest,
        new_manifest: Manifest,
    ) -> None:
        events: list[SyncProgress] = []

        result = await orchestrator.update(REPO, UUID, TARGET, on_progress=events.append)

        assert result.state is SyncPhase.COMPLETED
        assert result.succeeded
        assert result.message == "Update installed"
        assert result.from_cache is False
        assert percents(events) == [10, 40, 55, 75, 100]
        assert phases(events) == [
            SyncPhase.FETCHING_MANIFEST,
            SyncPhase.DIFFING,
            SyncPhase.FETCHING_CONFIG,
            SyncPhase.INSTALLING,
            SyncPhase.COMPLETED,
        ]

        assert len(installer.installs) == 1
        install = installer.installs[0]
        assert install["target_path"] == TARGET
        assert install["old"] == old_manifest
        assert install["new"] == new_manifest
        assert install["config_files"] == make_config_files(new_manifest)
        assert manifest_store.writes == [(TARGET, new_manifest)]

    @pytest.mark.asyncio
    async def test_update_preview_has_diff_and_config(self, orchestrator: SyncOrchestrator) -> None:
        result = await orchestrator.update(REPO, UUID, TARGET)

        assert result.preview is not None
        assert result.preview.diff.removed == ["Journeymap"]
        assert result.preview.diff.added == ["Sodium"]
        assert result.preview.diff.upgrade_pairs() == [("1.0", "1.1")]
        assert [c.relative_path for c in result.preview.config_files or []] == [
            "config/jei.toml",
            "options.txt",
        ]

    @pytest.mark.asyncio
    async def test_update_caches_complete_bundle(
        self,
        orchestrator: SyncOrchestrator,
        bundle_cache: TieredCache[CachedBundle],
        clock: FakeClock,
        new_manifest: Manifest,
    ) -> None:
        await orchestrator.update(REPO, UUID, TARGET)

        bundle = await bundle_cache.get(CACHE_KEY)
        assert bundle is not None
        assert bundle.manifest == new_manifest
        assert bundle.config_files == make_config_files(new_manifest)
        assert bundle.downloaded_at == clock.now
        assert bundle.is_complete

    @pytest.mark.asyncio
    async def test_fresh_install_adds_everything(
        self,
        remote: FakeRemoteBundleStore,
        installer: FakeInstaller,
        bundle_cache: TieredCache[CachedBundle],
        retry: RetryPolicy,
    ) -> None:
        store = FakeManifestStore()
        orchestrator = SyncOrchestrator(remote, installer, store, bundle_cache, retry)

        result = await orchestrator.update(REPO, UUID, TARGET)

        assert result.preview is not None
        assert result.preview.old_manifest is None
        assert result.preview.diff.added == ["JEI", "Create", "Sodium"]
        assert installer.installs[0]["old"] is None

    @pytest.mark.asyncio
    async def test_manifest_without_config_skips_config_fetch(
        self,
        remote: FakeRemoteBundleStore,
        orchestrator: SyncOrchestrator,
        installer: FakeInstaller,
    ) -> None:
        remote.add_bundle(REPO, "no-config", make_manifest(mods=[make_addon(1)]))

        result = await orchestrator.update(REPO, "no-config", TARGET)

        assert result.succeeded
        assert remote.calls("fetch_config_files") == []
        assert installer.installs[0]["config_files"] == []

    @pytest.mark.asyncio
    async def test_update_after_check_reuses_cache(
        self,
        orchestrator: SyncOrchestrator,
        remote: FakeRemoteBundleStore,
        installer: FakeInstaller,
    ) -> None:
        await orchestrator.check(REPO, UUID, TARGET)
        events: list[SyncProgress] = []

        result = await orchestrator.update(REPO, UUID, TARGET, on_progress=events.append)

        assert result.succeeded
        assert result.from_cache is True
        assert percents(events) == [10, 40, 55, 75, 100]
        assert len(remote.calls("fetch_manifest")) == 1
        assert len(remote.calls("fetch_config_files")) == 1
        assert len(installer.installs) == 1

    @pytest.mark.asyncio
    async def test_durable_write_failure_does_not_fail_session(
        self,
        orchestrator: SyncOrchestrator,
        durable: FakeDurableBackend,
    ) -> None:
        durable.fail_persist = True

        result = await orchestrator.update(REPO, UUID, TARGET)

        assert result.succeeded
        assert durable.persist_calls > 0


# =============================================================================
# Check
# =============================================================================

class TestCheck:
    """Tests for check (preview without install)."""

    @pytest.mark.asyncio
    async def test_check_does_not_install(
        self,
        orchestrator: SyncOrchestrator,
        installer: FakeInstaller,
        manifest_store: FakeManifestStore,
    ) -> None:
        events: list[SyncProgress] = []

        result = await orchestrator.check(REPO, UUID, TARGET, on_progress=events.append)

        assert result.succeeded
        assert result.message == "Update ready"
        assert percents(events) == [10, 40, 55, 100]
        assert installer.installs == []
        assert manifest_store.writes == []
        assert result.preview is not None
        assert result.preview.has_changes

    @pytest.mark.asyncio
    async def test_second_check_served_from_cache(
        self,
        orchestrator: SyncOrchestrator,
        remote: FakeRemoteBundleStore,
    ) -> None:
        first = await orchestrator.check(REPO, UUID, TARGET)
        events: list[SyncProgress] = []

        second = await orchestrator.check(REPO, UUID, TARGET, on_progress=events.append)

        assert second.succeeded
        assert second.from_cache is True
        assert second.message == USING_CACHED_DATA
        assert phases(events) == [SyncPhase.FETCHING_MANIFEST, SyncPhase.COMPLETED]
        assert events[-1].message == USING_CACHED_DATA
        assert percents(events) == [10, 100]
        assert len(remote.calls("fetch_manifest")) == 1
        assert second.preview == first.preview

    @pytest.mark.asyncio
    async def test_cache_expiry_refetches(
        self,
        orchestrator: SyncOrchestrator,
        remote: FakeRemoteBundleStore,
        clock: FakeClock,
    ) -> None:
        await orchestrator.check(REPO, UUID, TARGET)
        clock.advance(601)

        result = await orchestrator.check(REPO, UUID, TARGET)

        assert result.from_cache is False
        assert len(remote.calls("fetch_manifest")) == 2

    @pytest.mark.asyncio
    async def test_cached_check_uses_current_installed_manifest(
        self,
        orchestrator: SyncOrchestrator,
        manifest_store: FakeManifestStore,
        new_manifest: Manifest,
    ) -> None:
        await orchestrator.check(REPO, UUID, TARGET)
        manifest_store.manifests[TARGET] = new_manifest

        result = await orchestrator.check(REPO, UUID, TARGET)

        assert result.preview is not None
        assert not result.preview.diff.has_changes


# =============================================================================
# Failures
# =============================================================================

class TestFailures:
    """Tests for failed sessions."""

    @pytest.mark.asyncio
    async def test_transient_manifest_failures_retried(
        self,
        orchestrator: SyncOrchestrator,
        remote: FakeRemoteBundleStore,
        sleep: RecordingSleep,
    ) -> None:
        remote.error_on["fetch_manifest"] = [SyncNetworkError("reset"), SyncNetworkError("reset")]
        states: list[RetryState] = []

        result = await orchestrator.update(REPO, UUID, TARGET, on_retry=states.append)

        assert result.succeeded
        assert len(remote.calls("fetch_manifest")) == 3
        assert sleep.delays == [2.0, 4.0]
        assert [state.remaining for state in states] == [2, 1]

    @pytest.mark.asyncio
    async def test_retry_budget_exhausted(
        self,
        orchestrator: SyncOrchestrator,
        remote: FakeRemoteBundleStore,
    ) -> None:
        remote.error_on["fetch_manifest"] = SyncNetworkError("Network unreachable")
        events: list[SyncProgress] = []

        result = await orchestrator.update(REPO, UUID, TARGET, on_progress=events.append)

        assert result.state is SyncPhase.FAILED
        assert isinstance(result.error, SyncNetworkError)
        assert result.error.attempts == 3
        assert result.error_details is not None
        assert result.error_details.code == "NETWORK_ERROR"
        assert result.error_details.can_retry is True
        assert result.error_details.remaining_attempts == 0
        assert phases(events)[-1] is SyncPhase.FAILED
        assert events[-1].percent == 10
        assert result.preview is None

    @pytest.mark.asyncio
    async def test_unknown_uuid_fails_without_retry(
        self,
        orchestrator: SyncOrchestrator,
        remote: FakeRemoteBundleStore,
        sleep: RecordingSleep,
    ) -> None:
        result = await orchestrator.check(REPO, "missing", TARGET)

        assert result.state is SyncPhase.FAILED
        assert result.error_details is not None
        assert result.error_details.code == "UPDATE_NOT_FOUND"
        assert result.error_details.remaining_attempts is None
        assert len(remote.calls("fetch_manifest")) == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_manifest_cached_before_diff_failure(
        self,
        remote: FakeRemoteBundleStore,
        installer: FakeInstaller,
        bundle_cache: TieredCache[CachedBundle],
        retry: RetryPolicy,
        old_manifest: Manifest,
    ) -> None:
        store = FlakyManifestStore({TARGET: old_manifest})
        orchestrator = SyncOrchestrator(remote, installer, store, bundle_cache, retry)

        failed = await orchestrator.update(REPO, UUID, TARGET)

        assert failed.state is SyncPhase.FAILED
        assert failed.error_details is not None
        assert failed.error_details.code == "INVALID_MANIFEST"
        cached = await bundle_cache.get(CACHE_KEY)
        assert cached is not None
        assert cached.config_files is None

        retried = await orchestrator.update(REPO, UUID, TARGET)

        assert retried.succeeded
        assert len(remote.calls("fetch_manifest")) == 1

    @pytest.mark.asyncio
    async def test_config_failure_keeps_diff(
        self,
        orchestrator: SyncOrchestrator,
        remote: FakeRemoteBundleStore,
    ) -> None:
        remote.error_on["fetch_config_files"] = SyncAuthError("Bad credentials")
        events: list[SyncProgress] = []

        result = await orchestrator.update(REPO, UUID, TARGET, on_progress=events.append)

        assert result.state is SyncPhase.FAILED
        assert isinstance(result.error, SyncAuthError)
        assert result.preview is not None
        assert result.preview.diff.added == ["Sodium"]
        assert result.preview.config_files is None
        assert percents(events) == [10, 40, 55, 55]

    @pytest.mark.asyncio
    async def test_config_failure_resumes_at_config_fetch(
        self,
        orchestrator: SyncOrchestrator,
        remote: FakeRemoteBundleStore,
        installer: FakeInstaller,
    ) -> None:
        remote.error_on["fetch_config_files"] = [SyncAuthError("Bad credentials")]

        failed = await orchestrator.update(REPO, UUID, TARGET)
        assert failed.state is SyncPhase.FAILED

        events: list[SyncProgress] = []
        retried = await orchestrator.update(REPO, UUID, TARGET, on_progress=events.append)

        assert retried.succeeded
        assert retried.from_cache is False
        assert len(remote.calls("fetch_manifest")) == 1
        assert len(remote.calls("fetch_config_files")) == 2
        assert len(installer.installs) == 1
        assert phases(events) == [
            SyncPhase.FETCHING_MANIFEST,
            SyncPhase.DIFFING,
            SyncPhase.FETCHING_CONFIG,
            SyncPhase.INSTALLING,
            SyncPhase.COMPLETED,
        ]

    @pytest.mark.asyncio
    async def test_installer_failure_wrapped(
        self,
        remote: FakeRemoteBundleStore,
        manifest_store: FakeManifestStore,
        bundle_cache: TieredCache[CachedBundle],
        retry: RetryPolicy,
    ) -> None:
        cause = OSError("No space left on device")
        orchestrator = SyncOrchestrator(
            remote, FakeInstaller(error=cause), manifest_store, bundle_cache, retry
        )

        result = await orchestrator.update(REPO, UUID, TARGET)

        assert result.state is SyncPhase.FAILED
        assert isinstance(result.error, InstallError)
        assert result.error.cause is cause
        assert result.error.target_path == TARGET
        assert result.error_details is not None
        assert result.error_details.code == "INSTALL_FAILED"
        assert manifest_store.writes == []

    @pytest.mark.asyncio
    async def test_installer_install_error_passes_through(
        self,
        remote: FakeRemoteBundleStore,
        manifest_store: FakeManifestStore,
        bundle_cache: TieredCache[CachedBundle],
        retry: RetryPolicy,
    ) -> None:
        error = InstallError("Config write failed", code="CONFIG_INSTALL_FAILED")
        orchestrator = SyncOrchestrator(
            remote, FakeInstaller(error=error), manifest_store, bundle_cache, retry
        )

        result = await orchestrator.update(REPO, UUID, TARGET)

        assert result.error is error
        assert result.error_details is not None
        assert result.error_details.code == "CONFIG_INSTALL_FAILED"

    @pytest.mark.asyncio
    async def test_failed_install_can_be_reinvoked(
        self,
        remote: FakeRemoteBundleStore,
        manifest_store: FakeManifestStore,
        bundle_cache: TieredCache[CachedBundle],
        retry: RetryPolicy,
    ) -> None:
        failing = SyncOrchestrator(
            remote, FakeInstaller(error=OSError("locked")), manifest_store, bundle_cache, retry
        )
        assert (await failing.update(REPO, UUID, TARGET)).state is SyncPhase.FAILED

        installer = FakeInstaller()
        working = SyncOrchestrator(remote, installer, manifest_store, bundle_cache, retry)
        result = await working.update(REPO, UUID, TARGET)

        assert result.succeeded
        assert result.from_cache is True
        assert len(remote.calls("fetch_manifest")) == 1


# =============================================================================
# Cancellation
# =============================================================================

class TestCancellation:
    """Tests for cooperative cancellation."""

    @pytest.mark.asyncio
    async def test_cancel_before_start(
        self,
        orchestrator: SyncOrchestrator,
        remote: FakeRemoteBundleStore,
    ) -> None:
        token = CancellationToken()
        token.cancel()
        events: list[SyncProgress] = []

        result = await orchestrator.update(REPO, UUID, TARGET, on_progress=events.append, cancel=token)

        assert result.state is SyncPhase.CANCELLED
        assert result.error is None
        assert phases(events) == [SyncPhase.CANCELLED]
        assert remote.call_history == []

    @pytest.mark.asyncio
    async def test_cancel_during_diff_stops_before_config(
        self,
        orchestrator: SyncOrchestrator,
        remote: FakeRemoteBundleStore,
        installer: FakeInstaller,
    ) -> None:
        token = CancellationToken()
        events: list[SyncProgress] = []

        def on_progress(event: SyncProgress) -> None:
            events.append(event)
            if event.phase is SyncPhase.DIFFING:
                token.cancel()

        result = await orchestrator.update(REPO, UUID, TARGET, on_progress=on_progress, cancel=token)

        assert result.state is SyncPhase.CANCELLED
        assert result.preview is not None
        assert result.preview.diff.has_changes
        assert percents(events) == [10, 40, 40]
        assert remote.calls("fetch_config_files") == []
        assert installer.installs == []

    @pytest.mark.asyncio
    async def test_cancel_before_install(
        self,
        orchestrator: SyncOrchestrator,
        installer: FakeInstaller,
        manifest_store: FakeManifestStore,
    ) -> None:
        token = CancellationToken()

        def on_progress(event: SyncProgress) -> None:
            if event.phase is SyncPhase.FETCHING_CONFIG:
                token.cancel()

        result = await orchestrator.update(REPO, UUID, TARGET, on_progress=on_progress, cancel=token)

        assert result.state is SyncPhase.CANCELLED
        assert installer.installs == []
        assert manifest_store.writes == []


# =============================================================================
# Sessions and concurrency
# =============================================================================

class TestSessions:
    """Tests for session bookkeeping and concurrent sessions."""

    @pytest.mark.asyncio
    async def test_exactly_one_terminal_event(self, orchestrator: SyncOrchestrator) -> None:
        events: list[SyncProgress] = []

        await orchestrator.update(REPO, UUID, TARGET, on_progress=events.append)

        assert sum(1 for event in events if event.phase.is_terminal) == 1
        assert len({event.session_id for event in events}) == 1

    @pytest.mark.asyncio
    async def test_session_released_after_completion(
        self,
        orchestrator: SyncOrchestrator,
        remote: FakeRemoteBundleStore,
    ) -> None:
        remote.gate = asyncio.Event()

        task = asyncio.ensure_future(orchestrator.check(REPO, UUID, TARGET))
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        assert len(orchestrator.active_sessions()) == 1

        remote.gate.set()
        await task

        assert orchestrator.active_sessions() == []

    @pytest.mark.asyncio
    async def test_session_released_after_failure(
        self,
        orchestrator: SyncOrchestrator,
    ) -> None:
        await orchestrator.check(REPO, "missing", TARGET)
        assert orchestrator.active_sessions() == []

    @pytest.mark.asyncio
    async def test_concurrent_sessions_share_manifest_fetch(
        self,
        orchestrator: SyncOrchestrator,
        remote: FakeRemoteBundleStore,
    ) -> None:
        remote.gate = asyncio.Event()

        tasks = [asyncio.ensure_future(orchestrator.check(REPO, UUID, TARGET)) for _ in range(3)]
        for _ in range(20):
            await asyncio.sleep(0)
        remote.gate.set()
        results = await asyncio.gather(*tasks)

        assert all(result.succeeded for result in results)
        assert len({result.session_id for result in results}) == 3
        assert len(remote.calls("fetch_manifest")) == 1


class TestProgressCallback:
    """Tests for sessions whose progress observer misbehaves."""

    @staticmethod
    def raising(fail_on: SyncPhase | None = None) -> Callable[[SyncProgress], None]:
        def on_progress(event: SyncProgress) -> None:
            if fail_on is None or event.phase is fail_on:
                raise RuntimeError("ui gone")

        return on_progress

    @pytest.mark.asyncio
    async def test_raising_callback_does_not_fail_update(
        self,
        orchestrator: SyncOrchestrator,
        installer: FakeInstaller,
        manifest_store: FakeManifestStore,
    ) -> None:
        result = await orchestrator.update(REPO, UUID, TARGET, on_progress=self.raising())

        assert result.state is SyncPhase.COMPLETED
        assert len(installer.installs) == 1
        assert len(manifest_store.writes) == 1
        assert orchestrator.active_sessions() == []

    @pytest.mark.asyncio
    async def test_raising_on_completed_keeps_installed_result(
        self,
        orchestrator: SyncOrchestrator,
        manifest_store: FakeManifestStore,
    ) -> None:
        result = await orchestrator.update(
            REPO, UUID, TARGET, on_progress=self.raising(SyncPhase.COMPLETED)
        )

        assert result.succeeded
        assert result.message == "Update installed"
        assert len(manifest_store.writes) == 1

    @pytest.mark.asyncio
    async def test_raising_callback_on_failed_session_returns_result(
        self,
        orchestrator: SyncOrchestrator,
    ) -> None:
        result = await orchestrator.check(REPO, "missing", TARGET, on_progress=self.raising())

        assert result.state is SyncPhase.FAILED
        assert result.error_details is not None
        assert result.error_details.code == "UPDATE_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_raising_callback_does_not_fail_publish(
        self,
        orchestrator: SyncOrchestrator,
        remote: FakeRemoteBundleStore,
        new_manifest: Manifest,
    ) -> None:
        result = await orchestrator.publish(
            REPO, "token", "published", new_manifest, [], on_progress=self.raising()
        )

        assert result.succeeded
        assert len(remote.calls("upload_bundle")) == 1

    @pytest.mark.asyncio
    async def test_progress_percent_is_plain_int(self, orchestrator: SyncOrchestrator) -> None:
        events: list[SyncProgress] = []

        await orchestrator.update(REPO, UUID, TARGET, on_progress=events.append)

        assert [type(event.percent) for event in events] == [int] * len(events)


class TestLogContext:
    """Tests for session fields bound to the logging context."""

    @pytest.mark.asyncio
    async def test_session_fields_bound_during_session(self, orchestrator: SyncOrchestrator) -> None:
        seen: list[dict[str, object]] = []

        def on_progress(event: SyncProgress) -> None:
            seen.append(structlog.contextvars.get_contextvars())

        result = await orchestrator.update(REPO, UUID, TARGET, on_progress=on_progress)

        assert seen
        for context in seen:
            assert context["session_id"] == result.session_id
            assert context["repo"] == REPO
            assert context["uuid"] == UUID
            assert context["operation"] == "update"
        assert "session_id" not in structlog.contextvars.get_contextvars()

    @pytest.mark.asyncio
    async def test_concurrent_sessions_keep_their_own_fields(self, orchestrator: SyncOrchestrator) -> None:
        seen: dict[str, set[str]] = {}

        def on_progress(event: SyncProgress) -> None:
            bound = structlog.contextvars.get_contextvars()["session_id"]
            seen.setdefault(event.session_id, set()).add(bound)

        await asyncio.gather(
            orchestrator.check(REPO, UUID, TARGET, on_progress=on_progress),
            orchestrator.update(REPO, UUID, TARGET, on_progress=on_progress),
        )

        assert len(seen) == 2
        assert all(bound == {session_id} for session_id, bound in seen.items())


# =============================================================================
# Publish
# =============================================================================

class TestPublish:
    """Tests for publish."""

    @pytest.mark.asyncio
    async def test_publish_uploads_and_caches(
        self,
        orchestrator: SyncOrchestrator,
        remote: FakeRemoteBundleStore,
        bundle_cache: TieredCache[CachedBundle],
        clock: FakeClock,
        new_manifest: Manifest,
    ) -> None:
        config_files = make_config_files(new_manifest)
        events: list[SyncProgress] = []

        result = await orchestrator.publish(
            REPO, "ghp_token", "published", new_manifest, config_files, on_progress=events.append
        )

        assert result.succeeded
        assert result.message == "Upload complete"
        assert percents(events) == [10, 100]
        assert remote.calls("upload_bundle")[0]["args"] == {
            "repo": REPO,
            "token": "ghp_token",
            "uuid": "published",
        }

        cached = await bundle_cache.get(f"{REPO}-published")
        assert cached is not None
        assert cached.uploaded_at == clock.now
        assert cached.downloaded_at is None
        assert cached.config_files == config_files

    @pytest.mark.asyncio
    async def test_check_after_publish_uses_cache(
        self,
        orchestrator: SyncOrchestrator,
        remote: FakeRemoteBundleStore,
        new_manifest: Manifest,
    ) -> None:
        await orchestrator.publish(REPO, "t", "published", new_manifest, make_config_files(new_manifest))

        result = await orchestrator.check(REPO, "published", TARGET)

        assert result.from_cache is True
        assert remote.calls("fetch_manifest") == []

    @pytest.mark.asyncio
    async def test_publish_retries_transient_failure(
        self,
        orchestrator: SyncOrchestrator,
        remote: FakeRemoteBundleStore,
        sleep: RecordingSleep,
        new_manifest: Manifest,
    ) -> None:
        remote.error_on["upload_bundle"] = [SyncNetworkError("timeout")]

        result = await orchestrator.publish(REPO, "t", "published", new_manifest, [])

        assert result.succeeded
        assert len(remote.calls("upload_bundle")) == 2
        assert sleep.delays == [2.0]

    @pytest.mark.asyncio
    async def test_publish_auth_failure(
        self,
        orchestrator: SyncOrchestrator,
        remote: FakeRemoteBundleStore,
        bundle_cache: TieredCache[CachedBundle],
        new_manifest: Manifest,
    ) -> None:
        remote.error_on["upload_bundle"] = SyncAuthError("Bad credentials")
        events: list[SyncProgress] = []

        result = await orchestrator.publish(
            REPO, "bad", "published", new_manifest, [], on_progress=events.append
        )

        assert result.state is SyncPhase.FAILED
        assert result.error_details is not None
        assert result.error_details.code == "GITHUB_AUTH_ERROR"
        assert result.error_details.can_retry is False
        assert percents(events) == [10, 10]
        assert await bundle_cache.get(f"{REPO}-published") is None
        assert orchestrator.active_sessions() == []
