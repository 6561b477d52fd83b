"""Test configuration and shared fixtures.

Pattern: Pytest fixtures, conftest.py
"""

from pathlib import Path

import pytest

from packsync.cache.codec import PydanticValueCodec
from packsync.cache.tiered import TieredCache
from packsync.core.config import Settings
from packsync.schemas.manifest import CachedBundle, Manifest
from packsync.sync.orchestrator import SyncOrchestrator
from packsync.sync.retry import RetryPolicy
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
    make_manifest,
)


# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Create test settings with safe defaults."""
    return Settings(
        environment="test",
        log_level="DEBUG",
        github_api_url="https://api.github.test",
        cache_dir=tmp_path / "cache",
        durable_cache_enabled=False,
        retry_base_delay_seconds=0.0,
        batch_delay_seconds=0.0,
    )


# ============================================================================
# Manifest Fixtures
# ============================================================================

@pytest.fixture
def old_manifest() -> Manifest:
    """Installed manifest: JEI 1.0, Create 0.5, Journeymap 5.9."""
    return make_manifest(
        mods=[
            make_addon(238222, "JEI", "1.0"),
            make_addon(328085, "Create", "0.5"),
            make_addon(32274, "Journeymap", "5.9"),
        ],
    )


@pytest.fixture
def new_manifest() -> Manifest:
    """Remote manifest: JEI upgraded, Journeymap removed, Sodium added, two config files."""
    return make_manifest(
        mods=[
            make_addon(238222, "JEI", "1.1"),
            make_addon(328085, "Create", "0.5"),
            make_addon(394468, "Sodium", "0.4"),
        ],
        config_paths=["config/jei.toml", "options.txt"],
    )


# ============================================================================
# Orchestrator Fixtures
# ============================================================================

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def durable() -> FakeDurableBackend:
    return FakeDurableBackend()


@pytest.fixture
def bundle_cache(clock: FakeClock, durable: FakeDurableBackend) -> TieredCache[CachedBundle]:
    return TieredCache(
        "github",
        ttl_seconds=600,
        max_entries=50,
        durable=durable,
        codec=PydanticValueCodec(CachedBundle),
        clock=clock,
    )


@pytest.fixture
def remote(new_manifest: Manifest) -> FakeRemoteBundleStore:
    store = FakeRemoteBundleStore()
    store.add_bundle(REPO, UUID, new_manifest)
    return store


@pytest.fixture
def installer() -> FakeInstaller:
    return FakeInstaller()


@pytest.fixture
def manifest_store(old_manifest: Manifest) -> FakeManifestStore:
    return FakeManifestStore({TARGET: old_manifest})


@pytest.fixture
def retry(sleep: RecordingSleep) -> RetryPolicy:
    return RetryPolicy(max_attempts=3, base_delay_seconds=1.0, sleep=sleep)


@pytest.fixture
def orchestrator(
    remote: FakeRemoteBundleStore,
    installer: FakeInstaller,
    manifest_store: FakeManifestStore,
    bundle_cache: TieredCache[CachedBundle],
    retry: RetryPolicy,
    clock: FakeClock,
) -> SyncOrchestrator:
    return SyncOrchestrator(
        remote=remote,
        installer=installer,
        manifest_store=manifest_store,
        bundle_cache=bundle_cache,
        retry=retry,
        clock=clock,
    )
