"""TieredCache - TTL cache with bounded memory layer and optional durable layer.

Reads check memory first, then the durable layer; a live durable hit is
promoted back into memory with a fresh ``stored_at`` (restoration counts as
a new observation, the entry keeps its own TTL). Writes go to memory and
through to the durable layer.

Every set runs a cleanup pass first:
1. Purge expired entries (now - stored_at > ttl) from memory and durable
2. Evict the oldest entries by stored_at until the incoming key fits

Capacity eviction only touches memory; the durable copy survives and may be
promoted later.

Pattern: Two-tier cache with write-through durable layer
Anti-Pattern Compliance:
- AP-1.5: No mutable default arguments
- AP-10.1: Uses asyncio.Lock for async context
"""

import asyncio
import time
from collections.abc import Callable
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict

from packsync.cache.codec import EntryCodec, ValueCodec
from packsync.cache.durable import DurableBackend
from packsync.cache.entry import CacheEntry
from packsync.cache.keys import build_cache_key, namespace_prefix
from packsync.core.exceptions import CacheCorruptionError
from packsync.core.logging import get_logger


logger = get_logger(__name__)

V = TypeVar("V")


class CacheStats(BaseModel):
    """Point-in-time count of a cache's memory layer."""

    model_config = ConfigDict(frozen=True)

    total: int
    active: int
    expired: int
    capacity: int


class TieredCache(Generic[V]):
    """Keyed TTL cache with size-bounded memory and optional durable backing.

    Example:
        >>> cache: TieredCache[CachedBundle] = TieredCache(
        ...     "github",
        ...     ttl_seconds=600,
        ...     max_entries=50,
        ...     durable=FileDurableBackend(cache_dir),
        ...     codec=PydanticValueCodec(CachedBundle),
        ... )
        >>> await cache.set("owner/pack-1234", bundle)
        >>> bundle = await cache.get("owner/pack-1234")
    """

    def __init__(
        self,
        namespace: str,
        *,
        ttl_seconds: float,
        max_entries: int,
        durable: DurableBackend | None = None,
        codec: ValueCodec[V] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the cache.

        Args:
            namespace: Key namespace shared by both layers
            ttl_seconds: Default entry lifetime; 0 disables liveness
            max_entries: Memory capacity; 0 disables caching entirely
            durable: Optional durable layer
            codec: Value conversion for the durable layer (identity JSON
                by default)
            clock: Time source returning epoch seconds
        """
        if ttl_seconds < 0:
            raise ValueError("ttl_seconds cannot be negative")
        if max_entries < 0:
            raise ValueError("max_entries cannot be negative")
        self._prefix = namespace_prefix(namespace)

        self._namespace = namespace
        self._ttl_seconds = ttl_seconds
        self._max_entries = max_entries
        self._durable = durable
        self._codec: EntryCodec[V] = EntryCodec(codec)
        self._clock = clock
        self._entries: dict[str, CacheEntry[V]] = {}
        # AP-10.1: Use asyncio.Lock for async context
        self._lock = asyncio.Lock()

    @property
    def namespace(self) -> str:
        """Return the namespace of this cache."""
        return self._namespace

    @property
    def ttl_seconds(self) -> float:
        """Return the default TTL in seconds."""
        return self._ttl_seconds

    @property
    def max_entries(self) -> int:
        """Return the memory capacity."""
        return self._max_entries

    @property
    def has_durable(self) -> bool:
        """Check if a durable layer is configured."""
        return self._durable is not None

    def _build_key(self, key: str) -> str:
        return build_cache_key(self._namespace, key)

    # =========================================================================
    # Public API
    # =========================================================================

    async def get(self, key: str) -> V | None:
        """Retrieve a live value.

        Args:
            key: Key within the namespace

        Returns:
            The cached value, or None on a miss (absent, expired, or an
            unreadable durable entry)
        """
        if self._max_entries == 0:
            return None

        full_key = self._build_key(key)
        async with self._lock:
            now = self._clock()
            entry = self._entries.get(full_key)
            if entry is not None:
                if entry.is_live(now):
                    logger.debug("Cache hit", layer="memory", key=full_key)
                    return entry.value
                del self._entries[full_key]
                logger.debug("Cache entry expired", layer="memory", key=full_key)

            if self._durable is None:
                logger.debug("Cache miss", key=full_key)
                return None

            restored = await self._load_durable(full_key, now)
            if restored is None:
                logger.debug("Cache miss", key=full_key)
                return None

            # Promotion: re-stamped, keeps its own TTL
            promoted = CacheEntry(value=restored.value, stored_at=now, ttl_seconds=restored.ttl_seconds)
            await self._cleanup_locked(now, reserve=full_key)
            self._entries[full_key] = promoted
            logger.debug("Cache hit", layer="durable", key=full_key)
            return promoted.value

    async def set(self, key: str, value: V, ttl_seconds: float | None = None) -> None:
        """Store a value.

        The memory write always succeeds; durable write failures are logged
        and swallowed.

        Args:
            key: Key within the namespace
            value: Value to cache
            ttl_seconds: Override of the default TTL for this entry
        """
        if self._max_entries == 0:
            return

        ttl = self._ttl_seconds if ttl_seconds is None else ttl_seconds
        if ttl < 0:
            raise ValueError("ttl_seconds cannot be negative")

        full_key = self._build_key(key)
        async with self._lock:
            now = self._clock()
            await self._cleanup_locked(now, reserve=full_key)
            entry = CacheEntry(value=value, stored_at=now, ttl_seconds=ttl)
            self._entries[full_key] = entry

            if self._durable is not None:
                try:
                    data = self._codec.encode(entry)
                    await self._durable.persist(full_key, data, ttl_seconds=ttl)
                except Exception as e:
                    logger.warning("Durable cache write failed", key=full_key, error=str(e))

    async def remove(self, key: str) -> None:
        """Remove a key from both layers."""
        full_key = self._build_key(key)
        async with self._lock:
            self._entries.pop(full_key, None)
            await self._delete_durable(full_key)

    async def clear(self) -> None:
        """Remove every key of this namespace from both layers."""
        async with self._lock:
            self._entries.clear()
            if self._durable is None:
                return
            try:
                removed = await self._durable.delete_by_prefix(self._prefix)
            except Exception as e:
                logger.warning("Durable cache clear failed", namespace=self._namespace, error=str(e))
                return
            logger.debug("Cache cleared", namespace=self._namespace, durable_removed=removed)

    def stats(self) -> CacheStats:
        """Count the memory layer without mutating it."""
        now = self._clock()
        total = len(self._entries)
        active = sum(1 for entry in self._entries.values() if entry.is_live(now))
        return CacheStats(
            total=total,
            active=active,
            expired=total - active,
            capacity=self._max_entries,
        )

    async def cleanup(self) -> int:
        """Purge expired entries and enforce capacity.

        Returns:
            Number of entries removed from memory
        """
        async with self._lock:
            return await self._cleanup_locked(self._clock())

    async def dispose(self) -> None:
        """Final cleanup pass, called when the owning service shuts down."""
        removed = await self.cleanup()
        logger.debug("Cache disposed", namespace=self._namespace, removed=removed)

    # =========================================================================
    # Internals (caller holds self._lock)
    # =========================================================================

    async def _cleanup_locked(self, now: float, reserve: str | None = None) -> int:
        """Purge expired entries, then evict oldest until ``reserve`` fits.

        Args:
            now: Current time
            reserve: Key about to be inserted; a slot is kept free for it
                unless it is already present

        Returns:
            Number of entries removed from memory
        """
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
            await self._delete_durable(key)

        limit = self._max_entries
        if reserve is not None and reserve not in self._entries:
            limit -= 1
        overflow = len(self._entries) - limit

        evicted: list[str] = []
        if overflow > 0:
            candidates = sorted(
                (key for key in self._entries if key != reserve),
                key=lambda k: self._entries[k].stored_at,
            )
            evicted = candidates[:overflow]
            for key in evicted:
                del self._entries[key]

        if expired or evicted:
            logger.debug(
                "Cache cleanup",
                namespace=self._namespace,
                expired=len(expired),
                evicted=len(evicted),
            )
        return len(expired) + len(evicted)

    async def _load_durable(self, full_key: str, now: float) -> CacheEntry[V] | None:
        assert self._durable is not None
        try:
            data = await self._durable.load(full_key)
        except Exception as e:
            logger.warning("Durable cache read failed", key=full_key, error=str(e))
            return None
        if data is None:
            return None

        try:
            entry = self._codec.decode(data)
        except CacheCorruptionError as e:
            logger.warning("Durable cache entry corrupt", key=full_key, error=str(e))
            await self._delete_durable(full_key)
            return None

        if entry.is_expired(now):
            logger.debug("Cache entry expired", layer="durable", key=full_key)
            await self._delete_durable(full_key)
            return None
        return entry

    async def _delete_durable(self, full_key: str) -> None:
        if self._durable is None:
            return
        try:
            await self._durable.delete(full_key)
        except Exception as e:
            logger.warning("Durable cache delete failed", key=full_key, error=str(e))

    def __repr__(self) -> str:
        backend = type(self._durable).__name__ if self._durable else "memory"
        return (
            f"TieredCache(namespace={self._namespace!r}, backend={backend}, "
            f"ttl={self._ttl_seconds}s, max_entries={self._max_entries})"
        )
