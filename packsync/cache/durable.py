"""Durable cache layers.

A durable layer stores opaque serialized entries (see packsync.cache.codec)
under full cache keys. TieredCache consults it on memory misses and writes
through to it on every set.

Implementations:
- FileDurableBackend: one file per key under a cache directory
- RedisDurableBackend: adapter over redis.asyncio.Redis (or FakeRedisClient)

Pattern: Protocol-based dependency injection
"""

import asyncio
import math
import os
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Protocol, runtime_checkable
from urllib.parse import quote, unquote

from filelock import FileLock

from packsync.core.logging import get_logger


logger = get_logger(__name__)


@runtime_checkable
class DurableBackend(Protocol):
    """Protocol for the durable layer of a TieredCache."""

    async def persist(
        self,
        key: str,
        data: bytes,
        ttl_seconds: float | None = None,
    ) -> None:
        """Store serialized entry bytes under key."""
        ...

    async def load(self, key: str) -> bytes | None:
        """Return the bytes stored under key, or None."""
        ...

    async def delete(self, key: str) -> None:
        """Remove key if present."""
        ...

    async def delete_by_prefix(self, prefix: str) -> int:
        """Remove every key starting with prefix; return how many."""
        ...


@runtime_checkable
class RedisClientProtocol(Protocol):
    """Protocol for Redis client duck typing.

    Allows dependency injection of Redis client implementations
    for testing (FakeRedisClient) and production (redis.asyncio.Redis).
    """

    async def get(self, key: str) -> bytes | None:
        """Get a value from Redis."""
        ...

    async def set(
        self,
        key: str,
        value: bytes,
        ex: int | None = None,
    ) -> bool:
        """Set a value in Redis with optional expiry."""
        ...

    async def delete(self, *keys: str) -> int:
        """Delete keys from Redis."""
        ...

    def scan_iter(self, match: str | None = None) -> AsyncIterator[bytes | str]:
        """Iterate keys matching a glob pattern."""
        ...


# =============================================================================
# File backend
# =============================================================================


class FileDurableBackend:
    """Durable layer storing one ``.entry`` file per cache key.

    File names are the percent-quoted cache key, so a key never escapes the
    cache directory. Writes go to a temporary file that is atomically renamed
    over the target. A directory-wide FileLock serializes writers across
    processes; blocking I/O runs in a worker thread.

    Example:
        >>> backend = FileDurableBackend(Path("~/.packsync/cache").expanduser())
        >>> await backend.persist("packsync-cache:github:o/r-1", b"...")
    """

    SUFFIX = ".entry"
    LOCK_TIMEOUT_SECONDS = 30.0

    def __init__(self, directory: Path | str) -> None:
        self._directory = Path(directory)
        self._lock = FileLock(str(self._directory / ".packsync-cache.lock"), timeout=self.LOCK_TIMEOUT_SECONDS)

    @property
    def directory(self) -> Path:
        """Return the cache directory."""
        return self._directory

    def _path_for(self, key: str) -> Path:
        return self._directory / f"{quote(key, safe='')}{self.SUFFIX}"

    def _write(self, key: str, data: bytes) -> None:
        self._directory.mkdir(parents=True, exist_ok=True)
        path = self._path_for(key)
        temp_path = path.with_suffix(path.suffix + ".tmp")
        with self._lock:
            with temp_path.open("wb") as handle:
                handle.write(data)
                handle.flush()
            os.replace(temp_path, path)

    def _read(self, key: str) -> bytes | None:
        path = self._path_for(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None

    def _remove(self, key: str) -> None:
        if not self._directory.exists():
            return
        with self._lock:
            self._path_for(key).unlink(missing_ok=True)

    def _remove_prefix(self, prefix: str) -> int:
        if not self._directory.exists():
            return 0
        removed = 0
        with self._lock:
            for path in self._directory.glob(f"*{self.SUFFIX}"):
                key = unquote(path.name[: -len(self.SUFFIX)])
                if key.startswith(prefix):
                    path.unlink(missing_ok=True)
                    removed += 1
        return removed

    async def persist(
        self,
        key: str,
        data: bytes,
        ttl_seconds: float | None = None,
    ) -> None:
        """Atomically write the entry file for key.

        Expiry is tracked inside the entry itself, so ttl_seconds is unused.
        """
        await asyncio.to_thread(self._write, key, data)

    async def load(self, key: str) -> bytes | None:
        return await asyncio.to_thread(self._read, key)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._remove, key)

    async def delete_by_prefix(self, prefix: str) -> int:
        removed = await asyncio.to_thread(self._remove_prefix, prefix)
        logger.debug("Durable prefix cleared", backend="file", prefix=prefix, removed=removed)
        return removed

    def __repr__(self) -> str:
        return f"FileDurableBackend(directory={str(self._directory)!r})"


# =============================================================================
# Redis backend
# =============================================================================


class RedisDurableBackend:
    """Durable layer backed by Redis.

    Entries are written with a Redis expiry equal to the entry TTL, so
    Redis drops entries TieredCache would treat as expired anyway.

    Example:
        >>> redis = redis.asyncio.from_url("redis://localhost")
        >>> backend = RedisDurableBackend(redis)
    """

    def __init__(self, client: RedisClientProtocol) -> None:
        self._client = client

    async def persist(
        self,
        key: str,
        data: bytes,
        ttl_seconds: float | None = None,
    ) -> None:
        ex = math.ceil(ttl_seconds) if ttl_seconds and ttl_seconds > 0 else None
        await self._client.set(key, data, ex=ex)

    async def load(self, key: str) -> bytes | None:
        data = await self._client.get(key)
        if isinstance(data, str):
            return data.encode("utf-8")
        return data

    async def delete(self, key: str) -> None:
        await self._client.delete(key)

    async def delete_by_prefix(self, prefix: str) -> int:
        keys = [key async for key in self._client.scan_iter(match=f"{prefix}*")]
        if not keys:
            return 0
        decoded = [k.decode("utf-8") if isinstance(k, bytes) else k for k in keys]
        removed = await self._client.delete(*decoded)
        logger.debug("Durable prefix cleared", backend="redis", prefix=prefix, removed=removed)
        return removed
