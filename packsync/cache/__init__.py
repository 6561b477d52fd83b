"""Cache Package.

Two-tier TTL cache used for remote bundles and config file text:
- Memory layer: bounded, observation-order eviction
- Durable layer: file directory or Redis, entries serialized by EntryCodec

Keys are namespaced as ``packsync-cache:{namespace}:{sub_key}``.
"""

from packsync.cache.codec import (
    ENTRY_FORMAT_VERSION,
    EntryCodec,
    PydanticValueCodec,
    ValueCodec,
)
from packsync.cache.durable import (
    DurableBackend,
    FileDurableBackend,
    RedisClientProtocol,
    RedisDurableBackend,
)
from packsync.cache.entry import CacheEntry
from packsync.cache.keys import build_cache_key, namespace_prefix, parse_cache_key
from packsync.cache.tiered import CacheStats, TieredCache


__all__ = [
    "ENTRY_FORMAT_VERSION",
    "CacheEntry",
    "CacheStats",
    # Durable layers
    "DurableBackend",
    # Serialization
    "EntryCodec",
    "FileDurableBackend",
    "PydanticValueCodec",
    "RedisClientProtocol",
    "RedisDurableBackend",
    # Cache
    "TieredCache",
    "ValueCodec",
    # Keys
    "build_cache_key",
    "namespace_prefix",
    "parse_cache_key",
]
