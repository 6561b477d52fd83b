"""CacheEntry - value plus the timestamps that decide its liveness."""

from dataclasses import dataclass
from typing import Generic, TypeVar


V = TypeVar("V")


@dataclass
class CacheEntry(Generic[V]):
    """Entry owned by a single TieredCache.

    Attributes:
        value: Cached value
        stored_at: Epoch seconds of the last observation (write or promotion)
        ttl_seconds: Lifetime measured from stored_at
    """

    value: V
    stored_at: float
    ttl_seconds: float

    def is_live(self, now: float) -> bool:
        """Check whether the entry may still be served.

        A zero (or negative) TTL is never live. Otherwise the entry is live
        up to and including the instant ``stored_at + ttl_seconds``.
        """
        if self.ttl_seconds <= 0:
            return False
        return now - self.stored_at <= self.ttl_seconds

    def is_expired(self, now: float) -> bool:
        """Inverse of is_live()."""
        return not self.is_live(now)
