"""Serialization of cache entries for the durable layer.

Wire format: a 1-byte header (0x00 = plain, 0x01 = gzip) followed by the
UTF-8 JSON document ``{"value", "stored_at", "ttl_seconds", "version"}``.
Payloads of COMPRESSION_THRESHOLD bytes or more are gzip-compressed when
compression actually makes them smaller.

Pattern: Header-prefixed compressed envelope
"""

import gzip
import json
import zlib
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ValidationError

from packsync.cache.entry import CacheEntry
from packsync.core.exceptions import CacheCorruptionError


V = TypeVar("V")
M = TypeVar("M", bound=BaseModel)

ENTRY_FORMAT_VERSION = 1

HEADER_PLAIN = 0x00
HEADER_GZIP = 0x01


class ValueCodec(Generic[V]):
    """Converts cached values to and from JSON-compatible data.

    The base class is the identity conversion; values must already be
    JSON-serializable.
    """

    def to_json(self, value: V) -> Any:
        return value

    def from_json(self, data: Any) -> V:
        return data


class PydanticValueCodec(ValueCodec[M]):
    """ValueCodec for a pydantic model type.

    Example:
        >>> codec = PydanticValueCodec(CachedBundle)
        >>> cache = TieredCache("github", ttl_seconds=600, max_entries=50,
        ...                     durable=backend, codec=codec)
    """

    def __init__(self, model: type[M]) -> None:
        self._model = model

    def to_json(self, value: M) -> Any:
        return value.model_dump(mode="json", by_alias=True)

    def from_json(self, data: Any) -> M:
        return self._model.model_validate(data)


class EntryCodec(Generic[V]):
    """Encodes CacheEntry objects to bytes and back."""

    # Compress payloads at least this large (bytes)
    COMPRESSION_THRESHOLD = 1024  # 1KB

    def __init__(self, values: ValueCodec[V] | None = None) -> None:
        self._values: ValueCodec[V] = values or ValueCodec()

    def _compress(self, data: bytes) -> tuple[bytes, bool]:
        """Compress data if above threshold.

        Returns:
            Tuple of (compressed_or_original_data, was_compressed)
        """
        if len(data) < self.COMPRESSION_THRESHOLD:
            return data, False

        compressed = gzip.compress(data, compresslevel=6)
        if len(compressed) < len(data):
            return compressed, True
        return data, False

    def encode(self, entry: CacheEntry[V]) -> bytes:
        """Serialize an entry with its compression header.

        Args:
            entry: Entry to serialize

        Returns:
            Header byte followed by the (possibly compressed) JSON payload
        """
        document = {
            "value": self._values.to_json(entry.value),
            "stored_at": entry.stored_at,
            "ttl_seconds": entry.ttl_seconds,
            "version": ENTRY_FORMAT_VERSION,
        }
        raw = json.dumps(document, separators=(",", ":")).encode("utf-8")
        payload, was_compressed = self._compress(raw)
        header = bytes([HEADER_GZIP if was_compressed else HEADER_PLAIN])
        return header + payload

    def decode(self, data: bytes) -> CacheEntry[V]:
        """Deserialize bytes produced by encode().

        Raises:
            CacheCorruptionError: If the data cannot be decoded
        """
        if len(data) < 1:
            raise CacheCorruptionError("Invalid cached data: too short")

        header, payload = data[0], data[1:]
        if header not in (HEADER_PLAIN, HEADER_GZIP):
            raise CacheCorruptionError(f"Invalid cached data: unknown header 0x{header:02x}")

        try:
            if header == HEADER_GZIP:
                payload = gzip.decompress(payload)
            document = json.loads(payload.decode("utf-8"))
        except (OSError, EOFError, zlib.error, UnicodeDecodeError, ValueError) as e:
            raise CacheCorruptionError(f"Invalid cached data: {e}", cause=e) from e

        if not isinstance(document, dict):
            raise CacheCorruptionError("Invalid cached data: expected an object")
        if document.get("version") != ENTRY_FORMAT_VERSION:
            raise CacheCorruptionError(
                f"Unsupported cache entry version: {document.get('version')!r}"
            )

        try:
            stored_at = float(document["stored_at"])
            ttl_seconds = float(document["ttl_seconds"])
            value = self._values.from_json(document["value"])
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            raise CacheCorruptionError(f"Invalid cached entry: {e}", cause=e) from e

        return CacheEntry(value=value, stored_at=stored_at, ttl_seconds=ttl_seconds)
