"""Cache key builder.

Every key written by a TieredCache, in memory and in the durable layer, is
namespaced as ``packsync-cache:{namespace}:{sub_key}`` so that ``clear()``
can remove a whole namespace by prefix.
"""

from packsync.core.constants import CACHE_KEY_PREFIX


def build_cache_key(namespace: str, sub_key: str) -> str:
    """Build a namespaced cache key.

    Args:
        namespace: Cache namespace (e.g. "github", "config")
        sub_key: Unique identifier within the namespace

    Returns:
        Formatted cache key: "packsync-cache:{namespace}:{sub_key}"

    Raises:
        ValueError: If namespace or sub_key is empty, or namespace contains ":"

    Example:
        >>> build_cache_key("github", "owner/pack-1234")
        'packsync-cache:github:owner/pack-1234'
    """
    if not sub_key:
        raise ValueError("sub_key cannot be empty")

    return f"{namespace_prefix(namespace)}{sub_key}"


def namespace_prefix(namespace: str) -> str:
    """Return the key prefix shared by every entry of a namespace.

    Raises:
        ValueError: If namespace is empty or contains ":"
    """
    if not namespace:
        raise ValueError("namespace cannot be empty")
    if ":" in namespace:
        raise ValueError(f"namespace cannot contain ':' (got '{namespace}')")
    return f"{CACHE_KEY_PREFIX}{namespace}:"


def parse_cache_key(cache_key: str) -> tuple[str, str]:
    """Parse a cache key into its components.

    Args:
        cache_key: A key built by build_cache_key()

    Returns:
        Tuple of (namespace, sub_key)

    Raises:
        ValueError: If the cache key format is invalid

    Example:
        >>> parse_cache_key("packsync-cache:config:pack-1/options.txt")
        ('config', 'pack-1/options.txt')
    """
    if not cache_key.startswith(CACHE_KEY_PREFIX):
        raise ValueError(
            f"Invalid cache key prefix in '{cache_key}'. "
            f"Must start with '{CACHE_KEY_PREFIX}'"
        )

    remainder = cache_key[len(CACHE_KEY_PREFIX):]
    parts = remainder.split(":", 1)
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise ValueError(
            f"Invalid cache key format: '{cache_key}'. "
            f"Expected format: '{CACHE_KEY_PREFIX}{{namespace}}:{{sub_key}}'"
        )
    return parts[0], parts[1]
