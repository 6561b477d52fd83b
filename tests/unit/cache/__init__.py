"""Test package for cache management.

Contains unit tests for:
- build_cache_key() / parse_cache_key()
- Entry codec (header byte, gzip threshold)
- Durable backends (file, Redis)
- TieredCache
"""
