"""Test package for schemas.

Contains unit tests for:
- Manifest wire format and aliases
- CachedBundle completeness
"""
