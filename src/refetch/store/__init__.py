"""Persistent cache records and content fingerprints.

This module provides:
- Deterministic fingerprints for cache keys and content hashes
- The cache record model and its on-disk JSON shape
- A directory-backed store with atomic record replacement
"""

from refetch.store.hash import canonical_json, canonicalize, fingerprint
from refetch.store.models import CacheRecord
from refetch.store.store import CACHE_FILE_SUFFIX, CacheStore


__all__ = [
    # Hashing
    "canonicalize",
    "canonical_json",
    "fingerprint",
    # Models
    "CacheRecord",
    # Store
    "CacheStore",
    "CACHE_FILE_SUFFIX",
]
