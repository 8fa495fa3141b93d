"""Cache for encoded package listings used by the protocol handler."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


class PackageCache(ABC):
    """Stores the encoded version-listing JSON of a package."""

    @abstractmethod
    async def set_package_data(self, package: str, data: bytes) -> None:
        """Store the listing of ``package``."""

    @abstractmethod
    async def get_package_data(self, package: str) -> Optional[bytes]:
        """Return the stored listing of ``package`` or None."""

    @abstractmethod
    async def invalidate_package_data(self, package: str) -> None:
        """Drop the stored listing of ``package``."""


@dataclass
class CacheEntry:
    """A single cache entry with optional expiry."""

    value: bytes
    expires_at: Optional[float]
    created_at: float = field(default_factory=time.time)

    def is_expired(self) -> bool:
        """Check if this entry has expired."""
        return self.expires_at is not None and time.time() > self.expires_at


class InMemoryPackageCache(PackageCache):
    """Process-local listing cache.

    Entries live until invalidated, unless a TTL is given. The oldest
    entries are evicted once the entry or byte limits are exceeded.
    """

    def __init__(
        self,
        ttl: Optional[int] = None,
        max_entries: int = 1000,
        max_bytes: int = 64 * 1024 * 1024,
    ):
        """Initialize the listing cache.

        Args:
            ttl: Time-to-live in seconds; None keeps entries until invalidated.
            max_entries: Maximum number of cached packages.
            max_bytes: Maximum total size of cached listings.
        """
        self._ttl = ttl
        self._max_entries = max_entries
        self._max_bytes = max_bytes
        self._current_bytes = 0
        self._cache: Dict[str, CacheEntry] = {}

    async def get_package_data(self, package: str) -> Optional[bytes]:
        entry = self._cache.get(package)
        if entry is None:
            return None
        if entry.is_expired():
            self._remove_entry(package)
            return None
        return entry.value

    async def set_package_data(self, package: str, data: bytes) -> None:
        size = len(data)
        if size > self._max_bytes // 10:
            # Don't cache listings larger than 10% of the cache
            return

        self._remove_entry(package)
        while self._current_bytes + size > self._max_bytes and self._cache:
            self._evict_oldest(1)

        expires_at = time.time() + self._ttl if self._ttl else None
        self._cache[package] = CacheEntry(value=data, expires_at=expires_at)
        self._current_bytes += size

        if len(self._cache) > self._max_entries:
            self._evict_oldest(len(self._cache) - self._max_entries)

    async def invalidate_package_data(self, package: str) -> None:
        self._remove_entry(package)

    def clear(self) -> None:
        """Clear all cached listings."""
        self._cache.clear()
        self._current_bytes = 0

    def stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        expired_count = sum(1 for e in self._cache.values() if e.is_expired())
        return {
            "total_entries": len(self._cache),
            "expired_entries": expired_count,
            "current_bytes": self._current_bytes,
            "max_bytes": self._max_bytes,
            "max_entries": self._max_entries,
            "ttl": self._ttl,
        }

    def _remove_entry(self, package: str) -> None:
        entry = self._cache.pop(package, None)
        if entry:
            self._current_bytes -= len(entry.value)

    def _evict_oldest(self, count: int) -> None:
        oldest = sorted(self._cache, key=lambda k: self._cache[k].created_at)
        for package in oldest[:count]:
            self._remove_entry(package)
