"""In-memory version-list cache with in-flight request coalescing."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Set, Tuple

from common.logging_utils import extra_context, is_debug_enabled

from .base import PackageRepository
from .models import VersionRef

logger = logging.getLogger(__name__)

VersionSnapshot = Tuple[VersionRef, ...]


class MetadataCache:
    """Read-through cache of version lists for one backend.

    Concurrent ``fetch_versions`` calls for a package that is not cached yet
    share a single backend fetch and all receive the same snapshot. Once the
    fetch completes, later calls are served from memory until the package is
    invalidated. Entries never expire on their own.

    All bookkeeping happens between suspension points, so the cache is safe
    to use from many tasks on one event loop without locking.
    """

    def __init__(self, backend: PackageRepository):
        """Initialize the cache.

        Args:
            backend: Repository consulted on a miss.
        """
        self._backend = backend
        self._versions: Dict[str, Set[VersionRef]] = {}
        self._in_flight: Dict[str, "asyncio.Task[VersionSnapshot]"] = {}
        self._hits = 0
        self._coalesced = 0
        self._backend_fetches = 0

    @property
    def backend(self) -> PackageRepository:
        return self._backend

    async def fetch_versions(self, package: str) -> VersionSnapshot:
        """Return all known versions of a package.

        Args:
            package: Package name.

        Returns:
            Tuple of VersionRef; every caller coalesced onto one fetch gets
            the same tuple object.
        """
        task = self._in_flight.get(package)
        if task is None:
            cached = self._versions.get(package)
            if cached is not None:
                self._hits += 1
                if is_debug_enabled(logger):
                    logger.debug(
                        "Version cache hit",
                        extra=extra_context(event="cache_hit", component="metadata_cache", package=package),
                    )
                return tuple(cached)

            task = asyncio.ensure_future(self._populate(package))
            self._in_flight[package] = task
            task.add_done_callback(lambda t: self._release(package, t))
        else:
            self._coalesced += 1
            logger.debug("Joining in-flight version fetch for %s", package)

        # A cancelled waiter must not cancel the fetch other waiters share.
        return await asyncio.shield(task)

    async def _populate(self, package: str) -> VersionSnapshot:
        self._backend_fetches += 1
        versions = [ref async for ref in self._backend.list_versions(package)]
        entry = self._versions.setdefault(package, set())
        entry.update(versions)
        return tuple(entry)

    def _release(self, package: str, task: "asyncio.Task[VersionSnapshot]") -> None:
        if self._in_flight.get(package) is task:
            del self._in_flight[package]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Fetching versions of %s failed: %s", package, exc)

    def invalidate(self, package: str) -> None:
        """Forget the cached versions and any in-flight fetch of ``package``.

        A fetch already running still completes and repopulates the entry.
        """
        self._versions.pop(package, None)
        self._in_flight.pop(package, None)

    def invalidate_all(self) -> None:
        """Forget every cached entry and in-flight fetch."""
        self._versions.clear()
        self._in_flight.clear()

    def stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        return {
            "packages": len(self._versions),
            "in_flight": len(self._in_flight),
            "hits": self._hits,
            "coalesced": self._coalesced,
            "backend_fetches": self._backend_fetches,
        }
