"""Read-through repository combining a writable local store and a read-only remote."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Dict, Optional, Set

from .archive import read_stream
from .base import (
    ByteStream,
    PackageRepository,
    UploadCapable,
    UploadData,
    UploaderManagementCapable,
)
from .cache import MetadataCache
from .errors import GenericProcessingError, PackageNotFound, VersionConflict
from .models import VersionRef

logger = logging.getLogger(__name__)


class CompositeRepository(PackageRepository, UploadCapable, UploaderManagementCapable):
    """Writes to ``local`` and serves misses from ``remote``.

    Versions missing locally are downloaded from the remote, stored in the
    local repository and then served from there, so every package fetched
    through this repository ends up cached on local storage. Uploads only
    ever go to the local repository.

    In standalone mode the remote is never consulted.
    """

    def __init__(
        self,
        local: PackageRepository,
        remote: Optional[PackageRepository] = None,
        standalone: bool = False,
        local_cache: Optional[MetadataCache] = None,
        remote_cache: Optional[MetadataCache] = None,
    ):
        """Initialize the composite repository.

        Args:
            local: Read-write repository; must support uploads.
            remote: Read-only fallback repository.
            standalone: Ignore ``remote`` entirely.
            local_cache: Version cache wrapping ``local``.
            remote_cache: Version cache wrapping ``remote``.
        """
        if not isinstance(local, UploadCapable):
            raise TypeError("local repository must support uploads")
        self.local = local
        self.remote = remote
        self.standalone = standalone or remote is None
        self._local_cache = local_cache or MetadataCache(local)
        self._remote_cache: Optional[MetadataCache] = None
        if not self.standalone:
            self._remote_cache = remote_cache or MetadataCache(remote)

    async def list_versions(self, package: str) -> AsyncIterator[VersionRef]:
        fetches = [self._local_cache.fetch_versions(package)]
        if self._remote_cache is not None:
            fetches.append(self._remote_cache.fetch_versions(package))
        results = await asyncio.gather(*fetches)

        versions: Set[VersionRef] = set()
        for result in results:
            versions.update(result)
        for version in versions:
            yield version

    async def download(self, package: str, version: str) -> ByteStream:
        local_version = await self.local.lookup_version(package, version)
        if local_version is None:
            if self.standalone:
                raise PackageNotFound(f"{package}/{version} does not exist.")
            await self._copy_from_remote(package, version)

        logger.info("Serving %s/%s from local repository.", package, version)
        return await self.local.download(package, version)

    async def _copy_from_remote(self, package: str, version: str) -> None:
        logger.info("Downloading %s/%s from remote repository.", package, version)
        stream = await self.remote.download(package, version)
        archive = await read_stream(stream)

        logger.info("Upload %s/%s to local repository.", package, version)
        try:
            await self.local.upload(archive)
        except VersionConflict:
            logger.info("%s/%s was stored locally by a concurrent request.", package, version)

    async def upload(self, data: UploadData) -> VersionRef:
        logger.info("Starting upload to local package repository.")
        version = await self.local.upload(data)
        # Coarser than needed: a per-package invalidation would do.
        logger.info("Upload finished - %s. Invalidating in-memory cache.", version)
        self._local_cache.invalidate_all()
        return version

    @property
    def supports_uploader_management(self) -> bool:
        return self.local.supports_uploader_management

    async def add_uploader(self, package: str, email: str) -> None:
        await self._uploader_backend().add_uploader(package, email)

    async def remove_uploader(self, package: str, email: str) -> None:
        await self._uploader_backend().remove_uploader(package, email)

    def _uploader_backend(self) -> UploaderManagementCapable:
        if not isinstance(self.local, UploaderManagementCapable):
            raise GenericProcessingError("Uploader management is not supported.")
        return self.local

    def cache_stats(self) -> Dict[str, Any]:
        """Get statistics of both version caches."""
        return {
            "local": self._local_cache.stats(),
            "remote": self._remote_cache.stats() if self._remote_cache else None,
        }
