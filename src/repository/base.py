"""Repository contract implemented by every storage backend.

A backend subclasses :class:`PackageRepository` for the read operations every
backend must offer, and mixes in one capability interface per optional
operation it actually supports. The ``supports_*`` flags are derived from
those interfaces, so a backend cannot advertise an operation it lacks.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncIterable, AsyncIterator, Optional, Union

from .models import AsyncUploadInfo, VersionRef

ByteStream = AsyncIterator[bytes]
UploadData = Union[bytes, AsyncIterable[bytes]]


class PackageRepository(ABC):
    """Read side of a package store."""

    @abstractmethod
    def list_versions(self, package: str) -> AsyncIterator[VersionRef]:
        """Yield every known version of ``package``.

        Unknown packages yield nothing; that is not an error. Each call is
        an independent single pass.
        """

    async def lookup_version(self, package: str, version: str) -> Optional[VersionRef]:
        """Return the first listed version matching ``version`` exactly."""
        async for ref in self.list_versions(package):
            if ref.package_name == package and ref.version_string == version:
                return ref
        return None

    @abstractmethod
    async def download(self, package: str, version: str) -> ByteStream:
        """Return the archive bytes of ``package`` at ``version``.

        Raises:
            PackageNotFound: The pair does not exist in this backend. Raised
                before any bytes are produced.
        """

    @property
    def supports_upload(self) -> bool:
        return isinstance(self, UploadCapable)

    @property
    def supports_async_upload(self) -> bool:
        return isinstance(self, AsyncUploadCapable)

    @property
    def supports_download_url(self) -> bool:
        return isinstance(self, DownloadUrlCapable)

    @property
    def supports_uploader_management(self) -> bool:
        return isinstance(self, UploaderManagementCapable)


class UploadCapable(ABC):
    """Backends accepting archive uploads."""

    @abstractmethod
    async def upload(self, data: UploadData) -> VersionRef:
        """Store a gzip-compressed tar archive and return its version.

        Raises:
            MalformedUpload: No readable manifest in the archive.
            VersionConflict: The declared (name, version) already exists.
        """


class AsyncUploadCapable(ABC):
    """Backends that hand clients an external upload target."""

    @abstractmethod
    async def start_async_upload(self, redirect_url: str) -> AsyncUploadInfo:
        """Return where the client should POST, redirecting to ``redirect_url`` after."""

    @abstractmethod
    async def finish_async_upload(self, url: str) -> VersionRef:
        """Complete the upload identified by the finish ``url``."""


class DownloadUrlCapable(ABC):
    """Backends that prefer redirecting clients over streaming bytes."""

    @abstractmethod
    async def download_url(self, package: str, version: str) -> str:
        """Return a URL the client can fetch the archive from."""


class UploaderManagementCapable(ABC):
    """Backends that keep a list of uploaders per package."""

    @abstractmethod
    async def add_uploader(self, package: str, email: str) -> None:
        """Register ``email`` as uploader of ``package``."""

    @abstractmethod
    async def remove_uploader(self, package: str, email: str) -> None:
        """Remove ``email`` from the uploaders of ``package``."""
