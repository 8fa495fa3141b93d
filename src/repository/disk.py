"""Filesystem-backed package repository."""

from __future__ import annotations

import asyncio
import errno
import json
import logging
import os
import shutil
import tempfile
from typing import AsyncIterator, List, Optional

from constants import Constants

from .archive import extract_manifest, is_safe_component, parse_manifest_identity, read_stream
from .base import ByteStream, PackageRepository, UploadCapable, UploadData, UploaderManagementCapable
from .errors import (
    GenericProcessingError,
    LastUploaderRemove,
    PackageNotFound,
    UploaderAlreadyExists,
    VersionConflict,
)
from .models import VersionRef

logger = logging.getLogger(__name__)


class DiskRepository(PackageRepository, UploadCapable, UploaderManagementCapable):
    """Stores packages below a base directory.

    Layout::

        <base_dir>/<package>/<version>/pubspec.yaml
        <base_dir>/<package>/<version>/package.tar.gz
        <base_dir>/<package>/uploaders.json

    A version is visible only when both the manifest and the archive exist.
    Uploads are staged in a hidden sibling directory and published with one
    rename, so readers never see a half-written version.
    """

    def __init__(self, base_dir: str):
        """Initialize the repository.

        Args:
            base_dir: Root directory; created on first upload if missing.
        """
        self.base_dir = base_dir
        self._uploaders_lock = asyncio.Lock()

    def manifest_path(self, package: str, version: str) -> str:
        return os.path.join(self.base_dir, package, version, Constants.MANIFEST_FILE)

    def archive_path(self, package: str, version: str) -> str:
        return os.path.join(self.base_dir, package, version, Constants.ARCHIVE_FILE)

    def uploaders_path(self, package: str) -> str:
        return os.path.join(self.base_dir, package, Constants.UPLOADERS_FILE)

    def _is_complete(self, package: str, version: str) -> bool:
        return (
            os.path.isfile(self.manifest_path(package, version))
            and os.path.isfile(self.archive_path(package, version))
        )

    async def list_versions(self, package: str) -> AsyncIterator[VersionRef]:
        refs = await asyncio.to_thread(self._scan_versions, package)
        for ref in refs:
            yield ref

    def _scan_versions(self, package: str) -> List[VersionRef]:
        if not is_safe_component(package):
            return []
        package_dir = os.path.join(self.base_dir, package)
        try:
            entries = os.listdir(package_dir)
        except (FileNotFoundError, NotADirectoryError):
            return []

        refs = []
        for version in sorted(entries):
            if version.startswith(".") or not os.path.isdir(os.path.join(package_dir, version)):
                continue
            if not self._is_complete(package, version):
                continue
            try:
                with open(self.manifest_path(package, version), "r", encoding="utf-8") as f:
                    descriptor = f.read()
            except FileNotFoundError:
                # Removed between the existence check and the read.
                continue
            refs.append(VersionRef(package, version, descriptor))
        return refs

    async def lookup_version(self, package: str, version: str) -> Optional[VersionRef]:
        if not (is_safe_component(package) and is_safe_component(version)):
            return None
        return await super().lookup_version(package, version)

    async def upload(self, data: UploadData) -> VersionRef:
        logger.info("Start uploading package.")
        archive = await read_stream(data)
        descriptor = extract_manifest(archive)
        package, version = parse_manifest_identity(descriptor)
        ref = await asyncio.to_thread(self._store, package, version, descriptor, archive)
        logger.info("Uploaded new %s/%s", package, version)
        return ref

    def _store(self, package: str, version: str, descriptor: str, archive: bytes) -> VersionRef:
        if self._is_complete(package, version):
            raise VersionConflict(package, version)

        package_dir = os.path.join(self.base_dir, package)
        version_dir = os.path.join(package_dir, version)
        os.makedirs(package_dir, exist_ok=True)

        staging = tempfile.mkdtemp(prefix=f".{version}.", dir=package_dir)
        try:
            _write_file(os.path.join(staging, Constants.MANIFEST_FILE), descriptor.encode("utf-8"))
            _write_file(os.path.join(staging, Constants.ARCHIVE_FILE), archive)

            if os.path.isdir(version_dir) and not self._is_complete(package, version):
                # Leftover from an interrupted write made before staging existed.
                shutil.rmtree(version_dir, ignore_errors=True)
            try:
                os.rename(staging, version_dir)
            except OSError as exc:
                if exc.errno in (errno.EEXIST, errno.ENOTEMPTY):
                    raise VersionConflict(package, version) from exc
                raise
        finally:
            if os.path.isdir(staging):
                shutil.rmtree(staging, ignore_errors=True)

        return VersionRef(package, version, descriptor)

    async def download(self, package: str, version: str) -> ByteStream:
        if not (is_safe_component(package) and is_safe_component(version)):
            raise PackageNotFound(f"{package}/{version} does not exist.")
        if not self._is_complete(package, version):
            raise PackageNotFound(f"{package}/{version} does not exist.")
        try:
            handle = open(self.archive_path(package, version), "rb")
        except FileNotFoundError as exc:
            raise PackageNotFound(f"{package}/{version} does not exist.") from exc
        return _read_chunks(handle)

    async def add_uploader(self, package: str, email: str) -> None:
        async with self._uploaders_lock:
            uploaders = await asyncio.to_thread(self._load_uploaders, package)
            if email in uploaders:
                raise UploaderAlreadyExists(
                    "Cannot add an already-existent uploader to package."
                )
            uploaders.append(email)
            await asyncio.to_thread(self._save_uploaders, package, uploaders)
        logger.info("Added uploader %s to %s", email, package)

    async def remove_uploader(self, package: str, email: str) -> None:
        async with self._uploaders_lock:
            uploaders = await asyncio.to_thread(self._load_uploaders, package)
            if email not in uploaders:
                raise GenericProcessingError(f"{email} is not an uploader of {package}.")
            if len(uploaders) == 1:
                raise LastUploaderRemove("Cannot remove last uploader of a package.")
            uploaders.remove(email)
            await asyncio.to_thread(self._save_uploaders, package, uploaders)
        logger.info("Removed uploader %s from %s", email, package)

    def _load_uploaders(self, package: str) -> List[str]:
        if not is_safe_component(package) or not os.path.isdir(os.path.join(self.base_dir, package)):
            raise GenericProcessingError(f"Package {package} does not exist.")
        try:
            with open(self.uploaders_path(package), "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return []
        except (OSError, ValueError) as exc:
            raise GenericProcessingError(f"Uploader list of {package} is unreadable: {exc}") from exc
        return [str(item) for item in data] if isinstance(data, list) else []

    def _save_uploaders(self, package: str, uploaders: List[str]) -> None:
        path = self.uploaders_path(package)
        fd, tmp_path = tempfile.mkstemp(prefix=".uploaders.", dir=os.path.dirname(path))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(uploaders, f, indent=2)
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise


def _write_file(path: str, payload: bytes) -> None:
    with open(path, "wb") as f:
        f.write(payload)
        f.flush()
        os.fsync(f.fileno())


async def _read_chunks(handle) -> AsyncIterator[bytes]:
    try:
        while True:
            chunk = await asyncio.to_thread(handle.read, Constants.STREAM_CHUNK_SIZE)
            if not chunk:
                break
            yield chunk
    finally:
        handle.close()
