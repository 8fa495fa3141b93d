"""Shared fixtures: package archives and an in-memory repository."""

import asyncio
import io
import tarfile
from typing import Dict, Optional, Tuple

import pytest

from repository.base import PackageRepository
from repository.errors import PackageNotFound
from repository.models import VersionRef


def build_archive(name: str, version: str, manifest: Optional[str] = None,
                  extra_files: Optional[Dict[str, bytes]] = None, prefix: str = "") -> bytes:
    """Build a .tar.gz package archive with a pubspec.yaml at its root."""
    if manifest is None:
        manifest = f"name: {name}\nversion: {version}\ndescription: Test package {name}.\n"
    files = {"pubspec.yaml": manifest.encode("utf-8")}
    files.update(extra_files or {"lib/main.dart": b"void main() {}\n"})

    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        for path, data in files.items():
            info = tarfile.TarInfo(prefix + path)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


async def collect(stream) -> bytes:
    """Drain an async byte stream."""
    data = bytearray()
    async for chunk in stream:
        data.extend(chunk)
    return bytes(data)


async def _chunks(data: bytes, size: int = 7):
    for start in range(0, len(data), size):
        yield data[start:start + size]


class MemoryRepository(PackageRepository):
    """Read-only repository keeping archives in a dict.

    Counts listing and download calls; ``delay`` slows listings down and
    ``fail_listing`` makes them raise.
    """

    def __init__(self, archives: Optional[Dict[Tuple[str, str], bytes]] = None, delay: float = 0.0):
        self.archives = dict(archives or {})
        self.delay = delay
        self.fail_listing: Optional[Exception] = None
        self.list_calls = 0
        self.download_calls = 0

    async def list_versions(self, package):
        self.list_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_listing is not None:
            raise self.fail_listing
        for (name, version) in sorted(self.archives):
            if name == package:
                yield VersionRef(name, version, f"name: {name}\nversion: {version}\n")

    async def download(self, package, version):
        self.download_calls += 1
        try:
            data = self.archives[(package, version)]
        except KeyError:
            raise PackageNotFound(f"{package}/{version} does not exist.") from None
        return _chunks(data)


@pytest.fixture
def make_archive():
    return build_archive
