"""Package archive helpers: buffering upload streams and reading the manifest."""

from __future__ import annotations

import io
import re
import tarfile
from typing import Tuple

import yaml

from constants import Constants
from versioning.semver import is_semantic_version

from .base import UploadData
from .errors import MalformedUpload

_SAFE_COMPONENT = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.+-]*$")


def is_safe_component(value: str) -> bool:
    """True if ``value`` can be used as a single path component."""
    return bool(value) and bool(_SAFE_COMPONENT.match(value)) and ".." not in value


async def read_stream(data: UploadData) -> bytes:
    """Collect an upload body into memory."""
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    buffer = bytearray()
    async for chunk in data:
        buffer.extend(chunk)
    return bytes(buffer)


def extract_manifest(archive_bytes: bytes) -> str:
    """Return the text of the manifest at the root of a .tar.gz archive.

    Raises:
        MalformedUpload: The archive cannot be decoded or has no manifest.
    """
    try:
        with tarfile.open(fileobj=io.BytesIO(archive_bytes), mode="r:gz") as archive:
            for member in archive:
                name = member.name
                while name.startswith("./"):
                    name = name[2:]
                if name != Constants.MANIFEST_FILE or not member.isfile():
                    continue
                handle = archive.extractfile(member)
                if handle is None:
                    break
                return handle.read().decode("utf-8")
    except (tarfile.TarError, OSError, EOFError) as exc:
        raise MalformedUpload(f"Could not read package archive: {exc}") from exc
    except UnicodeDecodeError as exc:
        raise MalformedUpload(f"{Constants.MANIFEST_FILE} is not valid UTF-8.") from exc

    raise MalformedUpload(
        f"Did not find any {Constants.MANIFEST_FILE} file in upload. Aborting."
    )


def parse_manifest_identity(text: str) -> Tuple[str, str]:
    """Return the (name, version) declared by a manifest.

    Raises:
        MalformedUpload: The manifest is not a mapping with a usable name
            and a semantic version.
    """
    try:
        manifest = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise MalformedUpload(f"Could not parse {Constants.MANIFEST_FILE}: {exc}") from exc

    if not isinstance(manifest, dict):
        raise MalformedUpload(f"{Constants.MANIFEST_FILE} must be a mapping.")

    name = manifest.get("name")
    version = manifest.get("version")
    if not isinstance(name, str) or not is_safe_component(name):
        raise MalformedUpload(f"Invalid package name in {Constants.MANIFEST_FILE}: {name!r}")
    if not isinstance(version, str) or not is_semantic_version(version):
        raise MalformedUpload(f"Invalid version in {Constants.MANIFEST_FILE}: {version!r}")
    return name, version
