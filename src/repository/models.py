"""Data models shared by repository backends."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict

import semantic_version
import yaml


@dataclass(frozen=True)
class VersionRef:
    """One version of one package.

    Identity is the (package_name, version_string) pair; the descriptor is
    carried along but takes no part in equality or hashing, so sets of
    VersionRef de-duplicate across backends.
    """

    package_name: str
    version_string: str
    descriptor: str = field(compare=False, hash=False, repr=False)

    @property
    def version(self) -> semantic_version.Version:
        """Parsed semantic version; raises ValueError for invalid strings."""
        return semantic_version.Version(self.version_string)

    @property
    def manifest(self) -> Any:
        """Decoded descriptor (YAML, which also accepts JSON)."""
        return yaml.safe_load(self.descriptor)

    def __str__(self) -> str:
        return f"{self.package_name}@{self.version_string}"


@dataclass
class AsyncUploadInfo:
    """Upload target handed to the client for an asynchronous upload."""

    url: str
    fields: Dict[str, str] = field(default_factory=dict)
