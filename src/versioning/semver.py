"""Semantic version helpers used for validation, ordering and `latest` selection."""

from __future__ import annotations

from typing import Iterable, List, Optional

import semantic_version

from repository.errors import InvalidVersionString
from repository.models import VersionRef


def is_semantic_version(version: str) -> bool:
    """Return True if ``version`` parses as a semantic version."""
    try:
        semantic_version.Version(version)
        return True
    except ValueError:
        return False


def parse_version(version: str) -> semantic_version.Version:
    """Parse ``version`` or raise InvalidVersionString."""
    try:
        return semantic_version.Version(version)
    except ValueError as exc:
        raise InvalidVersionString(version) from exc


def is_prerelease(version: semantic_version.Version) -> bool:
    return bool(version.prerelease)


def sort_versions(refs: Iterable[VersionRef]) -> List[VersionRef]:
    """Sort refs ascending by semantic precedence; unparsable versions are dropped.

    Versions of equal precedence are ordered by their build metadata, so
    ``1.0.0+2`` sorts before ``1.0.0+10`` whatever the input order.
    """
    parsed = []
    for ref in refs:
        try:
            parsed.append((ref.version.precedence_key, ref))
        except ValueError:
            continue
    parsed.sort(key=lambda item: item[0])
    return [ref for _, ref in parsed]


def select_latest(sorted_refs: List[VersionRef]) -> Optional[VersionRef]:
    """Pick the version advertised as `latest`.

    The highest version that is not a prerelease wins; when every version is
    a prerelease, the highest one overall is used.
    """
    if not sorted_refs:
        return None
    for ref in reversed(sorted_refs):
        if not is_prerelease(ref.version):
            return ref
    return sorted_refs[-1]
