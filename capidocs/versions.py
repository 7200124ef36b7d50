"""Version discovery and ordering."""

from __future__ import annotations

import re
from typing import Iterable, List, Sequence, Tuple, Union

HEAD = "HEAD"

_RELEASE_CANDIDATE = re.compile(r"-rc\d*$")
_SEGMENT = re.compile(r"\d+|[A-Za-z]+")

# Alphabetic segments sort before the end of a version, numeric ones after it,
# so 1.0.0-beta < 1.0.0 < 1.0.0.1.
_ALPHA, _END, _NUMERIC = 0, 1, 2

_Key = Tuple[Tuple[Union[int, str], ...], ...]


class UnknownVersionError(RuntimeError):
    """Raised when a requested version is not among the discoverable versions."""

    def __init__(self, versions: Sequence[str]) -> None:
        self.versions = list(versions)
        super().__init__(f"Unknown version {', '.join(self.versions)}")


def version_key(tag: str) -> _Key:
    """Natural sort key ordering tag strings by semantic precedence."""
    text = tag[1:] if tag[:1] in {"v", "V"} and tag[1:2].isdigit() else tag
    parts: List[Tuple[Union[int, str], ...]] = []
    for segment in _SEGMENT.findall(text):
        if segment.isdigit():
            parts.append((_NUMERIC, int(segment)))
        else:
            parts.append((_ALPHA, segment.lower()))
    parts.append((_END,))
    return tuple(parts)


def sort_versions(tags: Iterable[str]) -> List[str]:
    return sorted(tags, key=lambda tag: (version_key(tag), tag))


def is_release_candidate(tag: str) -> bool:
    return bool(_RELEASE_CANDIDATE.search(tag))


def release_versions(tags: Iterable[str]) -> List[str]:
    """Return released tags, oldest first, without release candidates."""
    return sort_versions(tag for tag in tags if not is_release_candidate(tag))


def discover_versions(tags: Iterable[str]) -> List[str]:
    """Return the chronological version list with ``HEAD`` appended last."""
    versions = release_versions(tags)
    versions.append(HEAD)
    return versions


def select_versions(available: Sequence[str], requested: Sequence[str] | None) -> List[str]:
    """Restrict ``available`` to an explicit allow-list, validating every entry."""
    if not requested:
        return list(available)
    unknown = [version for version in requested if version not in available]
    if unknown:
        raise UnknownVersionError(unknown)
    return list(requested)


def chronological(versions: Iterable[str]) -> List[str]:
    """Sort versions oldest first, keeping ``HEAD`` at the end."""
    values = list(versions)
    ordered = sort_versions(version for version in values if version != HEAD)
    if HEAD in values:
        ordered.append(HEAD)
    return ordered


__all__ = [
    "HEAD",
    "UnknownVersionError",
    "chronological",
    "discover_versions",
    "is_release_candidate",
    "release_versions",
    "select_versions",
    "sort_versions",
    "version_key",
]
