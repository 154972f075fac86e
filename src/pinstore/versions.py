"""Version identifiers for pins.

A version ID is a UTC timestamp followed by a short content hash, e.g.
``20240102T030405123456Z-3f9a1``. Generated IDs sort by creation time as
plain strings. IDs written by other pins clients use second precision
(``20240102T030405Z-3f9a1``); both forms are accepted when parsing, and
mixed lists are ordered by their parsed timestamps, since a second-precision
ID sorts after a microsecond ID of the same second as a string.
"""

import hashlib
import logging
import re
from datetime import datetime, timezone
from typing import Iterable, List, NamedTuple, Optional, Sequence

from pinstore.errors import NoVersionsYet, VersionNotFound

logger = logging.getLogger(__name__)

HASH_LENGTH = 5
UNVERSIONED_SLOT = "latest"

_VERSION_RE = re.compile(
    r"^(?P<stamp>\d{8}T\d{6})(?P<micro>\d{6})?Z-(?P<hash>[0-9a-f]{%d})$" % HASH_LENGTH
)


class VersionInfo(NamedTuple):
    """Parsed components of a version ID."""

    version: str
    created: Optional[datetime]
    hash: Optional[str]


def new_version_id(metadata_bytes: bytes, created: Optional[datetime] = None) -> str:
    """Derive a new version ID.

    Args:
        metadata_bytes: Canonical metadata payload to hash
        created: Creation time (defaults to now, UTC)

    Returns:
        Version ID string

    Examples:
        >>> new_version_id(b"{}", datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc))
        '20240102T030405000000Z-44136'
    """
    if created is None:
        created = datetime.now(timezone.utc)
    elif created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    stamp = created.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
    digest = hashlib.sha256(metadata_bytes).hexdigest()[:HASH_LENGTH]
    return f"{stamp}-{digest}"


def parse_version(name: str) -> Optional[VersionInfo]:
    """Parse a directory entry into a VersionInfo, or None if malformed."""
    if name == UNVERSIONED_SLOT:
        return VersionInfo(name, None, None)

    match = _VERSION_RE.match(name)
    if match is None:
        return None

    try:
        created = datetime.strptime(match.group("stamp"), "%Y%m%dT%H%M%S")
    except ValueError:
        # Right shape, impossible date (month 13 etc.)
        return None
    micro = match.group("micro")
    if micro:
        created = created.replace(microsecond=int(micro))
    return VersionInfo(name, created.replace(tzinfo=timezone.utc), match.group("hash"))


def _sort_key(info: VersionInfo):
    # The unversioned slot is always the most recent write
    if info.created is None:
        return (1, datetime.max.replace(tzinfo=timezone.utc), "")
    return (0, info.created, info.hash)


def parse_version_infos(names: Iterable[str]) -> List[VersionInfo]:
    """Parse and sort candidate version names, dropping malformed entries."""
    infos = []
    for name in set(names):
        info = parse_version(name)
        if info is None:
            logger.debug(f"Ignoring non-version entry '{name}'")
            continue
        infos.append(info)
    return sorted(infos, key=_sort_key)


def parse_versions(names: Iterable[str]) -> List[str]:
    """Filter names to valid version IDs, sorted oldest first.

    Args:
        names: Candidate directory entry names

    Returns:
        Ascending list of version IDs

    Examples:
        >>> parse_versions(["20240102T000000Z-bbbbb", "junk", "20240101T000000Z-aaaaa"])
        ['20240101T000000Z-aaaaa', '20240102T000000Z-bbbbb']
    """
    return [info.version for info in parse_version_infos(names)]


def resolve_version(requested: Optional[str], available: Sequence[str]) -> str:
    """Pick the version to read.

    Args:
        requested: Explicit version, or None for the latest
        available: Versions sorted oldest first

    Returns:
        Resolved version ID

    Raises:
        NoVersionsYet: If ``available`` is empty
        VersionNotFound: If ``requested`` is not in ``available``
    """
    if len(available) == 0:
        raise NoVersionsYet("Pin has no versions yet")
    if requested is None:
        return available[-1]
    if requested not in available:
        raise VersionNotFound(requested)
    return requested
