"""Cache index management."""

import contextlib
import errno
import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from filelock import FileLock, Timeout
from typing_extensions import TypedDict

from pinstore.errors import (
    CacheDiskFullError,
    CacheLockError,
    CachePermissionError,
    CacheWriteFailed,
)

logger = logging.getLogger(__name__)

INDEX_FILE = ".cache_meta.json"
SCHEMA_VERSION = "1.0"


class CacheEntry(TypedDict):
    """Index record for one cached version."""

    pin: str
    version: str
    cached_at: str  # ISO 8601 timestamp
    last_accessed: str  # ISO 8601 timestamp
    access_count: int


def entry_key(pin: str, version: str) -> str:
    """Index key for a pin version."""
    return f"{pin}/{version}"


class CacheIndex:
    """Tracks recency and statistics for cached versions.

    The index file (.cache_meta.json) lives at the cache root and records:
    - Per-version access times and counts (used for eviction)
    - Cache statistics (hits, misses)

    Every mutation reloads the file under a lock before writing it back, so
    several processes can share one cache directory.
    """

    def __init__(self, cache_dir: Path, lock_timeout: float = 30):
        """Initialize cache index.

        Args:
            cache_dir: Cache root directory
            lock_timeout: Seconds to wait for the index lock
        """
        self.cache_dir = Path(cache_dir)
        self.index_path = self.cache_dir / INDEX_FILE
        self.lock_path = self.cache_dir / ".locks" / "index.lock"
        self.lock_timeout = lock_timeout
        self._data: Dict[str, Any] = self._empty()

    @staticmethod
    def _empty() -> Dict[str, Any]:
        return {
            "schema_version": SCHEMA_VERSION,
            "entries": {},
            "stats": {"cache_hits": 0, "cache_misses": 0},
        }

    def _load(self) -> None:
        """Load index from file or start fresh."""
        if not self.index_path.exists():
            self._data = self._empty()
            return
        try:
            with open(self.index_path, "r") as f:
                self._data = json.load(f)
        except (json.JSONDecodeError, FileNotFoundError) as e:
            # The index only holds recency hints; the files are the source of truth
            logger.warning(f"Cache index {self.index_path} unreadable, resetting: {e}")
            self._data = self._empty()

    def _save(self) -> None:
        """Atomically write the index to disk.

        Raises:
            CacheWriteFailed: If the index cannot be written (or one of its
                subclasses for a full disk or missing permissions)
        """
        tmp_name = None
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.cache_dir, prefix=f"{INDEX_FILE}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w") as f:
                json.dump(self._data, f, indent=2)
            os.replace(tmp_name, self.index_path)
        except PermissionError as e:
            raise CachePermissionError(f"Cannot write cache index {self.index_path}: {e}") from e
        except OSError as e:
            if e.errno == errno.ENOSPC:
                raise CacheDiskFullError(
                    f"Disk full while writing cache index {self.index_path}"
                ) from e
            logger.error(f"OS error writing cache index: {e}")
            raise CacheWriteFailed(f"Cannot write cache index {self.index_path}: {e}") from e
        finally:
            if tmp_name and os.path.exists(tmp_name):
                try:
                    os.unlink(tmp_name)
                except OSError as e:
                    logger.warning(f"Failed to clean up temp file {tmp_name}: {e}")

    @contextlib.contextmanager
    def _update(self) -> Iterator[Dict[str, Any]]:
        """Lock, reload, yield the data for modification, then save."""
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with FileLock(self.lock_path, timeout=self.lock_timeout):
                self._load()
                yield self._data
                self._save()
        except Timeout as e:
            raise CacheLockError(
                f"Timeout acquiring cache index lock after {self.lock_timeout} seconds"
            ) from e

    def get_entry(self, pin: str, version: str) -> Optional[CacheEntry]:
        """Get index record for a version, or None if untracked."""
        self._load()
        return self._data["entries"].get(entry_key(pin, version))

    def get_all_entries(self) -> Dict[str, CacheEntry]:
        """Get all index records keyed by ``pin/version``."""
        self._load()
        return dict(self._data["entries"])

    def touch(self, pin: str, version: str) -> None:
        """Record an access to a version.

        Args:
            pin: Pin name
            version: Version ID
        """
        now = datetime.now(timezone.utc).isoformat()
        with self._update() as data:
            entry = data["entries"].get(
                entry_key(pin, version),
                {"pin": pin, "version": version, "cached_at": now, "access_count": 0},
            )
            entry["access_count"] += 1
            entry["last_accessed"] = now
            data["entries"][entry_key(pin, version)] = entry

    def remove(self, pin: str, version: Optional[str] = None) -> None:
        """Remove one version, or every version of a pin, from the index."""
        with self._update() as data:
            for key, entry in list(data["entries"].items()):
                if entry["pin"] == pin and version in (None, entry["version"]):
                    del data["entries"][key]

    def record_cache_hit(self) -> None:
        """Record a cache hit in statistics."""
        with self._update() as data:
            data["stats"]["cache_hits"] += 1

    def record_cache_miss(self) -> None:
        """Record a cache miss in statistics."""
        with self._update() as data:
            data["stats"]["cache_misses"] += 1

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        self._load()
        return dict(self._data["stats"])
