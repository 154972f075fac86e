"""Cache manager for the local mirror of pin versions."""

import errno
import logging
import os
import shutil
import tempfile
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Collection, Dict, Iterator, List, Optional, Tuple, Union

from filelock import FileLock, Timeout

from pinstore.cache.config import CacheConfig
from pinstore.cache.index import CacheIndex, entry_key
from pinstore.cache.validation import check_downloaded, is_file_valid
from pinstore.errors import (
    CacheDiskFullError,
    CacheLockError,
    CachePermissionError,
    CacheWriteFailed,
    CorruptMetadata,
)
from pinstore.metadata import PinMetadata, decode
from pinstore.utils import METADATA_FILE

logger = logging.getLogger(__name__)

FetchFn = Callable[[str], bytes]


@dataclass
class CacheHit:
    """Every file of a version is present locally.

    Attributes:
        paths: Local file paths, in metadata order
        verified: True if file hashes were checked, not just sizes
    """

    paths: List[Path]
    verified: bool = False


@dataclass
class CacheMiss:
    """A version is absent or incomplete locally.

    Attributes:
        missing: Files that are absent or do not match the metadata
    """

    missing: List[str] = field(default_factory=list)


class CacheManager:
    """Manages the local cache of pin versions.

    Layout mirrors the remote board: ``<cache_dir>/<pin>/<version>/<file>``.
    Files are written to a temporary name and renamed into place, so a
    lookup never accepts a partial download. Writers of the same version
    are serialized with a file lock.
    """

    def __init__(self, config: Optional[CacheConfig] = None):
        """Initialize cache manager.

        Args:
            config: Cache configuration (defaults if None)
        """
        self.config = config or CacheConfig()
        self.cache_dir = self.config.cache_dir
        self.lock_dir = self.cache_dir / ".locks"
        try:
            self.lock_dir.mkdir(parents=True, exist_ok=True)
        except PermissionError as e:
            raise CachePermissionError(
                f"Cannot create cache lock directory at {self.lock_dir}: {e}"
            ) from e
        except OSError as e:
            logger.error(f"Error creating cache lock directory: {e}")
            raise CacheWriteFailed(
                f"Cannot access cache directory at {self.lock_dir}: {e}"
            ) from e

        self.index = CacheIndex(self.cache_dir, lock_timeout=self.config.lock_timeout)

    def version_dir(self, pin: str, version: str) -> Path:
        """Local directory for a pin version."""
        return self.cache_dir / pin / version

    @staticmethod
    def _file_path(version_dir: Path, name: str) -> Path:
        """Local path of a data file, which must stay inside its version directory."""
        target = (version_dir / name).resolve()
        if target.parent != version_dir.resolve():
            raise CorruptMetadata(f"File name '{name}' escapes {version_dir}")
        return version_dir / name

    def _get_lock_path(self, pin: str, version: str) -> Path:
        # '@' cannot appear in pin names, so the lock name is unambiguous
        return self.lock_dir / f"{pin}@{version}.lock"

    def _lock(self, pin: str, version: str, timeout: Optional[float] = None) -> FileLock:
        if timeout is None:
            timeout = self.config.lock_timeout
        return FileLock(self._get_lock_path(pin, version), timeout=timeout)

    # ==================== Lookup ====================

    def read_metadata(self, pin: str, version: str) -> Optional[PinMetadata]:
        """Decode the cached metadata of a version, or None if unusable."""
        meta_path = self.version_dir(pin, version) / METADATA_FILE
        if not meta_path.is_file():
            return None
        try:
            return decode(meta_path.read_bytes())
        except CorruptMetadata as e:
            logger.warning(f"Ignoring corrupt cached metadata {meta_path}: {e}")
            return None

    def lookup(
        self, pin: str, version: str, meta: Optional[PinMetadata] = None
    ) -> Union[CacheHit, CacheMiss]:
        """Check whether a version is fully materialized locally.

        Args:
            pin: Pin name
            version: Version ID
            meta: Metadata to check against; read from the cache if None

        Returns:
            CacheHit if every listed file is present and matches its recorded
            size (and hash, with ``verify_checksums``), otherwise CacheMiss
        """
        if meta is None:
            meta = self.read_metadata(pin, version)
            if meta is None:
                self.index.record_cache_miss()
                return CacheMiss(missing=[METADATA_FILE])

        version_dir = self.version_dir(pin, version)
        check_hash = self.config.verify_checksums
        missing = [
            name
            for name in meta.file
            if not is_file_valid(
                self._file_path(version_dir, name),
                meta.file_size.get(name),
                meta.file_hash.get(name),
                check_hash=check_hash,
            )
        ]
        if missing:
            self.index.record_cache_miss()
            return CacheMiss(missing=missing)

        self.index.record_cache_hit()
        verified = check_hash and all(name in meta.file_hash for name in meta.file)
        paths = [self._file_path(version_dir, name) for name in meta.file]
        return CacheHit(paths=paths, verified=verified)

    # ==================== Writing ====================

    def _check_disk_space(self, required_bytes: int) -> None:
        """Check if sufficient disk space is available.

        Args:
            required_bytes: Number of bytes needed

        Raises:
            CacheDiskFullError: If insufficient disk space
        """
        try:
            stat = shutil.disk_usage(self.cache_dir)
            available = stat.free
            # Require 10% buffer beyond required bytes
            required_with_buffer = int(required_bytes * 1.1)

            if available < required_with_buffer:
                raise CacheDiskFullError(
                    f"Insufficient disk space: {available / (1024**3):.2f} GB available, "
                    f"{required_with_buffer / (1024**3):.2f} GB required"
                )
        except CacheDiskFullError:
            raise
        except OSError as e:
            logger.warning(f"Could not check disk space: {e}")

    def _make_dir(self, path: Path) -> None:
        try:
            path.mkdir(parents=True, exist_ok=True)
        except PermissionError as e:
            raise CachePermissionError(f"Cannot create cache directory {path}: {e}") from e
        except OSError as e:
            logger.error(f"OS error creating cache directory: {e}")
            raise CacheWriteFailed(f"Cannot create cache directory: {e}") from e

    def _write_atomic(self, target: Path, data: bytes) -> None:
        """Write bytes to a temporary file and rename it onto ``target``."""
        try:
            fd, temp_name = tempfile.mkstemp(
                dir=target.parent, prefix=f".{target.name}.", suffix=".tmp"
            )
        except PermissionError as e:
            raise CachePermissionError(f"Cannot write to cache directory {target.parent}: {e}") from e
        except OSError as e:
            raise CacheWriteFailed(f"Cannot create temporary cache file: {e}") from e

        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(temp_name, target)
        except PermissionError as e:
            raise CachePermissionError(f"Cannot write to cache file {target}: {e}") from e
        except OSError as e:
            if e.errno == errno.ENOSPC:
                raise CacheDiskFullError(f"Disk full while writing {target} to cache") from e
            logger.error(f"OS error writing cache file: {e}")
            raise CacheWriteFailed(f"Cannot write cache file {target}: {e}") from e
        finally:
            if os.path.exists(temp_name):
                try:
                    os.unlink(temp_name)
                except OSError as e:
                    logger.warning(f"Failed to clean up temp file {temp_name}: {e}")

    def store_metadata(self, pin: str, version: str, raw: bytes) -> Path:
        """Write a version's metadata blob into the cache.

        Args:
            pin: Pin name
            version: Version ID
            raw: Serialized metadata

        Returns:
            Path to the cached metadata file
        """
        version_dir = self.version_dir(pin, version)
        self._make_dir(version_dir)
        target = version_dir / METADATA_FILE
        try:
            with self._lock(pin, version):
                self._write_atomic(target, raw)
        except Timeout as e:
            raise CacheLockError(
                f"Timeout acquiring lock for {pin}/{version} after "
                f"{self.config.lock_timeout} seconds"
            ) from e
        return target

    def materialize(
        self, pin: str, version: str, meta: PinMetadata, fetch_fn: FetchFn
    ) -> List[Path]:
        """Download every file of a version that is not already cached.

        Args:
            pin: Pin name
            version: Version ID
            meta: Metadata listing the version's files
            fetch_fn: Called with a file name, returns its bytes

        Returns:
            Local paths of all files, in metadata order

        Raises:
            CacheWriteFailed: If a file cannot be written locally
            CacheLockError: If the version lock cannot be acquired
            ChecksumMismatchError: If downloaded bytes do not match the metadata
        """
        try:
            with self._lock(pin, version):
                paths = self._materialize_locked(pin, version, meta, fetch_fn)
        except Timeout as e:
            raise CacheLockError(
                f"Timeout acquiring lock for {pin}/{version} after "
                f"{self.config.lock_timeout} seconds"
            ) from e

        self.evict(keep=[(pin, version)])
        return paths

    def _materialize_locked(
        self, pin: str, version: str, meta: PinMetadata, fetch_fn: FetchFn
    ) -> List[Path]:
        version_dir = self.version_dir(pin, version)
        self._make_dir(version_dir)

        fetched = 0
        paths = []
        for name in meta.file:
            target = self._file_path(version_dir, name)
            paths.append(target)
            if is_file_valid(
                target,
                meta.file_size.get(name),
                meta.file_hash.get(name),
                check_hash=self.config.verify_checksums,
            ):
                logger.debug(f"Cache hit for {pin}/{version}/{name}")
                continue

            logger.debug(f"Fetching {pin}/{version}/{name}")
            data = fetch_fn(name)
            check_downloaded(name, data, meta)
            self._check_disk_space(len(data))
            self._write_atomic(target, data)
            fetched += 1

        if fetched:
            self.index.record_cache_miss()
            logger.info(f"Cached {fetched} file(s) for {pin}/{version}")
        else:
            self.index.record_cache_hit()
        return paths

    # ==================== Recency and eviction ====================

    def touch(self, pin: str, version: str) -> None:
        """Mark a version as recently used."""
        self.index.touch(pin, version)

    def _iter_version_dirs(self) -> Iterator[Tuple[str, str, Path]]:
        """Yield (pin, version, path) for every cached version directory."""
        if not self.cache_dir.exists():
            return
        for pin_dir in sorted(self.cache_dir.iterdir()):
            if not pin_dir.is_dir() or pin_dir.name.startswith("."):
                continue
            for version_dir in sorted(pin_dir.iterdir()):
                if version_dir.is_dir():
                    yield pin_dir.name, version_dir.name, version_dir

    @staticmethod
    def _dir_size(path: Path) -> int:
        return sum(p.stat().st_size for p in path.rglob("*") if p.is_file())

    def _last_used(self, pin: str, version: str, path: Path, entries: Dict[str, Any]) -> float:
        entry = entries.get(entry_key(pin, version))
        if entry and entry.get("last_accessed"):
            return datetime.fromisoformat(entry["last_accessed"]).timestamp()
        return path.stat().st_mtime

    def _remove_version(self, pin: str, version: str, path: Path) -> bool:
        """Remove a version directory unless another process holds its lock."""
        try:
            with self._lock(pin, version, timeout=0):
                shutil.rmtree(path, ignore_errors=False)
        except Timeout:
            logger.info(f"Skipping {pin}/{version}: in use")
            return False
        except FileNotFoundError:
            pass
        self.index.remove(pin, version)
        return True

    def total_size(self) -> int:
        """Total bytes used by cached versions."""
        return sum(self._dir_size(path) for _, _, path in self._iter_version_dirs())

    def evict(self, keep: Collection[Tuple[str, str]] = ()) -> List[str]:
        """Remove least recently used versions until the cache fits its budget.

        Whole version directories are removed, never single files.

        Args:
            keep: (pin, version) pairs that must not be evicted

        Returns:
            Evicted ``pin/version`` keys
        """
        budget = self.config.max_cache_size
        if budget is None:
            return []

        entries = self.index.get_all_entries()
        candidates = []
        total = 0
        for pin, version, path in self._iter_version_dirs():
            size = self._dir_size(path)
            total += size
            if (pin, version) not in keep:
                candidates.append(
                    (self._last_used(pin, version, path, entries), pin, version, path, size)
                )

        evicted = []
        for _, pin, version, path, size in sorted(candidates, key=lambda c: c[0]):
            if total <= budget:
                break
            if self._remove_version(pin, version, path):
                total -= size
                evicted.append(entry_key(pin, version))
                logger.info(f"Evicted {pin}/{version} ({size} bytes) from cache")
        return evicted

    def prune(self, max_age_days: float) -> List[str]:
        """Remove versions that have not been used for ``max_age_days`` days.

        Returns:
            Removed ``pin/version`` keys
        """
        cutoff = time.time() - max_age_days * 86400
        entries = self.index.get_all_entries()
        removed = []
        for pin, version, path in list(self._iter_version_dirs()):
            if self._last_used(pin, version, path, entries) < cutoff:
                if self._remove_version(pin, version, path):
                    removed.append(entry_key(pin, version))
        if removed:
            logger.info(f"Pruned {len(removed)} version(s) from cache")
        return removed

    def invalidate(self, pin: str, version: Optional[str] = None) -> None:
        """Remove one version's cache entry, or all entries of a pin.

        Args:
            pin: Pin name
            version: Version ID, or None for every version of the pin
        """
        pin_dir = self.cache_dir / pin
        if version is None:
            targets = sorted(p for p in pin_dir.iterdir() if p.is_dir()) if pin_dir.is_dir() else []
        else:
            targets = [pin_dir / version]

        for path in targets:
            try:
                with self._lock(pin, path.name):
                    if path.exists():
                        shutil.rmtree(path)
            except Timeout as e:
                raise CacheLockError(
                    f"Timeout acquiring lock for {pin}/{path.name} after "
                    f"{self.config.lock_timeout} seconds"
                ) from e
            except PermissionError as e:
                raise CachePermissionError(f"Cannot remove cache directory {path}: {e}") from e
            except OSError as e:
                logger.error(f"OS error removing cache directory: {e}")
                raise CacheWriteFailed(f"Cannot remove cache directory {path}: {e}") from e

        if version is None and pin_dir.is_dir():
            shutil.rmtree(pin_dir, ignore_errors=True)
        self.index.remove(pin, version)

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics.

        Returns:
            Statistics dict
        """
        stats = self.index.get_stats()
        versions = list(self._iter_version_dirs())
        stats["cache_dir"] = str(self.cache_dir)
        stats["total_versions"] = len(versions)
        stats["total_size_bytes"] = sum(self._dir_size(path) for _, _, path in versions)
        stats["max_cache_size"] = self.config.max_cache_size

        total_requests = stats["cache_hits"] + stats["cache_misses"]
        stats["cache_hit_rate"] = (
            stats["cache_hits"] / total_requests if total_requests > 0 else 0.0
        )
        return stats
