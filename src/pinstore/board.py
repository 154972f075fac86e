"""Pin boards: versioned pins on a remote store with a local cache.

A board lays pins out as ``<subdir>/<pin>/<version>/<file>`` on its remote
store. Every version directory holds a ``data.txt`` metadata document plus
the data files it lists. Reads go through the local cache; writes go to the
remote store first.
"""

import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from pinstore.cache import CacheManager
from pinstore.config import BoardConfig
from pinstore.errors import (
    NoVersionsYet,
    PinNotFound,
    PinVersionConflict,
    RemoteNotFound,
    VersionNotFound,
)
from pinstore.metadata import (
    API_VERSION,
    PinMetadata,
    build_metadata,
    decode,
    encode,
    fingerprint_payload,
)
from pinstore.remote import RemoteStore, create_remote, join_remote
from pinstore.utils import METADATA_FILE, check_pin_name
from pinstore.versions import (
    UNVERSIONED_SLOT,
    VersionInfo,
    new_version_id,
    parse_version,
    parse_version_infos,
    parse_versions,
    resolve_version,
)

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass
class LocalMeta:
    """Metadata of a resolved pin version and where it lives in the cache.

    Attributes:
        meta: Decoded metadata record
        name: Pin name
        version: Resolved version ID
        dir: Local cache directory of the version
    """

    meta: PinMetadata
    name: str
    version: str
    dir: Path

    @property
    def paths(self) -> List[Path]:
        """Local paths of the version's data files, in metadata order."""
        return [self.dir / name for name in self.meta.file]


class PinBoard:
    """A board of versioned pins.

    Examples:
        >>> board = PinBoard(BoardConfig('s3://my-bucket/boards', subdir='team'))
        >>> board.pin_upload(['mtcars.csv'], 'mtcars', type='csv')
        'mtcars'
        >>> local = board.pin_fetch('mtcars')
        >>> local.paths
        [PosixPath('.../mtcars/20240102T030405123456Z-3f9a1/mtcars.csv')]
    """

    def __init__(
        self,
        config: BoardConfig,
        remote: Optional[RemoteStore] = None,
        cache: Optional[CacheManager] = None,
    ):
        """Initialize a board.

        Args:
            config: Board configuration
            remote: Remote store; created from ``config.base_url`` if None
            cache: Cache manager; created from the config if None
        """
        self.config = config
        self.remote = remote if remote is not None else create_remote(
            config.base_url, config.credentials
        )
        self.cache = cache if cache is not None else CacheManager(config.cache_config())

    @classmethod
    def from_url(cls, base_url: str, **kwargs: Any) -> "PinBoard":
        """Create a board from a location and BoardConfig keyword arguments."""
        return cls(BoardConfig(base_url, **kwargs))

    def __repr__(self) -> str:
        return (
            f"PinBoard(base_url={self.config.base_url!r}, subdir={self.config.subdir!r}, "
            f"versioned={self.config.versioned})"
        )

    def _path(self, *parts: str) -> str:
        return join_remote(self.config.subdir, *parts)

    def _check_pin_exists(self, name: str) -> None:
        if not self.pin_exists(name):
            raise PinNotFound(name)

    # ==================== Listing ====================

    def pin_list(self) -> set:
        """Names of all pins on the board."""
        return {entry.name for entry in self.remote.list_dir(self._path())}

    def pin_exists(self, name: str) -> bool:
        """Check whether a pin exists.

        Raises:
            InvalidPinName: If ``name`` is not a valid pin name
        """
        check_pin_name(name)
        return self.remote.path_exists(self._path(name))

    def _version_names(self, name: str) -> List[str]:
        self._check_pin_exists(name)
        return [entry.name for entry in self.remote.list_dir(self._path(name))]

    def pin_versions(self, name: str) -> List[str]:
        """Versions of a pin, oldest first.

        Raises:
            PinNotFound: If the pin does not exist
        """
        return parse_versions(self._version_names(name))

    def pin_version_info(self, name: str) -> List[VersionInfo]:
        """Parsed version, creation time and hash for each version, oldest first."""
        return parse_version_infos(self._version_names(name))

    # ==================== Reading ====================

    def pin_meta(self, name: str, version: Optional[str] = None) -> LocalMeta:
        """Read the metadata of a pin version.

        The metadata is always downloaded from the remote store, then written
        to the cache directory of the version.

        Args:
            name: Pin name
            version: Version ID, or None for the latest

        Returns:
            LocalMeta for the resolved version

        Raises:
            PinNotFound: If the pin does not exist
            NoVersionsYet: If the pin has no versions
            VersionNotFound: If the version or its metadata file is missing
            CorruptMetadata: If the metadata cannot be decoded
        """
        try:
            version = resolve_version(version, self.pin_versions(name))
        except VersionNotFound as e:
            raise VersionNotFound(e.version, name) from e
        except NoVersionsYet as e:
            raise NoVersionsYet(f"Pin '{name}' has no versions yet") from e

        meta_path = self._path(name, version, METADATA_FILE)
        if not self.remote.path_exists(meta_path):
            raise VersionNotFound(version, name)
        try:
            raw = self.remote.get_file(meta_path)
        except RemoteNotFound as e:
            raise VersionNotFound(version, name) from e

        meta = decode(raw)
        cached = self.cache.read_metadata(name, version)
        if cached is not None and cached.pin_hash != meta.pin_hash:
            # The slot was overwritten since it was cached
            self.cache.invalidate(name, version)
        self.cache.store_metadata(name, version, raw)
        return LocalMeta(meta=meta, name=name, version=version, dir=self.cache.version_dir(name, version))

    def pin_fetch(self, name: str, version: Optional[str] = None) -> LocalMeta:
        """Make every file of a pin version available in the local cache.

        Files already present and valid in the cache are not downloaded again.

        Args:
            name: Pin name
            version: Version ID, or None for the latest

        Returns:
            LocalMeta for the resolved version

        Raises:
            RemoteNotFound: If a listed data file is missing remotely (an
                announced but incomplete version)
            CacheWriteFailed: If the cache cannot be written
        """
        local = self.pin_meta(name, version)
        self.cache.touch(name, local.version)

        def fetch_file(file_name: str) -> bytes:
            return self.remote.get_file(self._path(name, local.version, file_name))

        self.cache.materialize(name, local.version, local.meta, fetch_file)
        return local

    def pin_download(self, name: str, version: Optional[str] = None) -> List[Path]:
        """Fetch a pin version and return its local file paths."""
        return self.pin_fetch(name, version).paths

    # ==================== Writing ====================

    def _prepare_metadata(
        self, paths: List[Path], metadata: Union[PinMetadata, Mapping[str, Any]]
    ) -> PinMetadata:
        """Validate metadata against the files and fill in sizes and hashes."""
        # Fails on missing files and reserved names before any upload
        facts = build_metadata(paths)

        if isinstance(metadata, PinMetadata):
            meta = replace(metadata)
        elif isinstance(metadata, Mapping):
            data = dict(metadata)
            data.setdefault("api_version", API_VERSION)
            meta = PinMetadata.from_dict(data)
        else:
            raise TypeError(
                f"metadata must be PinMetadata or a mapping, got {type(metadata).__name__}"
            )

        names = [p.name for p in paths]
        if sorted(meta.file) != sorted(names):
            raise ValueError(
                f"Metadata lists files {meta.file} but {names} were given"
            )

        return replace(
            meta,
            file_size=facts.file_size,
            file_hash=facts.file_hash,
            pin_hash=facts.pin_hash,
            created=meta.created or facts.created,
        )

    def pin_store(
        self,
        name: str,
        paths: Sequence[PathLike],
        metadata: Union[PinMetadata, Mapping[str, Any]],
        versioned: Optional[bool] = None,
    ) -> str:
        """Publish local files as a new version of a pin.

        The metadata file is uploaded before the data files, so a reader can
        see a version (through ``pin_meta``) before all of its files have
        landed. A writer that dies in between leaves such a version behind;
        ``pin_fetch`` on it raises RemoteNotFound for the missing files.

        Args:
            name: Pin name
            paths: Local data files
            metadata: Metadata whose file list names the basenames of ``paths``
            versioned: Create a new version (True) or overwrite the single
                unversioned slot (False); defaults to the board setting

        Returns:
            The pin name

        Raises:
            InvalidPinName: If ``name`` is not a valid pin name
            PinVersionConflict: If the write would mix versioned and
                unversioned storage on one pin
        """
        check_pin_name(name)
        paths = [Path(p) for p in paths]
        if not paths:
            raise ValueError("At least one file is required")
        meta = self._prepare_metadata(paths, metadata)

        if versioned is None:
            versioned = self.config.versioned
        existing = self.pin_versions(name) if self.pin_exists(name) else []

        replaced: List[str] = []
        if versioned:
            if UNVERSIONED_SLOT in existing:
                raise PinVersionConflict(
                    f"Pin '{name}' is unversioned; write with versioned=False "
                    "or delete it first"
                )
            version = new_version_id(fingerprint_payload(meta))
        else:
            replaced = [v for v in existing if v != UNVERSIONED_SLOT]
            if len(replaced) > 1:
                raise PinVersionConflict(
                    f"Pin '{name}' is versioned, but you have requested a write "
                    "without versions"
                )
            version = UNVERSIONED_SLOT

        version_dir = self._path(name, version)
        previous_files = (
            {entry.name for entry in self.remote.list_dir(version_dir) if entry.is_file}
            if version in existing
            else set()
        )

        self.remote.mkdir(self._path(name))
        self.remote.put_file(join_remote(version_dir, METADATA_FILE), encode(meta))
        for path in paths:
            logger.debug(f"Uploading {path} to {version_dir}")
            self.remote.put_file(join_remote(version_dir, path.name), path.read_bytes())

        if not versioned:
            self._finish_overwrite(name, version, meta, previous_files, replaced)

        logger.info(f"Stored pin '{name}' version {version}")
        return name

    def _finish_overwrite(
        self,
        name: str,
        version: str,
        meta: PinMetadata,
        previous_files: set,
        replaced: List[str],
    ) -> None:
        """Remove leftovers of the content an unversioned write replaced."""
        for stale in sorted(previous_files - set(meta.file) - {METADATA_FILE}):
            self.remote.delete_file(self._path(name, version, stale))
        for old_version in replaced:
            self.remote.delete_tree(self._path(name, old_version))
            self.cache.invalidate(name, old_version)
        self.cache.invalidate(name, version)

    def pin_upload(
        self,
        paths: Sequence[PathLike],
        name: str,
        type: str = "file",
        title: Optional[str] = None,
        description: Optional[str] = None,
        tags: Optional[List[str]] = None,
        urls: Optional[List[str]] = None,
        user: Optional[Dict[str, Any]] = None,
        versioned: Optional[bool] = None,
    ) -> str:
        """Describe local files with new metadata and store them as a pin.

        Returns:
            The pin name
        """
        paths = [Path(p) for p in paths]
        meta = PinMetadata(
            file=[p.name for p in paths],
            type=type,
            title=title,
            description=description,
            tags=list(tags or []),
            urls=list(urls or []),
            user=dict(user or {}),
        )
        return self.pin_store(name, paths, meta, versioned=versioned)

    # ==================== Deleting ====================

    def pin_delete(self, names: Union[str, Iterable[str]]) -> None:
        """Delete pins with all of their versions, remotely and in the cache.

        Raises:
            PinNotFound: If any of the pins does not exist (nothing is deleted)
        """
        if isinstance(names, str):
            names = [names]
        names = list(names)
        for name in names:
            self._check_pin_exists(name)

        for name in names:
            self.remote.delete_tree(self._path(name))
            self.cache.invalidate(name)
            logger.info(f"Deleted pin '{name}'")

    def pin_version_delete(self, name: str, version: str) -> None:
        """Delete one version of a pin, remotely and in the cache.

        Deleting the last version leaves an existing pin with no versions.
        """
        check_pin_name(name)
        if parse_version(version) is None:
            raise VersionNotFound(version, name)
        self.remote.delete_tree(self._path(name, version))
        self.cache.invalidate(name, version)
        logger.info(f"Deleted version {version} of pin '{name}'")

    # ==================== Cache ====================

    def cache_prune(self, days: float = 30) -> List[str]:
        """Remove cached versions not used in the last ``days`` days."""
        return self.cache.prune(days)

    def cache_info(self) -> Dict[str, Any]:
        """Statistics of this board's cache."""
        return self.cache.get_stats()
