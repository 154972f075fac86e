"""Pin metadata records.

Each version of a pin carries one metadata document (``data.txt``) that
lists its data files, their sizes and hashes, a type tag and free-form
descriptive fields. The document is JSON, which is also valid YAML.
"""

import hashlib
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import orjson

from pinstore.errors import CorruptMetadata
from pinstore.utils import (
    FILE_HASH_ALGORITHM,
    METADATA_FILE,
    compute_checksum,
    is_valid_file_name,
)

API_VERSION = 1

REQUIRED_FIELDS = ("file", "type", "api_version")

# Fields that do not take part in the version fingerprint
VOLATILE_FIELDS = ("created",)


@dataclass
class PinMetadata:
    """Metadata for a single pin version.

    Attributes:
        file: Data file names, in upload order
        type: Payload type tag (e.g. 'file', 'csv', 'table')
        api_version: Metadata schema version
        file_size: Map of file name to size in bytes
        file_hash: Map of file name to hex digest
        pin_hash: Digest over all file hashes
        title: Short human-readable title
        description: Longer description
        tags: Free-form tags
        urls: Related URLs
        created: ISO 8601 creation timestamp (UTC)
        user: Arbitrary user-supplied metadata
    """

    file: List[str]
    type: str
    api_version: int = API_VERSION
    file_size: Dict[str, int] = field(default_factory=dict)
    file_hash: Dict[str, str] = field(default_factory=dict)
    pin_hash: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    urls: List[str] = field(default_factory=list)
    created: Optional[str] = None
    user: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a plain dict suitable for serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PinMetadata":
        """Build a record from a decoded document, validating every field.

        Raises:
            CorruptMetadata: If required fields are missing or any field has
                the wrong type
        """
        if not isinstance(data, dict):
            raise CorruptMetadata(
                f"Metadata must be a mapping, got {type(data).__name__}"
            )

        missing = [name for name in REQUIRED_FIELDS if name not in data]
        if missing:
            raise CorruptMetadata(f"Metadata is missing required fields: {missing}")

        files = data["file"]
        if (
            not isinstance(files, list)
            or not files
            or not all(isinstance(f, str) and f for f in files)
        ):
            raise CorruptMetadata("Metadata 'file' must be a non-empty list of names")
        if len(set(files)) != len(files):
            raise CorruptMetadata("Metadata 'file' contains duplicate names")
        bad_names = [f for f in files if not is_valid_file_name(f)]
        if bad_names:
            raise CorruptMetadata(
                f"Metadata 'file' contains invalid file names: {bad_names}"
            )

        if not isinstance(data["type"], str):
            raise CorruptMetadata("Metadata 'type' must be a string")
        if not isinstance(data["api_version"], int) or isinstance(
            data["api_version"], bool
        ):
            raise CorruptMetadata("Metadata 'api_version' must be an integer")

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise CorruptMetadata(f"Metadata has unknown fields: {unknown}")

        _check_mapping(data, "file_size", int, files)
        _check_mapping(data, "file_hash", str, files)
        for name in ("pin_hash", "title", "description", "created"):
            if data.get(name) is not None and not isinstance(data[name], str):
                raise CorruptMetadata(f"Metadata '{name}' must be a string")
        for name in ("tags", "urls"):
            value = data.get(name, [])
            if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                raise CorruptMetadata(f"Metadata '{name}' must be a list of strings")
        if not isinstance(data.get("user", {}), dict):
            raise CorruptMetadata("Metadata 'user' must be a mapping")

        kwargs = {name: data[name] for name in known if name in data}
        # Optional collections may be written as null by other clients
        for name in ("file_size", "file_hash", "user"):
            if kwargs.get(name) is None:
                kwargs[name] = {}
        for name in ("tags", "urls"):
            if kwargs.get(name) is None:
                kwargs[name] = []
        return cls(**kwargs)


def _check_mapping(data: Dict[str, Any], name: str, value_type: type, files: List[str]):
    value = data.get(name)
    if value is None:
        return
    if not isinstance(value, dict):
        raise CorruptMetadata(f"Metadata '{name}' must be a mapping")
    for key, item in value.items():
        if key not in files:
            raise CorruptMetadata(f"Metadata '{name}' refers to unlisted file '{key}'")
        if not isinstance(item, value_type) or isinstance(item, bool):
            raise CorruptMetadata(
                f"Metadata '{name}' entry for '{key}' must be {value_type.__name__}"
            )


def encode(record: PinMetadata) -> bytes:
    """Serialize a metadata record to bytes."""
    return orjson.dumps(record.to_dict(), option=orjson.OPT_INDENT_2)


def decode(raw: Union[bytes, str]) -> PinMetadata:
    """Deserialize a metadata record.

    Args:
        raw: Serialized metadata document

    Returns:
        Decoded PinMetadata

    Raises:
        CorruptMetadata: If the document is not valid metadata
    """
    try:
        data = orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        raise CorruptMetadata(f"Metadata is not valid JSON: {e}") from e
    return PinMetadata.from_dict(data)


def fingerprint_payload(record: PinMetadata) -> bytes:
    """Canonical bytes of the fields that identify a version's content.

    File entries are sorted by name and volatile fields (``created``) are
    left out, so identical content always produces identical bytes.
    """
    files = [
        {
            "name": name,
            "size": record.file_size.get(name),
            "hash": record.file_hash.get(name),
        }
        for name in sorted(record.file)
    ]
    payload = {
        key: value
        for key, value in record.to_dict().items()
        if key not in VOLATILE_FIELDS and key not in ("file", "file_size", "file_hash")
    }
    payload["file"] = files
    payload["tags"] = sorted(record.tags)
    return orjson.dumps(payload, option=orjson.OPT_SORT_KEYS)


def version_fingerprint(record: PinMetadata) -> str:
    """Stable SHA-256 hex digest of a record's semantic content."""
    return hashlib.sha256(fingerprint_payload(record)).hexdigest()


def combine_hashes(file_hash: Dict[str, str]) -> str:
    """Digest over per-file hashes, independent of file order."""
    hasher = hashlib.sha256()
    for name in sorted(file_hash):
        hasher.update(f"{name}:{file_hash[name]}\n".encode())
    return hasher.hexdigest()


def build_metadata(
    paths: Sequence[Union[str, Path]],
    type: str = "file",
    title: Optional[str] = None,
    description: Optional[str] = None,
    tags: Optional[List[str]] = None,
    urls: Optional[List[str]] = None,
    user: Optional[Dict[str, Any]] = None,
) -> PinMetadata:
    """Build a metadata record describing local files.

    Args:
        paths: Local data files
        type: Payload type tag
        title: Optional title
        description: Optional description
        tags: Optional tags
        urls: Optional related URLs
        user: Optional user metadata

    Returns:
        PinMetadata with sizes and hashes filled in

    Raises:
        ValueError: If no paths are given or two paths share a file name
            or a file is named like the metadata file
        FileNotFoundError: If a path does not exist
    """
    paths = [Path(p) for p in paths]
    if not paths:
        raise ValueError("At least one file is required")

    names = [p.name for p in paths]
    if len(set(names)) != len(names):
        raise ValueError(f"File names must be unique, got {names}")
    if METADATA_FILE in names:
        raise ValueError(
            f"A data file cannot be named '{METADATA_FILE}', it is reserved for metadata"
        )

    file_size = {}
    file_hash = {}
    for path in paths:
        if not path.is_file():
            raise FileNotFoundError(f"No such file: {path}")
        file_size[path.name] = path.stat().st_size
        file_hash[path.name] = compute_checksum(path, FILE_HASH_ALGORITHM)

    return PinMetadata(
        file=names,
        type=type,
        file_size=file_size,
        file_hash=file_hash,
        pin_hash=combine_hashes(file_hash),
        title=title,
        description=description,
        tags=list(tags or []),
        urls=list(urls or []),
        created=datetime.now(timezone.utc).isoformat(),
        user=dict(user or {}),
    )
