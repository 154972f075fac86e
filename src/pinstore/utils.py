"""Utility functions for pinstore."""

import hashlib
import os
import re
from pathlib import Path
from typing import Union

from pinstore.errors import InvalidPinName

# Board layout constants
METADATA_FILE = "data.txt"
DEFAULT_SUBDIR = "pins"
DEFAULT_CACHE_ROOT = Path.home() / ".pinstore_cache"
FILE_HASH_ALGORITHM = "sha256"

_PIN_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def check_pin_name(name: str) -> None:
    """Validate that a pin name is safe to use as a path component.

    Pin names may only contain alphanumeric characters, dots, underscores,
    and hyphens, and must start with an alphanumeric character.

    Args:
        name: Pin name to validate

    Raises:
        InvalidPinName: If the name is empty, too long or contains
            unsupported characters

    Examples:
        >>> check_pin_name('mtcars')  # OK
        >>> check_pin_name('model-v1.2')  # OK
        >>> check_pin_name('data/mtcars')  # Raises InvalidPinName
        Traceback (most recent call last):
            ...
        pinstore.errors.InvalidPinName: Pin name 'data/mtcars' must not contain slashes
    """
    if not isinstance(name, str):
        raise InvalidPinName(f"Pin name must be a string, got {type(name).__name__}")

    if not name:
        raise InvalidPinName("Pin name cannot be empty")

    if "/" in name or "\\" in name:
        raise InvalidPinName(f"Pin name '{name}' must not contain slashes")

    if not _PIN_NAME_RE.match(name):
        raise InvalidPinName(
            f"Pin name '{name}' can only contain alphanumeric, dots, underscores, "
            "and hyphens, and must start with an alphanumeric character"
        )

    if len(name) > 255:
        raise InvalidPinName(f"Pin name '{name}' is too long (max 255 characters)")


def is_valid_file_name(name: str) -> bool:
    """Check that a data file name is a plain file name within a version.

    Rejects empty names, '.' and '..', names with slashes, absolute paths and
    the metadata file name.

    Examples:
        >>> is_valid_file_name('mtcars.csv')
        True
        >>> is_valid_file_name('../escaped.txt')
        False
        >>> is_valid_file_name('data.txt')
        False
    """
    if not isinstance(name, str) or not name:
        return False
    if name in (".", "..", METADATA_FILE):
        return False
    if "/" in name or "\\" in name or os.path.isabs(name):
        return False
    return True


def normalize_board_id(location: str) -> str:
    """Convert a board location to a filesystem-safe identifier.

    Args:
        location: Board location (URL or path)

    Returns:
        Normalized identifier safe for filesystem

    Examples:
        >>> normalize_board_id('s3://bucket/path/board')
        's3_bucket_path_board'
        >>> normalize_board_id('/local/path/board')
        'local_path_board'
    """
    normalized = location.replace("://", "_").replace("/", "_").replace("\\", "_")
    return normalized.strip("_")


def _get_hasher(algorithm: str):
    if algorithm not in ("md5", "sha256"):
        raise ValueError(f"Unsupported algorithm: {algorithm}")

    if algorithm == "md5":
        return hashlib.md5()
    return hashlib.sha256()


def compute_checksum(file_path: Union[str, Path], algorithm: str = "md5") -> str:
    """Compute checksum for a file.

    Args:
        file_path: Path to file
        algorithm: Hash algorithm ('md5', 'sha256')

    Returns:
        Hex digest of checksum

    Raises:
        ValueError: If algorithm not supported
    """
    hasher = _get_hasher(algorithm)

    # Read file in chunks to handle large files
    with open(file_path, "rb") as f:
        while chunk := f.read(8192):
            hasher.update(chunk)

    return hasher.hexdigest()


def compute_checksum_from_bytes(data: bytes, algorithm: str = "md5") -> str:
    """Compute checksum from bytes.

    Args:
        data: Bytes to hash
        algorithm: Hash algorithm ('md5', 'sha256')

    Returns:
        Hex digest of checksum

    Raises:
        ValueError: If algorithm not supported
    """
    hasher = _get_hasher(algorithm)
    hasher.update(data)
    return hasher.hexdigest()
