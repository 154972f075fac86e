"""Validation of cached files against their metadata record."""

from pathlib import Path
from typing import Optional

from pinstore.errors import ChecksumMismatchError
from pinstore.metadata import PinMetadata
from pinstore.utils import (
    FILE_HASH_ALGORITHM,
    compute_checksum,
    compute_checksum_from_bytes,
)


def verify_checksum(
    file_path: Path,
    expected_checksum: str,
    algorithm: str = FILE_HASH_ALGORITHM,
    strict: bool = False,
) -> bool:
    """Verify file checksum matches expected value.

    Args:
        file_path: Path to file
        expected_checksum: Expected checksum value
        algorithm: Hash algorithm ('md5', 'sha256')
        strict: If True, raise exception on mismatch; if False, return False

    Returns:
        True if checksums match, False otherwise

    Raises:
        ChecksumMismatchError: If strict=True and checksums don't match
    """
    actual_checksum = compute_checksum(file_path, algorithm)

    if actual_checksum != expected_checksum:
        if strict:
            raise ChecksumMismatchError(
                f"Checksum mismatch for {file_path}: "
                f"expected {expected_checksum}, got {actual_checksum}"
            )
        return False

    return True


def is_file_valid(
    file_path: Path,
    expected_size: Optional[int],
    expected_hash: Optional[str] = None,
    check_hash: bool = False,
) -> bool:
    """Check whether a cached file matches what the metadata recorded.

    A file is valid if it exists, its size matches ``expected_size`` (when
    known) and, with ``check_hash``, its digest matches ``expected_hash``
    (when known).
    """
    if not file_path.is_file():
        return False
    if expected_size is not None and file_path.stat().st_size != expected_size:
        return False
    if check_hash and expected_hash is not None:
        return verify_checksum(file_path, expected_hash)
    return True


def check_downloaded(name: str, data: bytes, meta: PinMetadata) -> None:
    """Check downloaded bytes against the size and hash in ``meta``.

    Raises:
        ChecksumMismatchError: If the size or hash differs from the record
    """
    expected_size = meta.file_size.get(name)
    if expected_size is not None and len(data) != expected_size:
        raise ChecksumMismatchError(
            f"Size mismatch for {name}: expected {expected_size} bytes, got {len(data)}"
        )

    expected_hash = meta.file_hash.get(name)
    if expected_hash is not None:
        actual = compute_checksum_from_bytes(data, FILE_HASH_ALGORITHM)
        if actual != expected_hash:
            raise ChecksumMismatchError(
                f"Checksum mismatch for {name}: expected {expected_hash}, got {actual}"
            )
