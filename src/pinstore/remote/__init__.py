"""Remote store backends.

Boards talk to their storage through the RemoteStore interface; this
module provides a local-folder backend and an S3-compatible backend.
"""

from typing import Any, Mapping, Optional

from pinstore.remote.base import RemoteEntry, RemoteStore, join_remote
from pinstore.remote.folder import FolderRemoteStore
from pinstore.remote.s3 import S3RemoteStore


def create_remote(
    base_url: str, credentials: Optional[Mapping[str, Any]] = None
) -> RemoteStore:
    """Create a remote store for a board location.

    Args:
        base_url: ``s3://bucket/prefix`` for object storage, or a filesystem
            path / ``file://`` URL for a folder
        credentials: Backend keyword arguments (for S3: endpoint_url,
            aws_access_key_id, aws_secret_access_key, region_name)

    Returns:
        RemoteStore instance

    Raises:
        ValueError: If the URL scheme is not supported

    Examples:
        >>> create_remote('/mnt/shared/boards')
        FolderRemoteStore('/mnt/shared/boards')
    """
    credentials = dict(credentials or {})
    if base_url.startswith("s3://"):
        return S3RemoteStore.from_url(base_url, **credentials)
    if "://" in base_url and not base_url.startswith("file://"):
        raise ValueError(f"Unsupported board location: {base_url}")
    if credentials:
        raise ValueError("Folder boards do not take credentials")
    return FolderRemoteStore(base_url)


__all__ = [
    "RemoteStore",
    "RemoteEntry",
    "FolderRemoteStore",
    "S3RemoteStore",
    "create_remote",
    "join_remote",
]
