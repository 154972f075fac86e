"""Remote store for S3-compatible object storage.

Works with AWS S3 and S3-compatible services (Cloudflare R2, MinIO) through
boto3. Directories are emulated with key prefixes; ``mkdir`` writes a
zero-byte ``<prefix>/`` marker object so an empty pin still exists.
"""

import logging
from typing import Any, Dict, List, Optional, Set, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from pinstore.errors import RemoteNotFound, RemoteUnavailable
from pinstore.remote.base import RemoteEntry, RemoteStore, join_remote

logger = logging.getLogger(__name__)

# S3 DeleteObjects accepts at most 1000 keys per request
DELETE_BATCH_SIZE = 1000

_NOT_FOUND_CODES = ("404", "NoSuchKey", "NotFound")


def _is_not_found(error: ClientError) -> bool:
    return str(error.response.get("Error", {}).get("Code")) in _NOT_FOUND_CODES


def parse_s3_url(s3_url: str) -> Tuple[str, str]:
    """Parse S3 URL into bucket and key prefix.

    Args:
        s3_url: S3 URL like "s3://bucket/boards/team"

    Returns:
        Tuple of (bucket, prefix); prefix may be empty

    Raises:
        ValueError: If URL format is invalid
    """
    if not s3_url.startswith("s3://"):
        raise ValueError(f"Invalid S3 URL format: {s3_url}")
    parts = s3_url[5:].split("/", 1)
    if not parts[0]:
        raise ValueError(f"Invalid S3 URL format: {s3_url}")
    prefix = parts[1].strip("/") if len(parts) == 2 else ""
    return parts[0], prefix


class S3RemoteStore(RemoteStore):
    """Remote store on an S3 bucket.

    Attributes:
        bucket: Bucket name
        prefix: Key prefix all paths are placed under
    """

    def __init__(
        self,
        bucket: str,
        prefix: str = "",
        client: Optional[Any] = None,
        **client_kwargs: Any,
    ):
        """Initialize the S3 store.

        Args:
            bucket: Bucket name
            prefix: Key prefix inside the bucket
            client: Existing boto3 S3 client; created from ``client_kwargs`` if None
            **client_kwargs: Passed to ``boto3.client('s3', ...)``, e.g.
                endpoint_url, aws_access_key_id, aws_secret_access_key, region_name
        """
        self.bucket = bucket
        self.prefix = prefix.strip("/")
        self._client = client if client is not None else boto3.client("s3", **client_kwargs)

    @classmethod
    def from_url(cls, s3_url: str, **client_kwargs: Any) -> "S3RemoteStore":
        """Create a store from an ``s3://bucket/prefix`` URL."""
        bucket, prefix = parse_s3_url(s3_url)
        return cls(bucket, prefix, **client_kwargs)

    def __repr__(self) -> str:
        return f"S3RemoteStore(bucket={self.bucket!r}, prefix={self.prefix!r})"

    def _key(self, path: str) -> str:
        return join_remote(self.prefix, path)

    def _dir_prefix(self, path: str) -> str:
        key = self._key(path)
        return f"{key}/" if key else ""

    def _list_pages(self, prefix: str, delimiter: Optional[str] = None):
        kwargs: Dict[str, Any] = {"Bucket": self.bucket, "Prefix": prefix}
        if delimiter:
            kwargs["Delimiter"] = delimiter
        try:
            paginator = self._client.get_paginator("list_objects_v2")
            for page in paginator.paginate(**kwargs):
                yield page
        except (ClientError, BotoCoreError) as e:
            raise RemoteUnavailable(f"Cannot list s3://{self.bucket}/{prefix}: {e}") from e

    def _head(self, key: str) -> bool:
        try:
            self._client.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            if _is_not_found(e):
                return False
            raise RemoteUnavailable(f"Cannot stat s3://{self.bucket}/{key}: {e}") from e
        except BotoCoreError as e:
            raise RemoteUnavailable(f"Cannot stat s3://{self.bucket}/{key}: {e}") from e

    def path_exists(self, path: str) -> bool:
        key = self._key(path)
        if key and self._head(key):
            return True
        try:
            response = self._client.list_objects_v2(
                Bucket=self.bucket, Prefix=self._dir_prefix(path), MaxKeys=1
            )
        except (ClientError, BotoCoreError) as e:
            raise RemoteUnavailable(f"Cannot list s3://{self.bucket}/{key}: {e}") from e
        return response.get("KeyCount", len(response.get("Contents", []))) > 0

    def list_dir(self, path: str) -> Set[RemoteEntry]:
        prefix = self._dir_prefix(path)
        entries = set()
        for page in self._list_pages(prefix, delimiter="/"):
            for common in page.get("CommonPrefixes", []):
                name = common["Prefix"][len(prefix) :].rstrip("/")
                if name:
                    entries.add(RemoteEntry(name, False))
            for obj in page.get("Contents", []):
                name = obj["Key"][len(prefix) :]
                # Skip the directory marker itself
                if name:
                    entries.add(RemoteEntry(name, True))
        return entries

    def get_file(self, path: str) -> bytes:
        key = self._key(path)
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=key)
            return response["Body"].read()
        except ClientError as e:
            if _is_not_found(e):
                raise RemoteNotFound(path) from e
            raise RemoteUnavailable(f"Cannot read s3://{self.bucket}/{key}: {e}") from e
        except BotoCoreError as e:
            raise RemoteUnavailable(f"Cannot read s3://{self.bucket}/{key}: {e}") from e

    def put_file(self, path: str, data: bytes) -> None:
        key = self._key(path)
        try:
            self._client.put_object(Bucket=self.bucket, Key=key, Body=data)
        except (ClientError, BotoCoreError) as e:
            raise RemoteUnavailable(f"Cannot write s3://{self.bucket}/{key}: {e}") from e

    def delete_file(self, path: str) -> None:
        key = self._key(path)
        # DeleteObject succeeds on missing keys, so check first
        if not self._head(key):
            raise RemoteNotFound(path)
        try:
            self._client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise RemoteUnavailable(f"Cannot delete s3://{self.bucket}/{key}: {e}") from e

    def mkdir(self, path: str) -> None:
        prefix = self._dir_prefix(path)
        if not prefix:
            return
        try:
            self._client.put_object(Bucket=self.bucket, Key=prefix, Body=b"")
        except (ClientError, BotoCoreError) as e:
            raise RemoteUnavailable(f"Cannot create s3://{self.bucket}/{prefix}: {e}") from e

    def delete_tree(self, path: str) -> None:
        prefix = self._dir_prefix(path)
        keys: List[str] = []
        for page in self._list_pages(prefix):
            keys.extend(obj["Key"] for obj in page.get("Contents", []))

        for start in range(0, len(keys), DELETE_BATCH_SIZE):
            batch = keys[start : start + DELETE_BATCH_SIZE]
            try:
                self._client.delete_objects(
                    Bucket=self.bucket,
                    Delete={"Objects": [{"Key": k} for k in batch], "Quiet": True},
                )
            except (ClientError, BotoCoreError) as e:
                raise RemoteUnavailable(
                    f"Cannot delete under s3://{self.bucket}/{prefix}: {e}"
                ) from e
        logger.debug(f"Deleted {len(keys)} object(s) under s3://{self.bucket}/{prefix}")
