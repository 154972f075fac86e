"""Remote store backed by a local or network-mounted folder."""

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Set, Union

from pinstore.errors import RemoteNotFound, RemoteUnavailable
from pinstore.remote.base import RemoteEntry, RemoteStore

logger = logging.getLogger(__name__)


class FolderRemoteStore(RemoteStore):
    """Stores pins as plain files below a root directory.

    Examples:
        >>> store = FolderRemoteStore('/mnt/shared/boards')
        >>> store.put_file('pins/mtcars/v1/data.txt', b'{}')
        >>> store.get_file('pins/mtcars/v1/data.txt')
        b'{}'
    """

    def __init__(self, root: Union[str, Path]):
        """Initialize folder store.

        Args:
            root: Root directory (``file://`` URLs are accepted)
        """
        root = str(root)
        if root.startswith("file://"):
            root = root[len("file://") :]
        self.root = Path(root).expanduser().resolve()

    def __repr__(self) -> str:
        return f"FolderRemoteStore({str(self.root)!r})"

    def _resolve(self, path: str) -> Path:
        """Map a remote path to a local path inside the root."""
        local = (self.root / path.strip("/")).resolve()
        if local != self.root and self.root not in local.parents:
            raise ValueError(f"Path escapes store root: {path}")
        return local

    def path_exists(self, path: str) -> bool:
        return self._resolve(path).exists()

    def list_dir(self, path: str) -> Set[RemoteEntry]:
        local = self._resolve(path)
        if not local.is_dir():
            return set()
        try:
            return {RemoteEntry(child.name, child.is_file()) for child in local.iterdir()}
        except OSError as e:
            raise RemoteUnavailable(f"Cannot list {path}: {e}") from e

    def get_file(self, path: str) -> bytes:
        local = self._resolve(path)
        try:
            return local.read_bytes()
        except (FileNotFoundError, IsADirectoryError) as e:
            raise RemoteNotFound(path) from e
        except OSError as e:
            raise RemoteUnavailable(f"Cannot read {path}: {e}") from e

    def put_file(self, path: str, data: bytes) -> None:
        local = self._resolve(path)
        temp_name = None
        try:
            local.parent.mkdir(parents=True, exist_ok=True)
            fd, temp_name = tempfile.mkstemp(
                dir=local.parent, prefix=f".{local.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(temp_name, local)
        except OSError as e:
            raise RemoteUnavailable(f"Cannot write {path}: {e}") from e
        finally:
            if temp_name and os.path.exists(temp_name):
                os.unlink(temp_name)

    def delete_file(self, path: str) -> None:
        local = self._resolve(path)
        try:
            local.unlink()
        except FileNotFoundError as e:
            raise RemoteNotFound(path) from e
        except OSError as e:
            raise RemoteUnavailable(f"Cannot delete {path}: {e}") from e

    def mkdir(self, path: str) -> None:
        try:
            self._resolve(path).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise RemoteUnavailable(f"Cannot create directory {path}: {e}") from e

    def delete_tree(self, path: str) -> None:
        local = self._resolve(path)
        if not local.exists():
            return
        try:
            if local.is_dir():
                shutil.rmtree(local)
            else:
                local.unlink()
        except OSError as e:
            raise RemoteUnavailable(f"Cannot delete {path}: {e}") from e
        logger.debug(f"Deleted {local}")
