"""Remote store interface.

A remote store is the file/object endpoint a board lives on. Paths are
slash-separated and relative to the store root, e.g.
``pins/mtcars/20240102T030405123456Z-3f9a1/data.txt``.
"""

import logging
from abc import ABC, abstractmethod
from typing import NamedTuple, Set

logger = logging.getLogger(__name__)


class RemoteEntry(NamedTuple):
    """One child of a remote directory."""

    name: str
    is_file: bool


def join_remote(*parts: str) -> str:
    """Join remote path components with forward slashes.

    Examples:
        >>> join_remote('pins', 'mtcars/', '/data.txt')
        'pins/mtcars/data.txt'
    """
    return "/".join(str(p).strip("/") for p in parts if str(p).strip("/"))


class RemoteStore(ABC):
    """Minimal capability interface the board needs from a backend.

    Implementations raise RemoteNotFound for missing paths and
    RemoteUnavailable for transport failures. They do not retry.
    """

    @abstractmethod
    def path_exists(self, path: str) -> bool:
        """True if ``path`` is a file or a non-empty directory."""

    @abstractmethod
    def list_dir(self, path: str) -> Set[RemoteEntry]:
        """Immediate children of ``path`` (empty if it does not exist)."""

    @abstractmethod
    def get_file(self, path: str) -> bytes:
        """Read a file.

        Raises:
            RemoteNotFound: If the file does not exist
        """

    @abstractmethod
    def put_file(self, path: str, data: bytes) -> None:
        """Write a file, creating parent directories as needed."""

    @abstractmethod
    def delete_file(self, path: str) -> None:
        """Delete a file.

        Raises:
            RemoteNotFound: If the file does not exist
        """

    @abstractmethod
    def mkdir(self, path: str) -> None:
        """Create a directory; no-op if it exists."""

    def delete_tree(self, path: str) -> None:
        """Delete every file below ``path``.

        The default walks ``list_dir`` and calls ``delete_file``; backends
        with a cheaper bulk delete override it.
        """
        for entry in self.list_dir(path):
            child = join_remote(path, entry.name)
            if entry.is_file:
                self.delete_file(child)
            else:
                self.delete_tree(child)
        logger.debug(f"Deleted remote tree {path}")
