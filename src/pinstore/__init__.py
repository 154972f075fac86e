"""pinstore: versioned pins on remote storage with a local read-through cache."""

__version__ = "0.1.0"

from pinstore.board import LocalMeta, PinBoard
from pinstore.config import BoardConfig
from pinstore.errors import (
    CacheWriteFailed,
    CorruptMetadata,
    InvalidPinName,
    NoVersionsYet,
    PinNotFound,
    PinStoreError,
    PinVersionConflict,
    RemoteNotFound,
    RemoteUnavailable,
    VersionNotFound,
)
from pinstore.metadata import PinMetadata

__all__ = [
    "PinBoard",
    "BoardConfig",
    "LocalMeta",
    "PinMetadata",
    "PinStoreError",
    "PinNotFound",
    "VersionNotFound",
    "NoVersionsYet",
    "InvalidPinName",
    "CorruptMetadata",
    "PinVersionConflict",
    "RemoteNotFound",
    "RemoteUnavailable",
    "CacheWriteFailed",
    "__version__",
]
