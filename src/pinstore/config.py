"""Board configuration."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from pinstore.cache.config import CacheConfig
from pinstore.utils import DEFAULT_CACHE_ROOT, DEFAULT_SUBDIR, normalize_board_id


@dataclass(frozen=True)
class BoardConfig:
    """Immutable settings for one board.

    Attributes:
        base_url: Backend location, e.g. 's3://bucket/prefix' or '/mnt/boards'
        subdir: Namespace below base_url that holds the pins
        versioned: Default versioning mode for writes
        cache_dir: Local cache directory; derived from base_url and subdir if None
        credentials: Backend keyword arguments (never shown in repr, not
            part of the hash)
        max_cache_size: Cache budget in bytes (None = unlimited)
        verify_checksums: Require matching hashes, not just sizes, for cache hits
    """

    base_url: str
    subdir: str = DEFAULT_SUBDIR
    versioned: bool = True
    cache_dir: Optional[Path] = None
    credentials: Dict[str, Any] = field(default_factory=dict, repr=False, hash=False)
    max_cache_size: Optional[int] = None
    verify_checksums: bool = False

    def __post_init__(self):
        if not self.base_url:
            raise ValueError("A board requires a 'base_url'")
        # Frozen dataclass: normalize through object.__setattr__
        object.__setattr__(self, "subdir", self.subdir.strip("/"))
        if self.cache_dir is not None:
            object.__setattr__(self, "cache_dir", Path(self.cache_dir).expanduser())

    @property
    def board_id(self) -> str:
        """Filesystem-safe identifier of this board."""
        return normalize_board_id(f"{self.base_url}/{self.subdir}")

    def resolved_cache_dir(self) -> Path:
        """Cache directory for this board."""
        if self.cache_dir is not None:
            return self.cache_dir
        return DEFAULT_CACHE_ROOT / self.board_id

    def cache_config(self) -> CacheConfig:
        """Build the cache configuration for this board."""
        return CacheConfig(
            cache_dir=self.resolved_cache_dir(),
            max_cache_size=self.max_cache_size,
            verify_checksums=self.verify_checksums,
        )

    @classmethod
    def from_env(cls, **overrides: Any) -> "BoardConfig":
        """Create configuration from environment variables.

        Environment variables:
            PINSTORE_BASE_URL: Backend location
            PINSTORE_SUBDIR: Namespace below the base URL
            PINSTORE_VERSIONED: Default versioning mode (true/false)
            PINSTORE_CACHE_DIR: Cache directory path
            PINSTORE_CACHE_MAX_SIZE: Cache budget in bytes

        Args:
            **overrides: Values taking precedence over the environment

        Returns:
            BoardConfig instance
        """
        values: Dict[str, Any] = {}

        if os.getenv("PINSTORE_BASE_URL"):
            values["base_url"] = os.getenv("PINSTORE_BASE_URL")

        if os.getenv("PINSTORE_SUBDIR"):
            values["subdir"] = os.getenv("PINSTORE_SUBDIR")

        if os.getenv("PINSTORE_VERSIONED"):
            values["versioned"] = os.getenv("PINSTORE_VERSIONED", "").lower() == "true"

        if os.getenv("PINSTORE_CACHE_DIR"):
            values["cache_dir"] = Path(os.getenv("PINSTORE_CACHE_DIR"))

        if os.getenv("PINSTORE_CACHE_MAX_SIZE"):
            values["max_cache_size"] = int(os.getenv("PINSTORE_CACHE_MAX_SIZE"))

        values.update(overrides)
        if "base_url" not in values:
            raise ValueError("PINSTORE_BASE_URL is not set")
        return cls(**values)
