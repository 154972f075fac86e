"""Cache configuration management."""

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pinstore.utils import DEFAULT_CACHE_ROOT


@dataclass
class CacheConfig:
    """Configuration for the local pin cache.

    Attributes:
        cache_dir: Root directory holding ``<pin>/<version>/<file>`` entries
        max_cache_size: Maximum total cache size in bytes (None = unlimited)
        verify_checksums: If True, a cache hit also requires matching file hashes;
            otherwise matching sizes are enough
        lock_timeout: Seconds to wait for a version or index lock
    """

    cache_dir: Path = DEFAULT_CACHE_ROOT
    max_cache_size: Optional[int] = None  # bytes (total cache size)
    verify_checksums: bool = False
    lock_timeout: float = 30

    def __post_init__(self):
        """Ensure cache_dir is an expanded Path object."""
        if self.cache_dir is None:
            self.cache_dir = DEFAULT_CACHE_ROOT
        self.cache_dir = Path(self.cache_dir).expanduser()

    @classmethod
    def load(cls, config_path: Path) -> "CacheConfig":
        """Load configuration from a JSON file.

        Args:
            config_path: Path to config file

        Returns:
            CacheConfig instance (defaults if the file does not exist)
        """
        config_path = Path(config_path)
        if not config_path.exists():
            return cls()

        with open(config_path, "r") as f:
            data = json.load(f)

        if "cache_dir" in data:
            data["cache_dir"] = Path(data["cache_dir"])

        return cls(**data)

    def save(self, config_path: Optional[Path] = None) -> None:
        """Save configuration to a JSON file.

        Args:
            config_path: Path to config file. If None, uses
                ``<cache_dir>/config.json``.
        """
        if config_path is None:
            config_path = self.cache_dir / "config.json"
        config_path = Path(config_path)

        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "cache_dir": str(self.cache_dir),
            "max_cache_size": self.max_cache_size,
            "verify_checksums": self.verify_checksums,
            "lock_timeout": self.lock_timeout,
        }

        with open(config_path, "w") as f:
            json.dump(data, f, indent=2)

    @classmethod
    def from_env(cls) -> "CacheConfig":
        """Create configuration from environment variables.

        Environment variables:
            PINSTORE_CACHE_DIR: Cache directory path
            PINSTORE_CACHE_MAX_SIZE: Maximum cache size in bytes
            PINSTORE_CACHE_VERIFY: Verify file hashes on lookup (true/false)

        Returns:
            CacheConfig instance
        """
        config = cls()

        if os.getenv("PINSTORE_CACHE_DIR"):
            config.cache_dir = Path(os.getenv("PINSTORE_CACHE_DIR")).expanduser()

        if os.getenv("PINSTORE_CACHE_MAX_SIZE"):
            config.max_cache_size = int(os.getenv("PINSTORE_CACHE_MAX_SIZE"))

        if os.getenv("PINSTORE_CACHE_VERIFY"):
            config.verify_checksums = os.getenv("PINSTORE_CACHE_VERIFY", "").lower() == "true"

        return config
