"""Exception hierarchy for pinstore."""


class PinStoreError(Exception):
    """Base exception for all pinstore errors."""

    pass


class InvalidPinName(PinStoreError, ValueError):
    """Raised when a pin name violates the naming rules."""

    pass


class PinNotFound(PinStoreError):
    """Raised when a pin does not exist on the board."""

    def __init__(self, name: str):
        super().__init__(f"Can't find pin called '{name}'")
        self.name = name


class VersionNotFound(PinStoreError):
    """Raised when a requested version is missing or has no metadata."""

    def __init__(self, version: str, name: str = None):
        msg = f"Can't find version '{version}'"
        if name is not None:
            msg += f" of pin '{name}'"
        super().__init__(msg)
        self.version = version
        self.name = name


class NoVersionsYet(PinStoreError):
    """Raised when a pin exists but holds no versions."""

    pass


class PinVersionConflict(PinStoreError):
    """Raised when an unversioned write targets a pin with several versions."""

    pass


class CorruptMetadata(PinStoreError, ValueError):
    """Raised when a metadata document cannot be decoded."""

    pass


class RemoteError(PinStoreError):
    """Base exception for errors raised by a remote store."""

    pass


class RemoteNotFound(RemoteError):
    """Raised when a remote path does not exist."""

    def __init__(self, path: str):
        super().__init__(f"Remote path not found: {path}")
        self.path = path


class RemoteUnavailable(RemoteError):
    """Raised on transport-level failures talking to a remote store."""

    pass


class CacheWriteFailed(PinStoreError):
    """Raised when the local cache cannot be written."""

    pass


class CacheDiskFullError(CacheWriteFailed):
    """Raised when disk is full and cannot write to cache."""

    pass


class CachePermissionError(CacheWriteFailed):
    """Raised when cache directory permissions are insufficient."""

    pass


class CacheLockError(CacheWriteFailed):
    """Raised when unable to acquire cache lock."""

    pass


class ChecksumMismatchError(PinStoreError):
    """Raised when downloaded content does not match its recorded hash or size."""

    pass
