"""redis-setlock errors."""


class SetlockError(Exception):
    """Base exception for redis-setlock errors."""


class StoreError(SetlockError):
    """Raised when a command against the lock store fails."""


class StoreUnreachableError(StoreError):
    """Raised when no connection to the lock store could be established."""


class StoreVersionError(SetlockError):
    """Raised when the lock store cannot be trusted with the lock protocol."""


class VersionUnparseableError(StoreVersionError):
    """Raised when the server version is missing from its INFO output."""


class UnsupportedStoreVersionError(StoreVersionError):
    """Raised when the server is older than the minimum supported version."""


class LockError(SetlockError):
    """Error acquiring or managing lock."""


class LockContendedError(LockError):
    """Raised when the lock is held by someone else and we were told not to wait."""


class ConfigError(SetlockError):
    """Raised when a config file cannot be read or validated."""
