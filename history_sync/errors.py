"""Error types raised by the sync engine and its collaborators."""


class SyncError(Exception):
    """Base class for all history sync errors."""


class ConfigError(SyncError):
    """Raised when the config file exists but cannot be read or parsed."""


class ScanError(SyncError):
    """Raised when the scan root cannot be read."""


class ParseError(SyncError):
    """Raised internally for a log line that is not a usable message."""


class HashError(SyncError):
    """Raised when a session file cannot be hashed."""


class EmptyContentError(HashError):
    """Raised when a session has no valid messages to hash."""


class DeliveryError(SyncError):
    """Raised when the remote API rejects a request or cannot be reached."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class CredentialError(SyncError):
    """Raised when no valid bearer token can be produced."""


class StateError(SyncError):
    """Raised when the state file exists but cannot be read or parsed."""


class PersistError(SyncError):
    """Raised when the state file cannot be written."""
