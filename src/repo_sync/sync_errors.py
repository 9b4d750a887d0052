"""Exception hierarchy for repository sync operations.

The low-level API client raises these; the adapter and engine layers catch
them and report plain success flags, optional values or status records, so
callers of the public operations never see them.
"""


class SyncError(Exception):
    """Base exception for repository sync operations."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ConfigMissingError(SyncError):
    """No repository credentials are available."""
    pass


class AuthenticationError(SyncError):
    """The provider rejected the configured token."""
    pass


class NotFoundError(SyncError):
    """The requested remote file or repository does not exist.

    For reads this is an expected outcome meaning "no remote copy yet".
    """
    pass


class RevisionConflictError(SyncError):
    """A write was rejected because its revision token (sha) is stale."""
    pass


class IntegrityMismatchError(SyncError):
    """A pulled envelope's stored hash disagrees with its data."""

    def __init__(self, module_name: str, expected: str, actual: str):
        super().__init__(
            f"Data integrity check failed for {module_name}: "
            f"envelope hash {expected} != computed {actual}"
        )
        self.module_name = module_name
        self.expected = expected
        self.actual = actual


class NetworkError(SyncError):
    """Transport-level failure talking to the provider."""
    pass
