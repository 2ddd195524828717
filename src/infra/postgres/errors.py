"""Errors raised by the PostgreSQL lifecycle manager.

Every fatal condition is a `ClusterError`. The CLI turns these into a
message, a details panel (usually the engine log tail) and exit code 1.
"""


class ClusterError(Exception):
    """Raised when a cluster operation fails."""

    def __init__(self, message: str, details: str | None = None):
        self.message = message
        self.details = details
        super().__init__(message)


class MissingBinariesError(ClusterError):
    """PostgreSQL binaries for the configured version are not installed."""


class FileOpsError(ClusterError):
    """A privileged filesystem operation failed."""


class ClusterInitError(ClusterError):
    """initdb or the first-time role setup failed."""


class EngineStartError(ClusterError):
    """The engine did not become ready after every allowed attempt."""


class EngineStopError(ClusterError):
    """The engine kept answering after a stop request."""


class EngineNotRunningError(ClusterError):
    """An operation that needs a running engine found it stopped."""


class ConnectivityError(ClusterError):
    """The authenticated round-trip query failed."""


class BackupError(ClusterError):
    """A backup could not be created."""


class BackupNotFoundError(ClusterError):
    """The requested backup does not exist under the backup root."""


class RestoreError(ClusterError):
    """Restoring a backup into the data directory failed."""


class ConfirmationRequiredError(ClusterError):
    """A destructive operation was requested without confirmation."""
