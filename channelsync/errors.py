"""
Exception taxonomy shared by connectors, services and the HTTP layer
"""
from typing import Optional


class ChannelSyncError(Exception):
    """Base exception for all channelsync errors."""
    pass


class ConnectorError(ChannelSyncError):
    """Base exception for failures raised by an upstream connector."""
    pass


class ConfigurationError(ConnectorError):
    """Required credentials or configuration are absent or malformed.

    Raised before any network call is attempted. Never retried.
    """
    pass


class UpstreamError(ConnectorError):
    """An upstream platform answered with a non-success status."""

    def __init__(self, status_code: Optional[int], message: str):
        self.status_code = status_code
        self.message = message
        prefix = f"HTTP {status_code}: " if status_code is not None else ""
        super().__init__(f"{prefix}{message}")


class WriteError(ConnectorError):
    """A batch upsert against the datastore failed.

    Batches before ``batch_index`` were committed and are not rolled back.
    """

    def __init__(self, batch_index: int, message: str, committed: int = 0):
        self.batch_index = batch_index
        self.message = message
        self.committed = committed
        super().__init__(
            f"Batch {batch_index} failed after {committed} records committed: {message}"
        )


class ReconciliationError(ChannelSyncError):
    """A record handed to the reconciler has an unusable shape."""
    pass


class ValidationError(ChannelSyncError):
    """Submitted data (e.g. platform credentials) failed structural validation."""
    pass


class CredentialStoreError(ChannelSyncError):
    """Stored platform credentials could not be read from the database."""
    pass


class NotSupportedError(ConnectorError):
    """The connector does not implement the requested operation yet."""
    pass
