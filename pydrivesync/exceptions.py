"""Exceptions raised by pydrivesync."""


class DriveSyncError(Exception):
    """Base exception for all pydrivesync errors."""


class DriveAPIError(DriveSyncError):
    """Raised when a Google Drive API request fails."""


class DriveAuthenticationError(DriveAPIError):
    """Raised when the access token is missing, invalid or expired."""


class DrivePermissionError(DriveAPIError):
    """Raised when the token lacks access to the requested resource."""


class DriveNotFoundError(DriveAPIError):
    """Raised when a remote file or folder does not exist."""


class DriveRateLimitError(DriveAPIError):
    """Raised when the API rejects a request because of rate limiting."""


class DriveNetworkError(DriveAPIError):
    """Raised on connection failures and timeouts."""


class DriveInvalidResponseError(DriveAPIError):
    """Raised when the server returns a response that cannot be parsed."""


class DriveUploadError(DriveAPIError):
    """Raised when an upload cannot be completed."""


class DriveDownloadError(DriveAPIError):
    """Raised when a download cannot be completed."""


class DriveConfigError(DriveSyncError):
    """Raised when required configuration is missing or invalid."""


class DriveFileNotFoundError(DriveSyncError):
    """Raised when a local file to upload does not exist."""

    def __init__(self, file_path: str):
        self.file_path = file_path
        super().__init__(f"File not found: {file_path}")


class SyncIndexError(DriveSyncError):
    """Raised when the sync index database cannot be opened or written.

    Index failures are fatal: continuing without a working index would
    either skip pending changes or lose track of completed transfers.
    """
