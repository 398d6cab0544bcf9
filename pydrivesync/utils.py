"""Utility functions for pydrivesync."""

import mimetypes
from datetime import datetime, timedelta, timezone
from typing import Optional

# =============================================================================
# Constants for file operations
# =============================================================================

# Chunk size for resumable uploads (8 MB, must be a multiple of 256 KB)
DEFAULT_CHUNK_SIZE: int = 8 * 1024 * 1024

# Block size for streamed downloads
DOWNLOAD_BLOCK_SIZE: int = 64 * 1024

# Retry configuration for transient errors
DEFAULT_MAX_RETRIES: int = 3
DEFAULT_RETRY_DELAY: float = 1.0  # seconds

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
GOOGLE_APPS_MIME_PREFIX = "application/vnd.google-apps."
DEFAULT_MIME_TYPE = "application/octet-stream"


# =============================================================================
# Timestamp utilities
# =============================================================================
#
# All sync decisions compare timestamps as timezone-aware UTC datetimes
# truncated to whole milliseconds, the precision Google Drive reports.


def canonical_timestamp(dt: datetime) -> datetime:
    """Normalize a datetime to UTC with millisecond precision.

    Naive datetimes are assumed to already be in UTC.

    Args:
        dt: Datetime to normalize

    Returns:
        Aware UTC datetime with microseconds truncated to milliseconds

    Examples:
        >>> canonical_timestamp(datetime(2025, 1, 1, 12, 0, 0, 123456))
        datetime.datetime(2025, 1, 1, 12, 0, 0, 123000, tzinfo=datetime.timezone.utc)
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)
    return dt.replace(microsecond=(dt.microsecond // 1000) * 1000)


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def timestamp_from_mtime_ns(mtime_ns: int) -> datetime:
    """Convert a file system mtime in nanoseconds to a canonical timestamp.

    Integer arithmetic keeps the conversion exact; going through a float
    can land one millisecond low.
    """
    return canonical_timestamp(_EPOCH + timedelta(microseconds=mtime_ns // 1000))


def timestamp_to_ns(dt: datetime) -> int:
    """Convert a datetime to integer nanoseconds since the Unix epoch.

    Examples:
        >>> timestamp_to_ns(datetime(1970, 1, 1, 0, 0, 1, 5000, tzinfo=timezone.utc))
        1005000000
    """
    delta = canonical_timestamp(dt) - _EPOCH
    seconds = delta.days * 86400 + delta.seconds
    return seconds * 1_000_000_000 + delta.microseconds * 1000


def parse_iso_timestamp(timestamp_str: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp from the Drive API or the sync index.

    Args:
        timestamp_str: ISO format timestamp (e.g., "2025-01-15T10:30:00.000Z")

    Returns:
        Canonical UTC datetime, or None if the value is empty or unparsable
    """
    if not timestamp_str:
        return None

    try:
        # The 'Z' suffix indicates UTC time
        if timestamp_str.endswith("Z"):
            timestamp_str = timestamp_str[:-1] + "+00:00"

        try:
            dt = datetime.fromisoformat(timestamp_str)
        except ValueError:
            # Older interpreters reject fractions that are not 3 or 6 digits
            if "." not in timestamp_str:
                raise
            head, tail = timestamp_str.split(".", 1)
            offset = ""
            for sign in ("+", "-"):
                if sign in tail:
                    fraction, rest = tail.split(sign, 1)
                    offset = sign + rest
                    break
            else:
                fraction = tail
            fraction = (fraction + "000000")[:6]
            dt = datetime.fromisoformat(f"{head}.{fraction}{offset}")
        return canonical_timestamp(dt)
    except (ValueError, AttributeError):
        return None


def format_iso_timestamp(dt: datetime) -> str:
    """Format a datetime as a sortable ISO-8601 UTC string.

    Examples:
        >>> format_iso_timestamp(datetime(2025, 1, 1, 12, 0, 0, 5000))
        '2025-01-01T12:00:00.005Z'
    """
    dt = canonical_timestamp(dt)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


# =============================================================================
# Size formatting utilities
# =============================================================================


def format_size(size_bytes: int) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string (e.g., "1.5 MB", "256 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / 1024 / 1024:.1f} MB"
    else:
        return f"{size_bytes / 1024 / 1024 / 1024:.1f} GB"


# =============================================================================
# Content type utilities
# =============================================================================


def guess_content_type(name: str) -> str:
    """Infer a MIME type from a file name.

    Examples:
        >>> guess_content_type("report.pdf")
        'application/pdf'
        >>> guess_content_type("no_extension")
        'application/octet-stream'
    """
    mime_type, _ = mimetypes.guess_type(name)
    return mime_type or DEFAULT_MIME_TYPE


def is_safe_name(name: str) -> bool:
    """Check that a remote name can be used as a single local path component.

    Examples:
        >>> is_safe_name("notes.txt")
        True
        >>> is_safe_name("../etc")
        False
    """
    if not name or name in (".", ".."):
        return False
    return "/" not in name and "\\" not in name and "\x00" not in name
