"""Utility functions and constants for Syncbox."""

import os
from datetime import datetime, timezone
from typing import Optional

# =============================================================================
# Constants for the sync engine
# =============================================================================

# Interval between remote polls while watching (seconds)
DEFAULT_POLL_INTERVAL: float = 10.0

# Debounce windows for filesystem notifications (milliseconds)
DEFAULT_DEBOUNCE_MS: int = 2000
MODIFY_DEBOUNCE_MS: int = 3000

# Notifications for a path written by the engine itself within this
# window are treated as echoes (seconds)
ECHO_SUPPRESSION_WINDOW: float = 10.0

# Slack allowed between local and remote clocks when comparing mtimes (seconds)
TIMESTAMP_TOLERANCE: float = 2.0

# Size difference that counts as a real edit even with equal timestamps (bytes)
SIZE_TOLERANCE: int = 100

# Shared-read attempts made while another process is still writing a file
FILE_READY_RETRIES: int = 10
FILE_READY_DELAY: float = 0.25  # seconds

# Pause before acting on a delete notification (seconds)
DELETE_SETTLE_DELAY: float = 0.5

# Worker threads handling watch events and poll ticks
DEFAULT_MAX_WORKERS: int = 4

# Retry configuration for transient API errors
DEFAULT_MAX_RETRIES: int = 3
DEFAULT_RETRY_DELAY: float = 1.0  # seconds
DEFAULT_TIMEOUT: float = 30.0  # seconds

DEFAULT_SERVER_URL: str = "http://localhost:5000"


# =============================================================================
# Timestamp parsing utilities
# =============================================================================


def parse_iso_timestamp(timestamp_str: Optional[str]) -> Optional[float]:
    """Parse an ISO format timestamp from the Syncbox API.

    Naive timestamps are interpreted as UTC, which is what the server
    emits when the ``Z`` suffix is missing.

    Args:
        timestamp_str: ISO format timestamp (e.g., "2025-01-15T10:30:00.000Z")

    Returns:
        Unix timestamp or None if parsing fails

    Examples:
        >>> parse_iso_timestamp("1970-01-01T00:00:10Z")
        10.0
        >>> parse_iso_timestamp("not a date") is None
        True
    """
    if not timestamp_str:
        return None

    try:
        if timestamp_str.endswith("Z"):
            timestamp_str = timestamp_str[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(timestamp_str)
        except ValueError:
            # Older interpreters reject fractional seconds that are not
            # exactly 3 or 6 digits long
            if "." not in timestamp_str:
                raise
            head, _, tail = timestamp_str.partition(".")
            offset = ""
            for sign in ("+", "-"):
                if sign in tail:
                    offset = sign + tail.split(sign, 1)[1]
                    break
            dt = datetime.fromisoformat(head + offset)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.timestamp()
    except (ValueError, AttributeError, TypeError):
        return None


def format_timestamp(timestamp: Optional[float]) -> str:
    """Format a Unix timestamp as local time for display."""
    if timestamp is None:
        return "-"
    return datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d %H:%M:%S")


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


def names_equal(a: str, b: str) -> bool:
    """Compare two file names the way the server matches them.

    Examples:
        >>> names_equal("Report.DOCX", "report.docx")
        True
    """
    return a.casefold() == b.casefold()


def is_plain_file_name(name: str) -> bool:
    """Check that a server-supplied name is a single path component.

    Examples:
        >>> is_plain_file_name("report.docx")
        True
        >>> is_plain_file_name("../report.docx")
        False
    """
    if not name or name in (".", "..") or "\0" in name or "\\" in name:
        return False
    return os.path.basename(name) == name
