"""Timestamp helpers for directory names, event records and artifact ages."""

from datetime import datetime
from typing import Optional

# (unit suffix, seconds per unit), largest first
_AGE_UNITS = (("d", 86400), ("h", 3600), ("m", 60))


def now() -> str:
    """Compact local timestamp for directory names, e.g. 20251114_123456."""
    return datetime.now().strftime("%Y%m%d_%H%M%S")


def now_exact() -> str:
    """ISO 8601 local timestamp with microseconds."""
    return datetime.now().isoformat()


def from_epoch(seconds: float) -> datetime:
    """Convert a filesystem mtime to a local datetime."""
    return datetime.fromtimestamp(seconds)


def format_timestamp(value: datetime, relative: bool = False, reference: Optional[datetime] = None) -> str:
    """
    Format a datetime for display.

    Args:
        value: Datetime to format
        relative: Show a compact age such as "2h ago" instead of the absolute time
        reference: Point in time the age is measured from (default: now)

    Examples:
        format_timestamp(datetime(2025, 11, 13, 18, 45, 40))
        # "2025-11-13 18:45:40"
    """
    if not relative:
        return value.strftime("%Y-%m-%d %H:%M:%S")

    delta = ((reference or datetime.now()) - value).total_seconds()
    suffix = "ago" if delta >= 0 else "from now"
    seconds = int(abs(delta))

    for unit, size in _AGE_UNITS:
        if seconds >= size:
            return f"{seconds // size}{unit} {suffix}"
    return f"{seconds}s {suffix}"
