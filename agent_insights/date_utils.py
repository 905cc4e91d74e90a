"""Timestamp parsing and formatting shared by providers and renderers."""

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

# Numeric timestamps above this are treated as epoch milliseconds
_EPOCH_MS_THRESHOLD = 10_000_000_000


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string or epoch number into an aware UTC datetime.

    Accepts ISO strings (with or without ``Z``), epoch seconds and epoch
    milliseconds, either as numbers or numeric strings. Returns None for
    anything unparseable or non-positive.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str):
        token = value.strip()
        if not token:
            return None
        try:
            value = float(token)
        except ValueError:
            try:
                dt = datetime.fromisoformat(token.replace("Z", "+00:00"))
            except ValueError:
                return None
            return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        if value <= 0:
            return None
        seconds = value / 1000 if value > _EPOCH_MS_THRESHOLD else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    return None


def format_time(value: Optional[datetime]) -> str:
    """Format as ``YYYY-MM-DD hh:mm:ss`` in local time."""
    if value is None:
        return ""
    return value.astimezone().strftime("%Y-%m-%d %H:%M:%S")


def to_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def file_times(path: Path) -> tuple[Optional[datetime], Optional[datetime]]:
    """Return (created, modified) for a file, using ctime where birth time is missing."""
    try:
        stat = path.stat()
    except OSError:
        return None, None
    born = getattr(stat, "st_birthtime", None) or stat.st_ctime
    created = datetime.fromtimestamp(born, tz=timezone.utc)
    modified = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
    return created, modified


def utc_now_iso() -> str:
    return to_iso(datetime.now(timezone.utc))
