"""Locate and read raw JSON/JSONL log files."""

import json
import logging
from pathlib import Path
from typing import Callable, Iterable, Optional

from .errors import MalformedLogError

logger = logging.getLogger(__name__)


def _mtime(path: Path) -> float:
    try:
        return path.stat().st_mtime
    except OSError:
        return 0.0


def _walk(directory: Path, suffix: str, exclude: Optional[Callable[[str], bool]]) -> list[Path]:
    files = []
    try:
        entries = list(directory.iterdir())
    except OSError as e:
        logger.warning(f"Cannot read directory {directory}: {e}")
        return files

    for entry in entries:
        if entry.is_dir():
            files.extend(_walk(entry, suffix, exclude))
        elif entry.name.endswith(suffix):
            if exclude and exclude(entry.name):
                continue
            files.append(entry)
    return files


def find_files(
    root: Path,
    suffix: str,
    exclude: Optional[Callable[[str], bool]] = None,
) -> list[Path]:
    """Recursively find files ending in ``suffix``, newest modification first.

    A missing root yields an empty list. ``exclude`` receives each file name
    and returns True to skip it.
    """
    root = Path(root)
    if not root.is_dir():
        return []
    files = _walk(root, suffix, exclude)
    files.sort(key=_mtime, reverse=True)
    return files


def read_jsonl(path: Path) -> list[dict]:
    """Read a JSONL file, skipping lines that are blank or not JSON objects.

    Raises MalformedLogError when the file is unreadable or holds no JSON
    object at all.
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise MalformedLogError(path, str(e)) from e

    rows = []
    skipped = 0
    for line in text.splitlines():
        if not line.strip():
            continue
        try:
            data = json.loads(line)
        except json.JSONDecodeError:
            skipped += 1
            continue
        if isinstance(data, dict):
            rows.append(data)
        else:
            skipped += 1

    if skipped:
        logger.debug(f"Skipped {skipped} malformed line(s) in {path}")
    if not rows and skipped:
        raise MalformedLogError(path, "no valid JSON rows")
    return rows


def read_json(path: Path) -> dict:
    """Read a JSON file holding a single object."""
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedLogError(path, str(e)) from e
    if not isinstance(data, dict):
        raise MalformedLogError(path, f"expected a JSON object, got {type(data).__name__}")
    return data


def load_json_records(paths: Iterable[Path]) -> list[dict]:
    """Read a batch of per-record JSON files, skipping the corrupt ones."""
    records = []
    for path in paths:
        try:
            records.append(read_json(path))
        except MalformedLogError as e:
            logger.warning(f"Skipping malformed record {e}")
    return records
