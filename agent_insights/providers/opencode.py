"""OpenCode session provider.

OpenCode splits a conversation across three record families under its
storage directory::

    session/<project>/<session_id>.json     one record per session
    message/<session_id>/<message_id>.json  one record per message
    part/<message_id>/<part_id>.json        one record per content fragment

Messages are ordered by the numeric suffix of their id (``msg_<n>``), parts
by the numeric ordinal leading theirs (``<n>_...``). Token counts live on
the message records.
"""

import logging
import math
import re
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Optional

from ..config import default_data_path
from ..date_utils import parse_timestamp
from ..models import FILE, ROLES, TEXT, THINKING, TOOL_CALL, ContentBlock, UnifiedMessage, UnifiedSession
from ..readers import find_files, load_json_records, read_json
from . import register_provider
from .base import SessionProvider, opaque_block, text_of, to_json_text

logger = logging.getLogger(__name__)

SESSION_DIR = "session"
MESSAGE_DIR = "message"
PART_DIR = "part"

_LEADING_NUMBER = re.compile(r"^(\d+)")
_SUFFIX_NUMBER = re.compile(r"^[^_]*_(\d+)")


class OpenCodePart(str, Enum):
    """Part record types written by OpenCode."""

    TEXT = "text"
    REASONING = "reasoning"
    TOOL = "tool"
    TOOL_USE = "tool-use"
    FILE = "file"
    RESOURCE = "resource"
    STEP_START = "step-start"
    STEP_FINISH = "step-finish"
    PATCH = "patch"
    SNAPSHOT = "snapshot"
    UNKNOWN = "unknown"

    @classmethod
    def _missing_(cls, value):
        return cls.UNKNOWN


# Bookkeeping parts, kept as JSON text so their token payloads stay visible
STEP_MARKERS = (OpenCodePart.STEP_START, OpenCodePart.STEP_FINISH, OpenCodePart.PATCH, OpenCodePart.SNAPSHOT)


def _number(pattern: re.Pattern, value: Any) -> Optional[int]:
    if not isinstance(value, str):
        return None
    match = pattern.match(value)
    return int(match.group(1)) if match else None


def part_ordinal(part_id: Any) -> Optional[int]:
    """Numeric ordinal embedded in a part id: ``12_x`` or ``prt_12``."""
    ordinal = _number(_LEADING_NUMBER, part_id)
    if ordinal is None:
        ordinal = _number(_SUFFIX_NUMBER, part_id)
    return ordinal


def message_ordinal(message_id: Any) -> Optional[int]:
    """Numeric suffix of a message id: ``msg_12``."""
    return _number(_SUFFIX_NUMBER, message_id)


def part_sort_key(part: dict) -> tuple:
    part_id = part.get("id") or ""
    ordinal = part_ordinal(part_id)
    return (ordinal if ordinal is not None else math.inf, str(part_id))


def _message_time(record: dict):
    time_data = record.get("time")
    if not isinstance(time_data, dict):
        return None
    return parse_timestamp(time_data.get("created")) or parse_timestamp(time_data.get("completed"))


def message_sort_key(message: dict) -> tuple:
    message_id = message.get("id") or ""
    ordinal = message_ordinal(message_id)
    created = _message_time(message)
    return (
        ordinal if ordinal is not None else math.inf,
        created.timestamp() if created else 0,
        str(message_id),
    )


@dataclass
class PartIndex:
    """Parts of one session's messages, keyed by message id, in ordinal order."""

    parts: dict[str, list[dict]] = field(default_factory=dict)

    @classmethod
    def build(cls, part_root: Path, message_ids: Iterable[str]) -> "PartIndex":
        index: dict[str, list[dict]] = defaultdict(list)
        for message_id in message_ids:
            for record in load_json_records(find_files(part_root / message_id, ".json")):
                owner = record.get("messageID")
                if not isinstance(owner, str) or not owner:
                    owner = message_id
                index[owner].append(record)
        for records in index.values():
            records.sort(key=part_sort_key)
        return cls(dict(index))

    def parts_for(self, message_id: str) -> list[dict]:
        return self.parts.get(message_id, [])


def classify_part(part: Any) -> ContentBlock:
    """Map one OpenCode part record onto a ContentBlock."""
    if not isinstance(part, dict):
        return opaque_block(part)

    kind = OpenCodePart(part.get("type"))
    if kind is OpenCodePart.TEXT:
        return ContentBlock(TEXT, text_of(part.get("text") or part.get("content")))
    if kind is OpenCodePart.REASONING:
        return ContentBlock(THINKING, text_of(part.get("text") or part.get("content")))
    if kind is OpenCodePart.TOOL:
        return ContentBlock(TOOL_CALL, part)
    if kind is OpenCodePart.TOOL_USE:
        return ContentBlock(TOOL_CALL, part.get("data") or {})
    if kind is OpenCodePart.FILE:
        return ContentBlock(FILE, part)
    if kind is OpenCodePart.RESOURCE:
        return ContentBlock(FILE, part.get("data") or part)
    if kind in STEP_MARKERS:
        return ContentBlock(TEXT, to_json_text(part))
    return opaque_block(part)


@register_provider
class OpenCodeProvider(SessionProvider):
    """Provider for OpenCode sessions."""

    name = "opencode"
    display_name = "OpenCode"
    icon = "💻"
    color = "magenta"

    def __init__(self):
        self._root: Optional[Path] = None

    def get_sessions_dir(self) -> Path:
        return default_data_path(self.name)

    def begin_scan(self, root: Path) -> None:
        self._root = root

    def discover_session_files(self, root: Path) -> list[Path]:
        """Discover all session records."""
        return find_files(root / SESSION_DIR, ".json")

    def _storage_root(self, path: Path) -> Path:
        if self._root is not None:
            return self._root
        for parent in path.parents:
            if parent.name == SESSION_DIR:
                return parent.parent
        return path.parent.parent

    def load_messages(self, storage: Path, session_id: str) -> list[dict]:
        records = load_json_records(find_files(storage / MESSAGE_DIR / session_id, ".json"))
        records.sort(key=message_sort_key)
        return records

    def parse_session(self, path: Path) -> UnifiedSession | None:
        """Join a session record with its message and part records."""
        record = read_json(path)
        session_id = record.get("id")
        if not session_id:
            return None

        storage = self._storage_root(path)
        session_time = record.get("time") if isinstance(record.get("time"), dict) else {}
        session_created = parse_timestamp(session_time.get("created"))

        message_records = self.load_messages(storage, session_id)
        if not message_records:
            logger.debug(f"OpenCode session {session_id} has no messages")
            return None

        part_index = PartIndex.build(
            storage / PART_DIR,
            (m["id"] for m in message_records if isinstance(m.get("id"), str) and m["id"]),
        )

        model = ""
        messages: list[UnifiedMessage] = []
        for msg in message_records:
            role = msg.get("role")
            if role not in ROLES:
                continue
            message_id = msg.get("id") or f"{session_id}-{len(messages)}"

            content = [classify_part(part) for part in part_index.parts_for(message_id)]
            if not content and isinstance(msg.get("content"), str) and msg["content"]:
                content.append(ContentBlock(TEXT, msg["content"]))

            if role == "assistant" and msg.get("modelID"):
                model = msg["modelID"]

            tokens = msg.get("tokens")
            messages.append(UnifiedMessage(
                id=message_id,
                role=role,
                content=content,
                timestamp=_message_time(msg) or session_created,
                tokens=tokens if isinstance(tokens, dict) else None,
                metadata={
                    "model": msg.get("modelID", ""),
                    "mode": msg.get("mode") or msg.get("agent", ""),
                },
            ))

        timestamps = [m.timestamp for m in messages if m.timestamp]
        if timestamps:
            start_time, end_time = min(timestamps), max(timestamps)
        else:
            start_time = session_created
            end_time = parse_timestamp(session_time.get("updated")) or session_created

        directory = record.get("directory") or ""
        project_name = Path(directory).name if directory else ""

        return UnifiedSession(
            id=session_id,
            agent=self.name,
            title=project_name,
            directory=directory,
            start_time=start_time,
            end_time=end_time,
            messages=messages,
            metadata={
                "source": self.name,
                "raw_path": str(path),
                "storage_path": str(storage),
                "session_title": record.get("title") or "",
                "parent_id": record.get("parentID"),
                "model": model,
                "version": record.get("version", ""),
            },
        )
