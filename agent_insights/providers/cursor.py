"""Cursor session provider."""

import logging
import re
from enum import Enum
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlparse
from urllib.request import url2pathname

from ..config import cursor_workspace_storage, default_data_path
from ..date_utils import file_times, parse_timestamp
from ..errors import MalformedLogError
from ..models import CODE, FILE, IMAGE, TEXT, THINKING, TOOL_CALL, ContentBlock, UnifiedMessage, UnifiedSession
from ..readers import find_files, read_json, read_jsonl
from . import register_provider
from .base import SessionProvider, opaque_block, text_of

logger = logging.getLogger(__name__)

UNKNOWN_PROJECT = "unknown"
TRANSCRIPTS_DIR = "agent-transcripts"

_DRIVE_PREFIX = re.compile(r"^[a-zA-Z]:[\\/]")
_SEPARATORS = re.compile(r"[\\/]+")


class CursorPart(str, Enum):
    """Content part types found in Cursor agent transcripts."""

    TEXT = "text"
    THINKING = "thinking"
    CODE_SELECTION = "code_selection"
    ATTACHED_FILES = "attached_files"
    IMAGE = "image"
    IMAGE_URL = "image_url"
    TOOL_USE = "tool_use"
    TOOL_CALL = "tool_call"
    TOOL = "tool"
    TOOL_RESULT = "tool_result"
    UNKNOWN = "unknown"

    @classmethod
    def _missing_(cls, value):
        return cls.UNKNOWN


def workspace_key(folder: str) -> str:
    """Name Cursor gives a workspace folder under its projects directory.

    ``/Users/erik/my_app.v2`` becomes ``Users-erik-my-appv2``.
    """
    key = _DRIVE_PREFIX.sub("", folder).lstrip("/\\")
    key = _SEPARATORS.sub("-", key)
    return key.replace(".", "").replace("_", "-")


def folder_uri_to_path(uri: str) -> Optional[str]:
    if not uri.startswith("file://"):
        return None
    path = url2pathname(urlparse(uri).path)
    return path or None


def load_workspace_map(storage_dir: Path) -> dict[str, str]:
    """Map sanitized workspace keys to folder paths from workspace.json files."""
    workspace_map: dict[str, str] = {}
    for path in find_files(storage_dir, "workspace.json"):
        try:
            data = read_json(path)
        except MalformedLogError as e:
            logger.warning(f"Skipping workspace file {e}")
            continue
        folder = data.get("folder")
        if not isinstance(folder, str):
            continue
        folder_path = folder_uri_to_path(folder)
        if folder_path:
            workspace_map[workspace_key(folder_path)] = folder_path
    return workspace_map


def classify_part(part: Any) -> ContentBlock:
    """Map one Cursor content part onto a ContentBlock."""
    if isinstance(part, str):
        return ContentBlock(TEXT, part)
    if not isinstance(part, dict):
        return opaque_block(part)

    kind = CursorPart(part.get("type"))
    if kind is CursorPart.TEXT:
        return ContentBlock(TEXT, text_of(part.get("text")))
    if kind is CursorPart.THINKING:
        return ContentBlock(THINKING, text_of(part.get("thinking") or part.get("text")))
    if kind is CursorPart.CODE_SELECTION:
        return ContentBlock(CODE, text_of(part.get("text")))
    if kind is CursorPart.ATTACHED_FILES:
        return ContentBlock(FILE, part)
    if kind in (CursorPart.IMAGE, CursorPart.IMAGE_URL):
        return ContentBlock(IMAGE, part)
    if kind in (CursorPart.TOOL_USE, CursorPart.TOOL_CALL, CursorPart.TOOL, CursorPart.TOOL_RESULT):
        return ContentBlock(TOOL_CALL, part)
    return opaque_block(part)


def extract_content(content: Any) -> list[ContentBlock]:
    if content is None:
        return []
    if isinstance(content, str):
        return [ContentBlock(TEXT, content)]
    if isinstance(content, list):
        return [classify_part(part) for part in content]
    return [opaque_block(content)]


@register_provider
class CursorProvider(SessionProvider):
    """Provider for Cursor agent sessions."""

    name = "cursor"
    display_name = "Cursor"
    icon = "⌘"
    color = "blue"

    def __init__(self, workspace_storage: Optional[Path] = None):
        self.workspace_storage = workspace_storage or cursor_workspace_storage()
        self._workspace_map: Optional[dict[str, str]] = None
        self._root: Optional[Path] = None

    def get_sessions_dir(self) -> Path:
        return default_data_path(self.name)

    def begin_scan(self, root: Path) -> None:
        # Workspace identities are read once per scan
        self._root = root
        self._workspace_map = load_workspace_map(self.workspace_storage)
        logger.debug(f"Loaded {len(self._workspace_map)} Cursor workspace folders")

    @property
    def workspace_map(self) -> dict[str, str]:
        if self._workspace_map is None:
            self._workspace_map = load_workspace_map(self.workspace_storage)
        return self._workspace_map

    def discover_session_files(self, root: Path) -> list[Path]:
        """Discover all JSONL transcripts, newest first."""
        return find_files(root, ".jsonl")

    def _project_dir(self, path: Path) -> tuple[str, Path]:
        """(project key, project directory) for a transcript file."""
        if self._root is not None:
            try:
                parts = path.relative_to(self._root).parts
            except ValueError:
                parts = ()
            if len(parts) > 1:
                return parts[0], self._root / parts[0]
            if len(parts) == 1:
                return UNKNOWN_PROJECT, self._root

        project_dir = path.parent
        if project_dir.name == TRANSCRIPTS_DIR:
            project_dir = project_dir.parent
        return project_dir.name, project_dir

    def parse_session(self, path: Path) -> UnifiedSession | None:
        """Parse a Cursor agent transcript."""
        rows = read_jsonl(path)
        session_id = path.stem
        if not session_id:
            return None

        key, project_dir = self._project_dir(path)
        project_path = self.workspace_map.get(key) or str(project_dir)
        project_name = Path(project_path).name or key

        timestamps = []
        messages: list[UnifiedMessage] = []
        for row in rows:
            ts = parse_timestamp(row.get("timestamp"))
            if ts:
                timestamps.append(ts)
            role = row.get("role")
            if role not in ("user", "assistant"):
                continue
            msg = row.get("message")
            content = msg.get("content") if isinstance(msg, dict) else None
            messages.append(UnifiedMessage(
                id=row.get("id") or f"{session_id}-{len(messages)}",
                role=role,
                content=extract_content(content),
                timestamp=ts,
            ))

        if timestamps:
            start_time, end_time = min(timestamps), max(timestamps)
        else:
            start_time, end_time = file_times(path)

        return UnifiedSession(
            id=session_id,
            agent=self.name,
            title=project_name,
            directory=project_path,
            start_time=start_time,
            end_time=end_time,
            messages=messages,
            metadata={
                "source": self.name,
                "raw_path": str(path),
                "project_key": key,
            },
        )
