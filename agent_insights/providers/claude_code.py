"""Claude Code session provider."""

from enum import Enum
from pathlib import Path
from typing import Any

from ..config import default_data_path
from ..date_utils import file_times, parse_timestamp
from ..models import FILE, IMAGE, TEXT, THINKING, TOOL_CALL, ContentBlock, UnifiedMessage, UnifiedSession
from ..readers import find_files, read_jsonl
from . import register_provider
from .base import SessionProvider, opaque_block, text_of

SUBAGENT_FILE_PREFIX = "agent-"
MESSAGE_ROW_TYPES = ("user", "assistant")


class ClaudePart(str, Enum):
    """Content part types found in Claude Code message arrays."""

    TEXT = "text"
    THINKING = "thinking"
    REDACTED_THINKING = "redacted_thinking"
    TOOL_USE = "tool_use"
    TOOL_RESULT = "tool_result"
    IMAGE = "image"
    DOCUMENT = "document"
    UNKNOWN = "unknown"

    @classmethod
    def _missing_(cls, value):
        return cls.UNKNOWN


def _strip_inline_data(part: dict) -> dict:
    """Drop base64 payloads from image/document parts, keeping their description."""
    source = part.get("source")
    if isinstance(source, dict) and "data" in source:
        source = {k: v for k, v in source.items() if k != "data"}
        return {**part, "source": source}
    return part


def classify_part(part: Any) -> ContentBlock:
    """Map one Claude Code content part onto a ContentBlock."""
    if isinstance(part, str):
        return ContentBlock(TEXT, part)
    if not isinstance(part, dict):
        return opaque_block(part)

    kind = ClaudePart(part.get("type"))
    if kind is ClaudePart.TEXT:
        return ContentBlock(TEXT, text_of(part.get("text")))
    if kind is ClaudePart.THINKING:
        return ContentBlock(THINKING, text_of(part.get("thinking")))
    if kind is ClaudePart.REDACTED_THINKING:
        return ContentBlock(THINKING, "")
    if kind in (ClaudePart.TOOL_USE, ClaudePart.TOOL_RESULT):
        return ContentBlock(TOOL_CALL, part)
    if kind is ClaudePart.IMAGE:
        return ContentBlock(IMAGE, _strip_inline_data(part))
    if kind is ClaudePart.DOCUMENT:
        return ContentBlock(FILE, _strip_inline_data(part))
    return opaque_block(part)


def extract_content(content: Any) -> list[ContentBlock]:
    """Extract blocks from message content (handles both string and list formats)."""
    if content is None:
        return []
    if isinstance(content, str):
        return [ContentBlock(TEXT, content)]
    if isinstance(content, list):
        return [classify_part(part) for part in content]
    return [opaque_block(content)]


@register_provider
class ClaudeCodeProvider(SessionProvider):
    """Provider for Claude Code sessions."""

    name = "claude-code"
    display_name = "Claude Code"
    icon = "🧠"
    color = "cyan"

    def get_sessions_dir(self) -> Path:
        return default_data_path(self.name)

    def discover_session_files(self, root: Path) -> list[Path]:
        """Discover all JSONL session files, skipping sub-agent transcripts."""
        return find_files(root, ".jsonl", exclude=lambda name: name.startswith(SUBAGENT_FILE_PREFIX))

    def parse_session(self, path: Path) -> UnifiedSession | None:
        """Parse a Claude Code JSONL session file."""
        rows = read_jsonl(path)

        session_id = ""
        cwd = ""
        git_branch = ""
        version = ""
        model = ""
        timestamps = []
        messages: list[UnifiedMessage] = []
        usage_seen: set[str] = set()

        for row in rows:
            ts = parse_timestamp(row.get("timestamp"))
            if ts:
                timestamps.append(ts)
            if row.get("sessionId"):
                session_id = row["sessionId"]
            # Working directory and branch come from the first row that has them
            if not cwd and row.get("cwd"):
                cwd = row["cwd"]
            if not git_branch and row.get("gitBranch"):
                git_branch = row["gitBranch"]
            if not version and row.get("version"):
                version = row["version"]

            msg = row.get("message")
            if not isinstance(msg, dict):
                continue
            if msg.get("model"):
                model = msg["model"]
            if row.get("type") not in MESSAGE_ROW_TYPES:
                continue

            content = extract_content(msg.get("content"))
            tool_messages = row.get("toolUseMessages")
            if isinstance(tool_messages, list):
                content.extend(ContentBlock(TOOL_CALL, tool_msg) for tool_msg in tool_messages)

            # Streamed assistant turns repeat the same usage on every row
            tokens = None
            usage = msg.get("usage")
            api_id = msg.get("id")
            if isinstance(usage, dict) and api_id not in usage_seen:
                tokens = usage
                if api_id:
                    usage_seen.add(api_id)

            messages.append(UnifiedMessage(
                id=row.get("uuid") or "",
                role=row["type"],
                content=content,
                timestamp=ts,
                tokens=tokens,
                metadata={
                    "parent_uuid": row.get("parentUuid"),
                    "is_sidechain": bool(row.get("isSidechain")),
                    "model": msg.get("model", ""),
                },
            ))

        if not session_id:
            return None

        for i, message in enumerate(messages):
            if not message.id:
                message.id = f"{session_id}-{i}"

        # Build project path and name
        project_path = cwd or str(path.parent)
        project_name = Path(project_path).name

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
                "project_id": path.parent.name,
                "branch": git_branch,
                "model": model,
                "version": version,
            },
        )
