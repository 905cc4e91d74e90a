"""Unified session model for all providers."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Union

# Closed set of content block kinds
TEXT = "text"
CODE = "code"
THINKING = "thinking"
TOOL_CALL = "tool-call"
FILE = "file"
IMAGE = "image"

CONTENT_KINDS = (TEXT, CODE, THINKING, TOOL_CALL, FILE, IMAGE)

ROLES = ("user", "assistant", "system")

Payload = Union[str, dict, list]


@dataclass(frozen=True)
class ContentBlock:
    """A single semantic unit of message content.

    ``data`` is plain text for text-like kinds, or the source's own record
    kept verbatim for tool calls and file references.
    """

    kind: str
    data: Payload = ""

    def __post_init__(self):
        if self.kind not in CONTENT_KINDS:
            raise ValueError(f"Unknown content kind: {self.kind!r}")


@dataclass
class UnifiedMessage:
    """One turn in a conversation."""

    id: str
    role: str  # "user", "assistant" or "system"
    content: list[ContentBlock] = field(default_factory=list)
    timestamp: Optional[datetime] = None

    # Token usage as reported by the source, in the source's own spelling
    tokens: Optional[dict] = None

    # Provider-specific data (parent id, sidechain flag, model...)
    metadata: dict = field(default_factory=dict)


@dataclass
class UnifiedSession:
    """Unified session model for all AI coding assistants."""

    # Identity
    id: str
    agent: str  # provider name: "cursor", "claude-code", "opencode"

    # Project context
    title: str = ""
    directory: str = ""

    # Timing
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    # Content
    messages: list[UnifiedMessage] = field(default_factory=list)

    # Provider-specific data, plus session-level token totals when the
    # source only reports them per session
    metadata: dict = field(default_factory=dict)

    @property
    def project_name(self) -> str:
        return self.title or "unknown"
