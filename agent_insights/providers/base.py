"""Base class for session providers."""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

from ..errors import MalformedLogError
from ..models import TEXT, ContentBlock, UnifiedSession
from ..stats import DEFAULT_POLICY, StatsPolicy, filter_sessions

logger = logging.getLogger(__name__)


def to_json_text(value: Any) -> str:
    """JSON-encode a raw fragment, falling back to str() for odd values."""
    return json.dumps(value, ensure_ascii=False, default=str)


def opaque_block(part: Any) -> ContentBlock:
    """Keep an unrecognized fragment as text holding its JSON encoding."""
    return ContentBlock(TEXT, to_json_text(part))


def text_of(value: Any) -> str:
    if isinstance(value, str):
        return value
    if value is None:
        return ""
    return to_json_text(value)


class SessionProvider(ABC):
    """Abstract base class for session providers.

    Each AI coding assistant (Cursor, Claude Code, OpenCode) implements this
    interface to turn its native logs into UnifiedSession objects.
    """

    # Provider identity
    name: str = ""  # unique identifier: "cursor", "claude-code", "opencode"
    display_name: str = ""  # human-readable: "Cursor", "Claude Code"
    icon: str = ""  # emoji for console output
    color: str = ""  # rich color for console output

    @abstractmethod
    def get_sessions_dir(self) -> Path:
        """Return the default directory where sessions are stored."""
        ...

    def get_root(self, root_override: Optional[Path] = None) -> Path:
        return Path(root_override) if root_override else self.get_sessions_dir()

    def is_available(self) -> bool:
        """Check if this provider's sessions directory exists."""
        return self.get_sessions_dir().exists()

    @abstractmethod
    def discover_session_files(self, root: Path) -> list[Path]:
        """Discover all session files under ``root``."""
        ...

    @abstractmethod
    def parse_session(self, path: Path) -> UnifiedSession | None:
        """Parse a session file into a UnifiedSession.

        Returns None when the log holds no importable session, for example one
        without a resolvable id. Raises MalformedLogError when the file cannot
        be decoded.
        """
        ...

    def begin_scan(self, root: Path) -> None:
        """Hook to build per-scan indexes before files are parsed."""

    def find_sessions(self, root_override: Optional[Path] = None) -> list[UnifiedSession]:
        """Load every session under the root, without filtering."""
        root = self.get_root(root_override)
        if not root.exists():
            logger.info(f"{self.display_name} log directory not found: {root}")
            return []

        logger.info(f"Scanning {self.display_name} sessions: {root}")
        self.begin_scan(root)

        sessions = []
        for path in self.discover_session_files(root):
            try:
                session = self.parse_session(path)
            except MalformedLogError as e:
                logger.warning(f"Skipping malformed log {e}")
                continue
            except Exception as e:
                logger.warning(f"Failed to parse {path}: {e}")
                continue
            if session:
                sessions.append(session)
            else:
                logger.debug(f"No session in {path}, skipped")
        return sessions

    def scan(
        self,
        root_override: Optional[Path] = None,
        policy: StatsPolicy = DEFAULT_POLICY,
    ) -> list[UnifiedSession]:
        """Load all sessions and drop the trivial ones."""
        sessions = self.find_sessions(root_override)
        kept, dropped = filter_sessions(sessions, policy)
        logger.info(
            f"{self.display_name} scan complete: {len(kept)} sessions ({dropped} filtered)"
        )
        return kept
