"""Agent Insights configuration."""

import logging
import os
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .stats import StatsPolicy


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_log_level(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    level = logging.getLevelName(value.strip().upper())
    return level if isinstance(level, int) else default


_WINDOWS_VAR = re.compile(r"%([^%]+)%")


def expand_path(path: str | Path) -> Path:
    """Expand ``~``, ``$VAR``/``${VAR}`` and ``%VAR%`` in a path."""
    text = str(path)
    text = _WINDOWS_VAR.sub(lambda m: os.environ.get(m.group(1), ""), text)
    text = os.path.expandvars(os.path.expanduser(text))
    return Path(os.path.normpath(text))


def get_platform() -> str:
    if sys.platform == "darwin":
        return "macos"
    if sys.platform.startswith("win"):
        return "windows"
    return "linux"


# Default log roots, per tool and platform
DEFAULT_DATA_PATHS: dict[str, dict[str, str]] = {
    "cursor": {
        "macos": "~/.cursor/projects",
        "linux": "~/.cursor/projects",
        "windows": "%USERPROFILE%/.cursor/projects",
    },
    "claude-code": {
        "macos": "~/.claude/projects",
        "linux": "~/.claude/projects",
        "windows": "%USERPROFILE%/.claude/projects",
    },
    "opencode": {
        "macos": "~/.local/share/opencode/storage",
        "linux": "~/.local/share/opencode/storage",
        "windows": "%USERPROFILE%/.local/share/opencode/storage",
    },
}

# Cursor keeps workspace folder identities here
CURSOR_WORKSPACE_STORAGE: dict[str, str] = {
    "macos": "~/Library/Application Support/Cursor/User/workspaceStorage",
    "linux": "~/.config/Cursor/User/workspaceStorage",
    "windows": "%APPDATA%/Cursor/User/workspaceStorage",
}


def default_data_path(agent: str) -> Path:
    return expand_path(DEFAULT_DATA_PATHS[agent][get_platform()])


def cursor_workspace_storage() -> Path:
    return expand_path(CURSOR_WORKSPACE_STORAGE[get_platform()])


DEFAULT_OUTPUT_DIR = expand_path(
    os.getenv("AGENT_INSIGHTS_OUTPUT_DIR", "~/.agent-insights/conversations")
)
DEFAULT_LOG_LEVEL = _env_log_level("AGENT_INSIGHTS_LOG_LEVEL", logging.INFO)
DOUBLE_COUNT_TOOL_CALLS = _env_bool("AGENT_INSIGHTS_DOUBLE_COUNT_TOOL_CALLS", True)

# Git lookups for project.json
GIT_TIMEOUT_SECONDS = 5


@dataclass
class ScanConfig:
    """Settings for one scan run, passed explicitly to the scanner and renderers."""

    output_root: Path = DEFAULT_OUTPUT_DIR
    log_level: int = DEFAULT_LOG_LEVEL
    custom_paths: dict[str, Path] = field(default_factory=dict)
    write_output: bool = True
    stats_policy: StatsPolicy = field(
        default_factory=lambda: StatsPolicy(double_count_tool_calls=DOUBLE_COUNT_TOOL_CALLS)
    )

    def path_for(self, agent: str) -> Optional[Path]:
        """Custom log root for a tool, if one was given."""
        path = self.custom_paths.get(agent)
        return expand_path(path) if path else None

    def output_dir_for(self, agent: str) -> Path:
        return Path(self.output_root) / agent
