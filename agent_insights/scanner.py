"""Scan orchestration across providers."""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Iterable, Optional

from .config import ScanConfig
from .models import UnifiedSession
from .providers import PROVIDER_NAMES, SessionProvider, get_all_providers, get_provider
from .stats import filter_sessions
from .writer import write_project_index, write_session

logger = logging.getLogger(__name__)


@dataclass
class ScanResult:
    sessions: list[UnifiedSession] = field(default_factory=list)
    total_count: int = 0
    by_tool: dict[str, int] = field(default_factory=lambda: {name: 0 for name in PROVIDER_NAMES})
    found_by_tool: dict[str, int] = field(default_factory=lambda: {name: 0 for name in PROVIDER_NAMES})
    written: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "totalCount": self.total_count,
            "byTool": dict(self.by_tool),
            "errors": list(self.errors),
        }


def detect_installed(config: Optional[ScanConfig] = None) -> dict[str, bool]:
    """Which tools have a log directory on this machine."""
    config = config or ScanConfig()
    installed = {}
    for provider in get_all_providers():
        override = config.path_for(provider.name)
        try:
            installed[provider.name] = override.exists() if override else provider.is_available()
        except OSError as e:
            logger.warning(f"Failed to detect {provider.display_name}: {e}")
            installed[provider.name] = False
    return installed


class Scanner:
    """Runs providers, filters their sessions and writes the output tree."""

    def __init__(self, config: Optional[ScanConfig] = None):
        self.config = config or ScanConfig()

    def scan(self, tools: Optional[Iterable[str]] = None) -> ScanResult:
        tools = list(tools) if tools is not None else list(PROVIDER_NAMES)
        result = ScanResult()
        logger.info(f"Scanning tools: {', '.join(tools)}")

        for tool in tools:
            provider = get_provider(tool)
            if provider is None:
                result.errors.append(f"{tool}: unknown tool")
                continue
            try:
                sessions = self._scan_tool(provider, result)
            except Exception as e:
                logger.error(f"{provider.display_name} scan failed: {e}")
                result.errors.append(f"{provider.display_name}: {e}")
                continue
            result.sessions.extend(sessions)
            result.by_tool[tool] = len(sessions)
            result.total_count += len(sessions)
            logger.info(f"{provider.display_name}: {len(sessions)} sessions")

        return result

    def _scan_tool(self, provider: SessionProvider, result: ScanResult) -> list[UnifiedSession]:
        found = provider.find_sessions(self.config.path_for(provider.name))
        result.found_by_tool[provider.name] = len(found)

        policy = self.config.stats_policy
        kept, dropped = filter_sessions(found, policy)
        logger.info(
            f"{provider.display_name} scan complete: {len(kept)} sessions ({dropped} filtered)"
        )
        if self.config.write_output:
            result.written += self._write(provider.name, kept)
        return kept

    def _write(self, agent: str, sessions: list[UnifiedSession]) -> int:
        root = self.config.output_root
        policy = self.config.stats_policy
        written = 0
        projects: dict[str, list[UnifiedSession]] = defaultdict(list)
        for session in sessions:
            if write_session(session, root, policy):
                written += 1
            projects[session.project_name].append(session)

        for project_name, project_sessions in projects.items():
            paths = list(dict.fromkeys(s.directory for s in project_sessions if s.directory))
            write_project_index(
                root,
                agent,
                project_name,
                project_sessions[0].directory,
                len(project_sessions),
                project_paths=paths,
            )
        return written
