"""Exceptions raised while reading session logs."""

from pathlib import Path


class AgentInsightsError(Exception):
    """Base class for agent-insights errors."""


class MalformedLogError(AgentInsightsError, ValueError):
    """A log file could not be read or decoded."""

    def __init__(self, path: Path, reason: str):
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason
