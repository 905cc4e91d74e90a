"""Console output for Agent Insights."""

from .report import print_installed, print_json, print_summary, provider_label

__all__ = [
    "print_installed",
    "print_json",
    "print_summary",
    "provider_label",
]
