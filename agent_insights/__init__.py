"""Agent Insights - export AI coding sessions as Markdown and JSON."""

__version__ = "0.1.0"
