#!/usr/bin/env python3
"""Agent Insights - export AI coding sessions as Markdown and JSON.

Entry point for the CLI application.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from .config import ScanConfig, expand_path

logger = logging.getLogger(__name__)

# Path fragments that identify each tool's log directory
PATH_HINTS = (
    (".cursor", "cursor"),
    (".claude", "claude-code"),
    ("opencode", "opencode"),
)


def infer_tool(path: str) -> Optional[str]:
    """Guess which tool a custom log path belongs to."""
    normalized = str(path).replace("\\", "/").lower()
    for hint, tool in PATH_HINTS:
        if hint in normalized:
            return tool
    return None


def selected_tools(args) -> list[str]:
    """Tools named by flags, in a fixed order, or every tool."""
    from .providers import PROVIDER_NAMES

    chosen = []
    if args.cursor:
        chosen.append("cursor")
    if args.claude:
        chosen.append("claude-code")
    if args.opencode:
        chosen.append("opencode")
    if args.all or not chosen:
        return list(PROVIDER_NAMES)
    return chosen


def build_config(args, tools: list[str]) -> tuple[ScanConfig, list[str]]:
    """Config for this run, and the tools to scan after applying ``--path``."""
    config = ScanConfig(write_output=not args.no_write)
    if args.output:
        config.output_root = expand_path(args.output)
    if args.verbose:
        config.log_level = logging.DEBUG
    elif args.quiet:
        config.log_level = logging.WARNING

    if args.path:
        explicit = not args.all and len(tools) == 1
        tool = tools[0] if explicit else infer_tool(args.path)
        if tool is None:
            raise ValueError(
                f"Cannot tell which tool {args.path} belongs to; pass --cursor, --claude or --opencode"
            )
        config.custom_paths[tool] = Path(args.path)
        tools = [tool]
    return config, tools


def cmd_status(args, config: ScanConfig, tools: list[str]):
    """Show which tools are installed."""
    from .scanner import detect_installed
    from .ui import print_installed

    installed = detect_installed(config)
    print_installed(installed)
    return 0 if any(installed.values()) else 1


def cmd_scan(args, config: ScanConfig, tools: list[str]):
    """Scan the selected tools and write their transcripts."""
    from .logs import setup_logging
    from .scanner import Scanner, detect_installed
    from .ui import print_installed, print_json, print_summary

    setup_logging(config.log_level)

    installed = detect_installed(config)
    if not any(installed.values()):
        print_installed(installed)
        logger.error("No supported AI coding tool found")
        return 1

    available = [tool for tool in tools if installed.get(tool)]
    if not available:
        logger.error(f"Requested tools are not installed: {', '.join(tools)}")
        return 1

    result = Scanner(config).scan(available)
    print_summary(result, config)
    if args.json:
        print_json(result)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Export sessions from AI coding assistants as Markdown transcripts",
        prog="agent-insights",
    )
    parser.add_argument("--version", action="store_true", help="Show version")
    parser.add_argument("--status", action="store_true", help="Show installed tools and exit")

    tools = parser.add_argument_group("tools")
    tools.add_argument("--cursor", action="store_true", help="Scan Cursor sessions")
    tools.add_argument(
        "--claude", "--claude-code",
        dest="claude",
        action="store_true",
        help="Scan Claude Code sessions"
    )
    tools.add_argument("--opencode", action="store_true", help="Scan OpenCode sessions")
    tools.add_argument("--all", action="store_true", help="Scan every tool (default)")

    parser.add_argument("--path", help="Custom log directory for the selected tool")
    parser.add_argument("--output", "-o", help="Output root directory")
    parser.add_argument("--json", action="store_true", help="Print a JSON summary after the report")
    parser.add_argument("--no-write", action="store_true", help="Scan without writing any files")

    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    verbosity.add_argument("--quiet", "-q", action="store_true", help="Only log warnings and errors")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for agent-insights CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        from . import __version__
        print(f"agent-insights {__version__}")
        return 0

    try:
        config, tools = build_config(args, selected_tools(args))
    except ValueError as e:
        parser.error(str(e))

    if args.status:
        return cmd_status(args, config, tools)
    return cmd_scan(args, config, tools)


if __name__ == "__main__":
    sys.exit(main())
