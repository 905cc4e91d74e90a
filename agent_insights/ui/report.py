"""Console output for scan runs."""

import json

from rich.console import Console
from rich.text import Text

from ..config import ScanConfig
from ..providers import get_provider
from ..scanner import ScanResult

console = Console()


def provider_label(name: str) -> Text:
    """Icon and display name in the provider's color."""
    provider = get_provider(name)
    text = Text()
    if provider is None:
        text.append(name)
        return text
    text.append(f"{provider.icon} ", style=provider.color)
    text.append(provider.display_name, style=f"bold {provider.color}")
    return text


def print_installed(installed: dict[str, bool], out: Console | None = None) -> None:
    out = out or console
    out.print(Text("Detected tools", style="bold"))
    for name, available in installed.items():
        line = Text("  ")
        line.append("✓ " if available else "✗ ", style="green" if available else "red")
        line.append_text(provider_label(name))
        if not available:
            line.append(" (not found)", style="dim")
        out.print(line)


def print_summary(result: ScanResult, config: ScanConfig, out: Console | None = None) -> None:
    """Per-tool counts, output directories and any errors."""
    out = out or console
    out.print()
    out.print(Text("Scan complete", style="bold green"))

    for name, count in result.by_tool.items():
        found = result.found_by_tool.get(name, 0)
        if not count and not found:
            continue
        line = Text("  ")
        line.append_text(provider_label(name))
        line.append(f": {count} sessions", style="white")
        if found > count:
            line.append(f" ({found - count} filtered)", style="dim")
        out.print(line)

    out.print()
    out.print(Text(f"Total: {result.total_count} sessions", style="bold"))
    if config.write_output:
        out.print(Text(f"Written: {result.written} transcripts", style="dim"))
        out.print(Text("Output directories:", style="dim"))
        for name, count in result.by_tool.items():
            if count:
                out.print(Text(f"  - {config.output_dir_for(name)}", style="cyan"))

    for error in result.errors:
        out.print(Text(f"Error: {error}", style="red"))


def print_json(result: ScanResult, out: Console | None = None) -> None:
    out = out or console
    out.print_json(json.dumps(result.to_dict(), ensure_ascii=False))
