#!/usr/bin/env python3
"""
PageCraft CLI - Main Entry Point

Usage:
    pagecraft "a simple calculator, dark theme"     # Generate into ./page.html
    pagecraft -o out.html "landing page for a cafe" # Choose the output file
    pagecraft --protocol marker "todo list"          # Use the marker wire format
    pagecraft --help                                 # Show help
"""

import argparse
import asyncio
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from pagecraft.core.config import GenerationConfig, WireProtocol, settings
from pagecraft.core.exceptions import PageCraftError
from pagecraft.modules.generate_document import GenerateDocumentCapability
from pagecraft.modules.generate_document.interfaces import (
    CssFragment,
    FlowStatus,
    Fragment,
    HeaderFragment,
    HtmlFragment,
    ModuleFragment,
)
from pagecraft.utils.llm_client import LLMClient


STATUS_STYLES = {
    FlowStatus.COMPLETED: "green",
    FlowStatus.FAILED: "red",
    FlowStatus.TIMED_OUT: "yellow",
    FlowStatus.CANCELLED: "dim",
}


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI"""
    parser = argparse.ArgumentParser(
        prog="pagecraft",
        description="PageCraft - stream an LLM-generated page into an HTML document",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  pagecraft "a simple calculator, dark theme"
  pagecraft -o cafe.html "landing page for a small cafe"
  pagecraft --protocol marker -v "a todo list"
        """
    )

    parser.add_argument("prompt", nargs="?", help="What the page should be")
    parser.add_argument("-p", "--prompt", dest="prompt_flag", help="What the page should be")

    parser.add_argument(
        "-o", "--output",
        type=str,
        default="page.html",
        help="Where to write the generated HTML (default: page.html)"
    )
    parser.add_argument(
        "--protocol",
        choices=[p.value for p in WireProtocol],
        default=None,
        help=f"Wire protocol between models and parsers (default: {settings.WIRE_PROTOCOL.value})"
    )
    parser.add_argument(
        "--module-timeout",
        type=float,
        default=None,
        help="Seconds before a module flow is abandoned (0 disables)"
    )
    parser.add_argument(
        "--relax-root-height",
        action="store_true",
        help="Rewrite fixed heights of the root container to min-height"
    )
    parser.add_argument(
        "--save-snapshot",
        action="store_true",
        help=f"Also keep a timestamped copy under {settings.OUTPUT_CACHE_DIR}"
    )
    parser.add_argument("--api-key", type=str, help="Anthropic API key (or set ANTHROPIC_API_KEY env var)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Print every fragment as it lands")
    parser.add_argument("--version", action="version", version="%(prog)s 1.0.0")

    return parser


def build_config(args: argparse.Namespace) -> GenerationConfig:
    config = GenerationConfig.from_settings(settings)
    overrides = {}
    if args.protocol:
        overrides["protocol"] = WireProtocol(args.protocol)
    if args.module_timeout is not None:
        overrides["module_timeout"] = args.module_timeout or None
    if args.relax_root_height:
        overrides["relax_root_height"] = True
    if args.save_snapshot:
        overrides["save_output"] = True
    return replace(config, **overrides) if overrides else config


def describe_fragment(fragment: Fragment) -> str:
    if isinstance(fragment, HeaderFragment):
        return f"[bold cyan]header[/bold cyan] {fragment.content}"
    if isinstance(fragment, ModuleFragment):
        return f"[bold magenta]module[/bold magenta] #{fragment.id}"
    if isinstance(fragment, HtmlFragment):
        return f"[green]html[/green] → #{fragment.parent_id}"
    if isinstance(fragment, CssFragment):
        return "[blue]css[/blue]"
    return repr(fragment)


def print_summary(console: Console, capability: GenerateDocumentCapability, output: Path) -> None:
    summary = capability.last_summary

    if summary.header is not None:
        console.print(Panel(
            f"[bold]{summary.header.app_name}[/bold]\n[dim]{summary.header.overall_theme}[/dim]",
            border_style="cyan",
        ))

    table = Table(title="Modules", show_header=True, header_style="bold cyan")
    table.add_column("Id")
    table.add_column("Name")
    table.add_column("Status")
    table.add_column("Fragments", justify="right")
    table.add_column("Error")
    for module in summary.modules:
        style = STATUS_STYLES.get(module.status, "white")
        table.add_row(
            module.module_id,
            module.name,
            f"[{style}]{module.status.value}[/{style}]",
            str(module.fragment_count),
            module.error or "",
        )
    console.print(table)

    console.print(
        f"\n[green]✓[/green] {capability.operator.applied} fragment(s) applied, "
        f"{capability.operator.skipped} skipped, {summary.record_errors} record error(s)"
    )
    if capability.operator.placeholders:
        console.print(f"[yellow]Placeholder containers:[/yellow] {', '.join(capability.operator.placeholders)}")
    console.print(f"[green]✓[/green] Page written to [bold]{output}[/bold]")
    if capability.last_snapshot:
        console.print(f"[dim]Snapshot: {capability.last_snapshot}[/dim]")


async def run(prompt: str, args: argparse.Namespace, console: Console) -> int:
    llm_client = LLMClient(api_key=args.api_key) if args.api_key else None
    capability = GenerateDocumentCapability(llm_client=llm_client, config=build_config(args))
    output = Path(args.output)

    def observe(fragment: Fragment, landed: bool) -> None:
        marker = "[green]+[/green]" if landed else "[red]![/red]"
        console.print(f"  {marker} {describe_fragment(fragment)}")

    try:
        with console.status("[cyan]Generating page...[/cyan]", spinner="dots"):
            await capability.request(prompt, observer=observe if args.verbose else None)
    except PageCraftError as e:
        console.print(f"\n[red]✗ Generation aborted[/red] [dim]({e.code})[/dim]: {e.message}")
        return 1
    finally:
        output.write_text(capability.document.serialize(), encoding="utf-8")

    print_summary(console, capability, output)
    return 0


def main(argv: Optional[list] = None):
    """Main entry point"""
    parser = create_parser()
    args = parser.parse_args(argv)
    console = Console()

    prompt = args.prompt or args.prompt_flag
    if not prompt:
        parser.print_help()
        sys.exit(2)

    if not (args.api_key or settings.ANTHROPIC_API_KEY):
        console.print("\n[red]✗ ANTHROPIC_API_KEY is not set[/red]")
        console.print("Set it in the environment or .env, or pass [cyan]--api-key[/cyan].")
        sys.exit(1)

    try:
        sys.exit(asyncio.run(run(prompt, args, console)))
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled[/yellow]")
        sys.exit(130)


if __name__ == "__main__":
    main()
