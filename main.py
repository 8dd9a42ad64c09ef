#!/usr/bin/env python3
"""
Mail-Server Tool Bridge
=======================

Command-line entry point for the tool execution core.

Usage:
    python main.py list                              # Show the tool catalog
    python main.py call echo '{"msg": "hi"}'         # Execute one tool call
    python main.py call status '{}' --read-only      # Call as a read-only caller
    python main.py --config bridge.yaml list         # Load settings from YAML
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional

# Ensure project root is in path
sys.path.insert(0, str(Path(__file__).parent))

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from infra.config import ConfigError, load_config
from infra.logging import configure_logging, generate_request_id, get_logger
from security.permissions import AccessLevel, CallerContext
from tools.builtin import create_default_registry
from tools.registry import ToolRegistry


console = Console()


def print_catalog(registry: ToolRegistry) -> None:
    table = Table(title="Registered tools")
    table.add_column("Name", style="bold cyan")
    table.add_column("Category")
    table.add_column("Auth")
    table.add_column("Description", style="dim")

    for definition in registry.list():
        metadata = registry.get_metadata(definition.name)
        table.add_row(
            definition.name,
            metadata.category.value,
            "yes" if metadata.requires_auth else "no",
            definition.description,
        )

    console.print(table)


async def call_tool(
    registry: ToolRegistry,
    name: str,
    raw_input: str,
    user: Optional[str],
    permissions: List[str],
    read_only: bool,
) -> int:
    try:
        arguments = json.loads(raw_input)
    except json.JSONDecodeError as e:
        console.print(f"[red]Error:[/red] arguments are not valid JSON: {e}")
        return 2

    context = CallerContext(
        request_id=generate_request_id(),
        user_id=user,
        permissions=permissions,
        access_level=AccessLevel.READ_ONLY if read_only else AccessLevel.READ_WRITE,
    )

    result = await registry.execute(name, arguments, context)

    style = "green" if result.success else "red"
    console.print(Panel(
        json.dumps(result.to_dict(), indent=2, default=str),
        title=f"{name} [{result.execution.status.value}]",
        border_style=style,
    ))
    return 0 if result.success else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Mail-server tool bridge: dispatch schema-validated tool calls",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", help="YAML settings file")
    parser.add_argument("--log-level", help="Override log level (DEBUG, INFO, ...)")
    parser.add_argument("--no-log-file", action="store_true", help="Log to console only")

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("list", help="Show the tool catalog")

    call = subparsers.add_parser("call", help="Execute one tool call")
    call.add_argument("tool", help="Tool name")
    call.add_argument("arguments", nargs="?", default="{}", help="JSON object of arguments")
    call.add_argument("--user", help="Caller user id")
    call.add_argument(
        "--permission", action="append", default=[], dest="permissions",
        help="Grant a permission (repeatable)",
    )
    call.add_argument("--read-only", action="store_true", help="Call with read-only access")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        return 2

    configure_logging(
        level=args.log_level or config.log_level,
        log_dir=config.log_dir,
        file=not args.no_log_file,
    )
    logger = get_logger("main")

    registry = create_default_registry(config)
    logger.debug(f"Registry ready with {len(registry)} tools")

    if args.command == "list":
        print_catalog(registry)
        return 0

    return asyncio.run(call_tool(
        registry,
        args.tool,
        args.arguments,
        args.user,
        args.permissions,
        args.read_only,
    ))


if __name__ == "__main__":
    sys.exit(main())
