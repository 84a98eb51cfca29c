"""Core CLI application and shared utilities."""

from __future__ import annotations

from typing import Optional

import typer
from click import get_current_context
from rich.console import Console

from ..logger import get_logger

app = typer.Typer(add_completion=False, no_args_is_help=True)
console = Console()
log = get_logger(__name__)


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[str] = typer.Option(None, "--config", help="Path to btrfs-snap.yaml"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Log level (DEBUG, INFO, WARNING, ERROR)"),
) -> None:
    """btrfs-snap - create and rotate btrfs snapshots."""
    from ..logger import configure_logging

    configure_logging(level=log_level, syslog=False)
    ctx.obj = {"config": config, "log_level": log_level}


def get_config_path(ctx: typer.Context | None = None) -> str | None:
    """Get config path from context."""
    context = ctx or get_current_context(silent=True)
    return context.obj.get("config") if context and context.obj else None
