"""CLI commands for btrfs-snap."""

# These imports register CLI commands with the app via decorators
from . import snapshot_commands  # noqa: F401
from .core import app


def main() -> None:
    """Console entry point for the btrfs-snapctl CLI."""
    app()


__all__ = ["app", "main"]
