"""Snapshot and rotation CLI commands."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

import typer
import yaml
from pydantic import ValidationError
from rich.markup import escape
from rich.table import Table

from ..backend import BtrfsBackend, SnapshotBackend
from ..config import Settings, load_settings
from ..errors import SnapError
from ..naming import name_for
from ..policy import Policy, resolve_policy
from ..prune import rotate_snapshots
from ..snapshot import existing_snapshots, resolve_snapshot_dir
from ..snapshot_cli import main as snapshot_main
from .core import app, console, get_config_path


def make_backend(settings: Settings) -> SnapshotBackend:
    return BtrfsBackend(settings.backend.btrfs_bin, mounts_file=settings.backend.mounts_file)


def _placement_argv(
    postfix: bool,
    compat: bool,
    mirror_base: Optional[str],
    flat_base: Optional[str],
    snapshot_dir: Optional[str],
) -> List[str]:
    argv: List[str] = []
    if postfix:
        argv.append("-p")
    if compat:
        argv.append("-c")
    if mirror_base is not None:
        argv.extend(["-b", mirror_base])
    if flat_base is not None:
        argv.extend(["-B", flat_base])
    if snapshot_dir is not None:
        argv.extend(["-d", snapshot_dir])
    return argv


def _load_settings(ctx: typer.Context) -> Settings:
    try:
        return load_settings(get_config_path(ctx))
    except (ValidationError, yaml.YAMLError, OSError) as e:
        console.print(f"[red]✗ Invalid settings: {escape(str(e))}[/red]")
        raise typer.Exit(1)


def _load_policy(ctx: typer.Context, argv: List[str]) -> tuple[Settings, Policy]:
    settings = _load_settings(ctx)
    try:
        return settings, resolve_policy(argv, settings)
    except SnapError as e:
        raise typer.BadParameter(str(e))


@app.command()
def snap(
    ctx: typer.Context,
    volume: str = typer.Argument(..., help="Mounted btrfs volume or existing snapshot"),
    label: str = typer.Argument(..., help="Label grouping the rotation set"),
    count: int = typer.Argument(..., help="Number of snapshots to keep"),
    read_only: bool = typer.Option(False, "--read-only", "-r", help="Create read-only snapshots"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only log errors to the terminal"),
    postfix: bool = typer.Option(False, "--postfix", "-p", help="Put the label after the timestamp"),
    omitted_is_error: bool = typer.Option(False, "--omitted-is-error", "-E", help="Exit non-zero on a skip"),
    mirror_base: Optional[str] = typer.Option(None, "--mirror-base", "-b", help="Store under DIR/<volume path>"),
    flat_base: Optional[str] = typer.Option(None, "--flat-base", "-B", help="Store directly in DIR"),
    snapshot_dir: Optional[str] = typer.Option(None, "--dir", "-d", help="Store in <volume>/DIR"),
    compat: bool = typer.Option(False, "--compat", "-c", help="Use '-' between time fields"),
    min_age: Optional[int] = typer.Option(None, "--min-age", "-t", help="Skip unless changed (mtime) and SECONDS old"),
    min_age_generation: Optional[int] = typer.Option(
        None, "--min-age-generation", "-T", help="Skip unless changed (generation) and SECONDS old"
    ),
) -> None:
    """Create a snapshot and rotate old ones."""
    if min_age is not None and min_age_generation is not None:
        raise typer.BadParameter("--min-age and --min-age-generation are mutually exclusive")

    argv = _placement_argv(postfix, compat, mirror_base, flat_base, snapshot_dir)
    if read_only:
        argv.append("-r")
    if quiet:
        argv.append("-q")
    if omitted_is_error:
        argv.append("-E")
    if min_age is not None:
        argv.extend(["-t", str(min_age)])
    if min_age_generation is not None:
        argv.extend(["-T", str(min_age_generation)])
    argv.extend(["--", volume, label, str(count)])

    settings = _load_settings(ctx)
    exit_code = snapshot_main(argv, backend=make_backend(settings), settings=settings)
    if exit_code != 0:
        raise typer.Exit(exit_code)


@app.command("list")
def list_snapshots(
    ctx: typer.Context,
    volume: str = typer.Argument(..., help="Mounted btrfs volume or existing snapshot"),
    label: str = typer.Argument(..., help="Label grouping the rotation set"),
    postfix: bool = typer.Option(False, "--postfix", "-p", help="Label is after the timestamp"),
    mirror_base: Optional[str] = typer.Option(None, "--mirror-base", "-b"),
    flat_base: Optional[str] = typer.Option(None, "--flat-base", "-B"),
    snapshot_dir: Optional[str] = typer.Option(None, "--dir", "-d"),
    compat: bool = typer.Option(False, "--compat", "-c"),
) -> None:
    """List snapshots with LABEL, newest first."""
    argv = _placement_argv(postfix, compat, mirror_base, flat_base, snapshot_dir)
    argv.extend(["--", volume, label, "0"])
    settings, policy = _load_policy(ctx, argv)

    backend = make_backend(settings)
    base = resolve_snapshot_dir(policy)
    _, pattern = name_for(policy.label, policy.placement, datetime.now().astimezone(), policy.delimiter)
    snaps = existing_snapshots(base, pattern, backend)

    if not snaps:
        console.print(f"No snapshots matching {pattern} in {base}")
        return

    table = Table(title=f"Snapshots in {base}")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Modified", style="yellow")
    for s in snaps:
        table.add_row(s.name, datetime.fromtimestamp(s.modification_time).strftime("%Y-%m-%d %H:%M:%S"))
    console.print(table)


@app.command()
def prune(
    ctx: typer.Context,
    volume: str = typer.Argument(..., help="Mounted btrfs volume or existing snapshot"),
    label: str = typer.Argument(..., help="Label grouping the rotation set"),
    count: int = typer.Argument(..., help="Number of snapshots to keep"),
    force: bool = typer.Option(False, "--force", help="Apply changes (default dry-run)"),
    postfix: bool = typer.Option(False, "--postfix", "-p"),
    mirror_base: Optional[str] = typer.Option(None, "--mirror-base", "-b"),
    flat_base: Optional[str] = typer.Option(None, "--flat-base", "-B"),
    snapshot_dir: Optional[str] = typer.Option(None, "--dir", "-d"),
    compat: bool = typer.Option(False, "--compat", "-c"),
) -> None:
    """Delete all but the newest COUNT snapshots with LABEL, without taking a new one."""
    argv = _placement_argv(postfix, compat, mirror_base, flat_base, snapshot_dir)
    argv.extend(["--", volume, label, str(count)])
    settings, policy = _load_policy(ctx, argv)

    backend = make_backend(settings)
    base = resolve_snapshot_dir(policy)
    _, pattern = name_for(policy.label, policy.placement, datetime.now().astimezone(), policy.delimiter)
    try:
        res = rotate_snapshots(policy, base, pattern, backend, dry_run=not force)
    except SnapError as e:
        console.print(f"[red]✗ {escape(str(e))}[/red]")
        raise typer.Exit(1)

    if not force:
        console.print(f"[DRY-RUN] Would remove: {', '.join(res['planned_remove']) or 'nothing'}")
        return
    console.print(f"[APPLY] Removed: {', '.join(res['removed']) or 'nothing'}")
