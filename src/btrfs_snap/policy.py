from __future__ import annotations

import argparse
from enum import Enum
from typing import Any, List, Literal, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from . import __version__
from .config import Settings
from .errors import ConfigError
from .naming import VFS_LABEL, LabelPlacement

PROG = "btrfs-snap"

DESCRIPTION = "Create a btrfs snapshot of a volume and keep only the newest COUNT snapshots sharing LABEL."

EPILOG = """\
The snapshot is named LABEL_YYYY-MM-DD_HH:MM:SS (or YYYY-MM-DD_HH:MM:SS_LABEL with -p).
A LABEL of VFS uses the @GMT-YYYY.MM.DD-HH.MM.SS shadow copy convention instead.

exit status:
  0  snapshot taken, or skipped by -t/-T
  1  error, or skipped by -t/-T when -E is given
"""


class DirectoryMode(str, Enum):
    NESTED = "nested"
    MIRRORED = "mirrored"
    FLAT = "flat"


class StalenessMethod(str, Enum):
    MTIME = "mtime"
    GENERATION = "generation"


class Policy(BaseModel):
    """Everything one run needs to know. Built once, never changed."""

    model_config = ConfigDict(frozen=True)

    volume: str
    label: str
    retention_count: int = Field(ge=0)
    read_only: bool = False
    placement: LabelPlacement = LabelPlacement.PREFIX
    directory_mode: DirectoryMode = DirectoryMode.NESTED
    directory: Optional[str] = None
    delimiter: Literal[":", "-"] = ":"
    staleness_threshold: int = Field(default=0, ge=0)
    staleness_method: StalenessMethod = StalenessMethod.MTIME
    omitted_is_error: bool = False
    omitted_exit_code: int = 1
    quiet: bool = False


class _Parser(argparse.ArgumentParser):
    """Argument parser that raises ``ConfigError`` instead of exiting."""

    def error(self, message: str) -> None:  # type: ignore[override]
        raise ConfigError(message)


class _StalenessAction(argparse.Action):
    """``-t`` and ``-T`` share one setting; whichever comes last wins."""

    def __init__(self, option_strings: Sequence[str], dest: str, method: StalenessMethod, **kwargs: Any) -> None:
        self.method = method
        super().__init__(option_strings, dest, **kwargs)

    def __call__(
        self,
        parser: argparse.ArgumentParser,
        namespace: argparse.Namespace,
        values: Any,
        option_string: Optional[str] = None,
    ) -> None:
        setattr(namespace, "staleness_threshold", values)
        setattr(namespace, "staleness_method", self.method)


def build_parser() -> argparse.ArgumentParser:
    p = _Parser(
        prog=PROG,
        description=DESCRIPTION,
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p.add_argument("-V", "--version", action="version", version=f"{PROG} {__version__}")
    p.add_argument("-r", dest="read_only", action="store_true", help="Create read-only snapshots")
    p.add_argument("-q", dest="quiet", action="store_true", help="Only log errors to the terminal")
    p.add_argument("-p", dest="postfix", action="store_true", help="Put the label after the timestamp")
    p.add_argument(
        "-E", dest="omitted_is_error", action="store_true",
        help="Exit non-zero when a snapshot is skipped by -t/-T",
    )
    p.add_argument(
        "-b", dest="mirror_base", metavar="DIR",
        help="Store snapshots under DIR/<volume path>",
    )
    p.add_argument(
        "-B", dest="flat_base", metavar="DIR",
        help="Store snapshots directly in DIR",
    )
    p.add_argument(
        "-d", dest="nested_dir", metavar="DIR",
        help="Store snapshots in <volume>/DIR (default: .snapshot)",
    )
    p.add_argument(
        "-c", dest="compat", action="store_true",
        help="Use '-' instead of ':' between time fields",
    )
    p.add_argument(
        "-t", dest="staleness_threshold", metavar="SECONDS", type=int,
        action=_StalenessAction, method=StalenessMethod.MTIME,
        help="Skip unless the volume changed (by mtime) and SECONDS passed since the last snapshot",
    )
    p.add_argument(
        "-T", dest="staleness_threshold", metavar="SECONDS", type=int,
        action=_StalenessAction, method=StalenessMethod.GENERATION,
        help="Skip unless the volume changed (by generation) and SECONDS passed since the last snapshot",
    )
    p.add_argument("volume", help="Mounted btrfs volume or existing snapshot")
    p.add_argument("label", help="Label grouping the rotation set, e.g. hourly")
    p.add_argument("retention_count", metavar="count", type=int, help="Number of snapshots to keep")
    p.set_defaults(staleness_threshold=0, staleness_method=StalenessMethod.MTIME)
    return p


def _directory_mode(args: argparse.Namespace, settings: Settings) -> tuple[DirectoryMode, str]:
    chosen: List[tuple[str, DirectoryMode, str]] = []
    if args.mirror_base is not None:
        chosen.append(("-b", DirectoryMode.MIRRORED, args.mirror_base))
    if args.flat_base is not None:
        chosen.append(("-B", DirectoryMode.FLAT, args.flat_base))
    if args.nested_dir is not None:
        chosen.append(("-d", DirectoryMode.NESTED, args.nested_dir))

    if len(chosen) > 1:
        flags = ", ".join(flag for flag, _, _ in chosen)
        raise ConfigError(f"options {flags} are mutually exclusive")
    if not chosen:
        return DirectoryMode.NESTED, settings.defaults.snapshot_dir
    _, mode, directory = chosen[0]
    if not directory:
        raise ConfigError("snapshot directory must not be empty")
    return mode, directory


def policy_from_args(args: argparse.Namespace, settings: Optional[Settings] = None) -> Policy:
    settings = settings or Settings()
    mode, directory = _directory_mode(args, settings)

    if args.retention_count < 0:
        raise ConfigError(f"count must be >= 0, got {args.retention_count}")
    if args.staleness_threshold < 0:
        raise ConfigError(f"staleness threshold must be >= 0, got {args.staleness_threshold}")
    if not args.label:
        raise ConfigError("label must not be empty")
    if "/" in args.label:
        raise ConfigError(f"label must not contain '/': {args.label}")

    if args.label == VFS_LABEL:
        placement = LabelPlacement.VFS
    elif args.postfix:
        placement = LabelPlacement.POSTFIX
    else:
        placement = LabelPlacement.PREFIX

    return Policy(
        volume=args.volume,
        label=args.label,
        retention_count=args.retention_count,
        read_only=args.read_only,
        placement=placement,
        directory_mode=mode,
        directory=directory,
        delimiter="-" if args.compat else settings.defaults.delimiter,
        staleness_threshold=args.staleness_threshold,
        staleness_method=args.staleness_method,
        omitted_is_error=args.omitted_is_error,
        omitted_exit_code=settings.defaults.omitted_exit_code,
        quiet=args.quiet,
    )


def resolve_policy(argv: Optional[Sequence[str]] = None, settings: Optional[Settings] = None) -> Policy:
    """Parse command line arguments into a ``Policy``.

    Raises ``ConfigError`` for conflicting or malformed arguments; ``-h`` and
    ``-V`` still exit through ``SystemExit(0)`` as argparse does.
    """
    args = build_parser().parse_args(list(argv) if argv is not None else None)
    return policy_from_args(args, settings)
