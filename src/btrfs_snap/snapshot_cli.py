from __future__ import annotations

from datetime import datetime
from typing import Optional

import yaml
from pydantic import ValidationError

from .backend import BtrfsBackend, SnapshotBackend
from .config import Settings, load_settings
from .errors import SnapError
from .engine import run_snapshot
from .logger import configure_logging, get_logger
from .policy import PROG, build_parser, policy_from_args

log = get_logger(__name__)


def main(
    argv: Optional[list[str]] = None,
    backend: Optional[SnapshotBackend] = None,
    settings: Optional[Settings] = None,
    now: Optional[datetime] = None,
) -> int:
    if settings is None:
        try:
            settings = load_settings(None)
        except (ValidationError, yaml.YAMLError, OSError) as e:
            configure_logging(syslog=False)
            log.error("invalid settings: %s", e)
            return 1

    # Errors found while parsing still need somewhere to go.
    configure_logging(settings.logging.level, settings.logging.json_output, quiet=True, syslog=settings.logging.syslog)

    try:
        args = build_parser().parse_args(argv)
        policy = policy_from_args(args, settings)
    except SnapError as e:
        log.error("%s: %s (try '%s -h')", PROG, e, PROG)
        return 1

    configure_logging(
        settings.logging.level,
        settings.logging.json_output,
        quiet=policy.quiet,
        syslog=settings.logging.syslog,
    )

    if backend is None:
        backend = BtrfsBackend(settings.backend.btrfs_bin, mounts_file=settings.backend.mounts_file)

    try:
        res = run_snapshot(policy, backend, now=now)
    except SnapError as e:
        log.error("%s", e)
        return 1
    except Exception:
        log.exception("Snapshot run failed")
        return 1

    if res["skipped"] and policy.omitted_is_error:
        log.warning("No snapshot of %s taken (%s)", policy.volume, res["skip_reason"])
        return policy.omitted_exit_code
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
