"""One snapshot run: validate, decide, create, rotate.

Each run is stateless. The snapshot directory listing is read once before
creation for the staleness check and once after it for rotation.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional, TypedDict

from .backend import SnapshotBackend
from .errors import InvalidVolumeError
from .logger import get_logger, log_extra
from .naming import name_for
from .policy import Policy
from .prune import rotate_snapshots
from .snapshot import create_snapshot, ensure_snapshot_dir, existing_snapshots, resolve_snapshot_dir
from .staleness import decide

log = get_logger(__name__)


class RunResult(TypedDict):
    ok: bool
    volume: str
    snapshot_dir: str
    created: Optional[str]
    skipped: bool
    skip_reason: Optional[str]
    kept: list[str]
    removed: list[str]


def run_snapshot(policy: Policy, backend: SnapshotBackend, now: Optional[datetime] = None) -> RunResult:
    """Take a snapshot if the policy allows it, then rotate old ones.

    Raises a ``SnapError`` subclass on the first failure.
    """
    if not backend.is_valid_volume(policy.volume):
        raise InvalidVolumeError(f"{policy.volume} is not a mounted btrfs volume or an existing snapshot")

    snapshot_dir = resolve_snapshot_dir(policy)
    ensure_snapshot_dir(snapshot_dir)

    now = now or datetime.now().astimezone()
    name, pattern = name_for(policy.label, policy.placement, now, policy.delimiter)

    snaps = existing_snapshots(snapshot_dir, pattern, backend)
    decision = decide(
        policy,
        snaps,
        backend,
        volume_mtime=backend.modification_time(policy.volume),
        now=int(now.timestamp()),
    )
    if not decision.proceed:
        log.info(
            "Snapshot of %s with label %s skipped: %s",
            policy.volume,
            policy.label,
            decision.reason,
            extra=log_extra(event="skip", volume=policy.volume, label=policy.label, reason=decision.reason),
        )
        return {
            "ok": True,
            "volume": policy.volume,
            "snapshot_dir": snapshot_dir,
            "created": None,
            "skipped": True,
            "skip_reason": decision.reason,
            "kept": [s.name for s in snaps],
            "removed": [],
        }

    # The snapshot root inherits the volume's mtime; bump it so the next
    # run's "no changes" comparison sees this snapshot as current.
    backend.touch(policy.volume)
    created = create_snapshot(policy, snapshot_dir, name, backend)

    rotation = rotate_snapshots(policy, snapshot_dir, pattern, backend)
    if rotation["removed"]:
        log.info(
            "Removed %d old snapshot(s) with label %s",
            len(rotation["removed"]),
            policy.label,
            extra=log_extra(event="rotate", volume=policy.volume, label=policy.label, removed=rotation["removed"]),
        )

    return {
        "ok": True,
        "volume": policy.volume,
        "snapshot_dir": snapshot_dir,
        "created": created,
        "skipped": False,
        "skip_reason": None,
        "kept": rotation["kept"],
        "removed": rotation["removed"],
    }
