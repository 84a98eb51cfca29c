from __future__ import annotations

from typing import TypedDict

from .backend import SnapshotBackend
from .errors import DeletionError
from .logger import get_logger, log_extra
from .policy import Policy
from .snapshot import existing_snapshots


class RotationResult(TypedDict):
    snapshot_dir: str
    keep: int
    kept: list[str]
    planned_remove: list[str]
    removed: list[str]
    dry_run: bool


log = get_logger(__name__)


def rotate_snapshots(
    policy: Policy,
    snapshot_dir: str,
    pattern: str,
    backend: SnapshotBackend,
    dry_run: bool = False,
) -> RotationResult:
    """
    Keep the newest ``policy.retention_count`` snapshots matching ``pattern``.
    The rest are deleted one at a time, newest of the excess first. The first
    failed delete raises ``DeletionError`` and nothing older is touched.
    """
    keep = policy.retention_count
    if keep < 0:
        raise ValueError("keep must be >= 0")

    snaps = existing_snapshots(snapshot_dir, pattern, backend)
    log.debug("Found %d snapshots matching %s in %s", len(snaps), pattern, snapshot_dir)

    kept = snaps[:keep]
    to_remove = snaps[keep:]

    removed: list[str] = []
    for snap in to_remove:
        log.info(
            "Remove snapshot %s%s",
            snap.path,
            " [dry-run]" if dry_run else "",
            extra=log_extra(event="remove", path=snap.path, label=policy.label, dry_run=dry_run),
        )
        if dry_run:
            continue
        result = backend.delete(snap.path)
        if not result.ok:
            raise DeletionError(f"failed to delete snapshot {snap.path}", result.message, path=snap.path)
        removed.append(snap.name)

    return {
        "snapshot_dir": snapshot_dir,
        "keep": keep,
        "kept": [s.name for s in kept],
        "planned_remove": [s.name for s in to_remove],
        "removed": removed,
        "dry_run": dry_run,
    }
