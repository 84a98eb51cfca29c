from __future__ import annotations

import fnmatch
import os
from dataclasses import dataclass
from typing import List

from .backend import SnapshotBackend
from .errors import CreationError, NameCollisionError
from .logger import get_logger, log_extra
from .policy import DirectoryMode, Policy

__all__ = [
    "SnapshotRecord",
    "create_snapshot",
    "ensure_snapshot_dir",
    "existing_snapshots",
    "resolve_snapshot_dir",
]

log = get_logger(__name__)

DEFAULT_SNAPSHOT_DIR = ".snapshot"


@dataclass(frozen=True)
class SnapshotRecord:
    name: str
    path: str
    modification_time: int


def resolve_snapshot_dir(policy: Policy) -> str:
    """Directory holding this policy's snapshots.

    nested:   <volume>/<dir>
    mirrored: <base>/<volume path>
    flat:     <base>
    """
    volume = os.path.normpath(policy.volume)
    if policy.directory_mode is DirectoryMode.MIRRORED:
        base = policy.directory or ""
        rel = os.path.abspath(volume).lstrip(os.sep)
        return os.path.join(base, rel) if rel else os.path.normpath(base)
    if policy.directory_mode is DirectoryMode.FLAT:
        return os.path.normpath(policy.directory or "")
    return os.path.join(volume, policy.directory or DEFAULT_SNAPSHOT_DIR)


def ensure_snapshot_dir(path: str) -> None:
    if not os.path.isdir(path):
        log.info("Creating snapshot directory %s", path)
    os.makedirs(path, exist_ok=True)


def existing_snapshots(snapshot_dir: str, pattern: str, backend: SnapshotBackend) -> List[SnapshotRecord]:
    """Return snapshots in ``snapshot_dir`` matching ``pattern``, newest first.

    Order comes from sorting the names, never from directory iteration order.
    """
    if not os.path.isdir(snapshot_dir):
        return []

    names = sorted(
        (name for name in os.listdir(snapshot_dir) if fnmatch.fnmatchcase(name, pattern)),
        reverse=True,
    )
    records: List[SnapshotRecord] = []
    for name in names:
        path = os.path.join(snapshot_dir, name)
        records.append(SnapshotRecord(name=name, path=path, modification_time=backend.modification_time(path)))
    return records


def create_snapshot(policy: Policy, snapshot_dir: str, name: str, backend: SnapshotBackend) -> str:
    """Snapshot ``policy.volume`` to ``snapshot_dir/name`` and return the new path."""
    destination = os.path.join(snapshot_dir, name)
    if os.path.lexists(destination):
        raise NameCollisionError(f"snapshot {destination} already exists")

    result = backend.create(policy.volume, destination, policy.read_only)
    if not result.ok:
        raise CreationError(f"failed to create snapshot {destination} of {policy.volume}", result.message)

    log.info(
        "Created %ssnapshot %s of %s",
        "read-only " if policy.read_only else "",
        destination,
        policy.volume,
        extra=log_extra(event="create", volume=policy.volume, label=policy.label, path=destination),
    )
    return destination
