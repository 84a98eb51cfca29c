from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from .backend import SnapshotBackend
from .logger import get_logger
from .policy import Policy, StalenessMethod
from .snapshot import SnapshotRecord

log = get_logger(__name__)

NO_CHANGES = "no changes"
TOO_RECENT = "too recent"


@dataclass(frozen=True)
class Decision:
    proceed: bool
    reason: Optional[str] = None

    @classmethod
    def go(cls) -> "Decision":
        return cls(True)

    @classmethod
    def skip(cls, reason: str) -> "Decision":
        return cls(False, reason)


def decide(
    policy: Policy,
    snapshots: Sequence[SnapshotRecord],
    backend: SnapshotBackend,
    volume_mtime: int,
    now: int,
) -> Decision:
    """Decide whether a new snapshot is warranted.

    ``snapshots`` must be sorted newest first. Generation numbers are only
    fetched from the backend when the policy compares by generation.
    """
    if not snapshots or policy.staleness_threshold == 0:
        return Decision.go()

    newest = snapshots[0]
    if policy.staleness_method is StalenessMethod.GENERATION:
        newest_id = backend.change_sequence_id(newest.path)
        volume_id = backend.change_sequence_id(policy.volume)
        log.debug("Generation of %s is %d, newest snapshot %s is %d", policy.volume, volume_id, newest.name, newest_id)
        if volume_id <= newest_id:
            return Decision.skip(NO_CHANGES)
    elif newest.modification_time == volume_mtime:
        return Decision.skip(NO_CHANGES)

    if newest.modification_time + policy.staleness_threshold > now:
        return Decision.skip(TOO_RECENT)

    return Decision.go()
