"""Snapshot names that sort chronologically.

Every numeric field is zero padded to a fixed width, so plain string
comparison of two names for the same label orders them by creation time.
Nothing else records which snapshot is newest. Stamps are always UTC; local
wall-clock time repeats an hour when DST ends.
"""

from __future__ import annotations

import glob
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Tuple

__all__ = ["LabelPlacement", "VFS_LABEL", "DELIMITERS", "name_for"]

VFS_LABEL = "VFS"
DELIMITERS = (":", "-")

_VFS_FORMAT = "@GMT-%Y.%m.%d-%H.%M.%S"
_DIGIT_RE = re.compile(r"\d")


class LabelPlacement(str, Enum):
    """Where the label goes in a snapshot name."""
    PREFIX = "prefix"
    POSTFIX = "postfix"
    VFS = "vfs"


def _utc(timestamp: datetime) -> datetime:
    # naive means local time
    if timestamp.tzinfo is None:
        timestamp = timestamp.astimezone()
    return timestamp.astimezone(timezone.utc)


def _stamp(timestamp: datetime, delimiter: str) -> str:
    return _utc(timestamp).strftime(f"%Y-%m-%d_%H{delimiter}%M{delimiter}%S")


def _vfs_stamp(timestamp: datetime) -> str:
    return _utc(timestamp).strftime(_VFS_FORMAT)


def _wildcard(stamp: str) -> str:
    return _DIGIT_RE.sub("?", stamp)


def name_for(
    label: str,
    placement: LabelPlacement,
    timestamp: datetime,
    delimiter: str = ":",
) -> Tuple[str, str]:
    """Return ``(name, pattern)`` for a snapshot taken at ``timestamp``.

    ``pattern`` is an fnmatch-style glob matching every name this label and
    placement can produce. Every name is stamped in UTC; naive timestamps
    are taken as local time and converted. VFS names ignore the label and
    delimiter.
    """
    if placement is LabelPlacement.VFS:
        name = _vfs_stamp(timestamp)
        return name, _wildcard(name)

    if delimiter not in DELIMITERS:
        raise ValueError(f"unsupported delimiter: {delimiter!r}")
    if not label:
        raise ValueError("label must be a non-empty string")
    if "/" in label:
        raise ValueError(f"label must not contain '/': {label!r}")

    stamp = _stamp(timestamp, delimiter)
    escaped = glob.escape(label)
    if placement is LabelPlacement.POSTFIX:
        return f"{stamp}_{label}", f"{_wildcard(stamp)}_{escaped}"
    return f"{label}_{stamp}", f"{escaped}_{_wildcard(stamp)}"
