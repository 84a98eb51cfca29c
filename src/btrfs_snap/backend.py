"""Snapshot primitives.

The decision and rotation logic only ever talks to a ``SnapshotBackend``.
``BtrfsBackend`` implements it by running the ``btrfs`` command line tool.
"""

from __future__ import annotations

import os
import re
import subprocess
from typing import List, NamedTuple, Optional, Protocol

from .errors import BackendError
from .logger import get_logger

log = get_logger(__name__)

# Far beyond any real generation, so find-new prints only the marker line.
FIND_NEW_GENERATION = "9999999"
_TRANSID_RE = re.compile(r"transid marker was (\d+)")


class BackendResult(NamedTuple):
    ok: bool
    message: str = ""


class SnapshotBackend(Protocol):
    def create(self, source: str, destination: str, read_only: bool) -> BackendResult: ...

    def delete(self, path: str) -> BackendResult: ...

    def modification_time(self, path: str) -> int: ...

    def change_sequence_id(self, path: str) -> int: ...

    def is_valid_volume(self, path: str) -> bool: ...

    def touch(self, path: str) -> None: ...


class CommandRunner:
    """Run an external command and capture its output."""

    def run(self, args: List[str]) -> subprocess.CompletedProcess[str]:
        log.debug("Running: %s", " ".join(args))
        return subprocess.run(args, capture_output=True, text=True, check=False)


def _output(proc: subprocess.CompletedProcess[str]) -> str:
    return "\n".join(part.strip() for part in (proc.stdout, proc.stderr) if part and part.strip())


def parse_transid(output: str) -> int:
    """Extract the generation number from ``btrfs subvolume find-new`` output."""
    match = _TRANSID_RE.search(output)
    if not match:
        raise BackendError("could not read generation from btrfs output", output)
    return int(match.group(1))


def _unescape_mount_field(field: str) -> str:
    # /proc/mounts escapes whitespace and backslashes as octal.
    return re.sub(r"\\([0-7]{3})", lambda m: chr(int(m.group(1), 8)), field)


class BtrfsBackend:
    """``SnapshotBackend`` backed by the btrfs-progs command line tool."""

    def __init__(
        self,
        btrfs_bin: str = "btrfs",
        runner: Optional[CommandRunner] = None,
        mounts_file: str = "/proc/self/mounts",
    ) -> None:
        self.btrfs_bin = btrfs_bin
        self.runner = runner or CommandRunner()
        self.mounts_file = mounts_file

    def _run(self, *args: str) -> subprocess.CompletedProcess[str] | BackendResult:
        try:
            return self.runner.run([self.btrfs_bin, *args])
        except FileNotFoundError:
            return BackendResult(False, f"{self.btrfs_bin}: command not found")
        except OSError as e:
            return BackendResult(False, f"{self.btrfs_bin}: {e}")

    def _result(self, *args: str) -> BackendResult:
        proc = self._run(*args)
        if isinstance(proc, BackendResult):
            return proc
        return BackendResult(proc.returncode == 0, _output(proc))

    def create(self, source: str, destination: str, read_only: bool) -> BackendResult:
        args = ["subvolume", "snapshot"]
        if read_only:
            args.append("-r")
        args.extend([source, destination])
        return self._result(*args)

    def delete(self, path: str) -> BackendResult:
        return self._result("subvolume", "delete", path)

    def modification_time(self, path: str) -> int:
        return int(os.stat(path).st_mtime)

    def change_sequence_id(self, path: str) -> int:
        proc = self._run("subvolume", "find-new", path, FIND_NEW_GENERATION)
        if isinstance(proc, BackendResult):
            raise BackendError(f"could not read generation of {path}", proc.message)
        if proc.returncode != 0:
            raise BackendError(f"could not read generation of {path}", _output(proc))
        return parse_transid(proc.stdout)

    def _is_btrfs_mountpoint(self, path: str) -> bool:
        target = os.path.realpath(path)
        try:
            with open(self.mounts_file, "r", encoding="utf-8") as f:
                lines = f.readlines()
        except OSError:
            return False
        for line in lines:
            fields = line.split()
            if len(fields) < 3:
                continue
            if fields[2] == "btrfs" and _unescape_mount_field(fields[1]) == target:
                return True
        return False

    def is_valid_volume(self, path: str) -> bool:
        if not os.path.isdir(path):
            return False
        if self._is_btrfs_mountpoint(path):
            return True
        # Not a mountpoint; still fine if it is an existing subvolume or snapshot.
        return self._result("subvolume", "show", path).ok

    def touch(self, path: str) -> None:
        os.utime(path, None)
