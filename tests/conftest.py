from __future__ import annotations

import logging
import os
import time
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

import pytest

from btrfs_snap.backend import BackendResult
from btrfs_snap.config import LoggingConfig, Settings


class FakeBackend:
    """In-memory stand-in for btrfs that works on plain directories."""

    def __init__(self, valid: bool = True) -> None:
        self.valid = valid
        self.calls: List[Tuple[object, ...]] = []
        self.fail_create: Optional[str] = None
        self.fail_delete: Set[str] = set()
        self.generations: Dict[str, int] = {}
        self.clock: Optional[int] = None

    def create(self, source: str, destination: str, read_only: bool) -> BackendResult:
        self.calls.append(("create", source, destination, read_only))
        if self.fail_create:
            return BackendResult(False, self.fail_create)
        os.mkdir(destination)
        st = os.stat(source)
        os.utime(destination, (st.st_atime, st.st_mtime))
        self.generations[destination] = self.generations.get(source, 0)
        return BackendResult(True, f"Create a snapshot of '{source}' in '{destination}'")

    def delete(self, path: str) -> BackendResult:
        self.calls.append(("delete", path))
        if path in self.fail_delete:
            return BackendResult(False, f"ERROR: cannot delete '{path}': Operation not permitted")
        os.rmdir(path)
        return BackendResult(True, f"Delete subvolume (no-commit): '{path}'")

    def modification_time(self, path: str) -> int:
        return int(os.stat(path).st_mtime)

    def change_sequence_id(self, path: str) -> int:
        self.calls.append(("generation", path))
        return self.generations.get(path, 0)

    def is_valid_volume(self, path: str) -> bool:
        self.calls.append(("validate", path))
        return self.valid and os.path.isdir(path)

    def touch(self, path: str) -> None:
        self.calls.append(("touch", path))
        if self.clock is None:
            os.utime(path, None)
        else:
            os.utime(path, (self.clock, self.clock))

    def deleted(self) -> List[str]:
        return [str(c[1]) for c in self.calls if c[0] == "delete"]


def make_snapshot_dirs(base: Path, names: List[str], mtime: Optional[int] = None) -> List[Path]:
    base.mkdir(parents=True, exist_ok=True)
    paths = []
    for name in names:
        p = base / name
        p.mkdir()
        if mtime is not None:
            os.utime(p, (mtime, mtime))
        paths.append(p)
    return paths


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def volume(tmp_path: Path) -> Path:
    vol = tmp_path / "data"
    vol.mkdir()
    return vol


@pytest.fixture
def quiet_settings() -> Settings:
    """Settings that keep test runs away from the host syslog.

    JSON output keeps long messages on one line for assertions.
    """
    return Settings(logging=LoggingConfig(syslog=False, json_output=True))


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)


@pytest.fixture
def new_york_tz():
    """Run with local time in America/New_York, where DST ends on 2024-11-03."""
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset is not available")
    old = os.environ.get("TZ")
    os.environ["TZ"] = "America/New_York"
    time.tzset()
    try:
        if time.timezone != 5 * 3600:
            pytest.skip("America/New_York is not in the tz database")
        yield
    finally:
        if old is None:
            os.environ.pop("TZ", None)
        else:
            os.environ["TZ"] = old
        time.tzset()
