from __future__ import annotations

import fnmatch
from datetime import datetime, timedelta, timezone

import pytest

from btrfs_snap.naming import LabelPlacement, name_for

UTC = timezone.utc


def test_prefix_name_and_pattern():
    name, pattern = name_for("daily", LabelPlacement.PREFIX, datetime(2024, 5, 1, 12, 0, 0, tzinfo=UTC))
    assert name == "daily_2024-05-01_12:00:00"
    assert pattern == "daily_????-??-??_??:??:??"
    assert fnmatch.fnmatchcase(name, pattern)


def test_compat_delimiter():
    ts = datetime(2024, 5, 1, 7, 3, 9, tzinfo=UTC)
    name, pattern = name_for("daily", LabelPlacement.PREFIX, ts, delimiter="-")
    assert name == "daily_2024-05-01_07-03-09"
    assert pattern == "daily_????-??-??_??-??-??"


def test_postfix_name():
    name, pattern = name_for("hourly", LabelPlacement.POSTFIX, datetime(2024, 5, 1, 12, 0, 0, tzinfo=UTC))
    assert name == "2024-05-01_12:00:00_hourly"
    assert pattern == "????-??-??_??:??:??_hourly"


def test_prefix_converts_aware_timestamps_to_utc():
    ts = datetime(2024, 5, 1, 14, 30, 0, tzinfo=timezone(timedelta(hours=2)))
    name, _ = name_for("daily", LabelPlacement.PREFIX, ts)
    assert name == "daily_2024-05-01_12:30:00"


def test_vfs_name_uses_utc():
    ts = datetime(2024, 5, 1, 12, 0, 0, tzinfo=UTC)
    name, pattern = name_for("VFS", LabelPlacement.VFS, ts)
    assert name == "@GMT-2024.05.01-12.00.00"
    assert pattern == "@GMT-????.??.??-??.??.??"


def test_vfs_converts_aware_timestamps():
    ts = datetime(2024, 5, 1, 14, 30, 0, tzinfo=timezone(timedelta(hours=2)))
    name, _ = name_for("VFS", LabelPlacement.VFS, ts, delimiter="-")
    assert name == "@GMT-2024.05.01-12.30.00"


def test_label_glob_characters_are_escaped():
    name, pattern = name_for("a*b", LabelPlacement.PREFIX, datetime(2024, 5, 1, tzinfo=UTC))
    assert fnmatch.fnmatchcase(name, pattern)
    assert not fnmatch.fnmatchcase("aXb_2024-05-01_00:00:00", pattern)


def test_pattern_does_not_match_longer_labels():
    _, pattern = name_for("daily", LabelPlacement.PREFIX, datetime(2024, 5, 1, tzinfo=UTC))
    assert not fnmatch.fnmatchcase("daily_extra_2024-05-01_00:00:00", pattern)
    assert not fnmatch.fnmatchcase("daily_2024-05-01_00:00:00.tmp", pattern)


@pytest.mark.parametrize(
    "placement,delimiter",
    [
        (LabelPlacement.PREFIX, ":"),
        (LabelPlacement.PREFIX, "-"),
        (LabelPlacement.POSTFIX, ":"),
        (LabelPlacement.VFS, ":"),
    ],
)
def test_names_sort_chronologically(placement, delimiter):
    start = datetime(2023, 12, 31, 23, 59, 58, tzinfo=UTC)
    steps = [0, 1, 2, 9, 61, 3599, 3600, 86400, 86400 * 40, 86400 * 400]
    names = [name_for("weekly", placement, start + timedelta(seconds=s), delimiter)[0] for s in steps]
    assert names == sorted(names)
    assert len(set(names)) == len(names)


@pytest.mark.parametrize("placement", [LabelPlacement.PREFIX, LabelPlacement.POSTFIX, LabelPlacement.VFS])
def test_names_keep_creation_order_when_dst_ends(new_york_tz, placement):
    # 2024-11-03: New York falls back from 02:00 EDT to 01:00 EST at 06:00Z.
    earlier = datetime(2024, 11, 3, 5, 30, tzinfo=UTC)
    later = datetime(2024, 11, 3, 6, 10, tzinfo=UTC)
    assert earlier.astimezone().hour == 1 and later.astimezone().hour == 1

    first = name_for("hourly", placement, earlier)[0]
    second = name_for("hourly", placement, later)[0]
    assert first < second

    # The same instants as naive local times give the same names.
    assert name_for("hourly", placement, earlier.astimezone().replace(tzinfo=None))[0] == first
    assert name_for("hourly", placement, later.astimezone().replace(tzinfo=None, fold=1))[0] == second


def test_same_second_produces_same_name():
    ts = datetime(2024, 5, 1, 12, 0, 0, 100, tzinfo=UTC)
    later = datetime(2024, 5, 1, 12, 0, 0, 900000, tzinfo=UTC)
    assert name_for("daily", LabelPlacement.PREFIX, ts) == name_for("daily", LabelPlacement.PREFIX, later)


def test_invalid_delimiter():
    with pytest.raises(ValueError):
        name_for("daily", LabelPlacement.PREFIX, datetime(2024, 5, 1, tzinfo=UTC), delimiter="_")


def test_empty_label_rejected():
    with pytest.raises(ValueError):
        name_for("", LabelPlacement.PREFIX, datetime(2024, 5, 1, tzinfo=UTC))
