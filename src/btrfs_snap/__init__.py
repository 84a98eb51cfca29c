"""Policy-driven btrfs snapshot creation and rotation."""

__version__ = "1.7.3"
