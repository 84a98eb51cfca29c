from __future__ import annotations

from typing import Optional


class SnapError(Exception):
    """Base class for fatal snapshot run errors."""

    def __init__(self, message: str, detail: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = (detail or "").strip() or None

    def __str__(self) -> str:
        if self.detail:
            return f"{self.message}: {self.detail}"
        return self.message


class ConfigError(SnapError):
    """Raised when command line flags or settings conflict or are malformed."""
    pass


class InvalidVolumeError(SnapError):
    """Raised when the target is neither a mounted btrfs volume nor a snapshot."""
    pass


class NameCollisionError(SnapError):
    """Raised when the candidate snapshot path already exists."""
    pass


class BackendError(SnapError):
    """Raised when the snapshot backend returns something unusable."""
    pass


class CreationError(SnapError):
    """Raised when the backend fails to create a snapshot."""
    pass


class DeletionError(SnapError):
    """Raised when the backend fails to delete a snapshot during rotation."""

    def __init__(self, message: str, detail: Optional[str] = None, path: Optional[str] = None) -> None:
        super().__init__(message, detail)
        self.path = path
