from __future__ import annotations

import os
from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from .logger import get_logger

log = get_logger(__name__)


class DefaultsConfig(BaseModel):
    """Fallbacks used when the command line does not say otherwise."""
    snapshot_dir: str = ".snapshot"
    delimiter: Literal[":", "-"] = ":"
    omitted_exit_code: int = Field(default=1, ge=1, le=255)


class BackendConfig(BaseModel):
    btrfs_bin: str = "btrfs"
    mounts_file: str = "/proc/self/mounts"


class LoggingConfig(BaseModel):
    level: str = "INFO"
    json_output: bool = False
    syslog: bool = True


class Settings(BaseModel):
    defaults: DefaultsConfig = Field(default_factory=DefaultsConfig)
    backend: BackendConfig = Field(default_factory=BackendConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def _find_settings_path(explicit: Optional[str]) -> Optional[Path]:
    candidates = []
    if explicit:
        candidates.append(Path(explicit))
    env = os.getenv("BTRFS_SNAP_CONFIG")
    if env:
        candidates.append(Path(env))
    candidates.extend([
        Path("btrfs-snap.yaml"),
        Path("/etc/btrfs-snap.yaml"),
    ])
    for p in candidates:
        if p and p.exists() and p.is_file():
            return p
    return None


def _apply_env_overrides(s: Settings) -> Settings:
    if btrfs_bin := os.getenv("BTRFS_SNAP_BTRFS_BIN"):
        s.backend.btrfs_bin = btrfs_bin
    if level := os.getenv("BTRFS_SNAP_LOG_LEVEL"):
        s.logging.level = level
    return s


def load_settings(path: Optional[str] = None) -> Settings:
    p = _find_settings_path(path)
    if not p:
        log.debug("No settings file found; using defaults")
        return _apply_env_overrides(Settings())

    with open(p, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    try:
        s = Settings(**raw)
    except ValidationError as e:
        log.error("Settings validation failed: %s", e)
        raise
    return _apply_env_overrides(s)
