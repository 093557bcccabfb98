"""Encrypted-volume backup cycle: decrypt, mount, back up, unmount, close."""

from __future__ import annotations

from .config import CryptshotConfig, load_config  # noqa: F401
from .cycle import BackupCycle, RunResult  # noqa: F401
