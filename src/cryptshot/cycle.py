from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional, Protocol

from .config import CryptshotConfig
from .logger import get_logger

LOG = get_logger(__name__)

EX_OK = 0
EX_VOLUME_NOT_FOUND = 33
EX_USAGE = 64
EX_CANTCREAT = 73
EX_CONFIG = 78


class Volume(Protocol):
    def open(self, keyfile: str, device: Path, name: str) -> int:
        ...

    def close(self, name: str) -> int:
        ...

    def mapped_device(self, name: str) -> Path:
        ...


class Mounts(Protocol):
    def mount(self, device: Path, mountpoint: Path) -> int:
        ...

    def unmount(self, mountpoint: Path) -> int:
        ...


class Backup(Protocol):
    def run(self, interval: str) -> int:
        ...


class CycleError(Exception):
    """Raised by a cycle step to end the run with a given exit code."""

    def __init__(self, exit_code: int, message: str) -> None:
        super().__init__(message)
        self.exit_code = exit_code


@dataclass
class RunResult:
    exit_code: int = EX_OK
    message: Optional[str] = None
    backup_exit_code: Optional[int] = None
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None

    @property
    def success(self) -> bool:
        return self.exit_code == EX_OK


class BackupCycle:
    """Runs one open, mount, backup, unmount, close sequence against a volume.

    Each step only runs when the previous one succeeded. Cleanup owed by a
    successful step always runs: a mounted volume is unmounted once the
    backup command returns, and an opened mapping is closed whatever
    happened after it was opened.
    """

    def __init__(self, config: CryptshotConfig, volume: Volume, mounts: Mounts, backup: Backup) -> None:
        self._config = config
        self._volume = volume
        self._mounts = mounts
        self._backup = backup

    def run(self, interval: Optional[str]) -> RunResult:
        result = RunResult()
        try:
            self._check_preconditions(interval)
            self._ensure_mountpoint()
            device = self._resolve_device()
            result.backup_exit_code = self._open_and_run(device, interval or "")
        except CycleError as exc:
            result.exit_code = exc.exit_code
            result.message = str(exc)
        result.completed_at = datetime.now()
        return result

    # Steps -------------------------------------------------------------------
    def _check_preconditions(self, interval: Optional[str]) -> None:
        if not self._config.uuid:
            raise CycleError(EX_CONFIG, "No volume specified.")
        if not self._config.keyfile:
            raise CycleError(EX_CONFIG, "No key file specified.")
        if not self._config.mountpoint:
            raise CycleError(EX_CONFIG, "No mount point specified.")
        if not interval:
            raise CycleError(EX_USAGE, "No interval specified.")

    def _ensure_mountpoint(self) -> None:
        mountpoint = Path(self._config.mountpoint)
        if mountpoint.is_dir():
            return
        LOG.info("Creating mount point %s", mountpoint)
        try:
            mountpoint.mkdir(parents=True)
        except OSError as exc:
            LOG.debug("mkdir %s failed: %s", mountpoint, exc)
            raise CycleError(EX_CANTCREAT, "Failed to create mount point.") from exc

    def _resolve_device(self) -> Path:
        device = self._config.device_path
        if not device.exists():
            raise CycleError(EX_VOLUME_NOT_FOUND, f"Volume {self._config.uuid} not found.")
        return device

    def _open_and_run(self, device: Path, interval: str) -> int:
        name = self._config.mapping_name
        LOG.info("Opening %s as %s", device, name)
        code = self._volume.open(self._config.keyfile, device, name)
        if code != 0:
            raise CycleError(code, f"Failed to open {device} with key {self._config.keyfile}.")

        try:
            return self._mount_and_run(device, self._volume.mapped_device(name), interval)
        finally:
            self._close(name)

    def _mount_and_run(self, device: Path, mapped: Path, interval: str) -> int:
        mountpoint = Path(self._config.mountpoint)
        LOG.info("Mounting %s at %s", mapped, mountpoint)
        code = self._mounts.mount(mapped, mountpoint)
        if code != 0:
            raise CycleError(code, f"Failed to mount {device} at {mountpoint}.")

        try:
            backup_code = self._run_backup(interval)
        finally:
            unmount_code = self._unmount(mountpoint)

        if unmount_code != 0:
            raise CycleError(unmount_code, f"Failed to unmount {mountpoint}.")
        return backup_code

    def _run_backup(self, interval: str) -> int:
        LOG.info("Running backup for interval %s", interval)
        code = self._backup.run(interval)
        if code != 0:
            # Not folded into the run's exit code.
            LOG.warning("Backup command exited with status %s", code)
        return code

    def _unmount(self, mountpoint: Path) -> int:
        LOG.info("Unmounting %s", mountpoint)
        code = self._mounts.unmount(mountpoint)
        if code != 0:
            LOG.warning("Unmount of %s failed with status %s; leaving mount point in place", mountpoint, code)
            return code

        if self._config.remove_mount:
            try:
                mountpoint.rmdir()
            except OSError as exc:
                LOG.warning("Failed to remove mount point %s: %s", mountpoint, exc)
        return code

    def _close(self, name: str) -> None:
        LOG.info("Closing %s", name)
        code = self._volume.close(name)
        if code != 0:
            LOG.warning("Closing %s failed with status %s", name, code)
