from __future__ import annotations

from pathlib import Path

from .runner import run_tool


class MountTool:
    def __init__(self, mount: str = "mount", umount: str = "umount") -> None:
        self._mount = mount
        self._umount = umount

    def mount(self, device: Path, mountpoint: Path) -> int:
        return run_tool([self._mount, str(device), str(mountpoint)])

    def unmount(self, mountpoint: Path) -> int:
        return run_tool([self._umount, str(mountpoint)])
