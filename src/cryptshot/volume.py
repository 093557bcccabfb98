from __future__ import annotations

from pathlib import Path

from .runner import run_tool

MAPPER_ROOT = Path("/dev/mapper")


class LuksVolume:
    """Opens and closes LUKS mappings through cryptsetup."""

    def __init__(self, cryptsetup: str = "cryptsetup", mapper_root: Path = MAPPER_ROOT) -> None:
        self._cryptsetup = cryptsetup
        self._mapper_root = mapper_root

    def open(self, keyfile: str, device: Path, name: str) -> int:
        return run_tool([self._cryptsetup, "luksOpen", "--key-file", keyfile, str(device), name])

    def close(self, name: str) -> int:
        return run_tool([self._cryptsetup, "luksClose", name])

    def mapped_device(self, name: str) -> Path:
        return self._mapper_root / name
