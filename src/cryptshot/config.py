from __future__ import annotations

import shlex
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_BACKUP_COMMAND = "/usr/bin/rsnapshot"
DEFAULT_DEVICE_ROOT = Path("/dev/disk/by-uuid")
DEFAULT_MAPPING_PREFIX = "crypt-"


class ConfigurationError(Exception):
    """Raised when the cryptshot configuration cannot be loaded."""


class ToolsConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    cryptsetup: str = "cryptsetup"
    mount: str = "mount"
    umount: str = "umount"


class LoggingConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    level: str = "WARNING"

    @field_validator("level")
    @classmethod
    def _normalise_level(cls, value: str) -> str:
        return value.upper()


class CryptshotConfig(BaseModel):
    """Settings for one decrypt-mount-backup-unmount-close cycle.

    Required values (uuid, keyfile, mountpoint) may be left empty here; the
    cycle checks them before touching the system so that each gets its own
    diagnostic.
    """

    model_config = ConfigDict(frozen=True)

    uuid: str = ""
    keyfile: str = ""
    mountpoint: str = ""
    remove_mount: bool = True
    backup_command: List[str] = Field(default_factory=lambda: [DEFAULT_BACKUP_COMMAND])
    device_root: Path = DEFAULT_DEVICE_ROOT
    mapping_prefix: str = DEFAULT_MAPPING_PREFIX
    tools: ToolsConfig = ToolsConfig()
    logging: LoggingConfig = LoggingConfig()

    @model_validator(mode="before")
    @classmethod
    def _default_mountpoint(cls, values: Any) -> Any:
        if isinstance(values, dict) and values.get("mountpoint") is None and values.get("uuid"):
            values = dict(values)
            values["mountpoint"] = f"/mnt/{values['uuid']}"
        return values

    @field_validator("uuid", "keyfile", "mountpoint", mode="before")
    @classmethod
    def _coerce_empty(cls, value: Any) -> Any:
        if value is None:
            return ""
        return str(value)

    @field_validator("remove_mount", mode="before")
    @classmethod
    def _nonzero_removes(cls, value: Any) -> Any:
        if isinstance(value, int):
            return value != 0
        return value

    @field_validator("backup_command", mode="before")
    @classmethod
    def _split_command(cls, value: Any) -> Any:
        if isinstance(value, str):
            return shlex.split(value)
        return value

    @field_validator("backup_command")
    @classmethod
    def _require_command(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("backup_command must name an executable.")
        return value

    @field_validator("device_root")
    @classmethod
    def _expand_device_root(cls, value: Path) -> Path:
        return value.expanduser()

    @property
    def mapping_name(self) -> str:
        return f"{self.mapping_prefix}{self.uuid}"

    @property
    def device_path(self) -> Path:
        return self.device_root / self.uuid


def load_config(path: Optional[Path] = None) -> CryptshotConfig:
    """Build the configuration from an optional YAML file.

    Without a path every setting takes its default value.
    """
    raw: Dict[str, Any] = {}
    if path is not None:
        raw = _read_yaml(path)

    try:
        return CryptshotConfig.model_validate(raw)
    except Exception as exc:  # noqa: BLE001
        raise ConfigurationError(str(exc)) from exc


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")

    try:
        with path.open("r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Unable to read {path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigurationError(f"Configuration file {path} must contain a mapping.")
    return raw
