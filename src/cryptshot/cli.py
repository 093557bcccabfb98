from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from typing import Callable, Optional, Sequence

from .config import ConfigurationError, CryptshotConfig, load_config
from .cycle import EX_CONFIG, BackupCycle, RunResult
from .logger import configure_logging, get_logger
from .mounts import MountTool
from .runner import BackupCommand
from .volume import LuksVolume

LOG = get_logger(__name__)

ConfigLoader = Callable[[Optional[Path]], CryptshotConfig]


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="cryptshot",
        description="Open and mount a LUKS volume, run a backup, then unmount and close it.",
    )
    parser.add_argument(
        "-c",
        "--config",
        default=os.getenv("CRYPTSHOT_CONFIG"),
        help="Path to a YAML configuration file.",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("CRYPTSHOT_LOG_LEVEL"),
        help="Log level (defaults to the configuration file, then WARNING).",
    )
    # Optional here so that a missing interval exits 64 rather than 2.
    parser.add_argument(
        "interval",
        nargs="?",
        default=None,
        help="Interval passed through to the backup command, e.g. 'daily'.",
    )
    return parser.parse_args(argv)


def build_cycle(config: CryptshotConfig) -> BackupCycle:
    return BackupCycle(
        config=config,
        volume=LuksVolume(cryptsetup=config.tools.cryptsetup),
        mounts=MountTool(mount=config.tools.mount, umount=config.tools.umount),
        backup=BackupCommand(config.backup_command),
    )


def report(result: RunResult) -> None:
    if result.message:
        print(result.message, flush=True)
    if result.success and result.completed_at:
        LOG.info(
            "Cycle completed in %.2fs",
            (result.completed_at - result.started_at).total_seconds(),
        )
    elif not result.success:
        LOG.debug("Cycle ended with exit code %s", result.exit_code)


def main(argv: Optional[Sequence[str]] = None, loader: ConfigLoader = load_config) -> int:
    args = parse_args(argv)
    config_path = Path(args.config).expanduser() if args.config else None

    try:
        config = loader(config_path)
    except ConfigurationError as exc:
        configure_logging(args.log_level or "WARNING")
        print(f"Configuration error: {exc}", flush=True)
        return EX_CONFIG

    configure_logging(args.log_level or config.logging.level)
    result = build_cycle(config).run(args.interval)
    report(result)
    return result.exit_code


if __name__ == "__main__":
    sys.exit(main())
