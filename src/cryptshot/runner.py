from __future__ import annotations

import shlex
import subprocess
from typing import List, Sequence

from .logger import get_logger

LOG = get_logger(__name__)

# Return code a shell reports for a command it cannot execute.
EX_NOT_FOUND = 127
EX_SIGNAL_BASE = 128


def run_tool(cmd: Sequence[str]) -> int:
    """Run an external command to completion and return its exit status.

    Standard streams are inherited so the tool's own output reaches the
    operator. A command that cannot be started is reported as 127.
    """
    LOG.debug("Running %s", shlex.join(cmd))
    try:
        completed = subprocess.run(list(cmd), check=False)
    except OSError as exc:
        LOG.error("Unable to execute %s: %s", cmd[0], exc)
        return EX_NOT_FOUND
    if completed.returncode < 0:
        # Killed by a signal; report it the way a shell does.
        return EX_SIGNAL_BASE - completed.returncode
    return completed.returncode


class BackupCommand:
    """The external backup program, invoked with the interval as last argument."""

    def __init__(self, command: Sequence[str]) -> None:
        if not command:
            raise ValueError("Backup command must name an executable.")
        self._command: List[str] = list(command)

    @property
    def command(self) -> List[str]:
        return list(self._command)

    def run(self, interval: str) -> int:
        return run_tool([*self._command, interval])
