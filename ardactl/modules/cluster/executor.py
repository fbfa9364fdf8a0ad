"""Where a node's commands run.

The job runner is written once against this small interface. In a parallel
cohort every process runs its own node's commands locally; in sequential
mode the coordinator drives each node over SSH.
"""
import logging
import os
import shlex
import subprocess
from pathlib import Path
from typing import Optional, Sequence, Union

from ardactl.modules.ssh import CommandResult, SSHClient

logger = logging.getLogger("ardactl.executor")

PathLike = Union[str, Path]


class LocalExecutor:
    """Run commands on this machine."""

    def run(self, argv: Sequence[str], cwd: Optional[PathLike] = None,
            timeout: Optional[float] = None) -> CommandResult:
        logger.debug("Running: %s", shlex.join(argv))
        try:
            result = subprocess.run(
                list(argv),
                cwd=str(cwd) if cwd else None,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                timeout=timeout,
            )
            return CommandResult(result.returncode, result.stdout or "")
        except subprocess.TimeoutExpired:
            return CommandResult(124, f"Command timed out after {timeout} seconds")
        except OSError as e:
            return CommandResult(127, str(e))

    def exists(self, path: PathLike) -> bool:
        return os.path.isfile(path)

    def make_dirs(self, path: PathLike) -> bool:
        try:
            Path(path).mkdir(parents=True, exist_ok=True)
            return True
        except OSError as e:
            logger.warning("Could not create %s: %s", path, e)
            return False


class RemoteExecutor:
    """Run commands on one remote node through an :class:`SSHClient`."""

    def __init__(self, ssh: SSHClient, host: str, probe_timeout: Optional[float] = 30):
        self.ssh = ssh
        self.host = host
        self.probe_timeout = probe_timeout

    def run(self, argv: Sequence[str], cwd: Optional[PathLike] = None,
            timeout: Optional[float] = None) -> CommandResult:
        command = shlex.join(argv)
        if cwd:
            command = f"cd {shlex.quote(str(cwd))} && {command}"
        return self.ssh.execute(self.host, command, timeout=timeout)

    def exists(self, path: PathLike) -> bool:
        result = self.ssh.execute(self.host, f"test -f {shlex.quote(str(path))}", timeout=self.probe_timeout)
        return result.ok

    def make_dirs(self, path: PathLike) -> bool:
        result = self.ssh.execute(self.host, f"mkdir -p {shlex.quote(str(path))}", timeout=self.probe_timeout)
        if not result.ok:
            logger.warning("Could not create %s on %s: %s", path, self.host, result.output.strip(),
                           extra={"node": self.host})
        return result.ok
