"""
Remote execution and file transfer using native OpenSSH with ControlMaster.
"""
import logging
import os
import shutil
import subprocess
import tempfile
import threading
from dataclasses import dataclass
from typing import List, Optional, Set

from ardactl.config import Settings

logger = logging.getLogger("ardactl.ssh")


@dataclass
class CommandResult:
    """Exit status and combined stdout/stderr of one command."""
    returncode: int
    output: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class SSHClient:
    """Run commands on, and fetch files from, named cluster nodes.

    Connections to the same host are multiplexed through an OpenSSH
    ControlMaster socket so that the many short preflight probes don't each
    pay for a fresh handshake.
    """

    def __init__(
        self,
        username: Optional[str] = None,
        key_path: Optional[str] = None,
        port: Optional[int] = None,
        connect_timeout: int = 10,
    ):
        """Initialize the client.

        Args:
            username: Remote user (default: ARDACTL_SSH_USER, else ssh's own default)
            key_path: Path to SSH private key (optional)
            port: SSH port (default: ARDACTL_SSH_PORT or 22)
            connect_timeout: Seconds allowed for the TCP/SSH handshake
        """
        self.username = username if username is not None else Settings.SSH_USER
        key_path = key_path if key_path is not None else Settings.SSH_KEY
        self.key_path = os.path.expanduser(key_path) if key_path else None
        self.port = port if port is not None else Settings.SSH_PORT
        self.connect_timeout = connect_timeout
        self.control_dir = tempfile.mkdtemp(prefix=f"ardactl_ssh_{os.getpid()}_")
        self._hosts: Set[str] = set()
        self._lock = threading.Lock()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def _target(self, host: str) -> str:
        return f"{self.username}@{host}" if self.username else host

    def _options(self, connect_timeout: Optional[int] = None) -> List[str]:
        opts = [
            '-o', 'BatchMode=yes',
            '-o', 'StrictHostKeyChecking=no',
            '-o', 'UserKnownHostsFile=/dev/null',
            '-o', 'LogLevel=ERROR',
            '-o', f'ConnectTimeout={connect_timeout or self.connect_timeout}',
            '-o', 'ServerAliveInterval=5',
            '-o', 'ServerAliveCountMax=3',
            '-o', 'ControlMaster=auto',
            '-o', f'ControlPath={os.path.join(self.control_dir, "%r@%h:%p")}',
            '-o', 'ControlPersist=10m',
        ]
        if self.key_path:
            opts.extend(['-i', self.key_path])
        return opts

    def _run(self, cmd: List[str], timeout: Optional[float]) -> CommandResult:
        try:
            result = subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                timeout=timeout
            )
            return CommandResult(result.returncode, result.stdout or "")
        except subprocess.TimeoutExpired:
            return CommandResult(255, f"Command timed out after {timeout} seconds")
        except OSError as e:
            return CommandResult(255, str(e))

    def execute(self, host: str, command: str, timeout: Optional[float] = 300) -> CommandResult:
        """Execute a shell command on ``host``.

        Args:
            host: Node to run on
            command: Shell command line, already quoted
            timeout: Seconds before the command is abandoned (None waits forever)

        Returns:
            CommandResult; a timeout or launch failure is reported as status 255
        """
        with self._lock:
            self._hosts.add(host)
        cmd = ['ssh', '-T', '-p', str(self.port)] + self._options() + [self._target(host), command]
        logger.debug("ssh %s: %s", host, command)
        return self._run(cmd, timeout)

    def get(self, host: str, remote_path: str, local_path: str, timeout: Optional[float] = 300) -> CommandResult:
        """Copy ``remote_path`` on ``host`` to ``local_path`` with scp."""
        with self._lock:
            self._hosts.add(host)
        cmd = ['scp', '-q', '-P', str(self.port)] + self._options() + [
            f"{self._target(host)}:{remote_path}",
            str(local_path),
        ]
        logger.debug("scp %s:%s -> %s", host, remote_path, local_path)
        return self._run(cmd, timeout)

    def close(self) -> None:
        """Stop the ControlMaster processes and remove their sockets."""
        with self._lock:
            hosts = list(self._hosts)
            self._hosts.clear()
        for host in hosts:
            subprocess.run(
                ['ssh', '-p', str(self.port), '-O', 'exit'] + self._options() + [self._target(host)],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        shutil.rmtree(self.control_dir, ignore_errors=True)
