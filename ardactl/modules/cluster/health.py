"""Preflight readiness checks run against every candidate node."""
import logging
import shlex
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, List, Optional

from .models import ClusterConfig, NodeStatus
from .toolchain import Toolchain

logger = logging.getLogger("ardactl.health")

DISK_WARN_GB = 1


class NodeHealthChecker:
    """Probe nodes over SSH before any work is dispatched to them.

    Checks run in a fixed order and stop at the first failure for that node:
    liveness, database layout, read files, classify binary. Free disk space
    is checked last and only ever produces a warning.
    """

    def __init__(self, config: ClusterConfig, ssh, toolchain: Optional[Toolchain] = None,
                 max_workers: int = 8):
        """
        Args:
            config: Validated cluster configuration
            ssh: Object with ``execute(host, command, timeout)`` (an SSHClient)
            toolchain: Used to locate the classify binary
            max_workers: Nodes probed concurrently
        """
        self.config = config
        self.ssh = ssh
        self.toolchain = toolchain or Toolchain(config)
        self.max_workers = max_workers
        self.timeout = config.options.ssh_timeout

    def _probe(self, hostname: str, command: str, token: str) -> bool:
        result = self.ssh.execute(hostname, f"{command} && echo {token}", timeout=self.timeout)
        return result.ok and token in result.output

    def _fail(self, status: NodeStatus, message: str) -> NodeStatus:
        status.error_message = message
        logger.error("%s: %s", status.hostname, message, extra={"node": status.hostname})
        return status

    def check_node(self, hostname: str) -> NodeStatus:
        """Run every probe against ``hostname``; never raises for node problems."""
        status = NodeStatus(hostname=hostname)
        log_extra = {"node": hostname}
        logger.info("Checking node: %s", hostname, extra=log_extra)

        result = self.ssh.execute(hostname, "echo OK", timeout=self.timeout)
        if not result.ok or "OK" not in result.output:
            return self._fail(status, f"Node not reachable: {result.output.strip()}")
        status.reachable = True
        logger.debug("%s: SSH connection OK", hostname, extra=log_extra)

        database = str(self.config.database)
        db_check = " && ".join(
            f"test -d {shlex.quote(path)}"
            for path in (database, f"{database}/Custom", f"{database}/taxonomy")
        )
        if not self._probe(hostname, db_check, "DB_OK"):
            return self._fail(status, f"Database not found or incomplete at {database}")
        status.database_ok = True
        logger.debug("%s: Database OK", hostname, extra=log_extra)

        reads = self.config.reads_for(hostname)
        if not reads:
            return self._fail(status, "no reads configured")
        for read_file in reads:
            if not self._probe(hostname, f"test -f {shlex.quote(read_file)}", "READ_OK"):
                return self._fail(status, f"Read file not found: {read_file}")
        status.reads_ok = True
        logger.debug("%s: Read files OK", hostname, extra=log_extra)

        binary = self.toolchain.binary
        if not self._probe(hostname, f"test -x {shlex.quote(binary)}", "BIN_OK"):
            return self._fail(status, f"Classify binary not found or not executable at {binary}")
        status.binary_ok = True
        logger.debug("%s: Binary OK", hostname, extra=log_extra)

        self._check_disk(status)
        logger.info("%s: All checks passed", hostname, extra=log_extra)
        return status

    def _check_disk(self, status: NodeStatus) -> None:
        hostname = status.hostname
        disk_check = (
            f"df -BG {shlex.quote(str(self.config.tool_dir))}"
            " | tail -1 | awk '{print $4}' | tr -d 'G'"
        )
        result = self.ssh.execute(hostname, disk_check, timeout=self.timeout)
        try:
            free_gb = int(result.output.strip()) if result.ok else None
        except ValueError:
            free_gb = None

        if free_gb is None:
            logger.warning("%s: Could not determine free disk space", hostname, extra={"node": hostname})
            return
        status.disk_free_gb = free_gb
        status.disk_ok = free_gb >= DISK_WARN_GB
        if not status.disk_ok:
            logger.warning("%s: Low disk space (%dG free, < %dG)", hostname, free_gb, DISK_WARN_GB,
                           extra={"node": hostname})

    def check_all(self, hostnames: Optional[Iterable[str]] = None) -> List[NodeStatus]:
        """Check nodes concurrently; statuses come back in input order."""
        hostnames = list(self.config.candidates() if hostnames is None else hostnames)
        if not hostnames:
            return []
        logger.info("=== Running Pre-flight Checks on %d node(s) ===", len(hostnames))
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(hostnames))) as pool:
            statuses = list(pool.map(self.check_node, hostnames))

        ready = [s for s in statuses if s.ready]
        logger.info("=== Pre-flight Summary ===")
        for s in statuses:
            logger.info("  %s: %s", s.hostname, "READY" if s.ready else "FAILED")
        logger.info("Ready nodes: %d/%d", len(ready), len(statuses))
        return statuses
