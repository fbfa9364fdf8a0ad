"""Gather every dispatched node's NodeResult on the coordinator."""
import logging
import shlex
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from ardactl.config import Settings
from ardactl.exceptions import ResultFormatError
from .comm import TAG_RESULT, Communicator
from .models import ClusterConfig, NodeResult
from .wire import decode_result, encode_result

logger = logging.getLogger("ardactl.collector")

NO_RESPONSE = "no response"


class ResultCollector:
    """Collect results from the cohort and pull their files to the coordinator."""

    def __init__(self, config: ClusterConfig, ssh=None, coordinator_host: Optional[str] = None):
        """
        Args:
            config: Cluster configuration
            ssh: SSHClient used to pull result files; None disables pulling
            coordinator_host: Node the coordinator runs on; its files are local
        """
        self.config = config
        self.ssh = ssh
        self.coordinator_host = coordinator_host

    @staticmethod
    def send(comm: Communicator, result: NodeResult) -> None:
        """Cohort member side: hand this node's result to rank 0."""
        comm.send(encode_result(result), dest=0, tag=TAG_RESULT)

    def gather(
        self,
        comm: Communicator,
        local_result: Optional[NodeResult],
        plan: Sequence[str],
        timeout: Optional[float] = None,
    ) -> List[NodeResult]:
        """Coordinator side: one result per cohort member.

        Results are appended in receive order: the coordinator's own result
        (if it processed reads) first, then ranks 1..size-1. A member that
        stays silent past ``timeout`` or sends garbage is recorded as failed.

        Args:
            comm: The cohort communicator (rank 0)
            local_result: The coordinator's own result, if any
            plan: Node name per rank, used to name silent members
            timeout: Seconds to wait per member (default: options.result_timeout)
        """
        timeout = self.config.options.result_timeout if timeout is None else timeout
        results: List[NodeResult] = []
        if local_result is not None:
            results.append(local_result)
            logger.info("Coordinator completed: %s", "SUCCESS" if local_result.success else "FAILED")

        for rank in range(1, comm.size):
            expected = plan[rank] if rank < len(plan) else f"rank-{rank}"
            payload = comm.receive(rank, TAG_RESULT, timeout=timeout,
                                   interval=Settings.RESULT_POLL_INTERVAL)
            if payload is None:
                logger.error("%s: no result within %ss", expected, timeout, extra={"node": expected})
                results.append(NodeResult.failure(expected, NO_RESPONSE))
                continue
            try:
                result = decode_result(payload)
            except ResultFormatError as e:
                logger.error("%s: malformed result: %s", expected, e, extra={"node": expected})
                results.append(NodeResult.failure(expected, NO_RESPONSE))
                continue
            results.append(result)
            logger.info("%s: %s (%ds)", result.hostname, "SUCCESS" if result.success else "FAILED",
                        int(result.elapsed_seconds), extra={"node": result.hostname})
        return results

    @property
    def aggregated_dir(self) -> Path:
        return self.config.results_path / "aggregated"

    def pull_files(self, results: Sequence[NodeResult]) -> Dict[str, Dict[str, str]]:
        """Copy successful nodes' files into the coordinator's aggregated dir.

        Returns:
            hostname -> {"result": local path, "abundance": local path} for
            every file now available locally; the coordinator's own files
            are listed in place
        """
        local: Dict[str, Dict[str, str]] = {}
        if not self.config.options.collect_results_to_master:
            return local

        logger.info("=== Collecting Results to Coordinator ===")
        target = self.aggregated_dir
        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning("Failed to create aggregated results directory %s: %s", target, e)
            return local

        timeout = self.config.options.ssh_timeout
        for r in results:
            if not r.success:
                continue
            files = {"result": r.result_file, "abundance": r.abundance_file}
            if r.hostname == self.coordinator_host:
                local[r.hostname] = {k: v for k, v in files.items() if v}
                continue
            if self.ssh is None:
                continue

            logger.info("Collecting results from %s", r.hostname, extra={"node": r.hostname})
            names = {"result": f"{r.hostname}_result.csv", "abundance": f"{r.hostname}_abundance.txt"}
            pulled: Dict[str, str] = {}
            for kind, remote in files.items():
                if not remote:
                    continue
                destination = target / names[kind]
                copy = self.ssh.get(r.hostname, remote, str(destination), timeout=timeout)
                if copy.ok:
                    pulled[kind] = str(destination)
                else:
                    logger.warning("Failed to copy %s from %s: %s", kind, r.hostname, copy.output.strip(),
                                   extra={"node": r.hostname})
            local[r.hostname] = pulled

            if not self.config.options.keep_local_results and pulled:
                removable = [files[kind] for kind in pulled]
                cleanup = self.ssh.execute(
                    r.hostname, "rm -f " + " ".join(shlex.quote(p) for p in removable), timeout=timeout
                )
                if not cleanup.ok:
                    logger.warning("Could not remove local results on %s", r.hostname,
                                   extra={"node": r.hostname})
        return local
