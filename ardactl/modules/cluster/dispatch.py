"""Dispatch strategies for one classification run.

A run either launches a parallel cohort (one process per node, rank 0 on the
master acting as coordinator) or, when that is not possible, has the
coordinator walk the ready nodes one at a time over SSH. Both strategies
share the same JobRunner, ResultCollector and ReportGenerator; only the way
each node's job is started differs.
"""
import logging
import os
import shutil
import subprocess
import sys
import time
from pathlib import Path
from typing import Callable, List, Mapping, Optional, Sequence

from ardactl.config import Settings
from ardactl.logging import local_node
from .collector import ResultCollector
from .comm import Communicator
from .distribute import ConfigDistributor
from .executor import LocalExecutor, RemoteExecutor
from .loader import node_file_path, write_node_file
from .models import ClusterConfig, NodeResult, NodeStatus
from .report import ReportGenerator
from .runner import JobRunner

logger = logging.getLogger("ardactl.dispatch")

PARALLEL = "parallel"
SEQUENTIAL = "sequential"


def dispatch_order(config: ClusterConfig, statuses: Sequence[NodeStatus]) -> List[str]:
    """Ready nodes in priority order: master first, then workers as configured."""
    ready = {s.hostname for s in statuses if s.ready}
    return [host for host in config.candidates() if host in ready]


def cohort_plan(config: ClusterConfig, excluded: Sequence[str] = ()) -> List[str]:
    """Node per rank. The master is always rank 0 so it can coordinate."""
    excluded = set(excluded)
    return [config.master] + [
        w for w in config.workers if w in config.reads and w not in excluded
    ]


def finish_run(
    config: ClusterConfig,
    results: Sequence[NodeResult],
    collector: ResultCollector,
    report: ReportGenerator,
) -> int:
    """Pull files, merge abundance and write the report.

    Returns:
        Process exit status: 0 when at least one node succeeded
    """
    pulled = collector.pull_files(results)
    if config.options.collect_results_to_master:
        abundance_files = [
            pulled[r.hostname]["abundance"]
            for r in report.ordered(results)
            if r.success and "abundance" in pulled.get(r.hostname, {})
        ]
    else:
        abundance_files = [r.abundance_file for r in report.ordered(results) if r.success and r.abundance_file]

    merged = report.merge_abundance(abundance_files)
    report.write(results, merged)

    succeeded = sum(1 for r in results if r.success)
    logger.info("=== Run complete: %d/%d node(s) succeeded ===", succeeded, len(results))
    return 0 if succeeded else 1


class SequentialDispatch:
    """Run each ready node's job in turn from this process.

    The node this process runs on is driven locally; every other node
    through SSH. There is no parallelism: wall clock equals the sum of the
    per-node times.
    """

    mode = SEQUENTIAL

    def __init__(self, config: ClusterConfig, ssh, coordinator_host: Optional[str] = None,
                 local_executor=None):
        self.config = config
        self.ssh = ssh
        self.coordinator_host = coordinator_host or local_node()
        self.local_executor = local_executor or LocalExecutor()

    def executor_for(self, hostname: str):
        if hostname == self.coordinator_host:
            return self.local_executor
        return RemoteExecutor(self.ssh, hostname, probe_timeout=self.config.options.ssh_timeout)

    def run(self, nodes: Sequence[str]) -> List[NodeResult]:
        logger.info("Running in sequential mode on %d node(s)", len(nodes))
        results = []
        for hostname in nodes:
            logger.info("Processing node: %s", hostname, extra={"node": hostname})
            results.append(JobRunner(self.config, self.executor_for(hostname)).run(hostname))
        return results

    def execute(self, nodes: Sequence[str], excluded: Optional[Mapping[str, str]] = None) -> int:
        """Run every node, then pull, merge and report.

        ``excluded`` maps nodes that failed preflight to their error.
        """
        results = self.run(nodes)
        collector = ResultCollector(self.config, self.ssh, coordinator_host=self.coordinator_host)
        report = ReportGenerator(self.config, executor=self.local_executor, processes=1,
                                 mode=self.mode, excluded=excluded or {})
        return finish_run(self.config, results, collector, report)


def run_cohort_member(
    comm: Communicator,
    config: Optional[ClusterConfig] = None,
    excluded: Sequence[str] = (),
    ssh=None,
    executor=None,
    clock: Callable[[], float] = time.monotonic,
) -> int:
    """Body of every process in a parallel cohort.

    Rank 0 passes the loaded config; every rank gets it back from the
    distributor. Rank 0 then processes the master's reads (when enabled and
    the master passed preflight), gathers everybody's results and finishes
    the run. Other ranks process their own node's reads and report back.

    Returns:
        Process exit status
    """
    config = ConfigDistributor(comm).distribute(config)
    plan = cohort_plan(config, excluded)
    hostname = plan[comm.rank] if comm.rank < len(plan) else local_node()
    executor = executor or LocalExecutor()
    runner = JobRunner(config, executor, clock=clock)

    if not comm.is_coordinator:
        logger.info("Rank %d processing reads for %s", comm.rank, hostname, extra={"node": hostname})
        ResultCollector.send(comm, runner.run(hostname))
        return 0

    logger.info("=== Cohort of %d process(es): %s ===", comm.size, ", ".join(plan[:comm.size]))
    local_result = None
    if config.options.master_processes_reads and config.master not in excluded:
        local_result = runner.run(config.master)

    collector = ResultCollector(config, ssh, coordinator_host=config.master)
    results = collector.gather(comm, local_result, plan)
    report = ReportGenerator(config, executor=executor, processes=comm.size,
                             mode=PARALLEL, excluded=excluded)
    return finish_run(config, results, collector, report)


class CohortLauncher:
    """Start one ardactl process per node with the MPI launcher."""

    def __init__(self, config: ClusterConfig, config_path, launcher: Optional[str] = None):
        self.config = config
        self.config_path = Path(config_path).expanduser().resolve()
        self.launcher = launcher or Settings.MPIRUN

    def available(self) -> bool:
        return shutil.which(self.launcher) is not None

    def command(self, plan: Sequence[str], node_file: Path, excluded: Sequence[str] = (),
                verbose: bool = False) -> List[str]:
        argv = [
            self.launcher,
            "--hostfile", str(node_file),
            "-np", str(len(plan)),
            "--wdir", str(self.config.tool_dir),
            "--map-by", "node",
            *Settings.mpi_args(),
            "-x", "PATH",
            "-x", "LD_LIBRARY_PATH",
            sys.executable, "-m", "ardactl", "run",
            "--worker",
            "-c", str(self.config_path),
        ]
        for host in excluded:
            argv += ["--exclude", host]
        if verbose:
            argv.append("--verbose")
        return argv

    def launch(self, excluded: Sequence[str] = (), verbose: bool = False) -> int:
        plan = cohort_plan(self.config, excluded)
        try:
            node_file = write_node_file(plan, node_file_path(self.config))
        except OSError as e:
            logger.error("Could not write node list: %s", e)
            return 1
        argv = self.command(plan, node_file, excluded, verbose)
        logger.info("Launching cohort of %d process(es) with %s", len(plan), self.launcher)
        logger.debug("Launch command: %s", " ".join(argv))
        try:
            completed = subprocess.run(argv, cwd=str(self.config.tool_dir), env=os.environ.copy())
        except OSError as e:
            logger.error("Could not start %s: %s", self.launcher, e)
            return 1
        if completed.returncode != 0:
            logger.error("Cohort exited with status %d", completed.returncode)
        return completed.returncode
