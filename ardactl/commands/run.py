"""Classification run command.

Without ``--worker`` this is the top-level coordinator: it loads the cluster
file, runs preflight checks and then either launches the parallel cohort or
processes the ready nodes sequentially. With ``--worker`` (set only by the
launcher) it is one member of the cohort.
"""
import logging
from enum import Enum
from pathlib import Path
from typing import List, Optional

import typer

from ardactl.exceptions import ArdactlError, ConfigError, DistributionError, NoReadyNodesError
from ardactl.logging import setup_logging, shutdown_logging
from ardactl.modules.cluster import (
    CohortLauncher,
    ClusterConfig,
    NodeHealthChecker,
    SequentialDispatch,
    cohort_plan,
    dispatch_order,
    load_config,
    run_cohort_member,
)
from ardactl.modules.cluster.comm import MPICommunicator
from ardactl.modules.cluster.dispatch import PARALLEL, SEQUENTIAL
from ardactl.modules.ssh import SSHClient

logger = logging.getLogger("ardactl.run")


class Mode(str, Enum):
    parallel = PARALLEL
    sequential = SEQUENTIAL


def fail(message) -> None:
    typer.secho(f"Error: {message}", fg=typer.colors.RED, err=True)
    raise typer.Exit(1)


def _start_logging(config: ClusterConfig, level, node: Optional[str] = None) -> None:
    try:
        setup_logging(level, config.log_path, config.log.show_progress, node=node)
    except OSError as e:
        setup_logging(level, None, config.log.show_progress, node=node)
        logger.warning("Could not open log file %s: %s", config.log_path, e)


def print_summary(config: ClusterConfig) -> None:
    typer.echo(f"Master:   {config.master}")
    typer.echo(f"Workers:  {', '.join(config.workers)}")
    typer.echo(f"Tool dir: {config.tool_dir}")
    typer.echo(f"Database: {config.database}")
    typer.echo(f"Results:  {config.results_path}")


def print_preflight(config: ClusterConfig, statuses) -> None:
    typer.echo("\n=== Pre-flight Check Results ===")
    print_summary(config)
    typer.echo("")
    for s in statuses:
        mark = typer.style("READY", fg=typer.colors.GREEN) if s.ready else typer.style("FAILED", fg=typer.colors.RED)
        line = f"  {s.hostname:<20} {mark}"
        if s.disk_free_gb is not None:
            line += f"  disk: {s.disk_free_gb}G free"
        if s.error_message:
            line += f"  ({s.error_message})"
        typer.echo(line)
    ready = sum(1 for s in statuses if s.ready)
    typer.echo(f"\nReady nodes: {ready}/{len(statuses)}")


def coordinate(config: ClusterConfig, config_path: Path, preflight: bool, mode: Mode, verbose: bool) -> int:
    """Preflight, then dispatch. Returns the run's exit status."""
    with SSHClient() as ssh:
        statuses = NodeHealthChecker(config, ssh).check_all()
        ready = dispatch_order(config, statuses)
        failed = {s.hostname: s.error_message for s in statuses if not s.ready}
        excluded = list(failed)

        if preflight:
            print_preflight(config, statuses)
            return 0 if ready else 1

        if not ready:
            raise NoReadyNodesError("Pre-flight checks failed on all nodes")
        logger.info("Starting classification on %d node(s)", len(ready))
        if excluded:
            logger.warning("Excluded by preflight: %s", ", ".join(excluded))

        if mode == Mode.parallel:
            launcher = CohortLauncher(config, config_path)
            plan = cohort_plan(config, excluded)
            if len(plan) < 2:
                logger.info("Only one process needed, running sequentially")
            elif not launcher.available():
                logger.warning("%s not found on PATH, falling back to sequential mode", launcher.launcher)
            else:
                return launcher.launch(excluded, verbose)

        return SequentialDispatch(config, ssh).execute(ready, failed)


def run_worker(config_path: Path, excluded: List[str], level) -> int:
    """One cohort member. Only rank 0 reads the cluster file."""
    try:
        comm = MPICommunicator()
    except ImportError as e:
        fail(f"--worker needs mpi4py ({e})")

    config = None
    ssh = None
    if comm.is_coordinator:
        try:
            config = load_config(config_path)
            _start_logging(config, level)
        except ConfigError as e:
            # The distributor aborts the cohort when the root has nothing to send
            logger.error("%s", e)
        ssh = SSHClient()
    try:
        return run_cohort_member(comm, config, excluded, ssh=ssh)
    except DistributionError:
        return 1
    finally:
        if ssh is not None:
            ssh.close()


def run(
    ctx: typer.Context,
    config: Path = typer.Option(..., "--config", "-c", help="Cluster configuration file (YAML)"),
    preflight: bool = typer.Option(False, "--preflight", "-p", help="Run pre-flight checks only"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose (debug) output"),
    mode: Mode = typer.Option(Mode.parallel, "--mode", help="Dispatch strategy"),
    worker: bool = typer.Option(False, "--worker", hidden=True, help="Run as a cohort member"),
    exclude: Optional[List[str]] = typer.Option(None, "--exclude", hidden=True,
                                                help="Node that failed preflight"),
):
    """Check the cluster, run classification on every ready node and report."""
    debug = bool(ctx.obj and ctx.obj.get("debug"))
    excluded = list(exclude or [])

    if worker:
        level = logging.DEBUG if verbose or debug else logging.INFO
        setup_logging(level)
        try:
            code = run_worker(config, excluded, level)
        finally:
            shutdown_logging()
        raise typer.Exit(code)

    try:
        cluster = load_config(config)
    except ConfigError as e:
        fail(e)

    level = logging.DEBUG if verbose or debug else cluster.log.level
    _start_logging(cluster, level)
    try:
        code = coordinate(cluster, config, preflight, mode, verbose or debug)
    except ArdactlError as e:
        logger.error("%s", e)
        fail(e)
    finally:
        shutdown_logging()
    raise typer.Exit(code)
