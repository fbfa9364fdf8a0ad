from pathlib import Path
from typing import Optional

import typer

from ardactl.exceptions import ConfigError
from ardactl.modules.cluster import cohort_plan, load_config, node_file_path, write_node_file
from ardactl.modules.cluster.toolchain import Toolchain


def _load(config: Path):
    try:
        return load_config(config)
    except ConfigError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)


def validate(
    config: Path = typer.Option(..., "--config", "-c", help="Cluster configuration file (YAML)"),
):
    """Validate a cluster configuration file without contacting any node."""
    typer.echo(f"🔍 Validating cluster config: {config}")
    cluster = _load(config)

    typer.echo(f"Master:   {cluster.master}")
    typer.echo(f"Workers:  {', '.join(cluster.workers)}")
    typer.echo(f"Tool dir: {cluster.tool_dir}")
    typer.echo(f"Database: {cluster.database}")
    typer.echo(f"Results:  {cluster.results_path}")
    typer.echo(f"Log file: {cluster.log_path}")

    typer.echo("\nReads:")
    for host in cluster.nodes:
        reads = cluster.reads_for(host)
        if not reads:
            typer.echo(f"  {host}: (none)")
            continue
        mode = "paired-end" if cluster.is_paired(host) else "single-end"
        typer.echo(f"  {host}: {mode}: {', '.join(reads)}")

    toolchain = Toolchain(cluster)
    flags = toolchain.classify(["<reads>"], "<result>")[6:]
    typer.echo(f"\nClassify options: {' '.join(flags)}")

    options = cluster.options
    retries = options.max_retries if options.retry_failed_nodes else 0
    typer.echo(f"Retries per node: {retries}")
    typer.echo(f"Master processes reads: {'yes' if options.master_processes_reads else 'no'}")
    typer.secho("✅ Configuration is valid", fg=typer.colors.GREEN)


def nodefile(
    config: Path = typer.Option(..., "--config", "-c", help="Cluster configuration file (YAML)"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Where to write the node list"),
):
    """Write the node list used to launch the parallel cohort."""
    cluster = _load(config)
    try:
        path = write_node_file(cohort_plan(cluster), output or node_file_path(cluster))
    except OSError as e:
        typer.secho(f"Error: could not write node list: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    typer.echo(f"Wrote {path}")
