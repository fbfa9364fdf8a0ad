import logging
import sys

import typer

from ardactl.commands import run, validate
from ardactl.logging import setup_logging

app = typer.Typer(help="Distributed metagenomic classification across a cluster.")

# Register commands
app.command("run")(run.run)
app.command("validate")(validate.validate)
app.command("nodefile")(validate.nodefile)


# Global options callback
@app.callback()
def main(
    ctx: typer.Context,
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug logging"),
):
    """ardactl - Cluster Classification CLI."""
    ctx.obj = {"debug": debug}
    setup_logging(logging.DEBUG if debug else logging.INFO)
    if debug:
        logging.getLogger("ardactl").debug("Debug mode enabled")


if __name__ == "__main__":
    sys.exit(app())
