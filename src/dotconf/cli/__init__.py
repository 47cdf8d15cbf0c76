"""dotconf CLI - Command-line interface for dotfiles and secrets sync."""

import typer

from ..utils import get_version, setup_logging
from . import key, status, sync, track

# Create the main app
app = typer.Typer(
    name="dotconf",
    help="Keep config files in source control, symlinked and encrypted.",
    add_completion=True,
    no_args_is_help=True,
)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging output.",
    ),
):
    """dotconf - sync config files and secrets with source control."""
    setup_logging(verbose=verbose)


# Register all commands
track.register(app)
sync.register(app)
status.register(app)
key.register(app)


@app.command()
def version():
    """Show the version of dotconf."""
    typer.echo(f"dotconf version {get_version()}")


def main():
    """Main entry point for the dotconf CLI."""
    app()
