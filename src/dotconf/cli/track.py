"""Track commands: add and remove registry entries, detach links."""

import typer

from ..engine import TrackOp
from .helpers import fatal_errors, get_config, get_engine, parse_file_type
from .output import muted, success

track_app = typer.Typer(
    name="track",
    help="Add or remove files tracked in source control.",
    no_args_is_help=True,
)

FILE_TYPE_OPTION = typer.Option(
    "config",
    "--file-type",
    "-t",
    help="Kind of file: 'config' (symlinked) or 'secret' (encrypted).",
)
FILE_OPTION = typer.Option(
    ...,
    "--file",
    "-f",
    help="File path; ~ and $VARIABLES are expanded.",
)


def register(app: typer.Typer) -> None:
    """Register the track command group with the app."""
    app.add_typer(track_app, name="track")


def _track(file_type: str, file: str, op: TrackOp):
    kind = parse_file_type(file_type)
    with fatal_errors():
        engine = get_engine(get_config())
        entry = engine.track(kind, file, op)
    return entry, engine.store.register_path(kind)


@track_app.command("add")
def add(
    file_type: str = FILE_TYPE_OPTION,
    file: str = FILE_OPTION,
):
    """Start tracking a file.

    Only the registry changes; run 'dotconf sync --sync-direction dotfiles'
    to move the file into source control.

    Examples:
        dotconf track add --file ~/.vimrc
        dotconf track add --file-type secret --file '$HOME/.netrc'
    """
    entry, register_path = _track(file_type, file, TrackOp.ADD)
    success(
        f"'{entry.filesystem_path}' has been added to '{register_path.name}'"
    )


@track_app.command("remove")
def remove(
    file_type: str = FILE_TYPE_OPTION,
    file: str = FILE_OPTION,
):
    """Stop tracking a file.

    Existing links and source-control copies are left in place; use
    'dotconf track detach' to turn the link back into a regular file.
    """
    entry, register_path = _track(file_type, file, TrackOp.REMOVE)
    success(
        f"'{entry.filesystem_path}' has been removed from "
        f"'{register_path.name}'"
    )
    muted("The file itself was not touched.")


@track_app.command("detach")
def detach(
    file_type: str = FILE_TYPE_OPTION,
    file: str = FILE_OPTION,
):
    """Replace the link of an untracked file with a real copy."""
    kind = parse_file_type(file_type)
    with fatal_errors():
        engine = get_engine(get_config())
        outcome = engine.detach(kind, file)
    success(f"'{outcome.entry.filesystem_path}' {outcome.action.value}")
