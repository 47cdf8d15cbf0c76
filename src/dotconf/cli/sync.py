"""Sync command for dotconf CLI."""

from pathlib import Path
from typing import Optional

import typer

from ..engine import SyncDirection
from ..report import Action, EntryState, SyncReport
from .helpers import fatal_errors, get_config, get_engine
from .output import error, header, muted, plain, success, warning

# The option names the side that receives the update
DIRECTIONS = {
    "dotfiles": SyncDirection.FROM_FILESYSTEM,
    "d": SyncDirection.FROM_FILESYSTEM,
    "filesystem": SyncDirection.FROM_DOTFILES,
    "f": SyncDirection.FROM_DOTFILES,
}


def register(app: typer.Typer) -> None:
    """Register sync command with the app."""
    app.command()(sync)


def parse_direction(value: str) -> SyncDirection:
    try:
        return DIRECTIONS[value.lower()]
    except KeyError:
        raise typer.BadParameter(
            "expected 'dotfiles' (d) or 'filesystem' (f)"
        ) from None


def sync(
    sync_direction: str = typer.Option(
        ...,
        "--sync-direction",
        "-d",
        help="Location which receives the update: 'dotfiles' or "
        "'filesystem'.",
    ),
    backup: bool = typer.Option(
        False,
        "--backup",
        help="Move conflicting files aside instead of reporting them.",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Show what would change without touching any file.",
    ),
    secret_key: Optional[Path] = typer.Option(
        None,
        "--secret-key",
        "-k",
        help="PGP secret key (overrides options.secret_key).",
    ),
):
    """Sync tracked files between the filesystem and source control.

    'dotfiles' moves files into source control and links them back
    (secrets are encrypted). 'filesystem' links or decrypts from source
    control into place.

    Examples:
        dotconf sync --sync-direction dotfiles
        dotconf sync -d filesystem --dry-run
    """
    direction = parse_direction(sync_direction)
    with fatal_errors():
        engine = get_engine(get_config(), secret_key=secret_key)
        report = engine.sync(
            direction, backup_conflicts=backup, dry_run=dry_run
        )

    print_report(report)
    if not report.ok:
        raise typer.Exit(1)


def print_report(report: SyncReport) -> None:
    """Print per-entry results and the summary line."""
    if not report.outcomes:
        muted("No tracked files.")
        return

    prefix = "would be " if report.dry_run else ""
    for outcome in report.outcomes:
        path = outcome.entry.filesystem_path
        if outcome.state is EntryState.CONVERGED:
            if outcome.action is Action.NONE:
                muted(f"  {path}: up to date")
            else:
                success(f"{path}: {prefix}{outcome.action.value}")
            if outcome.backup:
                muted(f"  backup: {outcome.backup}")

    if report.problems:
        plain("")
        header("Needs attention:")
        for outcome in report.problems:
            if outcome.state is EntryState.CONFLICTED:
                warning(f"conflict: {outcome.reason}")
            else:
                error(f"failed: {outcome.reason}")
        muted(
            "Resolve the files above (or re-run with --backup) and sync again."
        )

    plain("")
    plain(report.summary())
