"""Status and list commands for dotconf CLI."""

import typer
from rich.markup import escape

from ..registry import EntryKind
from ..symlinks import LinkState
from .helpers import fatal_errors, get_config, get_config_path, get_engine
from .output import console, header, muted, plain


def register(app: typer.Typer) -> None:
    """Register the status commands with the app."""
    app.command()(status)
    app.command(name="list")(list_files)


STATE_STYLES = {
    LinkState.CORRECT_LINK: "green",
    LinkState.MISSING: "yellow",
    LinkState.WRONG_LINK: "red",
    LinkState.REGULAR_FILE: "yellow",
}


def status():
    """Show where every tracked file stands."""
    with fatal_errors():
        engine = get_engine(get_config())
        statuses = engine.status()

    config_path = get_config_path(engine.home)
    plain(f"Config: {config_path if config_path.exists() else '(defaults)'}")
    plain(f"Source control: {engine.source_control_root}")
    plain("")

    if not statuses:
        muted("No tracked files. Add one with 'dotconf track add --file'.")
        return

    for kind in EntryKind:
        rows = [s for s in statuses if s.entry.kind is kind]
        if not rows:
            continue
        header(f"{kind.value.capitalize()} files:")
        for row in rows:
            style = STATE_STYLES[row.filesystem.state]
            stored = "stored" if row.source_exists else "not stored"
            console.print(
                f"  {escape(str(row.entry.filesystem_path))}  "
                f"[{style}]{row.filesystem.state.value}[/{style}]  "
                f"[dim]({stored})[/dim]"
            )


def list_files():
    """List tracked files per register."""
    with fatal_errors():
        registry = get_engine(get_config()).load_registry()

    for kind in EntryKind:
        register = registry.register(kind)
        header(f"{kind.register_name} ({len(register)}):")
        for path in register.paths():
            plain(f"  {path}")
