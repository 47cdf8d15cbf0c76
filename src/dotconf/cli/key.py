"""Key creation command for dotconf CLI."""

from pathlib import Path
from typing import Optional

import typer

from ..crypto import create_key as create_key_files
from ..errors import KeyUnavailable
from .helpers import fatal_errors, get_config, get_passphrase
from .output import muted, success


def register(app: typer.Typer) -> None:
    """Register key commands with the app."""
    app.command(name="create-key")(create_key)


def create_key(
    secret_key: Optional[Path] = typer.Option(
        None,
        "--secret-key",
        "-k",
        help="Where to write the key (overrides options.secret_key).",
    ),
    passphrase: bool = typer.Option(
        False,
        "--passphrase",
        help="Protect the key with a passphrase (prompted).",
    ),
):
    """Generate a PGP key pair for encrypting secret files.

    The public key is written next to the secret key with a .pub suffix.
    """
    secret = None
    if passphrase:
        secret = get_passphrase() or typer.prompt(
            "Passphrase", hide_input=True, confirmation_prompt=True
        )

    with fatal_errors():
        config = get_config()
        key_path = config.key_config(secret_key).secret_key
        if key_path is None:
            raise KeyUnavailable(
                None, "set options.secret_key or pass --secret-key"
            )
        secret_path, public_path = create_key_files(
            key_path, config.key_params(passphrase=secret)
        )

    success(f"Created secret key at {secret_path}")
    muted(f"Public key: {public_path}")
