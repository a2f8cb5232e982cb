"""Secure boot signing key management."""
from pathlib import Path

import typer

from ..config import Config
from ..modules.errors import VastKmmError
from ..modules.secure_boot import certificate_details, check_openssl, generate_keys
from . import fail

app = typer.Typer(help="Secure boot signing key management")


@app.command("generate")
def generate(
    keys_dir: str = typer.Option(Config.KEYS_DIR, "--dir", "-d", help="Directory for the generated keys"),
    key_name: str = typer.Option(Config.KEY_NAME, "--name", help="Key file name (without extension)"),
    validity: int = typer.Option(Config.CERT_VALIDITY_DAYS, "--validity", "-v", help="Certificate validity in days"),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite existing keys"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug output"),
):
    """Generate a key pair for signing the kernel modules."""
    try:
        typer.echo(f"Using {check_openssl()}")
        private_key, public_cert = generate_keys(keys_dir, key_name, validity, force)
        details = certificate_details(Path(public_cert))
    except VastKmmError as e:
        raise fail(e, debug)

    typer.echo("Certificate details:")
    for line in details:
        typer.echo(f"  {line}")
    typer.echo("")
    typer.echo(f"Private key: {private_key}")
    typer.echo(f"Public cert: {public_cert}")
    typer.echo("")
    typer.echo("Next steps:")
    typer.echo(f"  1. Enroll the certificate on every node: mokutil --import {public_cert}")
    typer.echo("  2. Reboot each node and complete enrollment in the MOK manager")
    typer.echo(f"  3. Deploy signed modules: vastkmm install-secure-boot --keys {keys_dir}")
    typer.echo("")
    typer.echo("Keep the private key secure; anyone holding it can sign kernel modules.")
