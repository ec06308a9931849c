"""Keystore and vault key commands."""

from __future__ import annotations

import sys

import typer
from rich.console import Console

from . import app, get_store_dir

console = Console()
keystore_app = typer.Typer(help="Keystore status and vault key lifecycle")
app.add_typer(keystore_app, name="keystore")


@keystore_app.command("status")
def keystore_status():
    """Show the selected keystore and whether the vault key is present."""
    from ..core.vault import get_vault_path
    from ..keystore import ACCOUNT, SERVICE, KeystoreError, get_keystore

    keystore = get_keystore()
    console.print(f"Platform: {sys.platform}")
    console.print(f"Keystore: [cyan]{keystore.get_name()}[/cyan]")
    try:
        has_key = keystore.retrieve(SERVICE, ACCOUNT) is not None
    except KeystoreError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)
    console.print(f"Vault key: {'[green]present[/green]' if has_key else '[dim]not created[/dim]'}")

    vault_path = get_vault_path(get_store_dir())
    console.print(f"Vault: {vault_path} ({'exists' if vault_path.exists() else 'missing'})")


@keystore_app.command("rotate")
def keystore_rotate(yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation")):
    """Re-encrypt the vault with a fresh key."""
    from ..core.vault import SecretsVault, VaultError
    from ..keystore import KeystoreError

    if not yes and not typer.confirm("Rotate the vault encryption key?"):
        raise typer.Exit(0)
    vault = SecretsVault(get_store_dir())
    try:
        vault.rotate_key()
    except (VaultError, KeystoreError) as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Rotated[/green] vault key ({vault.secret_count()} secret(s) re-encrypted)")


@keystore_app.command("delete")
def keystore_delete(yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation")):
    """Delete the vault key from the keystore (uninstall)."""
    from ..core.vault import SecretsVault
    from ..keystore import KeystoreError

    vault = SecretsVault(get_store_dir())
    if vault.exists():
        console.print(f"[yellow]Warning:[/yellow] {vault.path} will become unreadable.")
    if not yes and not typer.confirm("Delete the vault encryption key?"):
        raise typer.Exit(0)
    try:
        vault.delete_key()
    except KeystoreError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)
    console.print("[green]Deleted[/green] vault key")
