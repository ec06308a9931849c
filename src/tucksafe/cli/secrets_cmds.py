"""Vault management commands. Values are never printed."""

from __future__ import annotations

from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from . import app, get_store_dir

console = Console()
secrets_app = typer.Typer(help="Manage vaulted secrets")
app.add_typer(secrets_app, name="secrets")


def _open_vault():
    from ..core.vault import SecretsVault

    return SecretsVault(get_store_dir())


@secrets_app.command("list")
def secrets_list():
    """List vaulted secrets (names and placeholders only)."""
    from ..core.vault import VaultError
    from ..keystore import KeystoreError

    try:
        secrets = _open_vault().list_secrets()
    except (VaultError, KeystoreError) as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)

    if not secrets:
        console.print("[dim]No secrets stored.[/dim]")
        return

    table = Table(title=f"Secrets ({len(secrets)})")
    table.add_column("Name", style="cyan")
    table.add_column("Placeholder")
    table.add_column("Source", style="dim")
    table.add_column("Added")
    table.add_column("Last used")
    for s in secrets:
        table.add_row(s.name, s.placeholder, s.source or "", s.added_at[:19], (s.last_used or "")[:19])
    console.print(table)


@secrets_app.command("set")
def secrets_set(
    name: str = typer.Argument(..., help="Secret name, e.g. GITHUB_TOKEN"),
    value: Optional[str] = typer.Argument(None, help="Secret value (prompted for when omitted)"),
    description: Optional[str] = typer.Option(None, "--description", "-d"),
):
    """Add a secret or rotate an existing one's value."""
    from ..core.vault import VaultError
    from ..keystore import KeystoreError

    if value is None:
        value = typer.prompt("Value", hide_input=True)
    vault = _open_vault()
    try:
        existed = vault.has_secret(name)
        vault.set_secret(name, value, description=description)
    except (VaultError, KeystoreError) as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]{'Updated' if existed else 'Added'}[/green] {name}")


@secrets_app.command("unset")
def secrets_unset(name: str = typer.Argument(..., help="Secret name")):
    """Remove a secret from the vault."""
    from ..core.vault import VaultError
    from ..keystore import KeystoreError

    try:
        removed = _open_vault().unset_secret(name)
    except (VaultError, KeystoreError) as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)
    if not removed:
        console.print(f"[yellow]Secret not found:[/yellow] {name}")
        raise typer.Exit(1)
    console.print(f"[green]Removed[/green] {name}")


@secrets_app.command("path")
def secrets_path():
    """Print the vault file location."""
    from ..core.vault import get_vault_path

    console.print(str(get_vault_path(get_store_dir())))
