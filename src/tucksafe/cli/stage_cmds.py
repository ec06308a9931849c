"""Stage and restore commands."""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from . import app, get_store_dir

console = Console()


@app.command()
def stage(
    source: str = typer.Argument(..., help="File on this machine, e.g. ~/.zshrc"),
    dest: str = typer.Argument(..., help="Path inside the store, e.g. shell/zshrc"),
    redact_secrets: bool = typer.Option(False, "--redact", help="Vault detected secrets and stage placeholders"),
    category: str = typer.Option("misc", "--category", "-c", help="Manifest category"),
):
    """Stage a file into the store, scanning it for secrets first."""
    from ..core.config import ConfigError
    from ..core.pipeline import StageError, StageStatus, stage_file
    from ..core.vault import VaultError
    from ..keystore import KeystoreError

    store = get_store_dir()
    try:
        result = stage_file(source, dest, store, redact_secrets=redact_secrets, category=category)
    except (ConfigError, VaultError, KeystoreError, StageError, FileNotFoundError, ValueError) as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)

    if result.scan_skipped:
        console.print(f"[yellow]Not scanned:[/yellow] {result.scan_skipped}")

    if result.status == StageStatus.BLOCKED and result.scan_skipped:
        console.print(
            "[red]Blocked.[/red] The file could not be scanned. "
            "Add it to security.exclude_files to stage it anyway."
        )
        raise typer.Exit(1)

    if result.status == StageStatus.BLOCKED:
        table = Table(title=f"Secrets in {result.tracked.source}")
        table.add_column("Line", justify="right")
        table.add_column("Pattern")
        table.add_column("Severity")
        for f in result.findings:
            table.add_row(str(f.line), f.pattern_name, f.severity.value)
        console.print(table)
        console.print("[red]Blocked.[/red] Re-run with --redact to vault these secrets.")
        raise typer.Exit(1)

    if result.status == StageStatus.REDACTED:
        console.print(
            f"[green]Staged[/green] {result.tracked.source} -> {dest} "
            f"with {len(result.replacements)} secret(s) redacted"
        )
        for r in result.replacements:
            console.print(f"  line {r.line}: {r.placeholder}")
    else:
        console.print(f"[green]Staged[/green] {result.tracked.source} -> {dest}")
        if result.findings:
            console.print(f"[yellow]Warning:[/yellow] {len(result.findings)} secret(s) staged unredacted")

    console.print(f"[dim]category={result.tracked.category} templated={str(result.templated).lower()}[/dim]")


@app.command()
def restore(
    dest: str = typer.Argument(..., help="Path inside the store"),
    target: str = typer.Argument(..., help="Where to write the restored file"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would be restored without writing"),
):
    """Restore a store file to TARGET, filling placeholders from the vault."""
    from ..core.config import get_config_value, load_config
    from ..core.pipeline import DEFAULT_RESTORE_WORKERS, TrackedFile, restore_files
    from ..core.vault import VaultError
    from ..keystore import KeystoreError

    store = get_store_dir()
    workers = get_config_value(load_config(store), "restore.workers") or DEFAULT_RESTORE_WORKERS
    try:
        summary = restore_files(
            [TrackedFile(source=target, destination=dest)],
            store,
            workers=int(workers),
            dry_run=dry_run,
        )
    except (VaultError, KeystoreError) as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)

    for r in summary.results:
        if r.error:
            console.print(f"[red]Failed[/red] {r.tracked.destination}: {r.error}")
            continue
        verb = "Would restore" if dry_run else "Restored"
        console.print(f"[green]{verb}[/green] {r.tracked.destination} -> {r.target} ({r.restored} secret(s))")
        if r.unresolved:
            console.print(f"[yellow]Unresolved placeholders:[/yellow] {', '.join(r.unresolved)}")
            console.print("[dim]Set them with 'tucksafe secrets set NAME'.[/dim]")

    if summary.failed:
        raise typer.Exit(1)
