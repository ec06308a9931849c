"""Secret scanning command."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from . import app, get_store_dir

console = Console()

_SEVERITY_STYLE = {
    "critical": "bold red",
    "high": "red",
    "medium": "yellow",
    "low": "dim",
}

_SKIP_DIRS = {".git", "node_modules", "__pycache__"}


def _collect_files(paths: list[str]) -> list[Path]:
    files: list[Path] = []
    for raw in paths:
        path = Path(raw).expanduser()
        if path.is_dir():
            for child in sorted(path.rglob("*")):
                if child.is_file() and not _SKIP_DIRS.intersection(child.relative_to(path).parts):
                    files.append(child)
        else:
            files.append(path)
    return files


@app.command()
def scan(
    paths: List[str] = typer.Argument(..., help="Files or directories to scan"),
    min_severity: Optional[str] = typer.Option(
        None, "--min-severity", help="Override security.min_severity (critical|high|medium|low)"
    ),
    scanner: Optional[str] = typer.Option(
        None, "--scanner", help="Override security.scanner (builtin|gitleaks|trufflehog)"
    ),
    show_skipped: bool = typer.Option(False, "--show-skipped", help="List files that were not scanned"),
):
    """Scan files for secrets. Exits 1 when blocking applies."""
    from ..core.config import ConfigError, SecurityConfig, load_config
    from ..core.scanner import scan_files, should_block

    try:
        cfg = load_config(get_store_dir())
        section = cfg.setdefault("security", {})
        if min_severity:
            section["min_severity"] = min_severity
        if scanner:
            section["scanner"] = scanner
        config = SecurityConfig.from_config(cfg)
        summary = scan_files(_collect_files(paths), config)
    except (ConfigError, ValueError) as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)

    findings = summary.findings
    if findings:
        table = Table(title=f"Secrets found ({len(findings)})")
        table.add_column("File", style="cyan")
        table.add_column("Line", justify="right")
        table.add_column("Pattern")
        table.add_column("Severity")
        table.add_column("Value", style="dim")
        for result in summary.results:
            for f in result.findings:
                style = _SEVERITY_STYLE[f.severity.value]
                table.add_row(
                    result.display_path,
                    str(f.line),
                    f.pattern_name,
                    f"[{style}]{f.severity.value}[/{style}]",
                    f.redacted_value,
                )
        console.print(table)

    if show_skipped:
        for result in summary.results:
            if result.skipped:
                console.print(f"[dim]skipped {result.display_path}: {result.skip_reason}[/dim]")

    counts = ", ".join(f"{name}: {n}" for name, n in summary.by_severity.items() if n)
    console.print(
        f"Scanned {summary.scanned_files} file(s), skipped {summary.skipped_files}, "
        f"{summary.total_secrets} secret(s) in {summary.files_with_secrets} file(s)"
        + (f" ({counts})" if counts else "")
    )

    if should_block(findings, config):
        console.print("[red]Secrets detected. Redact them with 'tucksafe stage --redact' or add exclusions.[/red]")
        raise typer.Exit(1)
    if not findings:
        console.print("[green]No secrets found.[/green]")
