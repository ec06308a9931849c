"""Configuration command."""

from __future__ import annotations

import typer
from rich.console import Console

from . import app, get_store_dir

console = Console()


@app.command()
def config(
    key: str | None = typer.Argument(None, help="Config key (dotted notation, e.g. security.min_severity)"),
    value: str | None = typer.Argument(None, help="Value to set"),
    global_config: bool = typer.Option(False, "--global", "-g", help="Write to ~/.tucksafe/config.toml"),
):
    """Get or set configuration."""
    from ..core.config import ConfigError, get_config_value, load_config, load_security_config, save_config

    store = get_store_dir()

    try:
        if key is None:
            console.print_json(data=load_config(store))
            return

        if value is None:
            val = get_config_value(load_config(store), key)
            if val is None:
                console.print(f"[yellow]Key not found:[/yellow] {key}")
            else:
                console.print(f"{key} = {val}")
            return

        save_config(None if global_config else store, key, value)
        console.print(f"[green]Set[/green] {key} = {value}")
        load_security_config(store)
    except ConfigError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)
