"""CLI interface using Typer."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

app = typer.Typer(
    name="tucksafe",
    help="tucksafe: keep secrets out of your dotfiles store",
    no_args_is_help=True,
)

_options: dict[str, Optional[str]] = {"store": None}


def _configure_logging(verbose: bool) -> None:
    logger = logging.getLogger("tucksafe")
    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)
    logger.addHandler(RichHandler(console=Console(stderr=True), show_path=False))
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


def get_store_dir() -> Path:
    from ..core.config import resolve_store_dir

    return resolve_store_dir(_options["store"])


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    store: Optional[str] = typer.Option(
        None, "--store", "-s", help="Store directory (default: $TUCK_DIR or ~/.tuck)"
    ),
):
    """Scan, redact, vault, and restore secrets in tracked dotfiles."""
    _configure_logging(verbose)
    _options["store"] = store


# Import subcommand modules to register them
from . import scan_cmds  # noqa: F401, E402
from . import stage_cmds  # noqa: F401, E402
from . import secrets_cmds  # noqa: F401, E402
from . import keystore_cmds  # noqa: F401, E402
from . import config_cmds  # noqa: F401, E402
