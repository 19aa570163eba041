"""Shared utilities for all CLI command modules.

Provides the Rich console instance, the ``--home`` option, and the
helpers that turn stash errors into exit statuses.
"""

from __future__ import annotations

from pathlib import Path
from typing import NoReturn

import click
from rich.console import Console
from rich.markup import escape

from .. import STASH_HOME
from ..config import load_config
from ..models import Outcome
from ..stash import Stash

console = Console()

EXIT_FAILURE = 1
EXIT_INTEGRITY = 2

OUTCOME_LABELS = {
    Outcome.UPLOADED: "[bold green]uploaded[/]",
    Outcome.SKIPPED: "[cyan]skipped[/]",
    Outcome.MISSING: "[yellow]missing[/]",
    Outcome.UNSUPPORTED: "[yellow]unsupported[/]",
    Outcome.FAILED: "[bold red]FAILED[/]",
}


def home_option(func):
    """Add the ``--home`` option every command accepts."""
    return click.option(
        "--home", default=STASH_HOME, type=click.Path(), help="Stash home directory.",
    )(func)


def open_stash(home: str) -> Stash:
    """Load config from ``home`` and build the stash it describes."""
    return Stash(load_config(Path(home).expanduser()))


def fail(exc: object, code: int = EXIT_FAILURE) -> NoReturn:
    """Print an error and exit."""
    console.print(f"[red]{escape(str(exc))}[/]")
    raise SystemExit(code)
