"""Catalog commands: search, list, info."""

from __future__ import annotations

import json

import click
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ..errors import StashError
from ..models import CatalogEntry
from ._common import console, fail, home_option, open_stash


def _print_entries(entries: list[CatalogEntry], json_out: bool) -> None:
    if json_out:
        click.echo(json.dumps([e.model_dump(mode="json") for e in entries], indent=2))
        return

    if not entries:
        console.print("\n[dim]No matching files.[/]\n")
        return

    table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
    table.add_column("Hash", style="cyan", no_wrap=True)
    table.add_column("File", overflow="fold")
    table.add_column("Size", justify="right")
    table.add_column("Origin", style="dim")
    table.add_column("Path", style="dim", overflow="fold")
    table.add_column("Date", style="dim")

    for e in entries:
        date = e.date.strftime("%Y-%m-%d %H:%M") if e.date else ""
        table.add_row(e.hash[:16], escape(e.file), e.size, escape(e.origin), escape(e.path), date)

    console.print(f"\n[bold]{len(entries)}[/] file(s):\n")
    console.print(table)
    console.print()


def register_catalog_commands(main: click.Group) -> None:
    """Register search, list and info."""

    @main.command("search")
    @click.argument("term")
    @click.option("--json-out", is_flag=True, help="Print matches as JSON.")
    @home_option
    def search(term: str, json_out: bool, home: str):
        """Find stored files by name, directory, or exact hash.

        Examples:

            skstash search notes

            skstash search /home/me/Documents --json-out
        """
        try:
            entries = open_stash(home).search(term)
        except StashError as exc:
            fail(exc)
        _print_entries(entries, json_out)

    @main.command("list")
    @click.option("--json-out", is_flag=True, help="Print entries as JSON.")
    @home_option
    def list_entries(json_out: bool, home: str):
        """List every stored file, newest first."""
        try:
            entries = open_stash(home).search("")
        except StashError as exc:
            fail(exc)
        _print_entries(entries, json_out)

    @main.command("info")
    @click.argument("hash")
    @home_option
    def info(hash: str, home: str):
        """Show the catalog entry for a hash."""
        try:
            entry = open_stash(home).info(hash)
        except StashError as exc:
            fail(exc)

        console.print(Panel(
            f"File: [bold]{escape(entry.file)}[/]\n"
            f"Path: {escape(entry.path)}\n"
            f"Origin: {escape(entry.origin)}\n"
            f"Size: {entry.size}\n"
            f"Date: {entry.date.isoformat() if entry.date else 'unknown'}",
            title=entry.hash,
            border_style="cyan",
        ))
