"""
SKStash CLI — push files into the stash, find them, pull them back.

Each command group lives in its own module and is registered on the
main Click group below.

Entry point: skstash.cli:main
"""

from __future__ import annotations

import logging

import click

from .. import __version__


@click.group()
@click.version_option(version=__version__, prog_name="skstash")
@click.option("--verbose", "-v", is_flag=True, help="Log every remote command.")
def main(verbose: bool):
    """SKStash — content-addressed encrypted backup store.

    Files are keyed by the hash of their content, encrypted to your
    key, compressed, and verified end to end.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(name)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# Register all command groups/commands from modular files
# ---------------------------------------------------------------------------

from .config_cmd import register_config_commands
from .transfer import register_transfer_commands
from .catalog_cmd import register_catalog_commands

register_config_commands(main)
register_transfer_commands(main)
register_catalog_commands(main)
