"""Setup commands: config init, config show, init."""

from __future__ import annotations

from pathlib import Path

import click
import yaml
from pydantic import ValidationError

from ..config import config_path, load_config, save_config
from ..errors import StashError
from ..models import StashConfig
from ._common import console, fail, home_option, open_stash


def register_config_commands(main: click.Group) -> None:
    """Register the config group and the remote init command."""

    @main.group()
    def config():
        """Manage where the stash lives and who can read it."""

    @config.command("init")
    @click.option("--host", default=None, help="SSH destination. Omit for a local path.")
    @click.option("--root", "remote_root", required=True, help="Absolute store root on the host.")
    @click.option("--recipient", required=True, help="GPG key the blobs are encrypted to.")
    @click.option("--origin", default=None, help="Name recorded for this machine.")
    @click.option("--remote-python", default="python3", show_default=True,
                  help="Python interpreter on the host.")
    @click.option("--gpg-home", default=None, type=click.Path(), help="GNUPGHOME to use.")
    @click.option("--force", is_flag=True, help="Overwrite an existing config.")
    @home_option
    def config_init(host, remote_root, recipient, origin, remote_python, gpg_home, force, home):
        """Write a new config file.

        Examples:

            skstash config init --host backup.lan --root /srv/stash --recipient me@example.org
        """
        home_path = Path(home).expanduser()
        if config_path(home_path).exists() and not force:
            fail(f"Config already exists at {config_path(home_path)} (use --force)")

        try:
            cfg = StashConfig(
                host=host,
                remote_root=remote_root,
                recipient=recipient,
                origin=origin,
                remote_python=remote_python,
                gpg_home=Path(gpg_home) if gpg_home else None,
            )
        except ValidationError as exc:
            fail(exc)

        path = save_config(cfg, home_path)
        console.print(f"[green]Config written[/] to [cyan]{path}[/]")

    @config.command("show")
    @home_option
    def config_show(home: str):
        """Print the current config."""
        try:
            cfg = load_config(Path(home).expanduser())
        except StashError as exc:
            fail(exc)
        console.print(yaml.dump(cfg.model_dump(mode="json"), default_flow_style=False).rstrip())

    @main.command("init")
    @home_option
    def init(home: str):
        """Create the store directory and catalog on the host."""
        try:
            stash = open_stash(home)
            stash.init()
        except StashError as exc:
            fail(exc)
        console.print(
            f"[green]Stash ready[/] at {stash.transport.name}:{stash.config.remote_root}"
        )
