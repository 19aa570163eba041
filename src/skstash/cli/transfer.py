"""Transfer commands: upload, fetch, delete."""

from __future__ import annotations

from pathlib import Path

import click
from rich.markup import escape
from rich.panel import Panel

from ..errors import BatchAborted, IntegrityFailure, StashError
from ..hashing import human_size
from ..models import BatchReport, Outcome, UploadResult
from ._common import EXIT_FAILURE, EXIT_INTEGRITY, OUTCOME_LABELS, console, fail, home_option, open_stash


def _print_result(result: UploadResult) -> None:
    label = OUTCOME_LABELS[result.outcome]
    line = f"  {label}  {escape(result.path)}"
    if result.hash:
        line += f"  [dim]{result.hash}[/]"
    if result.outcome in (Outcome.FAILED, Outcome.MISSING, Outcome.UNSUPPORTED):
        line += f"\n      [dim]{escape(result.message)}[/]"
    console.print(line)


def _print_summary(report: BatchReport) -> None:
    rate = report.total_bytes / report.elapsed if report.elapsed > 0 else 0
    border = "green" if report.ok else "red"
    title = "Upload Complete" if not report.aborted else "Upload Aborted"
    console.print(Panel(
        f"Uploaded: {report.count(Outcome.UPLOADED)}\n"
        f"Skipped: {report.count(Outcome.SKIPPED)}\n"
        f"Missing: {report.count(Outcome.MISSING)}\n"
        f"Unsupported: {report.count(Outcome.UNSUPPORTED)}\n"
        f"Failed: {report.failed}\n"
        f"Size: {human_size(report.total_bytes)}\n"
        f"Time: {report.elapsed:.1f}s ({human_size(int(rate))}/s)",
        title=title,
        border_style=border,
    ))


def register_transfer_commands(main: click.Group) -> None:
    """Register upload, fetch and delete."""

    @main.command("upload")
    @click.argument("paths", nargs=-1, required=True, type=click.Path())
    @click.option("--keep-going", "-k", is_flag=True,
                  help="Record failed files and continue with the rest.")
    @home_option
    def upload(paths: tuple[str, ...], keep_going: bool, home: str):
        """Upload files to the stash.

        Each file is hashed, skipped if already stored, otherwise
        encrypted, compressed, sent and verified.

        Examples:

            skstash upload notes.txt

            skstash upload -k ~/Documents/*.pdf
        """
        try:
            stash = open_stash(home)
        except StashError as exc:
            fail(exc)

        console.print(f"\n[cyan]Uploading {len(paths)} item(s)...[/]")
        try:
            report = stash.upload_many(paths, keep_going=keep_going, on_result=_print_result)
        except BatchAborted as exc:
            _print_summary(exc.report)
            code = EXIT_INTEGRITY if isinstance(exc.cause, IntegrityFailure) else EXIT_FAILURE
            fail(exc.cause, code)

        _print_summary(report)
        if report.failed:
            raise SystemExit(EXIT_FAILURE)

    @main.command("fetch")
    @click.argument("hash")
    @click.option("--output", "-o", default=None, type=click.Path(file_okay=False),
                  help="Directory to restore into. Defaults to the current one.")
    @click.option("--force", is_flag=True, help="Overwrite an existing file.")
    @home_option
    def fetch(hash: str, output: str, force: bool, home: str):
        """Restore a stored file under its original name.

        Examples:

            skstash fetch 2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824
        """
        try:
            stash = open_stash(home)
            target = stash.fetch(
                hash, dest_dir=Path(output) if output else None, force=force,
            )
        except (StashError, OSError) as exc:
            fail(exc)

        console.print(f"[green]Fetched[/] {hash} -> [cyan]{target}[/]")

    @main.command("delete")
    @click.argument("hash")
    @click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
    @home_option
    def delete(hash: str, yes: bool, home: str):
        """Delete a stored file and its catalog entry.

        Examples:

            skstash delete -y 2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824
        """
        if not yes:
            click.confirm(f"Delete {hash} from the stash?", abort=True)
        try:
            open_stash(home).delete(hash)
        except StashError as exc:
            fail(exc)

        console.print(f"[green]Deleted[/] {hash}")
