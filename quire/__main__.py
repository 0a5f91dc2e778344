"""
quire - inspect the content repository from a terminal.

    python -m quire ls [PATH] [--recursive]
    python -m quire cat PATH
    python -m quire status

Writes go through scripts/push_file.py, launch the servers with
scripts/run_server.py.
"""

import argparse
import asyncio
import sys

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from quire.config import load_settings
from quire.errors import ConfigError, StoreError
from quire.logging import configure_logging
from quire.store import VersionedFileStore, retry_transient


def _entries_table(title: str, entries) -> Table:
    table = Table(title=title)
    table.add_column("Kind", style="dim")
    table.add_column("Path", style="cyan")
    table.add_column("Size", justify="right")
    table.add_column("Version", style="yellow")
    for e in sorted(entries, key=lambda e: e.path):
        table.add_row(e.kind.value, e.path, str(e.size), e.version_token[:10])
    return table


async def _ls(store: VersionedFileStore, console: Console, path, recursive: bool) -> int:
    if recursive:
        walked = await retry_transient(lambda: store.walk(path or ""))
        console.print(_entries_table(f"{store.location}:{path or '/'}", walked.entries))
        for failed, err in walked.failures.items():
            console.print(f"[red]could not list {failed}:[/red] {err}")
        return 0 if walked.complete else 1
    if path is None:
        entries = await retry_transient(store.list_markdown)
        console.print(_entries_table(f"Markdown in {store.location}:{store.content_root}", entries))
        return 0
    entries = await retry_transient(lambda: store.list_directory(path))
    console.print(_entries_table(f"{store.location}:{path}", entries))
    return 0


async def _cat(store: VersionedFileStore, console: Console, path: str) -> int:
    record = await retry_transient(lambda: store.read(path))
    console.print(f"[dim]{record.path} @ {record.version_token}[/dim]", highlight=False)
    # soft_wrap keeps Markdown line breaks as stored
    console.print(record.content, markup=False, highlight=False, soft_wrap=True)
    return 0


async def _status(store: VersionedFileStore, console: Console) -> int:
    login, head, quota = await asyncio.gather(store.whoami(), store.branch_head(), store.rate_limit())
    console.print(
        Panel.fit(
            f"[bold]{store.location}[/bold]\n"
            f"token owner: [cyan]{login}[/cyan]\n"
            f"head: [yellow]{head.commit_sha}[/yellow]\n"
            f"quota: {quota.remaining}/{quota.limit} (resets at {quota.reset})",
            border_style="bright_cyan",
        )
    )
    return 0


async def _run(args, console: Console) -> int:
    settings = load_settings()
    configure_logging(settings.LOG_LEVEL)
    async with VersionedFileStore(settings) as store:
        if args.command == "ls":
            return await _ls(store, console, args.path, args.recursive)
        if args.command == "cat":
            return await _cat(store, console, args.path)
        return await _status(store, console)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="quire", description="Inspect the content repository")
    sub = parser.add_subparsers(dest="command", required=True)

    ls = sub.add_parser("ls", help="List a directory (default: Markdown in the content root)")
    ls.add_argument("path", nargs="?")
    ls.add_argument("--recursive", "-r", action="store_true")

    cat = sub.add_parser("cat", help="Print a file and its version token")
    cat.add_argument("path")

    sub.add_parser("status", help="Token owner, branch head and API quota")

    args = parser.parse_args(argv)
    console = Console()
    err = Console(stderr=True)
    try:
        return asyncio.run(_run(args, console))
    except ConfigError as exc:
        err.print(f"[red]{exc}[/red]")
        return 2
    except StoreError as exc:
        err.print(f"[red]{exc.kind}:[/red] {exc}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
