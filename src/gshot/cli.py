#!/usr/bin/env python3
"""
gshot command line interface.

    gshot init
    gshot commit "message"
    gshot status
    gshot log
    gshot restore 3 [--replay]
    gshot branch [name]
    gshot verify
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.markup import escape

from . import __version__
from .snapshot import Commit, Repository
from .utils.config import RestoreMode, load_config
from .utils.errors import GshotError
from .utils.logging import get_logger, setup_logging

logger = get_logger(__name__)

out = Console(highlight=False, soft_wrap=True)
err_console = Console(stderr=True, highlight=False, soft_wrap=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gshot",
        description="gshot - minimal local version control"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-C", "--root", default=".", help="Project root (default: current directory)")
    parser.add_argument("--config", action="append", default=[], help="Extra config file (json, yaml or toml)")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="More log output (-vv for debug)")
    parser.add_argument("--log-level", help="Console log level")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("init", help="Create the repository layout (idempotent)")

    commit = subparsers.add_parser("commit", help="Record files with new content")
    commit.add_argument("message", nargs="?", help="Commit description")
    commit.add_argument("-m", "--message", dest="message_opt", help="Commit description")

    status = subparsers.add_parser("status", help="Show files the next commit would record")
    status.add_argument("--json", action="store_true", help="JSON output")

    log = subparsers.add_parser("log", help="Show the commit log")
    log.add_argument("--json", action="store_true", help="JSON output")

    restore = subparsers.add_parser("restore", aliases=["back-to"], help="Restore files from a commit")
    restore.add_argument("commit_id", help="Commit id")
    mode = restore.add_mutually_exclusive_group()
    mode.add_argument("--replay", dest="mode", action="store_const", const=RestoreMode.REPLAY.value,
                      help="Replay all commits up to the id (full tree)")
    mode.add_argument("--only", dest="mode", action="store_const", const=RestoreMode.COMMIT.value,
                      help="Apply only the records of the commit")

    branch = subparsers.add_parser("branch", help="Set or show the current branch")
    branch.add_argument("name", nargs="?", help="Branch name")

    subparsers.add_parser("verify", help="Check blob integrity")

    return parser


def cli_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """Configuration values given on the command line"""
    overrides: Dict[str, Any] = {}
    level = args.log_level
    if not level and args.verbose:
        level = "DEBUG" if args.verbose > 1 else "INFO"
    if level:
        overrides["logging"] = {"level": level}
    if getattr(args, "mode", None):
        overrides["restore"] = {"mode": args.mode}
    return overrides


def print_commit(commit: Commit) -> None:
    branch = f" [cyan]({escape(commit.branch.name)})[/cyan]" if commit.branch else ""
    out.print(f"[bold yellow]commit {commit.id}[/bold yellow]{branch}")
    out.print(f"Date:  {commit.timestamp}")
    out.print(f"    {escape(commit.description)}")
    for record in commit.records:
        out.print(f"  [green]+[/green] {escape(record.path)}  [dim]{record.digest}[/dim]")
    out.print()


async def run(args: argparse.Namespace) -> int:
    """Execute a parsed command and return the process exit code"""
    root = Path(args.root)
    # Route diagnostics to stderr before config loading logs anything;
    # structlog's unconfigured default prints to stdout
    setup_logging()
    config = load_config(root, config_paths=args.config, extra_config=cli_overrides(args))
    setup_logging(
        log_level=config.logging.level,
        log_dir=config.logging.directory,
        enable_json=config.logging.json_format
    )

    repo = Repository(root, config)

    if args.command == "init":
        created = await repo.init()
        if created:
            out.print(f"Initialized empty gshot repository in {repo.layout.metadata_path}")
        else:
            out.print(f"Reinitialized existing gshot repository in {repo.layout.metadata_path}")
        return 0

    if args.command == "commit":
        message = args.message_opt or args.message
        if not message:
            err_console.print("[red]error:[/red] a commit message is required")
            return 2
        result = await repo.snapshot(message)
        for path, reason in result.skipped.items():
            err_console.print(f"[yellow]skipped[/yellow] {escape(path)}: {escape(reason)}")
        if not result.committed:
            out.print("~ No files changed!")
            return 0
        commit = result.commit
        label = commit.branch.name if commit.branch else "-"
        out.print(escape(f"[{label} {commit.id}] {commit.description}: {len(commit.records)} file(s) recorded"))
        return 0

    if args.command == "status":
        report = await repo.status()
        if args.json:
            print(json.dumps(report.to_dict(), indent=2))
            return 0
        branch = report.branch.name if report.branch else "-"
        out.print(f"On branch {escape(branch)}, latest commit {report.latest_id or '-'}")
        if not report.novel:
            out.print("Nothing to commit")
        for record in report.novel:
            out.print(f"  [green]new content:[/green] {escape(record.path)}")
        return 0

    if args.command == "log":
        commits = await repo.log()
        if args.json:
            print(json.dumps([c.to_dict() for c in commits], indent=2))
            return 0
        if not commits:
            out.print("No commits found.")
            return 0
        for commit in reversed(commits):
            print_commit(commit)
        return 0

    if args.command in ("restore", "back-to"):
        result = await repo.restore(args.commit_id)
        for path in result.restored:
            out.print(f"  restored {escape(path)}")
        for path, reason in result.failed.items():
            err_console.print(f"[red]failed[/red] {escape(path)}: {escape(reason)}")
        out.print(f"Restored {len(result.restored)} file(s) from commit {result.commit_id} "
                  f"({result.mode.value} mode)")
        return 0 if result.ok else 1

    if args.command == "branch":
        if args.name:
            branch = repo.set_branch(args.name)
            out.print(f"Switched to branch {escape(branch.name)}")
        else:
            branch = repo.current_branch()
            out.print(escape(branch.name) if branch else "(no branch)")
        return 0

    if args.command == "verify":
        report = await repo.verify()
        for digest in report["corrupted"]:
            err_console.print(f"[red]corrupted[/red] {digest}")
        for digest in report["missing"]:
            err_console.print(f"[red]missing[/red] {digest}")
        if report["corrupted"] or report["missing"]:
            return 1
        out.print("All blobs verified")
        return 0

    raise ValueError(f"Unknown command: {args.command}")


def run_cli(argv: Optional[List[str]] = None) -> int:
    """Parse argv, run the command and map errors to exit codes"""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        return asyncio.run(run(args))
    except GshotError as e:
        err_console.print(f"[red]error:[/red] {escape(e.message)}")
        for suggestion in e.get_suggestions():
            err_console.print(f"  [dim]hint: {escape(suggestion)}[/dim]")
        logger.debug("command_failed", command=args.command, error=e.to_dict())
        return e.exit_code
    except KeyboardInterrupt:
        err_console.print("Interrupted")
        return 130


def main(argv: Optional[List[str]] = None) -> None:
    """Console script entry point"""
    sys.exit(run_cli(argv))


if __name__ == "__main__":
    main()
