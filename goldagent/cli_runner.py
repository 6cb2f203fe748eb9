"""Command-line entry point for GoldAgent's scheduler."""

import argparse
import sys
from typing import List, Optional

from goldagent import __version__
from goldagent.scheduler import cli


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="goldagent", description="GoldAgent - cron jobs and VCS hooks for your shell"
    )
    parser.add_argument(
        "--version",
        "-v",
        action="version",
        version=f"{__version__}",
        help="Show version and exit",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("serve", help="Run the scheduler daemon in the foreground")
    sub.add_parser("start", help="Start the scheduler daemon in the background")
    sub.add_parser("stop", help="Stop the scheduler daemon")
    sub.add_parser("status", help="Show daemon status and job/hook counts")
    sub.add_parser("reload", help="Make the daemon re-read the schedule store")

    jobs = sub.add_parser("jobs", help="Manage cron jobs").add_subparsers(dest="action", required=True)
    jobs_add = jobs.add_parser("add", help="Add a job")
    jobs_add.add_argument("schedule", help="Cron expression (5 or 6 fields) or daily@HH:MM / weekdays@HH:MM")
    jobs_add.add_argument("job_command", metavar="command", help="Shell command to run")
    jobs_add.add_argument("--name", type=str, help="Human-readable job name")
    jobs_add.add_argument("--retry-max", type=int, default=1, help="Retries after a failed run (0-10)")
    jobs.add_parser("list", help="List jobs")
    jobs_remove = jobs.add_parser("remove", help="Remove a job")
    jobs_remove.add_argument("id")

    hooks = sub.add_parser("hooks", help="Manage VCS hooks").add_subparsers(dest="action", required=True)
    hooks_add = hooks.add_parser("add", help="Add a hook")
    hooks_add.add_argument("kind", choices=["git", "perforce"])
    hooks_add.add_argument("target", help="Repository path (git) or depot path (perforce)")
    hooks_add.add_argument("hook_command", metavar="command", help="Shell command run on change")
    hooks_add.add_argument("--ref", dest="reference", type=str, help="Git ref to watch (default HEAD)")
    hooks_add.add_argument("--interval", type=int, default=30, help="Poll interval in seconds")
    hooks_add.add_argument("--name", type=str, help="Human-readable hook name")
    hooks_add.add_argument("--retry-max", type=int, default=1, help="Retries after a failed run (0-10)")
    hooks.add_parser("list", help="List hooks")
    hooks_remove = hooks.add_parser("remove", help="Remove a hook")
    hooks_remove.add_argument("id")

    return parser


def run(args: argparse.Namespace) -> bool:
    if args.command == "serve":
        return cli.handle_serve()
    if args.command == "start":
        return cli.handle_start()
    if args.command == "stop":
        return cli.handle_stop()
    if args.command == "status":
        return cli.handle_status()
    if args.command == "reload":
        return cli.handle_reload()

    if args.command == "jobs":
        if args.action == "add":
            return cli.handle_jobs_add(args.schedule, args.job_command, args.name, args.retry_max)
        if args.action == "list":
            return cli.handle_jobs_list()
        return cli.handle_jobs_remove(args.id)

    if args.action == "add":
        return cli.handle_hooks_add(
            args.kind,
            args.target,
            args.hook_command,
            reference=args.reference,
            interval_secs=args.interval,
            name=args.name,
            retry_max=args.retry_max,
        )
    if args.action == "list":
        return cli.handle_hooks_list()
    return cli.handle_hooks_remove(args.id)


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for the installed CLI tool."""
    args = build_parser().parse_args(argv)
    try:
        ok = run(args)
    except KeyboardInterrupt:
        return 130
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
