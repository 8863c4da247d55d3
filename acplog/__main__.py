"""CLI entry point for acplog."""
from __future__ import annotations

import argparse
import logging
import sys

from rich.console import Console
from rich.logging import RichHandler

from acplog.logfile import discover_logs, env_bool, logs_dir, resolve_log_verbose, short_id

KNOWN_COMMANDS = {"find", "read", "raw", "terminals", "stats"}


def _build_parser() -> argparse.ArgumentParser:
    # Shared global options, inherited by every subcommand
    global_opts = argparse.ArgumentParser(add_help=False)
    global_opts.add_argument("--format", "-f", choices=["human", "json"],
                             default=None, help="Output format (default: auto-detect)")
    global_opts.add_argument("--ascii", action="store_true",
                             help="Force ASCII output (no Unicode box drawing)")
    global_opts.add_argument("--color", action="store_true",
                             help="Force color output (for piping to less -R)")
    global_opts.add_argument("--verbose", "-v", action="store_true",
                             help="Debug logging to stderr")

    parser = argparse.ArgumentParser(
        prog="acplog",
        description="Agent execution log viewer",
        parents=[global_opts],
    )
    parser.add_argument("--version", action="version", version="acplog 0.1.0")

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("find", parents=[global_opts], help=f"List logs (default dir: {logs_dir()})")

    p_read = sub.add_parser("read", parents=[global_opts], help="Render the run timeline")
    p_read.add_argument("log", help="Log file path or ID (prefix match)")
    p_read.add_argument("--expand", "-e", action="store_true",
                        help="Expand todo groups and tool results")

    p_raw = sub.add_parser("raw", parents=[global_opts], help="Numbered raw notifications")
    p_raw.add_argument("log", help="Log file path or ID (prefix match)")
    p_raw.add_argument("--index", metavar="RANGE", help="Index range (e.g. 10:20)")
    p_raw.add_argument("--highlight", metavar="N", type=int, help="Highlight record N")

    p_term = sub.add_parser("terminals", parents=[global_opts], help="Terminal output captured in a run")
    p_term.add_argument("log", help="Log file path or ID (prefix match)")

    p_stats = sub.add_parser("stats", parents=[global_opts], help="Run statistics")
    p_stats.add_argument("log", help="Log file path or ID (prefix match)")
    p_stats.add_argument("aspect", nargs="?", choices=["tools", "plans", "timing"],
                         help="Show specific aspect")

    return parser


def _get_format(args) -> str:
    """Determine output format from args + TTY detection."""
    if args.format:
        return args.format
    if not sys.stdout.isatty():
        return "json"
    return "human"


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose or env_bool("ACPLOG_DEBUG") else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def main():
    parser = _build_parser()

    # Bare `acplog <log>` is treated as read
    argv = sys.argv[1:]
    if argv and argv[0] not in KNOWN_COMMANDS and not argv[0].startswith("-"):
        argv = ["read"] + argv

    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    from acplog.formatters.human import init as init_human, detect_ascii
    init_human(ascii_mode=args.ascii or detect_ascii(), force_color=args.color)
    from acplog.formatters.human import console
    from acplog.formatters.json import format_json

    fmt = _get_format(args)
    logs = discover_logs()

    if not args.command or args.command == "find":
        from acplog.commands.find import cmd_find
        data = cmd_find(logs)
        if fmt == "json":
            format_json(data)
        else:
            from acplog.formatters.human import format_find
            format_find(data)
        return

    log = resolve_log_verbose(logs, args.log, console)
    if not log:
        console.print(f"[red]No log matching '{args.log}'[/]")
        sys.exit(1)

    if args.command == "read":
        if fmt == "json":
            from acplog.commands.read import cmd_read
            format_json(cmd_read(log))
        else:
            from acplog.commands.read import load_timeline
            from acplog.formatters.human import format_read
            items, terminals = load_timeline(log)
            format_read(items, terminals, expand=args.expand,
                        title=f"Run {short_id(log.id)} ({log.task})")
        return

    if args.command == "raw":
        from acplog.commands.raw import cmd_raw
        try:
            data = cmd_raw(log, index_range=args.index, highlight=args.highlight)
        except ValueError as e:
            console.print(f"[red]{e}[/]")
            sys.exit(1)
        if fmt == "json":
            format_json(data)
        else:
            from acplog.formatters.human import format_raw
            format_raw(data)
        return

    if args.command == "terminals":
        from acplog.commands.terminals import cmd_terminals
        data = cmd_terminals(log)
        if fmt == "json":
            format_json(data)
        else:
            from acplog.formatters.human import format_terminals
            format_terminals(data)
        return

    if args.command == "stats":
        from acplog.commands.stats import cmd_stats
        data = cmd_stats(log, aspect=args.aspect)
        if fmt == "json":
            format_json(data)
        else:
            from acplog.formatters.human import format_stats
            format_stats(data)
        return


if __name__ == "__main__":
    main()
