"""Terminals command — the terminal output side table of a run."""
from __future__ import annotations

from acplog.commands.read import load_timeline
from acplog.logfile import LogFile


def cmd_terminals(log: LogFile) -> dict:
    _items, terminals = load_timeline(log)
    return {
        "log": log.id,
        "terminals": [out.to_dict() for _tid, out in terminals.items()],
    }
