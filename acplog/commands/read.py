"""Read command — processed timeline rendering."""
from __future__ import annotations

from acplog.logfile import LogFile
from acplog.processor import ProcessedItem, ToolCallGroup, TodoGroup, process_logs
from acplog.terminals import TerminalOutputStore
from acplog.tools import tool_call_view


def _tool_call_dict(group: ToolCallGroup) -> dict:
    d = group.to_dict()
    d["tool"] = tool_call_view(group.initial, group.updates)
    return d


def item_dict(item: ProcessedItem) -> dict:
    """Canonical dict for one timeline item, with tool summaries attached."""
    if isinstance(item, ToolCallGroup):
        return _tool_call_dict(item)
    d = item.to_dict()
    if isinstance(item, TodoGroup):
        d["tool_calls"] = [_tool_call_dict(tc) for tc in item.tool_calls]
    return d


def load_timeline(log: LogFile) -> tuple[list[ProcessedItem], TerminalOutputStore]:
    terminals = TerminalOutputStore()
    items = process_logs(log.notifications(), set_terminal_output=terminals.set)
    return items, terminals


def cmd_read(log: LogFile) -> dict:
    """Return the processed timeline as canonical dict (for JSON output)."""
    items, terminals = load_timeline(log)
    return {
        "log": log.id,
        "items": [item_dict(item) for item in items],
        "terminals": {tid: out.to_dict() for tid, out in terminals.items()},
    }
