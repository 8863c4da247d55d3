"""Run statistics extraction command."""
from __future__ import annotations

from acplog.commands.read import load_timeline
from acplog.logfile import LogFile
from acplog.notifications import PLAN, decode_log
from acplog.processor import MessageChunkGroup, StandaloneEvent, TodoGroup, ToolCallGroup
from acplog.tools import tool_call_view


def cmd_stats(log: LogFile, aspect: str | None = None) -> dict:
    """Extract statistics from a run log and return as a structured dict."""
    items, terminals = load_timeline(log)

    # Tool aggregation
    tool_groups: list[ToolCallGroup] = []
    nested_calls = 0
    # Plans
    todo_groups: list[TodoGroup] = []
    # Messages
    chunk_groups: list[MessageChunkGroup] = []
    events = 0

    for item in items:
        if isinstance(item, TodoGroup):
            todo_groups.append(item)
            tool_groups.extend(item.tool_calls)
            nested_calls += len(item.tool_calls)
            chunk_groups.extend(item.message_chunks)
        elif isinstance(item, ToolCallGroup):
            tool_groups.append(item)
        elif isinstance(item, MessageChunkGroup):
            chunk_groups.append(item)
        elif isinstance(item, StandaloneEvent):
            events += 1

    by_name: dict[str, int] = {}
    by_status: dict[str, int] = {}
    errors = 0
    for group in tool_groups:
        view = tool_call_view(group.initial, group.updates)
        by_name[view["name"]] = by_name.get(view["name"], 0) + 1
        by_status[view["status"]] = by_status.get(view["status"], 0) + 1
        if view["is_error"]:
            errors += 1
    total_calls = len(tool_groups)

    # Timing
    notifications = decode_log(log.notifications())
    stamps = [n.timestamp for n in notifications if n.timestamp is not None]
    first_ts = min(stamps) if stamps else None
    last_ts = max(stamps) if stamps else None
    duration_secs = (last_ts - first_ts).total_seconds() if first_ts and last_ts else 0.0

    todo_durations = [
        {"todo": g.todo.content, "duration_secs": g.duration_secs}
        for g in todo_groups if g.duration_secs is not None
    ]

    final_todos = todo_groups[-1].all_todos if todo_groups else []

    full = {
        "log": log.id,
        "notifications": len(notifications),
        "timeline_items": len(items),
        "tools": {
            "total_calls": total_calls,
            "in_plans": nested_calls,
            "standalone": total_calls - nested_calls,
            "by_name": dict(sorted(by_name.items(), key=lambda x: -x[1])),
            "by_status": by_status,
            "errors": errors,
            "error_rate": errors / total_calls if total_calls else 0.0,
        },
        "plans": {
            "snapshots": sum(1 for n in notifications if n.kind == PLAN),
            "todo_groups": len(todo_groups),
            "todos": len(final_todos),
            "completed": sum(1 for t in final_todos if t.is_completed),
        },
        "messages": {
            "groups": len(chunk_groups),
            "chars": sum(len(g.text) for g in chunk_groups),
            "events": events,
            "terminals": len(terminals),
        },
        "start": first_ts.isoformat() if first_ts else None,
        "end": last_ts.isoformat() if last_ts else None,
        "duration_secs": duration_secs,
        "todo_durations": todo_durations,
    }

    if aspect is None:
        return full

    result: dict = {"log": full["log"]}
    if aspect == "tools":
        result["tools"] = full["tools"]
    elif aspect == "plans":
        result["plans"] = full["plans"]
    elif aspect == "timing":
        for key in ("start", "end", "duration_secs", "todo_durations"):
            result[key] = full[key]
    return result
