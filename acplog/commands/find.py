"""Log listing command."""
from __future__ import annotations

from datetime import datetime

from acplog.logfile import LogFile
from acplog.notifications import MESSAGE_CHUNK, Notification, chunk_text


def first_message(records: list[dict]) -> str:
    """Leading text of the first agent message in a log."""
    parts = []
    for raw in records:
        n = Notification(raw)
        if n.kind == MESSAGE_CHUNK:
            parts.append(chunk_text(n))
        elif parts:
            break
    return " ".join("".join(parts).split())[:80]


def cmd_find(logs: list[LogFile], include_empty: bool = False) -> list[dict]:
    """Return log list as canonical dicts."""
    result = []
    for log in logs:
        records = log.notifications()
        if not include_empty and not records:
            continue
        result.append({
            "id": log.id,
            "task": log.task,
            "date": datetime.fromtimestamp(log.mtime).isoformat(),
            "size": log.size,
            "notifications": len(records),
            "preview": first_message(records),
        })
    return result
