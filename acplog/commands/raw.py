"""Raw command — numbered records with index windowing."""
from __future__ import annotations

from acplog.logfile import LogFile
from acplog.notifications import decode_log


def _parse_index_range(spec: str) -> tuple[int | None, int | None]:
    """Parse 'start:end' index range. Either side optional."""
    parts = spec.split(":")
    if len(parts) != 2:
        raise ValueError(f"Invalid index range: {spec!r} (use start:end)")
    try:
        start = int(parts[0]) if parts[0].strip() else None
        end = int(parts[1]) if parts[1].strip() else None
    except ValueError:
        raise ValueError(f"Invalid index range: {spec!r} (use start:end)") from None
    return start, end


def cmd_raw(log: LogFile, index_range: str | None = None,
            highlight: int | None = None) -> dict:
    """Extract raw records, optionally windowed by log position."""
    start, end = _parse_index_range(index_range) if index_range else (None, None)
    records = []
    for n in decode_log(log.notifications()):
        if start is not None and n.index < start:
            continue
        if end is not None and n.index >= end:
            break
        records.append({
            "index": n.index,
            "kind": n.kind,
            "timestamp": n.timestamp,
            "highlight": n.index == highlight,
            "record": n.raw,
        })
    return {
        "log": log.id,
        "count": len(records),
        "records": records,
    }
