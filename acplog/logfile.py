"""Log discovery, JSONL loading, and shared formatting helpers."""
from __future__ import annotations

import json
import logging
import os
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

logger = logging.getLogger(__name__)


# ── Paths ─────────────────────────────────────────────────────────────

def env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def logs_dir() -> Path:
    env = os.environ.get("ACPLOG_DIR")
    if env:
        return Path(env)
    xdg_home = os.environ.get("XDG_CONFIG_HOME")
    xdg = (Path(xdg_home) if xdg_home else Path.home() / ".config") / "acplog" / "logs"
    if xdg.exists():
        return xdg
    return Path.home() / ".acplog" / "logs"


# ── JSONL helpers ─────────────────────────────────────────────────────

def iter_jsonl(path: Path) -> Iterator[dict]:
    """Yield parsed records from a JSONL file, skipping bad lines."""
    skipped = 0
    with open(path, encoding="utf-8", errors="replace") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                obj = json.loads(line)
            except json.JSONDecodeError:
                skipped += 1
                continue
            if not isinstance(obj, dict):
                skipped += 1
                continue
            yield obj
    if skipped:
        logger.debug("skipped %d unreadable lines in %s", skipped, path)


# ── LogFile ───────────────────────────────────────────────────────────

class LogFile:
    """One agent run's notification log on disk."""

    __slots__ = ("id", "path", "task", "size", "mtime")

    def __init__(self, id: str, path: Path, task: str, size: int, mtime: float):
        self.id = id
        self.path = path
        self.task = task
        self.size = size
        self.mtime = mtime

    @classmethod
    def from_path(cls, path: Path) -> LogFile:
        stat = path.stat()
        return cls(
            id=path.stem,
            path=path,
            task=path.parent.name,
            size=stat.st_size,
            mtime=stat.st_mtime,
        )

    def notifications(self) -> list[dict]:
        return list(iter_jsonl(self.path))


def discover_logs(root: Path | None = None) -> list[LogFile]:
    """Find all *.jsonl logs under the log directory, newest first."""
    root = root or logs_dir()
    if not root.exists():
        return []
    logs = [LogFile.from_path(f) for f in root.rglob("*.jsonl") if f.is_file()]
    logs.sort(key=lambda l: l.mtime, reverse=True)
    return logs


def resolve_log_verbose(logs: list[LogFile], ref: str, console) -> LogFile | None:
    """Resolve a path or id prefix, with user-facing error messages."""
    path = Path(ref).expanduser()
    if path.is_file():
        return LogFile.from_path(path)
    matches = [l for l in logs if l.id.startswith(ref)]
    if len(matches) == 1:
        return matches[0]
    if len(matches) > 1:
        console.print(f"[yellow]Ambiguous prefix '{ref}', matches {len(matches)} logs:[/]")
        for m in matches[:5]:
            console.print(f"  {m.id}")
    return None


# ── Formatting helpers ────────────────────────────────────────────────

def short_id(full_id: str) -> str:
    return full_id[:8]


def format_size(n: int) -> str:
    if n < 1024:
        return f"{n}B"
    if n < 1024 * 1024:
        return f"{n / 1024:.1f}K"
    return f"{n / (1024 * 1024):.1f}M"


def parse_ts(ts: Any) -> datetime | None:
    """Parse an ISO string or epoch milliseconds into an aware datetime."""
    if ts is None or isinstance(ts, bool):
        return None
    if isinstance(ts, (int, float)):
        try:
            return datetime.fromtimestamp(ts / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if not isinstance(ts, str) or not ts:
        return None
    try:
        dt = datetime.fromisoformat(ts.replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def relative_delta(a: datetime | None, b: datetime | None) -> str:
    if not a or not b:
        return ""
    delta = (b - a).total_seconds()
    if delta < 1:
        return ""
    if delta < 60:
        return f"{delta:.0f}s"
    if delta < 3600:
        return f"{delta / 60:.0f}m"
    return f"{delta / 3600:.1f}h"


_B64_RE = re.compile(r'[A-Za-z0-9+/]{200,}={0,2}')


def collapse_b64(text: str) -> str:
    """Replace long base64 blobs with a size summary."""
    def _repl(m):
        size = len(m.group(0)) * 3 // 4  # approximate decoded size
        return f"[base64 ~{format_size(size)}]"
    return _B64_RE.sub(_repl, text)


def compact_json(obj: Any, max_len: int = 120) -> str:
    try:
        s = json.dumps(obj, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError):
        s = str(obj)
    s = collapse_b64(s)
    if len(s) > max_len:
        s = s[:max_len] + "..."
    return s


def truncate_lines(text: str, max_lines: int = 3) -> str:
    lines = text.split("\n")
    if len(lines) <= max_lines:
        return text
    kept = "\n".join(lines[:max_lines])
    remaining = len(lines) - max_lines
    return f"{kept}\n... ({remaining} more lines)"
