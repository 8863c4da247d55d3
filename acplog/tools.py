"""Tool call and event presentation helpers."""
from __future__ import annotations

import re
from typing import Any

from acplog.notifications import Notification

TOOL_KINDS = ("read", "edit", "delete", "move", "search", "execute", "think", "fetch", "other")

KIND_LABELS = {
    "read": "file",
    "edit": "edit",
    "delete": "delete",
    "move": "move",
    "search": "search",
    "execute": "exec",
    "think": "think",
    "fetch": "fetch",
}

PENDING_STATUSES = ("pending", "in_progress")

_GLOB_RE = re.compile(r"^[*./\w-]+$")
_TARGET_KEYS = ("file_path", "path", "command", "pattern", "query", "url", "description")


def tool_name(title: str, kind: str | None = None, raw_input: Any = None) -> str:
    """Display name for a tool call, inferred from kind, input and title."""
    inp = raw_input if isinstance(raw_input, dict) else {}
    if kind == "execute" and inp.get("command"):
        return "Bash"
    if kind == "search" and inp.get("pattern"):
        pattern = inp["pattern"]
        if isinstance(pattern, str) and _GLOB_RE.match(pattern):
            return "Glob"
        return "Grep"
    first = (title.split(" ")[0] if title else "") or "Unknown"
    first = first.replace("`", "")
    return first[:1].upper() + first[1:]


def tool_target(raw_input: Any) -> str:
    if not isinstance(raw_input, dict):
        return ""
    for key in _TARGET_KEYS:
        val = raw_input.get(key)
        if val:
            return str(val)
    return ""


def _text(value: Any) -> str | None:
    """Non-empty string value, or None."""
    return value if isinstance(value, str) and value else None


def tool_status(initial: Notification, updates: list[Notification]) -> str:
    """Status of the latest update, falling back to the start record."""
    initial_status = _text(initial.update.get("status")) or "pending"
    if not updates:
        return initial_status
    return _text(updates[-1].update.get("status")) or initial_status


def merged_field(initial: Notification, updates: list[Notification], key: str) -> Any:
    """Latest non-empty value of ``key`` across the start record and updates."""
    value = initial.update.get(key)
    for u in updates:
        candidate = u.update.get(key)
        if candidate:
            value = candidate
    return value


def extract_tool_result(content: Any) -> str | dict | None:
    """Pull a displayable result out of an ACP tool content list."""
    if not isinstance(content, list) or not content:
        return None
    blocks = [c for c in content if isinstance(c, dict)]

    for c in blocks:
        inner = c.get("content")
        if c.get("type") == "content" and isinstance(inner, dict) and inner.get("type") == "text":
            if inner.get("text"):
                return inner["text"]

    for c in blocks:
        if c.get("type") == "diff":
            return {
                "type": "diff",
                "path": c.get("path"),
                "old_text": c.get("oldText"),
                "new_text": c.get("newText"),
            }

    for c in blocks:
        if c.get("type") == "terminal" and _text(c.get("terminalId")):
            return {"type": "terminal", "terminal_id": c["terminalId"]}

    for c in blocks:
        inner = c.get("content")
        if c.get("type") != "content" or not inner:
            continue
        if isinstance(inner, str):
            return inner
        if isinstance(inner, dict) and inner.get("text"):
            return inner["text"]
    return None


def tool_call_view(initial: Notification, updates: list[Notification]) -> dict:
    """Canonical summary of a tool call and its updates."""
    upd = initial.update
    title = upd.get("title") if isinstance(upd.get("title"), str) else ""
    kind = upd.get("kind") if upd.get("kind") in TOOL_KINDS else None
    raw_input = upd.get("rawInput")
    status = tool_status(initial, updates)
    raw_output = merged_field(initial, updates, "rawOutput")
    content = merged_field(initial, updates, "content")
    return {
        "name": tool_name(title, kind, raw_input),
        "title": title,
        "kind": kind or "other",
        "status": status,
        "is_pending": status in PENDING_STATUSES,
        "is_error": status == "failed",
        "target": tool_target(raw_input),
        "input": raw_input if isinstance(raw_input, dict) else {},
        "result": raw_output or extract_tool_result(content),
    }


# ── Extension events ──────────────────────────────────────────────────

def status_message(params: dict) -> str:
    """One-line description of a ``_posthog/status`` event."""
    etype = _text(params.get("type")) or ""
    meta = params.get("_meta") if isinstance(params.get("_meta"), dict) else {}
    if etype == "run_started":
        return f"Starting task run ({'cloud' if meta.get('isCloudMode') else 'local'} mode)"
    if etype == "branch_created":
        return f"Created branch: {meta.get('branch')}"
    if etype == "phase_start":
        return f"Starting {meta.get('phase')} phase"
    if etype == "phase_complete":
        return f"Completed {meta.get('phase')} phase"
    if etype == "task_start":
        return "Task started"
    if etype == "task_started":
        return _text(meta.get("content")) or "Task started in cloud"
    if etype == "done":
        return "Task completed successfully" if meta.get("success") else "Task failed"
    if etype in ("canceled", "cancelled"):
        return "Task canceled"
    if etype == "permission_mode":
        return _text(meta.get("content")) or f"Permission mode: {meta.get('permissionMode') or 'unknown'}"
    if etype == "repo_path":
        return _text(meta.get("content")) or f"Repository: {meta.get('repoPath') or 'unknown'}"
    if etype == "claude_stderr":
        return f"[Claude] {meta.get('message')}"
    if etype == "extraction_skipped":
        return _text(meta.get("message")) or "Question extraction skipped"
    return _text(meta.get("content")) or _text(meta.get("message")) or etype


def error_message(params: dict) -> str:
    meta = params.get("_meta") if isinstance(params.get("_meta"), dict) else {}
    return _text(meta.get("message")) or "Unknown error"


def event_label(event: Notification) -> str:
    """Short label for a standalone event."""
    method = event.method
    if method == "_posthog/status":
        return status_message(event.params)
    if method == "_posthog/error":
        return f"Error: {error_message(event.params)}"
    if method == "_posthog/artifact":
        return f"artifact: {event.params.get('type') or 'unknown'}"
    if method:
        return method
    if event.update:
        return _text(event.update.get("sessionUpdate")) or "unknown"
    return "unknown"
