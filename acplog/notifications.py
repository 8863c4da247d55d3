"""Notification decoding and defensive classification.

Every predicate and extractor here accepts either a raw record (usually a
dict parsed from JSONL) or a decoded ``Notification``, and never raises:
a missing or wrongly-typed field simply yields ``False`` / ``None``.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable

from acplog.logfile import parse_ts
from acplog.terminals import TerminalOutput


# ── Kinds ─────────────────────────────────────────────────────────────

TOOL_CALL = "tool_call"
TOOL_CALL_UPDATE = "tool_call_update"
PLAN = "plan"
MESSAGE_CHUNK = "agent_message_chunk"
TERMINAL_OUTPUT = "terminal_output"
OTHER = "other"

KINDS = (TOOL_CALL, TOOL_CALL_UPDATE, PLAN, MESSAGE_CHUNK, TERMINAL_OUTPUT, OTHER)

TERMINAL_OUTPUT_METHOD = "_posthog/terminal_output"

TODO_STATUSES = ("pending", "in_progress", "completed")


# ── Structural predicates ─────────────────────────────────────────────

def _raw(notification: Any) -> Any:
    if isinstance(notification, Notification):
        return notification.raw
    return notification


def is_session_notification(notification: Any) -> bool:
    raw = _raw(notification)
    return isinstance(raw, dict) and "sessionId" in raw and "update" in raw


def session_update(notification: Any) -> str | None:
    """Return the ``update.sessionUpdate`` discriminant, if any."""
    raw = _raw(notification)
    if not is_session_notification(raw):
        return None
    update = raw["update"]
    if isinstance(update, dict) and isinstance(update.get("sessionUpdate"), str):
        return update["sessionUpdate"]
    return None


def is_tool_call(notification: Any) -> bool:
    return session_update(notification) == TOOL_CALL


def is_tool_call_update(notification: Any) -> bool:
    return session_update(notification) == TOOL_CALL_UPDATE


def is_plan(notification: Any) -> bool:
    return session_update(notification) == PLAN


def is_message_chunk(notification: Any) -> bool:
    return session_update(notification) == MESSAGE_CHUNK


def is_terminal_output(notification: Any) -> bool:
    raw = _raw(notification)
    return isinstance(raw, dict) and raw.get("method") == TERMINAL_OUTPUT_METHOD


def get_tool_call_id(notification: Any) -> str | None:
    raw = _raw(notification)
    if not is_session_notification(raw):
        return None
    update = raw["update"]
    if isinstance(update, dict) and isinstance(update.get("toolCallId"), str):
        return update["toolCallId"]
    return None


# ── Extractors ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Todo:
    content: str
    status: str = "pending"
    active_form: str | None = None
    priority: str | None = None
    # slot in the raw entries array; malformed neighbours are skipped but keep their slots
    position: int | None = field(default=None, compare=False)

    @property
    def is_completed(self) -> bool:
        return self.status == "completed"

    def to_dict(self) -> dict:
        d: dict = {"content": self.content, "status": self.status}
        if self.active_form is not None:
            d["active_form"] = self.active_form
        if self.priority is not None:
            d["priority"] = self.priority
        return d


def _todo_from_raw(entry: Any, position: int | None = None) -> Todo | None:
    if not isinstance(entry, dict) or not isinstance(entry.get("content"), str):
        return None
    status = entry.get("status")
    if status not in TODO_STATUSES:
        status = "pending"
    active_form = entry.get("activeForm")
    priority = entry.get("priority")
    return Todo(
        content=entry["content"],
        status=status,
        active_form=active_form if isinstance(active_form, str) else None,
        priority=priority if isinstance(priority, str) else None,
        position=position,
    )


def extract_plan_entries(notification: Any) -> list[Todo] | None:
    """Todo list of a plan snapshot, or None when the record is not a usable plan."""
    if not is_plan(notification):
        return None
    entries = _raw(notification)["update"].get("entries")
    if not isinstance(entries, list):
        return None
    todos = []
    for position, entry in enumerate(entries):
        todo = _todo_from_raw(entry, position)
        if todo is not None:
            todos.append(todo)
    return todos


def extract_terminal_output(notification: Any) -> TerminalOutput | None:
    if not is_terminal_output(notification):
        return None
    params = _raw(notification).get("params")
    if not isinstance(params, dict):
        return None
    terminal_id = params.get("terminalId")
    if not terminal_id or not isinstance(terminal_id, str):
        return None
    output = params.get("output")
    exit_code = params.get("exitCode")
    return TerminalOutput(
        terminal_id=terminal_id,
        output=output if isinstance(output, str) else "",
        exit_code=exit_code if isinstance(exit_code, int) and not isinstance(exit_code, bool) else None,
        is_complete=params.get("isComplete") is True,
    )


def chunk_text(notification: Any) -> str:
    """Text carried by an agent message chunk ('' for anything else)."""
    if not is_message_chunk(notification):
        return ""
    content = _raw(notification)["update"].get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, dict):
        text = content.get("text")
        return text if isinstance(text, str) else ""
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, dict) and isinstance(block.get("text"), str):
                parts.append(block["text"])
        return "".join(parts)
    return ""


def notification_timestamp(notification: Any) -> datetime | None:
    raw = _raw(notification)
    if not isinstance(raw, dict):
        return None
    candidates = [raw.get("timestamp")]
    params = raw.get("params")
    if isinstance(params, dict):
        candidates.append(params.get("timestamp"))
    update = raw.get("update")
    if isinstance(update, dict) and isinstance(update.get("_meta"), dict):
        candidates.append(update["_meta"].get("timestamp"))
    for value in candidates:
        ts = parse_ts(value)
        if ts is not None:
            return ts
    return None


# ── Decoding ──────────────────────────────────────────────────────────

def classify(raw: Any) -> str:
    """Decode a raw record into exactly one of KINDS."""
    kind = session_update(raw)
    if kind == TOOL_CALL:
        return TOOL_CALL if get_tool_call_id(raw) else OTHER
    if kind in (TOOL_CALL_UPDATE, PLAN, MESSAGE_CHUNK):
        return kind
    if is_terminal_output(raw):
        return TERMINAL_OUTPUT if extract_terminal_output(raw) else OTHER
    return OTHER


class Notification:
    """One log record, decoded once, with its position in the log."""

    __slots__ = ("raw", "index", "kind")

    def __init__(self, raw: Any, index: int = -1):
        self.raw = raw
        self.index = index
        self.kind = classify(raw)

    @property
    def update(self) -> dict:
        if is_session_notification(self.raw) and isinstance(self.raw["update"], dict):
            return self.raw["update"]
        return {}

    @property
    def method(self) -> str:
        if isinstance(self.raw, dict) and isinstance(self.raw.get("method"), str):
            return self.raw["method"]
        return ""

    @property
    def params(self) -> dict:
        if isinstance(self.raw, dict) and isinstance(self.raw.get("params"), dict):
            return self.raw["params"]
        return {}

    @property
    def tool_call_id(self) -> str | None:
        return get_tool_call_id(self.raw)

    @property
    def timestamp(self) -> datetime | None:
        return notification_timestamp(self.raw)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Notification):
            return NotImplemented
        return self.index == other.index and self.raw == other.raw

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"Notification({self.kind}, index={self.index})"


def decode_log(log: Iterable[Any]) -> list[Notification]:
    """Wrap every record, numbering them by their position in the log."""
    decoded = []
    for i, item in enumerate(log):
        if isinstance(item, Notification) and item.index == i:
            decoded.append(item)
        else:
            decoded.append(Notification(_raw(item), i))
    return decoded
