"""Agent log processor — turns a flat notification log into a render timeline.

The whole log is reprocessed on every call. One forward pass decides the
output order; tool calls are folded together with their updates, streamed
message chunks are batched, and plan snapshots become todo groups that take
ownership of the tool calls and message chunks emitted while they were the
active plan. Terminal output is routed to a side table and never appears in
the timeline.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Callable, ClassVar, Iterable

from acplog.notifications import (
    MESSAGE_CHUNK, PLAN, TERMINAL_OUTPUT, TOOL_CALL, TOOL_CALL_UPDATE,
    Notification, Todo, chunk_text, decode_log, extract_plan_entries,
    extract_terminal_output,
)
from acplog.terminals import TerminalOutput

logger = logging.getLogger(__name__)

SetTerminalOutput = Callable[[str, TerminalOutput], None]


# ── Output model ──────────────────────────────────────────────────────

@dataclass
class ToolCallData:
    initial: Notification
    updates: list[Notification]
    start_index: int


@dataclass
class ToolCallGroup:
    tool_call_id: str
    initial: Notification
    updates: list[Notification]
    start_index: int

    type: ClassVar[str] = "tool_call_group"

    @property
    def end_timestamp(self) -> datetime | None:
        if not self.updates:
            return None
        return self.updates[-1].timestamp

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "tool_call_id": self.tool_call_id,
            "start_index": self.start_index,
            "initial": self.initial.raw,
            "updates": [u.raw for u in self.updates],
        }


@dataclass
class MessageChunkGroup:
    chunks: list[Notification]
    start_index: int
    timestamp: datetime | None = None

    type: ClassVar[str] = "message_chunk_group"

    @property
    def text(self) -> str:
        return "".join(chunk_text(c) for c in self.chunks)

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "start_index": self.start_index,
            "timestamp": self.timestamp,
            "chunk_count": len(self.chunks),
            "text": self.text,
        }


@dataclass
class TodoGroup:
    todo: Todo
    all_todos: list[Todo]
    tool_calls: list[ToolCallGroup]
    message_chunks: list[MessageChunkGroup]
    timestamp: datetime | None
    todo_write_index: int
    plan_number: int
    total_plans: int
    todo_step_number: int
    total_todos: int

    type: ClassVar[str] = "todo_group"

    @property
    def is_completed(self) -> bool:
        return all(t.is_completed for t in self.all_todos)

    @property
    def duration_secs(self) -> float | None:
        """First nested tool start to the last nested tool's final update."""
        if not self.tool_calls:
            return None
        start = self.tool_calls[0].initial.timestamp
        end = self.tool_calls[-1].end_timestamp
        if start is None or end is None:
            return None
        return (end - start).total_seconds()

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "todo": self.todo.to_dict(),
            "all_todos": [t.to_dict() for t in self.all_todos],
            "tool_calls": [tc.to_dict() for tc in self.tool_calls],
            "message_chunks": [mc.to_dict() for mc in self.message_chunks],
            "timestamp": self.timestamp,
            "todo_write_index": self.todo_write_index,
            "plan_number": self.plan_number,
            "total_plans": self.total_plans,
            "todo_step_number": self.todo_step_number,
            "total_todos": self.total_todos,
            "duration_secs": self.duration_secs,
        }


@dataclass
class StandaloneEvent:
    event: Notification
    index: int

    type: ClassVar[str] = "standalone"

    def to_dict(self) -> dict:
        return {"type": self.type, "index": self.index, "event": self.event.raw}


ProcessedItem = TodoGroup | StandaloneEvent | MessageChunkGroup | ToolCallGroup


# ── Processing context ────────────────────────────────────────────────

@dataclass
class ProcessingContext:
    """Mutable bookkeeping for one pass.

    Every tool call and every message chunk position is taken at most once,
    either by a todo group or by the top-level timeline.
    """

    tool_calls: dict[str, ToolCallData]
    emitted_tool_calls: set[str] = field(default_factory=set)
    claimed_tool_calls: set[str] = field(default_factory=set)
    consumed_chunks: set[int] = field(default_factory=set)

    def take_tool_call(self, tool_call_id: str | None, nested: bool = False) -> ToolCallData | None:
        if tool_call_id is None or tool_call_id in self.emitted_tool_calls:
            return None
        data = self.tool_calls.get(tool_call_id)
        if data is None:
            return None
        self.emitted_tool_calls.add(tool_call_id)
        if nested:
            self.claimed_tool_calls.add(tool_call_id)
        return data

    def is_chunk_consumed(self, index: int) -> bool:
        return index in self.consumed_chunks

    def consume_chunk(self, index: int) -> None:
        self.consumed_chunks.add(index)


# ── Tool call index ───────────────────────────────────────────────────

def build_tool_call_index(log: list[Notification]) -> dict[str, ToolCallData]:
    """Map each tool call id to its start record and ordered updates."""
    index: dict[str, ToolCallData] = {}
    for i, n in enumerate(log):
        if n.kind == TOOL_CALL:
            tool_call_id = n.tool_call_id
            existing = index.get(tool_call_id)
            if existing is None:
                index[tool_call_id] = ToolCallData(initial=n, updates=[], start_index=i)
            else:
                # re-announced: keep position and accumulated updates
                existing.initial = n
        elif n.kind == TOOL_CALL_UPDATE:
            tool_call_id = n.tool_call_id
            if tool_call_id in index:
                index[tool_call_id].updates.append(n)
            else:
                logger.debug("dropping orphan tool_call_update at %d (id=%r)", i, tool_call_id)
    return index


# ── Message chunk batching ────────────────────────────────────────────

def create_message_chunk_batch(notification: Notification, start_index: int,
                               log: list[Notification], ctx: ProcessingContext,
                               end: int | None = None) -> tuple[MessageChunkGroup, int]:
    """Absorb the contiguous run of chunks starting at start_index.

    Returns the batch and the index scanning should resume from.
    """
    end = len(log) if end is None else end
    chunks = [notification]
    ctx.consume_chunk(start_index)
    j = start_index + 1
    while j < end and log[j].kind == MESSAGE_CHUNK and not ctx.is_chunk_consumed(j):
        chunks.append(log[j])
        ctx.consume_chunk(j)
        j += 1
    batch = MessageChunkGroup(
        chunks=chunks,
        start_index=start_index,
        timestamp=notification.timestamp,
    )
    return batch, j


# ── Plans ─────────────────────────────────────────────────────────────

def collect_plans(log: list[Notification]) -> list[tuple[Notification, int]]:
    return [(n, i) for i, n in enumerate(log) if n.kind == PLAN]


def count_renderable_plans(plans: list[tuple[Notification, int]],
                           log: list[Notification]) -> int:
    """Number of plans, minus a trailing plan that is already all done."""
    count = len(plans)
    if not plans:
        return count
    last, last_index = plans[-1]
    entries = extract_plan_entries(last)
    if entries is not None:
        all_completed = all(e.is_completed for e in entries)
        has_tool_calls_after = any(n.kind == TOOL_CALL for n in log[last_index + 1:])
        if all_completed and not has_tool_calls_after:
            count -= 1
    return count


def _slot(todo: Todo, k: int) -> int:
    return todo.position if todo.position is not None else k


def _promoted(entry: Todo, next_entries: list[Todo] | None, slot: int) -> Todo:
    if next_entries is None:
        return entry
    nxt = next((n for k, n in enumerate(next_entries) if _slot(n, k) == slot), None)
    if nxt is None:
        return entry
    if nxt.content == entry.content and nxt.is_completed and not entry.is_completed:
        return replace(entry, status="completed")
    return entry


def merge_entries(entries: list[Todo], next_entries: list[Todo] | None) -> list[Todo]:
    """Mark items completed when the next snapshot shows them completed.

    Items are paired by their slot in the raw entries array, so a reordered
    checklist is not matched.
    """
    if next_entries is None:
        return list(entries)
    return [_promoted(entry, next_entries, _slot(entry, k)) for k, entry in enumerate(entries)]


def current_todo(entries: list[Todo], next_entries: list[Todo] | None) -> Todo:
    todo = next((e for e in entries if e.status == "in_progress"), entries[0])
    slot = next(_slot(e, k) for k, e in enumerate(entries) if e.content == todo.content)
    return _promoted(todo, next_entries, slot)


def _window_tool_calls(log: list[Notification], start: int, end: int,
                       ctx: ProcessingContext) -> list[ToolCallGroup]:
    groups = []
    for j in range(start + 1, end):
        n = log[j]
        if n.kind != TOOL_CALL:
            continue
        data = ctx.take_tool_call(n.tool_call_id, nested=True)
        if data is not None:
            groups.append(ToolCallGroup(
                tool_call_id=n.tool_call_id,
                initial=data.initial,
                updates=data.updates,
                start_index=j,
            ))
    return groups


def _window_message_chunks(log: list[Notification], start: int, end: int,
                           ctx: ProcessingContext) -> list[MessageChunkGroup]:
    batches = []
    j = start + 1
    while j < end:
        n = log[j]
        if n.kind == MESSAGE_CHUNK and not ctx.is_chunk_consumed(j):
            batch, j = create_message_chunk_batch(n, j, log, ctx, end=end)
            batches.append(batch)
        else:
            j += 1
    return batches


def _next_plan_index(log: list[Notification], index: int) -> int:
    return next((j for j in range(index + 1, len(log)) if log[j].kind == PLAN), len(log))


def build_todo_group(snapshot: Notification, index: int, plan_ordinal: int,
                     total_renderable: int, next_snapshot: Notification | None,
                     log: list[Notification], ctx: ProcessingContext) -> TodoGroup | None:
    """Build the todo group for the plan snapshot at ``index``.

    The group's window runs up to the next plan snapshot or the end of the
    log. Returns None for a degenerate plan, and for a final plan (no
    ``next_snapshot``) that is fully completed with no tool calls of its own;
    nothing in the window is claimed in either case.
    """
    entries = extract_plan_entries(snapshot)
    if not entries:
        logger.debug("plan at %d has no usable entries", index)
        return None

    next_entries = extract_plan_entries(next_snapshot) if next_snapshot is not None else None
    todo = current_todo(entries, next_entries)
    all_todos = merge_entries(entries, next_entries)

    end = _next_plan_index(log, index)
    tool_calls = _window_tool_calls(log, index, end, ctx)
    if next_snapshot is None and not tool_calls and all(t.is_completed for t in all_todos):
        logger.debug("suppressing completed trailing plan at %d", index)
        return None
    message_chunks = _window_message_chunks(log, index, end, ctx)

    step = next((k for k, e in enumerate(entries) if e.content == todo.content), 0)

    return TodoGroup(
        todo=todo,
        all_todos=all_todos,
        tool_calls=tool_calls,
        message_chunks=message_chunks,
        timestamp=snapshot.timestamp,
        todo_write_index=index,
        plan_number=plan_ordinal + 1,
        total_plans=total_renderable,
        todo_step_number=step + 1,
        total_todos=len(entries),
    )


# ── Timeline ──────────────────────────────────────────────────────────

def process_logs(logs: Iterable[Any],
                 set_terminal_output: SetTerminalOutput | None = None) -> list[ProcessedItem]:
    """Build the ordered timeline for a complete notification log.

    ``logs`` may hold raw records or ``Notification`` objects. Terminal
    output records are passed to ``set_terminal_output`` instead of being
    emitted.
    """
    log = decode_log(logs)
    ctx = ProcessingContext(tool_calls=build_tool_call_index(log))
    plans = collect_plans(log)
    total_renderable = count_renderable_plans(plans, log)
    plan_ordinals = {index: ordinal for ordinal, (_, index) in enumerate(plans)}

    items: list[ProcessedItem] = []
    i = 0
    while i < len(log):
        n = log[i]

        if n.kind == PLAN:
            ordinal = plan_ordinals[i]
            next_snapshot = plans[ordinal + 1][0] if ordinal + 1 < len(plans) else None
            group = build_todo_group(n, i, ordinal, total_renderable, next_snapshot, log, ctx)
            if group is not None:
                items.append(group)
            i += 1

        elif n.kind == TOOL_CALL:
            data = ctx.take_tool_call(n.tool_call_id)
            if data is not None:
                items.append(ToolCallGroup(
                    tool_call_id=n.tool_call_id,
                    initial=data.initial,
                    updates=data.updates,
                    start_index=i,
                ))
            i += 1

        elif n.kind == TOOL_CALL_UPDATE:
            i += 1

        elif n.kind == MESSAGE_CHUNK:
            if ctx.is_chunk_consumed(i):
                i += 1
            else:
                batch, i = create_message_chunk_batch(n, i, log, ctx)
                items.append(batch)

        elif n.kind == TERMINAL_OUTPUT:
            if set_terminal_output is not None:
                output = extract_terminal_output(n)
                set_terminal_output(output.terminal_id, output)
            i += 1

        else:
            items.append(StandaloneEvent(event=n, index=i))
            i += 1

    return items
