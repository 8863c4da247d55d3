"""Human formatter — Rich terminal output."""
from __future__ import annotations

import os
import sys
from datetime import datetime

from rich.box import ASCII as ASCII_BOX, ROUNDED
from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.padding import Padding
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from acplog.logfile import compact_json, format_size, relative_delta, short_id, truncate_lines
from acplog.processor import (
    MessageChunkGroup, ProcessedItem, StandaloneEvent, TodoGroup, ToolCallGroup,
)
from acplog.terminals import TerminalOutputStore
from acplog.tools import KIND_LABELS, event_label, tool_call_view

# ── Module state ──────────────────────────────────────────────────────

USE_ASCII = False
console = Console()


def init(ascii_mode: bool = False, force_color: bool = False):
    global USE_ASCII, console
    USE_ASCII = ascii_mode
    console = Console(force_terminal=True) if force_color else Console()


def detect_ascii() -> bool:
    encoding = getattr(sys.stdout, "encoding", "") or ""
    if encoding.lower().replace("-", "") not in ("utf8", "utf16", "utf32"):
        return True
    lang = os.environ.get("LANG", "") + os.environ.get("LC_ALL", "")
    if lang and "utf" not in lang.lower():
        return True
    return False


def box_style():
    return ASCII_BOX if USE_ASCII else ROUNDED


def table_box():
    if USE_ASCII:
        return ASCII_BOX
    from rich.box import HEAVY_HEAD
    return HEAVY_HEAD


def _width() -> int:
    return min(console.width, 120)


_STATUS_GLYPHS = {
    "completed": ("✔", "[x]", "green"),
    "in_progress": ("◐", "[~]", "blue"),
    "pending": ("○", "[ ]", "dim"),
    "failed": ("✘", "[!]", "red"),
}


def _status_icon(status: str) -> tuple[str, str]:
    uni, asc, style = _STATUS_GLYPHS.get(status, _STATUS_GLYPHS["pending"])
    return (asc if USE_ASCII else uni), style


def _clock(ts: datetime | None) -> str:
    return ts.strftime("%H:%M:%S") if ts else "--:--:--"


# ── Find formatter ────────────────────────────────────────────────────

def format_find(data: list[dict]) -> None:
    table = Table(title="Agent logs", show_lines=False,
                  padding=(0, 1), width=_width(), box=table_box())
    table.add_column("ID", style="bold cyan", no_wrap=True, min_width=8)
    table.add_column("Task", style="dim", no_wrap=True, justify="right", max_width=12)
    table.add_column("Date", style="green", no_wrap=True, justify="right", min_width=16)
    table.add_column("Size", justify="right", no_wrap=True)
    table.add_column("Notifs", justify="right", no_wrap=True)
    table.add_column("First Message", no_wrap=True, overflow="ellipsis", ratio=1)

    for row in data:
        date_str = datetime.fromisoformat(row["date"]).strftime("%Y-%m-%d %H:%M")
        table.add_row(
            short_id(row["id"]),
            row["task"],
            date_str,
            format_size(row["size"]),
            str(row["notifications"]),
            escape(row["preview"]),
        )

    console.print(table)
    console.print(f"\n[dim]{len(data)} logs[/]")


# ── Timeline rendering ────────────────────────────────────────────────

def _render_result(result, terminals: TerminalOutputStore | None, indent: str) -> None:
    if result is None:
        return
    if isinstance(result, dict) and result.get("type") == "terminal":
        tid = result.get("terminal_id")
        tid = tid if isinstance(tid, str) else ""
        out = terminals.get(tid) if terminals is not None and tid else None
        if out is None:
            console.print(Text(f"{indent}  [terminal {tid}: no output]", style="dim"))
            return
        body = truncate_lines(out.output, max_lines=10)
        if out.exit_code is not None:
            body += f"\n(exit {out.exit_code})"
        console.print(Text(f"{indent}  {body}", style="dim"))
        return
    if isinstance(result, dict) and result.get("type") == "diff":
        console.print(Text(f"{indent}  [diff] {result.get('path') or '?'}", style="dim magenta"))
        return
    text = result if isinstance(result, str) else compact_json(result, max_len=400)
    console.print(Text(f"{indent}  {truncate_lines(text, max_lines=3)}", style="dim"))


def render_tool_call(group: ToolCallGroup, terminals: TerminalOutputStore | None = None,
                     expand: bool = False, indent: str = "") -> None:
    view = tool_call_view(group.initial, group.updates)
    icon, style = _status_icon(view["status"])
    t = Text(indent)
    t.append(f"{icon} ", style=style)
    label = KIND_LABELS.get(view["kind"], "tool")
    t.append(f"[{label}] ", style="yellow")
    t.append(view["name"], style="bold yellow")
    target = view["target"] or view["title"]
    if target:
        t.append(f" {target[:100]}", style="yellow")
    t.append(f"  #{group.start_index}", style="dim")
    console.print(t)
    if expand or view["is_error"]:
        _render_result(view["result"], terminals, indent)


def render_message_chunks(group: MessageChunkGroup, indent: str = "") -> None:
    text = group.text.strip()
    if not text:
        return
    body = Markdown(text) if len(text) < 8000 else Text(truncate_lines(text, 30))
    panel = Panel(
        body, title=f"Agent {_clock(group.timestamp)}", title_align="left",
        border_style="green", width=_width() - len(indent),
        padding=(0, 1), box=box_style(),
    )
    console.print(Padding(panel, (0, 0, 0, len(indent))))


def render_todo_group(group: TodoGroup, terminals: TerminalOutputStore | None = None,
                      expand: bool = False) -> None:
    icon, style = _status_icon(group.todo.status)
    header = Text()
    header.append(f"{icon} ", style=style)
    header.append(f"{_clock(group.timestamp)} ", style="dim")
    header.append(f"{group.todo_step_number}/{group.total_todos} ", style="cyan")
    header.append(group.todo.content, style="bold")
    if group.tool_calls:
        n = len(group.tool_calls)
        header.append(f"  {n} {'tool' if n == 1 else 'tools'}", style="dim")
    if group.duration_secs is not None:
        header.append(f"  {group.duration_secs:.2f}s", style="dim")
    header.append(f"  plan {group.plan_number}/{group.total_plans}", style="dim")
    console.print(header)

    if not expand:
        return
    for todo in group.all_todos:
        t_icon, t_style = _status_icon(todo.status)
        line = Text("    ")
        line.append(f"{t_icon} ", style=t_style)
        line.append(todo.content, style=t_style)
        console.print(line)
    nested: list[ToolCallGroup | MessageChunkGroup] = [*group.tool_calls, *group.message_chunks]
    nested.sort(key=lambda g: g.start_index)
    for child in nested:
        if isinstance(child, ToolCallGroup):
            render_tool_call(child, terminals, expand=expand, indent="    ")
        else:
            render_message_chunks(child, indent="    ")


def render_event(item: StandaloneEvent) -> None:
    event = item.event
    t = Text()
    t.append(f"  {_clock(event.timestamp)} ", style="dim")
    label = event_label(event)
    if event.method == "_posthog/error":
        t.append(label, style="bold red")
    elif event.method:
        t.append(label, style="cyan")
    else:
        t.append(f"[{label}]", style="dim")
        if event.update:
            t.append(f" {compact_json(event.update, max_len=100)}", style="dim")
    t.append(f"  #{item.index}", style="dim")
    console.print(t)


def _item_timestamp(item: ProcessedItem) -> datetime | None:
    if isinstance(item, StandaloneEvent):
        return item.event.timestamp
    if isinstance(item, ToolCallGroup):
        return item.initial.timestamp
    return item.timestamp


def format_read(items: list[ProcessedItem], terminals: TerminalOutputStore | None = None,
                expand: bool = False, title: str | None = None) -> None:
    """Render a processed timeline, marking gaps between timestamped items."""
    if title:
        console.print(Panel(title, style="bold cyan", box=box_style()))
    if not items:
        console.print("[dim]No activity yet[/]")
        return
    prev_ts = None
    for item in items:
        ts = _item_timestamp(item)
        delta_str = relative_delta(prev_ts, ts)
        if delta_str:
            console.print(Text(f"  +{delta_str}", style="dim italic"))
        prev_ts = ts or prev_ts
        if isinstance(item, TodoGroup):
            render_todo_group(item, terminals, expand=expand)
        elif isinstance(item, ToolCallGroup):
            render_tool_call(item, terminals, expand=expand)
        elif isinstance(item, MessageChunkGroup):
            render_message_chunks(item)
        else:
            render_event(item)


# ── Raw formatter ─────────────────────────────────────────────────────

def format_raw(data: dict) -> None:
    for rec in data["records"]:
        t = Text()
        t.append(f"{rec['index']:>5} ", style="bold cyan")
        ts = rec["timestamp"]
        t.append(f"{_clock(ts)} ", style="dim")
        t.append(f"{rec['kind']:<20} ", style="yellow")
        t.append(compact_json(rec["record"], max_len=200))
        if rec["highlight"]:
            t.stylize("reverse")
        console.print(t)
    console.print(f"\n[dim]{data['count']} records[/]")


# ── Terminals formatter ───────────────────────────────────────────────

def format_terminals(data: dict) -> None:
    if not data["terminals"]:
        console.print("[yellow]No terminal output in this log.[/]")
        return
    for out in data["terminals"]:
        state = "done" if out["is_complete"] else "running"
        if out["exit_code"] is not None:
            state += f", exit {out['exit_code']}"
        console.print(Panel(
            Text(truncate_lines(out["output"], 40) or "(empty)"),
            title=f"{out['terminal_id']} ({state})", title_align="left",
            border_style="red" if out["exit_code"] else "blue",
            width=_width(), padding=(0, 1), box=box_style(),
        ))


# ── Stats formatter ───────────────────────────────────────────────────

def _kv_table(title: str, rows: list[tuple[str, str]]) -> Table:
    table = Table(title=title, box=table_box(), show_header=False, padding=(0, 1))
    table.add_column("Key", style="bold")
    table.add_column("Value", justify="right")
    for key, value in rows:
        table.add_row(key, value)
    return table


def format_stats(data: dict) -> None:
    console.print(Panel(f"Run {short_id(data['log'])}", style="bold cyan", box=box_style()))

    if "duration_secs" in data:
        console.print(_kv_table("Timing", [
            ("Start", data.get("start") or "-"),
            ("End", data.get("end") or "-"),
            ("Duration", f"{data['duration_secs']:.1f}s"),
        ]))
        for entry in data.get("todo_durations", []):
            console.print(f"  [dim]{entry['duration_secs']:.2f}s[/] {escape(entry['todo'])}")

    if "tools" in data:
        tools = data["tools"]
        console.print(_kv_table("Tools", [
            ("Total calls", str(tools["total_calls"])),
            ("In plans", str(tools["in_plans"])),
            ("Standalone", str(tools["standalone"])),
            ("Errors", f"{tools['errors']} ({tools['error_rate']:.0%})"),
        ]))
        if tools["by_name"]:
            by_name = Table(title="By tool", box=table_box(), padding=(0, 1))
            by_name.add_column("Tool", style="yellow")
            by_name.add_column("Calls", justify="right")
            for name, count in tools["by_name"].items():
                by_name.add_row(name, str(count))
            console.print(by_name)

    if "plans" in data:
        plans = data["plans"]
        console.print(_kv_table("Plans", [
            ("Snapshots", str(plans["snapshots"])),
            ("Todo groups", str(plans["todo_groups"])),
            ("Todos completed", f"{plans['completed']}/{plans['todos']}"),
        ]))

    if "messages" in data:
        msgs = data["messages"]
        console.print(_kv_table("Messages", [
            ("Message groups", str(msgs["groups"])),
            ("Characters", str(msgs["chars"])),
            ("Other events", str(msgs["events"])),
            ("Terminals", str(msgs["terminals"])),
        ]))
