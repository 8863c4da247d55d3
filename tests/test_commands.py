"""Tests for acplog commands and formatters."""
from __future__ import annotations

import argparse
import io
import json
import sys

import pytest
from rich.console import Console

from acplog.__main__ import _get_format, main
from acplog.commands.find import cmd_find, first_message
from acplog.commands.raw import cmd_raw
from acplog.commands.read import cmd_read, load_timeline
from acplog.commands.stats import cmd_stats
from acplog.commands.terminals import cmd_terminals
from acplog.formatters import human
from acplog.formatters.json import format_json
from acplog.logfile import LogFile
from acplog.processor import process_logs


class TestCmdRead:
    def test_items(self, sample_log):
        data = cmd_read(sample_log)
        assert data["log"] == "run-abcdef123"
        assert [i["type"] for i in data["items"]] == [
            "standalone", "message_chunk_group", "todo_group", "todo_group", "standalone",
        ]

    def test_tool_summaries_attached(self, sample_log):
        data = cmd_read(sample_log)
        first_plan = data["items"][2]
        tool = first_plan["tool_calls"][0]["tool"]
        assert tool["name"] == "Read"
        assert tool["status"] == "completed"
        assert tool["result"] == "print('hi')"
        second_plan = data["items"][3]
        assert second_plan["tool_calls"][0]["tool"]["is_error"] is True

    def test_terminals(self, sample_log):
        data = cmd_read(sample_log)
        assert data["terminals"]["term-1"]["output"] == "total 0\n"

    def test_json_serialisable(self, sample_log):
        buf = io.StringIO()
        format_json(cmd_read(sample_log), stream=buf)
        parsed = json.loads(buf.getvalue())
        assert parsed["items"][2]["timestamp"].startswith("2026-01-01T00:00:02")


class TestCmdRaw:
    def test_all(self, sample_log, sample_records):
        data = cmd_raw(sample_log)
        assert data["count"] == len(sample_records)
        assert data["records"][4]["kind"] == "tool_call"

    def test_window_and_highlight(self, sample_log):
        data = cmd_raw(sample_log, index_range="3:6", highlight=4)
        assert [r["index"] for r in data["records"]] == [3, 4, 5]
        assert [r["highlight"] for r in data["records"]] == [False, True, False]

    def test_open_ended(self, sample_log):
        assert [r["index"] for r in cmd_raw(sample_log, index_range=":2")["records"]] == [0, 1]
        assert cmd_raw(sample_log, index_range="14:")["count"] == 2

    @pytest.mark.parametrize("spec", ["5", "a:b", "1:2:3"])
    def test_invalid_range(self, sample_log, spec):
        with pytest.raises(ValueError):
            cmd_raw(sample_log, index_range=spec)


class TestCmdTerminals:
    def test_last_write_wins(self, sample_log):
        data = cmd_terminals(sample_log)
        assert data["terminals"] == [{
            "terminal_id": "term-1", "output": "total 0\n", "exit_code": 1, "is_complete": True,
        }]


class TestCmdStats:
    def test_full_stats(self, sample_log):
        data = cmd_stats(sample_log)
        assert data["log"] == "run-abcdef123"
        assert data["notifications"] == 16
        assert data["timeline_items"] == 5
        assert data["duration_secs"] == pytest.approx(11.0)

    def test_tools(self, sample_log):
        tools = cmd_stats(sample_log)["tools"]
        assert tools["total_calls"] == 2
        assert tools["in_plans"] == 2
        assert tools["standalone"] == 0
        assert tools["by_name"] == {"Read": 1, "Bash": 1}
        assert tools["by_status"] == {"completed": 1, "failed": 1}
        assert tools["errors"] == 1
        assert tools["error_rate"] == pytest.approx(0.5)

    def test_plans_and_messages(self, sample_log):
        data = cmd_stats(sample_log)
        assert data["plans"] == {"snapshots": 3, "todo_groups": 2, "todos": 2, "completed": 2}
        assert data["messages"]["groups"] == 2
        assert data["messages"]["chars"] == len("I'll start by reading the code.Found it.")
        assert data["messages"]["events"] == 2
        assert data["messages"]["terminals"] == 1

    def test_todo_durations(self, sample_log):
        durations = cmd_stats(sample_log)["todo_durations"]
        assert [d["duration_secs"] for d in durations] == [pytest.approx(2.0), pytest.approx(2.0)]

    def test_aspect_tools(self, sample_log):
        data = cmd_stats(sample_log, aspect="tools")
        assert set(data) == {"log", "tools"}

    def test_aspect_plans(self, sample_log):
        assert "plans" in cmd_stats(sample_log, aspect="plans")

    def test_aspect_timing(self, sample_log):
        data = cmd_stats(sample_log, aspect="timing")
        assert "duration_secs" in data
        assert "tools" not in data

    def test_malformed_status(self, tmp_jsonl, acp):
        path = tmp_jsonl([
            acp.tool_call("t1", status=["weird"]),
            acp.tool_call("t2", status="in_progress"),
            acp.tool_update("t2", status={"state": "done"}),
        ])
        tools = cmd_stats(LogFile.from_path(path))["tools"]
        assert tools["by_status"] == {"pending": 1, "in_progress": 1}
        assert tools["errors"] == 0

    def test_empty_log(self, tmp_jsonl):
        data = cmd_stats(LogFile.from_path(tmp_jsonl([])))
        assert data["tools"]["total_calls"] == 0
        assert data["tools"]["error_rate"] == 0.0
        assert data["start"] is None


class TestCmdFind:
    def test_lists_logs(self, sample_log):
        data = cmd_find([sample_log])
        assert data[0]["id"] == "run-abcdef123"
        assert data[0]["task"] == "task-42"
        assert data[0]["notifications"] == 16
        assert data[0]["preview"] == "I'll start by reading the code."

    def test_skips_empty(self, tmp_jsonl):
        empty = LogFile.from_path(tmp_jsonl([], name="empty.jsonl"))
        assert cmd_find([empty]) == []
        assert len(cmd_find([empty], include_empty=True)) == 1

    def test_first_message_none(self, acp):
        assert first_message([acp.status("task_start")]) == ""


class TestHumanFormatter:
    @pytest.fixture
    def recorded(self, monkeypatch):
        console = Console(record=True, width=100, color_system=None)
        monkeypatch.setattr(human, "console", console)
        monkeypatch.setattr(human, "USE_ASCII", True)
        return console

    def test_read(self, recorded, sample_log):
        items, terminals = load_timeline(sample_log)
        human.format_read(items, terminals, expand=True, title="Run")
        out = recorded.export_text()
        assert "Read main.py" in out
        assert "plan 1/2" in out
        assert "Bash" in out
        assert "total 0" in out
        assert "Task completed successfully" in out
        assert "+4s" in out
        assert "+5s" in out

    def test_read_malformed_fields(self, recorded, acp):
        log = [
            acp.tool_call("t1", status=["weird"]),
            acp.tool_update("t1", status={"state": "done"}),
            acp.tool_call("t2", title="`ls`", kind="execute"),
            acp.tool_update("t2", status="failed", raw_output={"type": "terminal", "terminal_id": ["x"]}),
            acp.status("task_started", content=42),
            {"method": "_posthog/error", "params": {"_meta": {"message": ["boom"]}}},
        ]
        human.format_read(process_logs(log), expand=True)
        out = recorded.export_text()
        assert "Task started in cloud" in out
        assert "Error: Unknown error" in out
        assert "no output" in out

    def test_read_empty(self, recorded):
        human.format_read([])
        assert "No activity yet" in recorded.export_text()

    def test_raw(self, recorded, sample_log):
        human.format_raw(cmd_raw(sample_log, index_range="0:3", highlight=1))
        assert "3 records" in recorded.export_text()

    def test_terminals_and_stats(self, recorded, sample_log):
        human.format_terminals(cmd_terminals(sample_log))
        human.format_stats(cmd_stats(sample_log))
        out = recorded.export_text()
        assert "term-1" in out
        assert "Total calls" in out


class TestCli:
    @pytest.fixture
    def run(self, monkeypatch, tmp_path, sample_log):
        monkeypatch.setenv("ACPLOG_DIR", str(tmp_path))
        monkeypatch.delenv("ACPLOG_DEBUG", raising=False)

        def _run(*argv: str) -> None:
            monkeypatch.setattr(sys, "argv", ["acplog", *argv])
            main()
        return _run

    def test_bare_log_is_read(self, run, capsys):
        run("run-abc")
        data = json.loads(capsys.readouterr().out)
        assert data["log"] == "run-abcdef123"
        assert len(data["items"]) == 5

    def test_human_format(self, run, capsys):
        run("read", "run-abc", "-f", "human")
        out = capsys.readouterr().out
        assert "Run run-abcd (task-42)" in out
        assert "Read" in out

    def test_format_autodetect(self, monkeypatch):
        class _Stdout:
            def __init__(self, tty):
                self.tty = tty

            def isatty(self):
                return self.tty

        args = argparse.Namespace(format=None)
        monkeypatch.setattr(sys, "stdout", _Stdout(False))
        assert _get_format(args) == "json"
        monkeypatch.setattr(sys, "stdout", _Stdout(True))
        assert _get_format(args) == "human"
        assert _get_format(argparse.Namespace(format="json")) == "json"

    def test_unknown_log(self, run, capsys):
        with pytest.raises(SystemExit) as exc:
            run("read", "nope")
        assert exc.value.code == 1
        assert "No log matching 'nope'" in capsys.readouterr().out

    def test_bad_index(self, run, capsys):
        with pytest.raises(SystemExit) as exc:
            run("raw", "run-abc", "--index", "a:b")
        assert exc.value.code == 1
        assert "Invalid index range" in capsys.readouterr().out

    def test_stats_aspect(self, run, capsys):
        run("stats", "run-abc", "tools")
        assert set(json.loads(capsys.readouterr().out)) == {"log", "tools"}

    def test_find(self, run, capsys):
        run("find")
        data = json.loads(capsys.readouterr().out)
        assert [row["id"] for row in data] == ["run-abcdef123"]
