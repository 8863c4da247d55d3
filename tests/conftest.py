"""Shared fixtures for acplog tests."""
from __future__ import annotations

import json
import pytest
from pathlib import Path

SESSION_ID = "sess-0001"


class Acp:
    """Builders for ACP notification records."""

    @staticmethod
    def _session(update: dict, ts: str | None = None) -> dict:
        rec: dict = {"sessionId": SESSION_ID, "update": update}
        if ts:
            rec["timestamp"] = ts
        return rec

    def tool_call(self, tool_call_id: str, title: str = "Read /src/main.py", kind: str = "read",
                  status: str = "pending", raw_input: dict | None = None, ts: str | None = None) -> dict:
        update = {
            "sessionUpdate": "tool_call",
            "toolCallId": tool_call_id,
            "title": title,
            "kind": kind,
            "status": status,
        }
        if raw_input is not None:
            update["rawInput"] = raw_input
        return self._session(update, ts)

    def tool_update(self, tool_call_id: str, status: str | None = "completed",
                    content: list | None = None, raw_output=None, ts: str | None = None) -> dict:
        update: dict = {"sessionUpdate": "tool_call_update", "toolCallId": tool_call_id}
        if status is not None:
            update["status"] = status
        if content is not None:
            update["content"] = content
        if raw_output is not None:
            update["rawOutput"] = raw_output
        return self._session(update, ts)

    def plan(self, *entries: tuple[str, str], ts: str | None = None) -> dict:
        return self._session({
            "sessionUpdate": "plan",
            "entries": [{"content": c, "status": s, "activeForm": f"Doing {c}"} for c, s in entries],
        }, ts)

    def chunk(self, text: str, ts: str | None = None) -> dict:
        return self._session({
            "sessionUpdate": "agent_message_chunk",
            "content": {"type": "text", "text": text},
        }, ts)

    def thought(self, text: str) -> dict:
        return self._session({
            "sessionUpdate": "agent_thought_chunk",
            "content": {"type": "text", "text": text},
        })

    def terminal(self, terminal_id: str, output: str, exit_code: int | None = None,
                 complete: bool = False) -> dict:
        params: dict = {"terminalId": terminal_id, "output": output, "isComplete": complete}
        if exit_code is not None:
            params["exitCode"] = exit_code
        return {"method": "_posthog/terminal_output", "params": params}

    def status(self, type: str, ts: str | None = None, **meta) -> dict:
        params: dict = {"type": type, "_meta": meta}
        if ts:
            params["timestamp"] = ts
        return {"method": "_posthog/status", "params": params}


@pytest.fixture
def acp():
    return Acp()


@pytest.fixture
def tmp_jsonl(tmp_path):
    """Factory: write a list of dicts as a JSONL file, return path."""
    def _make(records: list[dict], name: str = "run.jsonl") -> Path:
        p = tmp_path / name
        p.parent.mkdir(parents=True, exist_ok=True)
        with open(p, "w") as f:
            for rec in records:
                f.write(json.dumps(rec) + "\n")
        return p
    return _make


@pytest.fixture
def sample_records(acp):
    """A small but complete agent run."""
    return [
        acp.status("run_started", ts="2026-01-01T00:00:00Z", isCloudMode=False),
        acp.chunk("I'll start by ", ts="2026-01-01T00:00:01Z"),
        acp.chunk("reading the code."),
        acp.plan(("Read main.py", "in_progress"), ("Fix bug", "pending"), ts="2026-01-01T00:00:02Z"),
        acp.tool_call("t1", ts="2026-01-01T00:00:03Z",
                      raw_input={"file_path": "/src/main.py"}),
        acp.tool_update("t1", status="in_progress"),
        acp.tool_update("t1", ts="2026-01-01T00:00:05Z", content=[
            {"type": "content", "content": {"type": "text", "text": "print('hi')"}},
        ]),
        acp.chunk("Found it."),
        acp.plan(("Read main.py", "completed"), ("Fix bug", "in_progress"), ts="2026-01-01T00:00:06Z"),
        acp.tool_call("t2", title="`ls -la`", kind="execute", ts="2026-01-01T00:00:07Z",
                      raw_input={"command": "ls -la"}),
        acp.terminal("term-1", "partial"),
        acp.terminal("term-1", "total 0\n", exit_code=1, complete=True),
        acp.tool_update("t2", status="failed", ts="2026-01-01T00:00:09Z", content=[
            {"type": "terminal", "terminalId": "term-1"},
        ]),
        acp.tool_update("ghost", status="completed"),
        acp.plan(("Read main.py", "completed"), ("Fix bug", "completed"), ts="2026-01-01T00:00:10Z"),
        acp.status("done", ts="2026-01-01T00:00:11Z", success=True),
    ]


@pytest.fixture
def sample_log(tmp_jsonl, sample_records):
    """Build a LogFile from sample records."""
    from acplog.logfile import LogFile
    return LogFile.from_path(tmp_jsonl(sample_records, name="task-42/run-abcdef123.jsonl"))
