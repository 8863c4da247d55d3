"""Terminal output side table — raw shell output keyed by terminal session."""
from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class TerminalOutput:
    terminal_id: str
    output: str = ""
    exit_code: int | None = None
    is_complete: bool = False

    def to_dict(self) -> dict:
        return {
            "terminal_id": self.terminal_id,
            "output": self.output,
            "exit_code": self.exit_code,
            "is_complete": self.is_complete,
        }


class TerminalOutputStore:
    """Last-write-wins table of terminal outputs.

    Pass ``store.set`` as the ``set_terminal_output`` callback of
    ``process_logs``; repeated passes over the same log leave the table in the
    same state.
    """

    def __init__(self):
        self._outputs: dict[str, TerminalOutput] = {}

    def set(self, terminal_id: str, output: TerminalOutput) -> None:
        self._outputs[terminal_id] = output

    def get(self, terminal_id: str) -> TerminalOutput | None:
        return self._outputs.get(terminal_id)

    def items(self) -> list[tuple[str, TerminalOutput]]:
        return list(self._outputs.items())

    def __contains__(self, terminal_id: object) -> bool:
        return terminal_id in self._outputs

    def __len__(self) -> int:
        return len(self._outputs)
