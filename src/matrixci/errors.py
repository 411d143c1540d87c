# errors.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar


TOOL_HINTS = {
    "cargo": "Install Rust via rustup or fix PATH.",
    "rustup": "Install rustup (https://rustup.rs) or fix PATH.",
    "npm": "Install Node.js (includes npm) or fix PATH.",
    "node": "Install Node.js or fix PATH.",
    "pytest": "Install pytest (e.g., pip install pytest).",
    "ruff": "Install ruff (e.g., pip install ruff).",
    "docker": "Install Docker and ensure the daemon is running.",
    "python3": "Install Python 3 or fix PATH (python3).",
}


def hint_for(command: str) -> str:
    tool = command.split()[0] if command.strip() else ""
    return TOOL_HINTS.get(tool, f"Install {tool} or fix PATH." if tool else "")


@dataclass(eq=False)
class ExecutionError(Exception):
    """
    Structured step execution error.

    Carries enough context for:
      - the step result recorded in the pipeline report
      - clean CLI output without full tracebacks
    """
    kind: ClassVar[str] = "execution_error"

    command: str
    message: str
    output: str = ""
    duration: float = 0.0
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}", f"cmd={self.command}"]
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


@dataclass(eq=False)
class CommandNotFound(ExecutionError):
    kind: ClassVar[str] = "command_not_found"


@dataclass(eq=False)
class AbnormalTermination(ExecutionError):
    """Process was terminated by a signal."""
    kind: ClassVar[str] = "abnormal_termination"


@dataclass(eq=False)
class ExecutionTimeout(ExecutionError):
    kind: ClassVar[str] = "timeout"


@dataclass(eq=False)
class CancelledByRequest(ExecutionError):
    kind: ClassVar[str] = "cancelled"


class WorkflowError(Exception):
    """Raised when a workflow definition or file is invalid."""
    pass
