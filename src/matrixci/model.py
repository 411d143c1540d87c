# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


EVENT_KINDS = ("pull_request", "push")


@dataclass(frozen=True)
class Step:
    """A single command (step) inside a CI job."""
    name: str
    run: str
    env: Dict[str, str] = field(default_factory=dict)
    timeout: Optional[float] = None  # seconds; falls back to the scheduler default


@dataclass(frozen=True)
class Axis:
    """
    One matrix dimension, e.g. os in (ubuntu-latest, macos-latest).

    `env` optionally maps a value to the variables it contributes to the
    variant overlay.
    """
    name: str
    values: Tuple[str, ...]
    env: Dict[str, Dict[str, str]] = field(default_factory=dict)


@dataclass(frozen=True)
class EnvironmentDescriptor:
    """Where a job runs: OS family, toolchain channel, env overlay and matrix axes."""
    os: Optional[str] = None
    toolchain: Optional[str] = None
    env: Dict[str, str] = field(default_factory=dict)
    axes: Tuple[Axis, ...] = ()


@dataclass(frozen=True)
class Job:
    """A CI job template: ordered steps + environment descriptor."""
    name: str
    steps: Tuple[Step, ...]
    environment: EnvironmentDescriptor = field(default_factory=EnvironmentDescriptor)
    display_name: Optional[str] = None


@dataclass(frozen=True)
class Trigger:
    """Run on `event`; `branches=None` means any branch."""
    event: str
    branches: Optional[Tuple[str, ...]] = None


@dataclass(frozen=True)
class WorkflowSpec:
    name: str
    jobs: Tuple[Job, ...]
    triggers: Tuple[Trigger, ...] = ()
    env: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class TriggerContext:
    """The external event a run was requested for."""
    event: str
    branch: str


@dataclass(frozen=True)
class JobInstance:
    """A Job bound to one concrete variant, with its environment resolved."""
    name: str
    job: str
    steps: Tuple[Step, ...]
    env: Dict[str, str]
    variant: Tuple[Tuple[str, str], ...] = ()
    labels: Dict[str, str] = field(default_factory=dict)
    display_name: Optional[str] = None


# ----------------------------------------------------------------------
# Results
# ----------------------------------------------------------------------

class JobState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"


class PipelineState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class CommandResult:
    exit_code: int
    output: str
    duration: float


@dataclass(frozen=True)
class StepResult:
    index: int
    name: str
    command: str
    exit_code: Optional[int]
    output: str
    duration: float
    error: Optional[str] = None  # error kind when the step did not exit normally

    @property
    def ok(self) -> bool:
        return self.error is None and self.exit_code == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "name": self.name,
            "command": self.command,
            "exit_code": self.exit_code,
            "output": self.output,
            "duration": round(self.duration, 3),
            "error": self.error,
        }


@dataclass(frozen=True)
class JobResult:
    name: str
    state: JobState
    steps: Tuple[StepResult, ...] = ()
    failed_step: Optional[int] = None
    duration: float = 0.0
    attempts: int = 0
    reason: Optional[str] = None
    display_name: Optional[str] = None

    @property
    def passed(self) -> bool:
        return self.state is JobState.PASSED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "display_name": self.display_name,
            "state": self.state.value,
            "failed_step": self.failed_step,
            "duration": round(self.duration, 3),
            "attempts": self.attempts,
            "reason": self.reason,
            "steps": [s.to_dict() for s in self.steps],
        }


@dataclass(frozen=True)
class PipelineReport:
    workflow: str
    state: PipelineState
    context: TriggerContext
    jobs: Tuple[JobResult, ...] = ()
    duration: float = 0.0

    @property
    def dispatched(self) -> int:
        return len(self.jobs)

    def job(self, name: str) -> JobResult:
        for j in self.jobs:
            if j.name == name:
                return j
        raise KeyError(name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "workflow": self.workflow,
            "state": self.state.value,
            "event": self.context.event,
            "branch": self.context.branch,
            "duration": round(self.duration, 3),
            "jobs": [j.to_dict() for j in self.jobs],
        }


def aggregate_state(results: List[JobResult], *, cancelled: bool = False) -> PipelineState:
    """Succeeded iff every instance passed; cancel wins over failure."""
    if cancelled:
        return PipelineState.CANCELLED
    if all(r.passed for r in results):
        return PipelineState.SUCCEEDED
    return PipelineState.FAILED
