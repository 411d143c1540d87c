"""Console output formatting utilities for matrixci."""

from __future__ import annotations

import sys
import threading
from typing import Optional, TYPE_CHECKING

from .. import settings

if TYPE_CHECKING:
    from ..model import JobInstance, JobResult, PipelineReport, StepResult


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False, output_tail: int | None = None):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
            output_tail: How many trailing characters of a failed step's
                output to show (defaults to MATRIXCI_OUTPUT_TAIL)
        """
        self.debug = debug
        self.output_tail = settings.OUTPUT_TAIL if output_tail is None else output_tail
        # jobs print from worker threads
        self._lock = threading.Lock()

    def _emit(self, *lines: str, err: bool = False) -> None:
        stream = sys.stderr if err else sys.stdout
        with self._lock:
            for line in lines:
                print(line, file=stream)

    def print_header(self, title: str) -> None:
        """Print a section header."""
        self._emit(f"\n{title}", "-" * len(title))

    def print_run_started(
        self,
        workflow: str,
        event: str,
        branch: str,
        job_count: int,
    ) -> None:
        """Print run start information."""
        self._emit(
            "\nRUN STARTED",
            f"Workflow: {workflow}",
            f"Trigger: {event} on {branch}",
            f"Jobs: {job_count}",
            "",
        )

    def print_run_skipped(self, workflow: str, event: str, branch: str) -> None:
        self._emit(
            "\nRUN SKIPPED",
            f"Workflow: {workflow}",
            f"No trigger matches {event} on {branch}",
        )

    def print_job_start(self, name: str, attempt: int = 1) -> None:
        """Print job start message."""
        suffix = f" (attempt {attempt})" if attempt > 1 else ""
        self._emit(f"[{name}] JOB STARTED{suffix}")

    def print_step(self, job: str, name: str) -> None:
        """Print step start message."""
        self._emit(f"[{job}] STEP: {name}")

    def print_step_failure(self, job: str, step: "StepResult", hint: Optional[str] = None) -> None:
        """
        Print a failed step with the tail of its output.

        Args:
            job: Job instance name
            step: The failing step result
            hint: Optional hint for user
        """
        lines = [f"[{job}] STEP FAILED: {step.name}"]
        if step.exit_code is not None:
            lines.append(f"[{job}] Exit code: {step.exit_code}")
        if step.error:
            lines.append(f"[{job}] Error: {step.error}")
        if hint:
            lines.append(f"[{job}] Hint: {hint}")
        tail = step.output[-self.output_tail:] if self.output_tail else ""
        if tail.strip():
            lines.append(tail.rstrip("\n"))
        self._emit(*lines)

    def print_job_finished(self, result: "JobResult") -> None:
        """Print job completion message."""
        line = f"[{result.name}] STATUS: {result.state.value} ({result.duration:.1f}s)"
        if result.reason:
            line += f" - {result.reason}"
        self._emit(line)

    def print_plan_job(self, instance: "JobInstance") -> None:
        """Print one expanded job instance."""
        labels = ", ".join(f"{k}={v}" for k, v in instance.labels.items())
        self._emit(f"  {_title(instance.name, instance.display_name)} ({labels or 'no labels'}, {len(instance.steps)} steps)")

    def print_results(self, report: "PipelineReport") -> None:
        """Print final results summary."""
        lines = ["", "=" * 40, "RESULTS", "=" * 40]
        for job in report.jobs:
            lines.append(f"  {_title(job.name, job.display_name)}: {job.state.value.upper()}")
        lines.append(f"PIPELINE: {report.state.value.upper()} ({report.duration:.1f}s)")
        self._emit(*lines)

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        lines = [f"\nERROR: {title}", message]
        if details:
            lines.extend(f"  {detail}" for detail in details)
        if suggestion:
            lines.append(f"\n{suggestion}")
        self._emit(*lines, err=True)

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exception(type(exc), exc, exc.__traceback__)
        else:
            self._emit(f"Error: {exc}", err=True)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        self._emit(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            self._emit(f"[DEBUG] {message}", err=True)



def _title(name: str, display_name: Optional[str]) -> str:
    return f"{display_name} [{name}]" if display_name else name

# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
