# runner.py
from __future__ import annotations

import time
from typing import List, Optional

from .errors import CancelledByRequest, CommandNotFound, ExecutionError
from .executor import CancellationToken, StepExecutor, run_command
from .matrix import overlay
from .model import JobInstance, JobResult, JobState, StepResult
from .ui.console import get_console


def run_job_instance(
    instance: JobInstance,
    *,
    executor: StepExecutor = run_command,
    cancel_token: Optional[CancellationToken] = None,
    cwd: str | None = None,
    step_timeout: float | None = None,
    attempt: int = 1,
) -> JobResult:
    """
    Run the steps of one job instance in declaration order.

    The first non-zero exit (or execution error) fails the instance at that
    step; later steps are neither run nor recorded. A cancellation stops the
    instance and keeps the partial results, tagged cancelled. Never raises
    for step failures.
    """
    console = get_console()
    console.print_job_start(instance.name, attempt)

    start = time.monotonic()
    steps: List[StepResult] = []
    state = JobState.PASSED
    failed_step: Optional[int] = None

    for index, step in enumerate(instance.steps):
        if cancel_token is not None and cancel_token.cancelled:
            state = JobState.CANCELLED
            break

        console.print_step(instance.name, step.name)
        timeout = step.timeout if step.timeout is not None else step_timeout

        try:
            res = executor(
                step.run,
                overlay(instance.env, step.env),
                cwd=cwd,
                timeout=timeout,
                cancel_token=cancel_token,
            )
        except CancelledByRequest as e:
            steps.append(StepResult(index, step.name, step.run, None, e.output, e.duration, e.kind))
            state = JobState.CANCELLED
            break
        except ExecutionError as e:
            result = StepResult(
                index, step.name, step.run, e.details.get("exit_code"), e.output, e.duration, e.kind
            )
            steps.append(result)
            hint = e.details.get("hint") if isinstance(e, CommandNotFound) else None
            console.print_step_failure(instance.name, result, hint=hint)
            state = JobState.FAILED
            failed_step = index
            break

        result = StepResult(index, step.name, step.run, res.exit_code, res.output, res.duration)
        steps.append(result)
        if res.exit_code != 0:
            console.print_step_failure(instance.name, result)
            state = JobState.FAILED
            failed_step = index
            break

    job_result = JobResult(
        name=instance.name,
        state=state,
        steps=tuple(steps),
        failed_step=failed_step,
        duration=time.monotonic() - start,
        attempts=attempt,
        display_name=instance.display_name,
    )
    console.print_job_finished(job_result)
    return job_result
