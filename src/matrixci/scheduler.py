# scheduler.py
from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import replace
from typing import Callable, Dict, List, Optional

from .executor import CancellationToken, StepExecutor, run_command
from .matrix import expand_workflow, trigger_matches
from .model import (
    JobInstance,
    JobResult,
    JobState,
    PipelineReport,
    PipelineState,
    TriggerContext,
    WorkflowSpec,
    aggregate_state,
)
from .runner import run_job_instance
from .ui.console import get_console
from . import settings


class WorkerPool:
    """
    The execution environments available for running job instances.

    One permit is held for the whole step sequence of one instance. A pool
    can be shared by several schedulers.
    """

    def __init__(self, size: int):
        if size < 1:
            raise ValueError(f"WorkerPool size must be >= 1, got {size}")
        self.size = size
        self._sem = threading.BoundedSemaphore(size)
        self._lock = threading.Lock()
        self._in_use = 0

    @property
    def in_use(self) -> int:
        with self._lock:
            return self._in_use

    def acquire(self, timeout: float | None = None) -> bool:
        if not self._sem.acquire(timeout=timeout):
            return False
        with self._lock:
            self._in_use += 1
        return True

    def release(self) -> None:
        with self._lock:
            self._in_use -= 1
        self._sem.release()


class PipelineRun:
    """
    Handle for one pipeline run.

    State machine: pending -> running -> {succeeded, failed, cancelled};
    a trigger mismatch goes pending -> skipped without dispatching anything.
    """

    def __init__(self, spec: WorkflowSpec, context: TriggerContext):
        self.spec = spec
        self.context = context
        self.token = CancellationToken()
        self.instances: List[JobInstance] = []
        self._state = PipelineState.PENDING
        self._lock = threading.Lock()
        self._done = threading.Event()
        self._report: Optional[PipelineReport] = None

    @property
    def state(self) -> PipelineState:
        with self._lock:
            return self._state

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def cancel(self) -> bool:
        """
        Request cooperative cancellation of a running pipeline.

        Returns False if the run is not running (nothing to cancel).
        """
        with self._lock:
            if self._state is not PipelineState.RUNNING:
                return False
            self._state = PipelineState.CANCELLED
        self.token.cancel()
        get_console().print_info(f"Cancelling {self.spec.name}...")
        return True

    def wait(self, timeout: float | None = None) -> PipelineReport:
        """Block until every dispatched instance reports a terminal result."""
        if not self._done.wait(timeout):
            raise TimeoutError(f"pipeline {self.spec.name!r} still {self.state.value} after {timeout}s")
        if self._report is None:
            raise RuntimeError(f"pipeline {self.spec.name!r} finished without a report")
        return self._report

    # -- transitions (scheduler side) --

    def _start(self, instances: List[JobInstance]) -> None:
        with self._lock:
            self.instances = list(instances)
            self._state = PipelineState.RUNNING

    def _finish(self, state: PipelineState, jobs: List[JobResult], duration: float) -> None:
        with self._lock:
            if self._state is PipelineState.CANCELLED:
                state = PipelineState.CANCELLED
            self._state = state
            self._report = PipelineReport(
                workflow=self.spec.name,
                state=state,
                context=self.context,
                jobs=tuple(jobs),
                duration=duration,
            )
        self._done.set()


class Scheduler:
    """
    Dispatches the expanded instances of a workflow onto a WorkerPool.

    All instances are independent: they run concurrently, bounded by the
    pool, and a failure never cancels siblings. The scheduler always
    completes with a PipelineReport, even when every instance fails.

    Args:
        pool: execution environments (permits) shared by the instances
        executor: step executor used by the job runner
        can_run: capability predicate; instances it rejects are reported
            skipped ("no capable environment")
        retries: extra attempts for an instance that failed (not cancelled)
        step_timeout: default per-step timeout in seconds
        cwd: working directory for every step
    """

    def __init__(
        self,
        pool: WorkerPool,
        *,
        executor: StepExecutor = run_command,
        can_run: Optional[Callable[[JobInstance], bool]] = None,
        retries: int = 0,
        step_timeout: float | None = None,
        cwd: str | None = None,
    ):
        if retries < 0:
            raise ValueError(f"retries must be >= 0, got {retries}")
        self.pool = pool
        self.executor = executor
        self.can_run = can_run
        self.retries = retries
        self.step_timeout = step_timeout
        self.cwd = cwd

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def start(self, spec: WorkflowSpec, context: TriggerContext) -> PipelineRun:
        """Evaluate the trigger, expand, and dispatch in the background."""
        console = get_console()
        run = PipelineRun(spec, context)

        if not trigger_matches(spec, context):
            console.print_run_skipped(spec.name, context.event, context.branch)
            run._finish(PipelineState.SKIPPED, [], 0.0)
            return run

        instances = expand_workflow(spec, context)
        run._start(instances)
        console.print_run_started(spec.name, context.event, context.branch, len(instances))

        driver = threading.Thread(
            target=self._drive,
            args=(run,),
            name=f"matrixci-{spec.name}",
            daemon=True,
        )
        driver.start()
        return run

    def run(self, spec: WorkflowSpec, context: TriggerContext) -> PipelineReport:
        """Blocking convenience: start() then wait()."""
        return self.start(spec, context).wait()

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _drive(self, run: PipelineRun) -> None:
        console = get_console()
        start = time.monotonic()
        results: Dict[str, JobResult] = {}

        if run.instances:
            with ThreadPoolExecutor(
                max_workers=len(run.instances),
                thread_name_prefix="matrixci-job",
            ) as threads:
                futures = {
                    threads.submit(self._dispatch, instance, run.token): instance
                    for instance in run.instances
                }
                for fut in as_completed(futures):
                    instance = futures[fut]
                    try:
                        results[instance.name] = fut.result()
                    except Exception as e:
                        console.print_exception(e)
                        results[instance.name] = JobResult(
                            name=instance.name,
                            state=JobState.FAILED,
                            reason=f"internal error: {e}",
                            display_name=instance.display_name,
                        )

        ordered = [results[i.name] for i in run.instances]
        run._finish(aggregate_state(ordered), ordered, time.monotonic() - start)

    def _acquire(self, token: CancellationToken) -> bool:
        """Wait for a permit; gives up if the run is cancelled meanwhile."""
        while not self.pool.acquire(timeout=settings.POLL_INTERVAL):
            if token.cancelled:
                return False
        if token.cancelled:
            self.pool.release()
            return False
        return True

    def _dispatch(self, instance: JobInstance, token: CancellationToken) -> JobResult:
        console = get_console()

        if self.can_run is not None and not self.can_run(instance):
            result = JobResult(
                instance.name,
                JobState.SKIPPED,
                reason="no capable environment",
                display_name=instance.display_name,
            )
            console.print_job_finished(result)
            return result

        attempt = 0
        last: Optional[JobResult] = None
        while True:
            if token.cancelled or not self._acquire(token):
                if last is not None:
                    # the finished attempt keeps its state and steps
                    return replace(last, reason="cancelled before retry")
                result = JobResult(
                    instance.name,
                    JobState.CANCELLED,
                    attempts=attempt,
                    reason="cancelled before start",
                    display_name=instance.display_name,
                )
                console.print_job_finished(result)
                return result

            attempt += 1
            try:
                result = run_job_instance(
                    instance,
                    executor=self.executor,
                    cancel_token=token,
                    cwd=self.cwd,
                    step_timeout=self.step_timeout,
                    attempt=attempt,
                )
            finally:
                self.pool.release()

            if result.state is not JobState.FAILED or attempt > self.retries or token.cancelled:
                return result
            last = result
