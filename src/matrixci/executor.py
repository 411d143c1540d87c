# executor.py
from __future__ import annotations

import os
import signal
import subprocess
import threading
import time
from typing import Dict, Optional, Protocol

from .errors import (
    AbnormalTermination,
    CancelledByRequest,
    CommandNotFound,
    ExecutionError,
    ExecutionTimeout,
    hint_for,
)
from .model import CommandResult
from . import settings


# POSIX shells exit with 127 when the command itself cannot be found.
SHELL_NOT_FOUND = 127


class CancellationToken:
    """Thread-safe one-shot cancel flag shared by a run and its executors."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        return self._event.wait(timeout)


class StepExecutor(Protocol):
    def __call__(
        self,
        command: str,
        env: Dict[str, str],
        *,
        cwd: str | None = None,
        timeout: float | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> CommandResult: ...


# ----------------------------------------------------------------------
# Process control
# ----------------------------------------------------------------------

def _signal_group(proc: subprocess.Popen, *, kill: bool) -> None:
    """Signal the step's whole process group (the shell and its children)."""
    try:
        if os.name == "posix":
            os.killpg(proc.pid, signal.SIGKILL if kill else signal.SIGTERM)
        elif kill:
            proc.kill()
        else:
            proc.terminate()
    except ProcessLookupError:
        # already exited
        pass


def _stop(proc: subprocess.Popen, grace_period: float) -> str:
    """Terminate, wait up to grace_period, then kill. Returns captured output."""
    _signal_group(proc, kill=False)
    try:
        out, _ = proc.communicate(timeout=grace_period)
    except subprocess.TimeoutExpired:
        _signal_group(proc, kill=True)
        out, _ = proc.communicate()
    return out or ""


def _signal_name(num: int) -> str:
    try:
        return signal.Signals(num).name
    except ValueError:
        return str(num)


def _terminating_signal(rc: int) -> Optional[int]:
    """
    Signal that ended the step, if any.

    Negative codes mean the shell itself was killed. Codes above 128 are the
    shell reporting a child killed by signal rc - 128.
    """
    if rc < 0:
        return -rc
    if rc > 128:
        try:
            return int(signal.Signals(rc - 128))
        except ValueError:
            return None
    return None


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def run_command(
    command: str,
    env: Dict[str, str],
    *,
    cwd: str | None = None,
    timeout: float | None = None,
    cancel_token: CancellationToken | None = None,
    grace_period: float | None = None,
    poll_interval: float | None = None,
) -> CommandResult:
    """
    Run `command` through the shell and block until it finishes.

    The process environment is os.environ overlaid with `env`; stdout and
    stderr are captured together. A normal exit (any code) is returned as a
    CommandResult. Raises:
      - CommandNotFound      shell reported 127, or the shell/cwd is missing
      - AbnormalTermination  the shell or a command it ran was killed by a signal
      - ExecutionTimeout     `timeout` elapsed (the process is stopped)
      - CancelledByRequest   `cancel_token` fired (the process is stopped)
    """
    grace = settings.GRACE_SECONDS if grace_period is None else grace_period
    poll = settings.POLL_INTERVAL if poll_interval is None else poll_interval

    if cancel_token is not None and cancel_token.cancelled:
        raise CancelledByRequest(command=command, message="cancelled before start")

    proc_env = os.environ.copy()
    proc_env.update(env or {})

    start = time.monotonic()
    try:
        proc = subprocess.Popen(
            command,
            shell=True,
            cwd=cwd,
            env=proc_env,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            errors="replace",
            start_new_session=(os.name == "posix"),
        )
    except FileNotFoundError as e:
        raise CommandNotFound(
            command=command,
            message=str(e),
            details={"cause": type(e).__name__, "cwd": cwd},
        ) from e
    except OSError as e:
        raise ExecutionError(
            command=command,
            message=str(e),
            details={"cause": type(e).__name__, "cwd": cwd},
        ) from e

    deadline = start + timeout if timeout is not None else None

    while True:
        wait = poll
        if deadline is not None:
            wait = max(0.0, min(wait, deadline - time.monotonic()))
        try:
            output, _ = proc.communicate(timeout=wait)
            break
        except subprocess.TimeoutExpired:
            pass

        if cancel_token is not None and cancel_token.cancelled:
            output = _stop(proc, grace)
            raise CancelledByRequest(
                command=command,
                message="cancelled by request",
                output=output,
                duration=time.monotonic() - start,
            )

        if deadline is not None and time.monotonic() >= deadline:
            output = _stop(proc, grace)
            raise ExecutionTimeout(
                command=command,
                message=f"timed out after {timeout}s",
                output=output,
                duration=time.monotonic() - start,
                details={"timeout": timeout},
            )

    duration = time.monotonic() - start
    output = output or ""
    rc = proc.returncode

    if rc == SHELL_NOT_FOUND:
        details = {"exit_code": rc}
        if "not found" in output.lower():
            details["hint"] = hint_for(command)
        raise CommandNotFound(
            command=command,
            message="command not found",
            output=output,
            duration=duration,
            details=details,
        )

    signum = _terminating_signal(rc)
    if signum is not None:
        details = {"signal": _signal_name(signum)}
        if rc > 0:
            details["exit_code"] = rc
        raise AbnormalTermination(
            command=command,
            message=f"terminated by signal {_signal_name(signum)}",
            output=output,
            duration=duration,
            details=details,
        )

    return CommandResult(exit_code=rc, output=output, duration=duration)
