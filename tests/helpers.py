"""Spy executors and polling helpers shared by the scheduler/runner tests."""

import threading
import time

from matrixci.errors import CancelledByRequest
from matrixci.model import CommandResult


class SpyExecutor:
    """Scripted step executor.

    `exit_codes` maps a command to its exit code (default 0). Commands listed
    in `blocking` wait for the cancel token and then raise CancelledByRequest,
    like the real executor does for a long-running process.
    """

    def __init__(self, exit_codes=None, blocking=(), delay=0.0):
        self.exit_codes = dict(exit_codes or {})
        self.blocking = set(blocking)
        self.delay = delay
        self.calls = []
        self.blocked = 0
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def __call__(self, command, env, *, cwd=None, timeout=None, cancel_token=None):
        with self._lock:
            self.calls.append({"command": command, "env": dict(env), "cwd": cwd, "timeout": timeout})
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if command in self.blocking:
                with self._lock:
                    self.blocked += 1
                cancel_token.wait(10)
                raise CancelledByRequest(command=command, message="cancelled by request", output="partial\n")
            if self.delay:
                time.sleep(self.delay)
            code = self.exit_codes.get(command, 0)
            return CommandResult(exit_code=code, output=f"{command}\n", duration=0.01)
        finally:
            with self._lock:
                self.active -= 1

    @property
    def commands(self):
        return [c["command"] for c in self.calls]


class FlakyExecutor(SpyExecutor):
    """Fails `command` for its first `failures` invocations, then passes."""

    def __init__(self, command, failures):
        super().__init__()
        self.flaky = command
        self.remaining = failures

    def __call__(self, command, env, **kwargs):
        result = super().__call__(command, env, **kwargs)
        with self._lock:
            if command == self.flaky and self.remaining > 0:
                self.remaining -= 1
                return CommandResult(exit_code=1, output="flaky\n", duration=0.01)
        return result


def wait_until(predicate, timeout=5.0, interval=0.01):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    raise AssertionError("condition not met within timeout")
