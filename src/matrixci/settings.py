from __future__ import annotations
import os


def _default_workers() -> int:
    c = os.cpu_count() or 2
    return max(1, c - 1)


WORKERS = int(os.environ.get("MATRIXCI_WORKERS", _default_workers()))
GRACE_SECONDS = float(os.environ.get("MATRIXCI_GRACE_SECONDS", "10"))
POLL_INTERVAL = float(os.environ.get("MATRIXCI_POLL_INTERVAL", "0.1"))
STEP_TIMEOUT = float(os.environ["MATRIXCI_STEP_TIMEOUT"]) if os.environ.get("MATRIXCI_STEP_TIMEOUT") else None
OUTPUT_TAIL = int(os.environ.get("MATRIXCI_OUTPUT_TAIL", "4000"))
