# git.py
# Small, focused wrapper around the Git CLI.
# The CLI uses it to fill in the trigger context (branch) when the caller
# does not pass one explicitly.

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Optional


def _git(args: list[str], cwd: Optional[str] = None) -> str:
    """
    Execute a git command and return its stdout as a clean string.

    This is the single low-level entry point for all Git operations in this file.

    Args:
        args: List of git arguments (e.g. ["rev-parse", "HEAD"])
        cwd: Optional working directory in which to run the git command.

    Returns:
        Stdout from the git command with surrounding whitespace removed.

    Raises:
        subprocess.CalledProcessError: git exited non-zero (e.g. not a repo)
        FileNotFoundError: git is not installed
    """
    out = subprocess.check_output(
        ["git", *args],
        cwd=cwd,
        text=True,
        stderr=subprocess.DEVNULL,
    )
    return out.strip()


def repo_root(cwd: Optional[str] = None) -> Path:
    """Return the absolute path to the root of the current Git repository."""
    # `git rev-parse --show-toplevel` prints the repo root directory
    # regardless of where the command is run from inside the repo.
    return Path(_git(["rev-parse", "--show-toplevel"], cwd=cwd))


def current_branch(cwd: Optional[str] = None) -> str:
    """
    Return the checked-out branch name.

    On a detached HEAD `git rev-parse --abbrev-ref HEAD` prints "HEAD";
    in that case fall back to the short commit SHA so the trigger context
    still has a stable value.
    """
    ref = _git(["rev-parse", "--abbrev-ref", "HEAD"], cwd=cwd)
    if ref == "HEAD":
        return _git(["rev-parse", "--short", "HEAD"], cwd=cwd)
    return ref
