"""Tests for console formatting and structured errors."""

from matrixci.errors import CommandNotFound, hint_for
from matrixci.model import JobResult, JobState, StepResult
from matrixci.ui.console import Console, get_console, set_console


def test_step_failure_shows_output_tail(capsys):
    console = Console(output_tail=20)
    step = StepResult(0, "Build", "cargo build", 101, "x" * 50 + "error: E0308\n", 1.0)

    console.print_step_failure("test-linux", step, hint="Install Rust")

    out = capsys.readouterr().out
    assert "[test-linux] STEP FAILED: Build" in out
    assert "Exit code: 101" in out
    assert "Hint: Install Rust" in out
    assert "error: E0308" in out
    assert "x" * 20 not in out


def test_job_finished_includes_reason(capsys):
    Console().print_job_finished(JobResult("t-mac", JobState.SKIPPED, reason="no capable environment"))
    assert "[t-mac] STATUS: skipped (0.0s) - no capable environment" in capsys.readouterr().out


def test_debug_messages_only_in_debug_mode(capsys):
    Console(debug=False).print_debug("hidden")
    Console(debug=True).print_debug("shown")
    err = capsys.readouterr().err
    assert "hidden" not in err
    assert "[DEBUG] shown" in err


def test_global_console_can_be_replaced():
    console = Console(debug=True)
    set_console(console)
    assert get_console() is console


def test_execution_error_str():
    err = CommandNotFound(command="cargo build", message="command not found", details={"exit_code": 127})
    text = str(err)
    assert text.startswith("command_not_found: command not found")
    assert "cmd=cargo build" in text
    assert "exit_code=127" in text


def test_hint_for_known_and_unknown_tools():
    assert "rustup" in hint_for("cargo test --all")
    assert hint_for("frobnicate --x") == "Install frobnicate or fix PATH."
    assert hint_for("   ") == ""
