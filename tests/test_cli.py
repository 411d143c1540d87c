"""Tests for the click CLI (plan / run)."""

import json
import os

import pytest
from click.testing import CliRunner

from matrixci.cli import cli


pytestmark = pytest.mark.skipif(os.name != "posix", reason="runs POSIX shell steps")


WORKFLOW = """
from matrixci import axis, job, on, sh, wf

def workflow():
    return wf(
        job("lint", sh("Lint", "echo linting"), os="linux", display_name="Linter"),
        job(
            "test",
            sh("Show os", 'echo "testing on $TARGET_OS"'),
            axes=[axis("os", ["linux", "mac"], env={"linux": {"TARGET_OS": "linux"}, "mac": {"TARGET_OS": "mac"}})],
        ),
        name="demo",
        triggers=on(pull_request=True, push=["main"]),
    )
"""

FAILING_WORKFLOW = """
from matrixci import job, sh, wf

def workflow():
    return wf(
        job("ok", sh("Pass", "true")),
        job("bad", sh("Fail", "echo broken; exit 4"), sh("Never", "echo never")),
        name="failing",
    )
"""


@pytest.fixture
def workflow_file(tmp_path):
    path = tmp_path / "demo_workflow.py"
    path.write_text(WORKFLOW)
    return path


class TestPlan:
    def test_lists_expanded_instances(self, workflow_file):
        result = CliRunner().invoke(
            cli, ["plan", "--workflow", str(workflow_file), "--event", "push", "--branch", "main"]
        )
        assert result.exit_code == 0, result.output
        assert "3 job instance(s)" in result.output
        for name in ("lint", "test-linux", "test-mac"):
            assert name in result.output
        assert "Linter [lint]" in result.output

    def test_trigger_mismatch(self, workflow_file):
        result = CliRunner().invoke(
            cli, ["plan", "--workflow", str(workflow_file), "--event", "push", "--branch", "feature"]
        )
        assert result.exit_code == 0
        assert "RUN SKIPPED" in result.output

    def test_missing_workflow_file(self, tmp_path):
        result = CliRunner().invoke(
            cli, ["plan", "--workflow", str(tmp_path / "nope.py"), "--branch", "main"]
        )
        assert result.exit_code == 1


class TestRun:
    def test_successful_run_writes_report(self, workflow_file, tmp_path):
        report_path = tmp_path / "report.json"
        result = CliRunner().invoke(
            cli,
            [
                "run",
                "--workflow", str(workflow_file),
                "--event", "pull_request",
                "--branch", "feature",
                "--cwd", str(tmp_path),
                "--workers", "2",
                "--report", str(report_path),
            ],
        )
        assert result.exit_code == 0, result.output
        assert "PIPELINE: SUCCEEDED" in result.output
        assert "Linter [lint]: PASSED" in result.output

        report = json.loads(report_path.read_text())
        assert report["state"] == "succeeded"
        outputs = {j["name"]: j["steps"][0]["output"] for j in report["jobs"]}
        assert outputs["test-mac"] == "testing on mac\n"
        assert outputs["test-linux"] == "testing on linux\n"

    def test_failed_run_exits_non_zero(self, tmp_path):
        path = tmp_path / "failing_workflow.py"
        path.write_text(FAILING_WORKFLOW)
        report_path = tmp_path / "report.json"

        result = CliRunner().invoke(
            cli,
            ["run", "--workflow", str(path), "--branch", "main", "--cwd", str(tmp_path), "--report", str(report_path)],
        )

        assert result.exit_code == 1
        assert "STEP FAILED: Fail" in result.output
        assert "PIPELINE: FAILED" in result.output
        report = json.loads(report_path.read_text())
        bad = next(j for j in report["jobs"] if j["name"] == "bad")
        assert bad["failed_step"] == 0
        assert len(bad["steps"]) == 1

    def test_skipped_run(self, workflow_file, tmp_path):
        result = CliRunner().invoke(
            cli,
            ["run", "--workflow", str(workflow_file), "--event", "push", "--branch", "feature", "--cwd", str(tmp_path)],
        )
        assert result.exit_code == 0
        assert "RUN SKIPPED" in result.output

    def test_runs_on_limits_instances(self, workflow_file, tmp_path):
        report_path = tmp_path / "report.json"
        result = CliRunner().invoke(
            cli,
            [
                "run",
                "--workflow", str(workflow_file),
                "--branch", "main",
                "--cwd", str(tmp_path),
                "--runs-on", "linux",
                "--report", str(report_path),
            ],
        )
        assert result.exit_code == 1
        states = {j["name"]: j["state"] for j in json.loads(report_path.read_text())["jobs"]}
        assert states == {"lint": "passed", "test-linux": "passed", "test-mac": "skipped"}
