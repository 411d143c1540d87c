# cli.py
from __future__ import annotations

import json
import subprocess
import sys
from pathlib import Path

import click

from matrixci import settings
from matrixci.errors import WorkflowError
from matrixci.git_facts.git import current_branch, repo_root
from matrixci.loader import load_workflow
from matrixci.matrix import expand_workflow, trigger_matches
from matrixci.model import EVENT_KINDS, PipelineState, TriggerContext, WorkflowSpec
from matrixci.scheduler import Scheduler, WorkerPool
from matrixci.ui.console import Console, set_console, get_console


DEFAULT_WORKFLOW = "matrixci_workflow.py"

EXIT_CODES = {
    PipelineState.SUCCEEDED: 0,
    PipelineState.SKIPPED: 0,
    PipelineState.FAILED: 1,
    PipelineState.CANCELLED: 130,
}


def find_workflow_files() -> list[Path]:
    """
    Find all workflow files in the current directory.

    Returns:
        List of Path objects for workflow files
    """
    workflow_files = []
    current_dir = Path(".")

    default_workflow = current_dir / DEFAULT_WORKFLOW
    if default_workflow.exists():
        workflow_files.append(default_workflow)

    for pattern in ("*_workflow.py", "*_workflow.json"):
        for path in current_dir.glob(pattern):
            if path != default_workflow:
                workflow_files.append(path)

    return sorted(workflow_files)


def discover_workflow(workflow_arg: str | None) -> Path:
    """
    Discover workflow file from argument or default.

    Raises:
        SystemExit: If workflow cannot be found or multiple workflows exist
    """
    console = get_console()

    if workflow_arg:
        workflow_path = Path(workflow_arg)
        if not workflow_path.exists() and workflow_path.suffix not in (".py", ".json"):
            workflow_path = Path(str(workflow_path) + ".py")
        if not workflow_path.exists():
            console.print_error(
                "Workflow file not found",
                f"Could not find workflow file: {workflow_arg}",
                suggestion="Create a workflow file or specify a different path:\n  matrixci run --workflow my_workflow.py",
            )
            sys.exit(1)
        return workflow_path

    workflow_files = find_workflow_files()

    if len(workflow_files) == 0:
        console.print_error(
            "No workflow file found",
            "Could not find any workflow files.",
            details=[
                "Looked for:",
                f"  {DEFAULT_WORKFLOW}",
                "  *_workflow.py",
                "  *_workflow.json",
            ],
            suggestion=f"Create a workflow file:\n  {DEFAULT_WORKFLOW}\n\nOr specify a workflow explicitly:\n  matrixci run --workflow my_workflow.py",
        )
        sys.exit(1)

    if len(workflow_files) > 1:
        file_list = "\n".join(f"  {f}" for f in workflow_files)
        console.print_error(
            "Multiple workflow files found",
            "Found multiple workflow files. Please specify which one to use:",
            details=[file_list],
            suggestion=f"Specify a workflow explicitly:\n  matrixci run --workflow {DEFAULT_WORKFLOW}",
        )
        sys.exit(1)

    return workflow_files[0]


def resolve_context(event: str, branch: str | None) -> TriggerContext:
    """Build the trigger context; the branch defaults to the checked-out git branch."""
    console = get_console()
    if branch:
        return TriggerContext(event=event, branch=branch)
    try:
        branch = current_branch()
        console.print_debug(f"Using git branch: {branch}")
    except (subprocess.CalledProcessError, FileNotFoundError):
        console.print_error(
            "Could not determine branch",
            "No --branch specified and the current git branch is unknown.",
            suggestion="Please specify --branch explicitly:\n  matrixci run --branch main",
        )
        sys.exit(1)
    return TriggerContext(event=event, branch=branch)


def _load(ctx, workflow: str | None) -> WorkflowSpec:
    console = get_console()
    workflow_path = discover_workflow(workflow)
    try:
        return load_workflow(workflow_path)
    except (WorkflowError, FileNotFoundError, TypeError, ValueError) as e:
        console.print_error(
            "Failed to load workflow",
            f"Could not load workflow from {workflow_path}",
            details=[str(e)],
        )
        if ctx.obj.get("debug", False):
            console.print_exception(e)
        sys.exit(1)


def _default_cwd() -> str:
    try:
        return str(repo_root())
    except (subprocess.CalledProcessError, FileNotFoundError):
        return "."


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.pass_context
def cli(ctx, debug):
    """matrixci: matrix-expanding CI job scheduler."""
    console = Console(debug=debug)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


event_option = click.option(
    "--event",
    type=click.Choice(EVENT_KINDS),
    default="push",
    show_default=True,
    help="Trigger event kind",
)
branch_option = click.option("--branch", default=None, help="Branch name (defaults to the current git branch)")
workflow_option = click.option(
    "--workflow",
    default=None,
    help=f"Workflow file path (defaults to {DEFAULT_WORKFLOW} if present)",
)


@cli.command()
@workflow_option
@event_option
@branch_option
@click.option("--workers", default=settings.WORKERS, show_default=True, type=int, help="Number of parallel execution environments")
@click.option("--step-timeout", default=settings.STEP_TIMEOUT, type=float, help="Default per-step timeout in seconds")
@click.option("--retries", default=0, show_default=True, type=int, help="Extra attempts for a failed job instance")
@click.option("--runs-on", "runs_on", multiple=True, help="OS labels this machine can run (repeatable; default: any)")
@click.option("--cwd", default=None, help="Working directory for steps (defaults to the git repo root)")
@click.option("--report", "report_path", default=None, type=click.Path(dir_okay=False), help="Write the pipeline report as JSON")
@click.pass_context
def run(ctx, workflow, event, branch, workers, step_timeout, retries, runs_on, cwd, report_path):
    """Run a matrixci workflow."""
    console = get_console()

    spec = _load(ctx, workflow)
    context = resolve_context(event, branch)

    can_run = None
    if runs_on:
        allowed = set(runs_on)

        def can_run(instance):
            return instance.labels.get("os") in allowed

    try:
        scheduler = Scheduler(
            WorkerPool(workers),
            can_run=can_run,
            retries=retries,
            step_timeout=step_timeout,
            cwd=cwd or _default_cwd(),
        )
        pipeline = scheduler.start(spec, context)
        try:
            report = pipeline.wait()
        except KeyboardInterrupt:
            console.print_info("\nInterrupted by user")
            pipeline.cancel()
            report = pipeline.wait()
    except ValueError as e:
        console.print_exception(e)
        sys.exit(1)

    if report.state is not PipelineState.SKIPPED:
        console.print_results(report)

    if report_path:
        Path(report_path).write_text(json.dumps(report.to_dict(), indent=2), encoding="utf-8")
        console.print_info(f"Report written to {report_path}")

    sys.exit(EXIT_CODES[report.state])


@cli.command()
@workflow_option
@event_option
@branch_option
@click.pass_context
def plan(ctx, workflow, event, branch):
    """Show the job instances a trigger would dispatch, without running them."""
    console = get_console()

    spec = _load(ctx, workflow)
    context = resolve_context(event, branch)

    if not trigger_matches(spec, context):
        console.print_run_skipped(spec.name, context.event, context.branch)
        return

    try:
        instances = expand_workflow(spec, context)
    except ValueError as e:
        console.print_exception(e)
        sys.exit(1)

    console.print_header(f"{spec.name}: {len(instances)} job instance(s)")
    for instance in instances:
        console.print_plan_job(instance)


if __name__ == "__main__":
    cli()
