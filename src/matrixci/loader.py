# loader.py
from __future__ import annotations

import json
import runpy
from pathlib import Path
from typing import Any, Dict

from .dsl import axis, job, sh, trigger, wf
from .errors import WorkflowError
from .model import Job, WorkflowSpec


# ----------------------------------------------------------------------
# Dict <-> model
# ----------------------------------------------------------------------

def job_to_dict(j: Job) -> Dict[str, Any]:
    """Convert a Job to the plain-dict shape accepted by workflow_from_dict()."""
    steps = []
    for step in j.steps:
        step_dict: Dict[str, Any] = {"name": step.name, "run": step.run}
        if step.env:
            step_dict["env"] = dict(step.env)
        if step.timeout is not None:
            step_dict["timeout"] = step.timeout
        steps.append(step_dict)

    environment = j.environment
    job_dict: Dict[str, Any] = {"steps": steps}
    if j.display_name is not None:
        job_dict["display_name"] = j.display_name
    if environment.os is not None:
        job_dict["os"] = environment.os
    if environment.toolchain is not None:
        job_dict["toolchain"] = environment.toolchain
    if environment.env:
        job_dict["env"] = dict(environment.env)
    if environment.axes:
        job_dict["axes"] = [
            {"name": a.name, "values": list(a.values), "env": {k: dict(v) for k, v in a.env.items()}}
            for a in environment.axes
        ]
    return job_dict


def workflow_to_dict(spec: WorkflowSpec) -> Dict[str, Any]:
    return {
        "name": spec.name,
        "triggers": [
            {"event": t.event, "branches": list(t.branches) if t.branches is not None else None}
            for t in spec.triggers
        ],
        "env": dict(spec.env),
        "jobs": {j.name: job_to_dict(j) for j in spec.jobs},
    }


def _dict_to_job(name: str, job_dict: Dict[str, Any]) -> Job:
    steps = [
        sh(
            step_dict["name"],
            step_dict["run"],
            env=step_dict.get("env"),
            timeout=step_dict.get("timeout"),
        )
        for step_dict in job_dict.get("steps", [])
    ]
    axes = [
        axis(a["name"], a["values"], env=a.get("env"))
        for a in job_dict.get("axes", [])
    ]
    return job(
        name,
        steps_list=steps,
        os=job_dict.get("os"),
        toolchain=job_dict.get("toolchain"),
        env=job_dict.get("env"),
        axes=axes,
        display_name=job_dict.get("display_name"),
    )


def workflow_from_dict(data: Dict[str, Any]) -> WorkflowSpec:
    """
    Build a WorkflowSpec from an already-parsed document:

        {
          "name": "CI",
          "triggers": [{"event": "push", "branches": ["main"]}],
          "env": {"RUST_BACKTRACE": "1"},
          "jobs": {"test": {"os": "ubuntu-latest", "steps": [{"name": ..., "run": ...}]}}
        }
    """
    try:
        jobs = [_dict_to_job(name, jd) for name, jd in data["jobs"].items()]
        triggers = None
        if "triggers" in data:
            triggers = [trigger(t["event"], t.get("branches")) for t in data["triggers"]]
        return wf(
            *jobs,
            name=data.get("name", "workflow"),
            triggers=triggers,
            env=data.get("env"),
        )
    except (KeyError, TypeError, AttributeError) as e:
        raise WorkflowError(f"Malformed workflow document: {type(e).__name__}: {e}") from e
    except ValueError as e:
        raise WorkflowError(str(e)) from e


# ----------------------------------------------------------------------
# Workflow loading (local file)
# ----------------------------------------------------------------------

def load_workflow(path: str | Path) -> WorkflowSpec:
    """
    Load a workflow from a .py or .json file.

    A Python file must define either:
      - workflow() -> WorkflowSpec
      - WORKFLOW = WorkflowSpec(...)
    A JSON file holds the document described in workflow_from_dict().
    """
    wf_path = Path(path).expanduser().resolve()
    if not wf_path.exists():
        raise FileNotFoundError(f"Workflow file not found: {wf_path}")

    if wf_path.suffix == ".json":
        try:
            data = json.loads(wf_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise WorkflowError(f"Invalid JSON in {wf_path.name}: {e}") from e
        return workflow_from_dict(data)

    if wf_path.suffix != ".py":
        raise WorkflowError(f"Workflow must be a .py or .json file, got: {wf_path.name}")

    module_name = f"matrixci_workflow_{wf_path.stem}"
    globals_dict = runpy.run_path(str(wf_path), run_name=module_name)

    spec = None
    if "workflow" in globals_dict and callable(globals_dict["workflow"]):
        spec = globals_dict["workflow"]()
    elif "WORKFLOW" in globals_dict:
        spec = globals_dict["WORKFLOW"]

    if not isinstance(spec, WorkflowSpec):
        raise WorkflowError(
            "Workflow must return/define a WorkflowSpec. "
            "Define workflow() -> WorkflowSpec or WORKFLOW = wf(...)."
        )
    return spec
