# matrix.py
from __future__ import annotations

from fnmatch import fnmatch
from itertools import product
from typing import Dict, List, Mapping, Optional, Tuple

from .model import Job, JobInstance, TriggerContext, WorkflowSpec


def overlay(*layers: Optional[Mapping[str, str]]) -> Dict[str, str]:
    """
    Merge env layers left to right; later layers win on the same key.

    Resolution order is global < job < variant < step.
    """
    merged: Dict[str, str] = {}
    for layer in layers:
        if layer:
            merged.update(layer)
    return merged


# ----------------------------------------------------------------------
# Trigger filter
# ----------------------------------------------------------------------

def _branch_allowed(branch: str, patterns) -> bool:
    if patterns is None:
        return True
    return any(fnmatch(branch, p) for p in patterns)


def trigger_matches(spec: WorkflowSpec, ctx: TriggerContext) -> bool:
    """True if any trigger accepts both the event kind and the branch."""
    return any(
        t.event == ctx.event and _branch_allowed(ctx.branch, t.branches)
        for t in spec.triggers
    )


# ----------------------------------------------------------------------
# Expansion
# ----------------------------------------------------------------------

def _display_name(display_name: Optional[str], combo: Tuple[str, ...]) -> Optional[str]:
    if display_name is None or not combo:
        return display_name
    return f"{display_name} ({', '.join(combo)})"


def expand_job(job: Job, global_env: Optional[Mapping[str, str]] = None) -> List[JobInstance]:
    """
    Expand one job over the Cartesian product of its axes.

    Row-major over the declared axis order: the first axis varies slowest.
    A job without axes yields a single instance named after the job.
    """
    environment = job.environment
    axes = environment.axes

    base_labels: Dict[str, str] = {}
    if environment.os is not None:
        base_labels["os"] = environment.os
    if environment.toolchain is not None:
        base_labels["toolchain"] = environment.toolchain

    instances: List[JobInstance] = []
    for combo in product(*(axis.values for axis in axes)):
        variant = tuple(zip((axis.name for axis in axes), combo))
        variant_env = overlay(*(axis.env.get(value) for axis, value in zip(axes, combo)))

        instances.append(
            JobInstance(
                name="-".join([job.name, *combo]),
                job=job.name,
                steps=job.steps,
                env=overlay(global_env, environment.env, variant_env),
                variant=variant,
                labels=overlay(base_labels, dict(variant)),
                display_name=_display_name(job.display_name, combo),
            )
        )

    return instances


def expand_workflow(spec: WorkflowSpec, ctx: TriggerContext) -> List[JobInstance]:
    """
    Pure (WorkflowSpec, TriggerContext) -> ordered JobInstances.

    Jobs keep their declaration order. Returns [] when the trigger does not
    match the context.
    """
    if not trigger_matches(spec, ctx):
        return []

    instances: List[JobInstance] = []
    for job in spec.jobs:
        instances.extend(expand_job(job, spec.env))

    names = [i.name for i in instances]
    if len(set(names)) != len(names):
        dupes = sorted({n for n in names if names.count(n) > 1})
        raise ValueError(f"Duplicate job instance names found: {dupes}")

    return instances
