# src/matrixci/dsl.py
from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from .model import (
    EVENT_KINDS,
    Axis,
    EnvironmentDescriptor,
    Job,
    Step,
    Trigger,
    WorkflowSpec,
)


def _str_env(env: Optional[Mapping[str, object]]) -> Dict[str, str]:
    # env values end up in a process environment
    return {str(k): str(v) for k, v in (env or {}).items()}


# ---------------------------------------------------------------------
# Step / axis helpers
# ---------------------------------------------------------------------

def sh(
    name: str,
    cmd: str,
    *,
    env: Optional[Mapping[str, object]] = None,
    timeout: float | None = None,
) -> Step:
    """Create a shell step."""
    return Step(name=name, run=cmd, env=_str_env(env), timeout=timeout)


def axis(
    name: str,
    values: Iterable[object],
    *,
    env: Optional[Mapping[str, Mapping[str, object]]] = None,
) -> Axis:
    """
    Declare a matrix axis.

    Example:
        axis("toolchain", ["stable", "nightly"],
             env={"nightly": {"RUSTUP_TOOLCHAIN": "nightly"}})
    """
    vals = tuple(str(v) for v in values)
    if not vals:
        raise ValueError(f"axis({name!r}) must have at least one value")
    if len(set(vals)) != len(vals):
        raise ValueError(f"axis({name!r}) has duplicate values: {list(vals)}")

    overlays = {str(v): _str_env(e) for v, e in (env or {}).items()}
    unknown = sorted(set(overlays) - set(vals))
    if unknown:
        raise ValueError(f"axis({name!r}) env given for unknown values: {unknown}")
    return Axis(name=name, values=vals, env=overlays)


def trigger(event: str, branches: Optional[Sequence[str]] = None) -> Trigger:
    if event not in EVENT_KINDS:
        raise ValueError(f"Unknown event kind {event!r}; expected one of {list(EVENT_KINDS)}")
    return Trigger(event=event, branches=tuple(branches) if branches is not None else None)


def on(
    *,
    push: bool | Sequence[str] = False,
    pull_request: bool | Sequence[str] = False,
) -> List[Trigger]:
    """
    Trigger rules, GitHub style:
        on(pull_request=True, push=["main"])
    True means any branch; a list restricts to those branch patterns.
    """
    triggers: List[Trigger] = []
    for event, rule in (("pull_request", pull_request), ("push", push)):
        if rule is False:
            continue
        triggers.append(trigger(event, None if rule is True else list(rule)))
    return triggers


# ---------------------------------------------------------------------
# Functional Job helper
# ---------------------------------------------------------------------

def job(
    name: str,
    *steps: Step,  # allow: job("x", sh(...), sh(...))
    steps_list: Optional[List[Step]] = None,  # allow: job("x", steps_list=[...])
    os: str | None = None,
    toolchain: str | None = None,
    env: Optional[Mapping[str, object]] = None,
    axes: Sequence[Axis] = (),
    display_name: str | None = None,
) -> Job:
    steps_final: List[Step] = []
    if steps_list:
        steps_final.extend(list(steps_list))
    steps_final.extend(list(steps))

    if not steps_final:
        raise ValueError(f"job({name!r}) must have at least one step")

    axis_names = [a.name for a in axes]
    if len(set(axis_names)) != len(axis_names):
        raise ValueError(f"job({name!r}) has duplicate axes: {axis_names}")

    return Job(
        name=name,
        steps=tuple(steps_final),
        environment=EnvironmentDescriptor(
            os=os,
            toolchain=toolchain,
            env=_str_env(env),
            axes=tuple(axes),
        ),
        display_name=display_name,
    )


# ---------------------------------------------------------------------
# Builder API
# ---------------------------------------------------------------------

class JobBuilder:
    def __init__(self, name: str):
        self.name = name
        self._steps: list[Step] = []
        self._env: dict[str, str] = {}
        self._axes: list[Axis] = []
        self._os: Optional[str] = None
        self._toolchain: Optional[str] = None
        self._display_name: Optional[str] = None

    def runs_on(self, os: str):
        self._os = os
        return self

    def toolchain(self, channel: str):
        self._toolchain = channel
        return self

    def named(self, display_name: str):
        self._display_name = display_name
        return self

    def step(self, name: str, run: str, *, timeout: float | None = None, **env):
        self._steps.append(sh(name, run, env=env, timeout=timeout))
        return self

    def with_env(self, **env):
        self._env.update(_str_env(env))
        return self

    def matrix(self, name: str, values: Iterable[object], *, env=None):
        self._axes.append(axis(name, values, env=env))
        return self

    def build(self) -> Job:
        return job(
            self.name,
            steps_list=self._steps,
            os=self._os,
            toolchain=self._toolchain,
            env=self._env,
            axes=self._axes,
            display_name=self._display_name,
        )


def build(name: str) -> JobBuilder:
    """Convenience: build('test').step(...).build()"""
    return JobBuilder(name)


# ---------------------------------------------------------------------
# Workflow helper (single-file story)
# ---------------------------------------------------------------------

def wf(
    *jobs: Job,
    name: str = "workflow",
    triggers: Optional[Sequence[Trigger]] = None,
    env: Optional[Mapping[str, object]] = None,
) -> WorkflowSpec:
    """
    Workflow definition helper.

    Users can write:
        from matrixci import wf, job, sh, on

        def workflow():
            return wf(
                job(...),
                job(...),
                name="CI",
                triggers=on(pull_request=True, push=["main"]),
            )

    Without explicit triggers the workflow runs for every push and
    pull_request.
    """
    names = [j.name for j in jobs]
    if len(set(names)) != len(names):
        dupes = sorted({n for n in names if names.count(n) > 1})
        raise ValueError(f"Duplicate job names found: {dupes}")

    if triggers is None:
        triggers = on(push=True, pull_request=True)

    return WorkflowSpec(
        name=name,
        jobs=tuple(jobs),
        triggers=tuple(triggers),
        env=_str_env(env),
    )
