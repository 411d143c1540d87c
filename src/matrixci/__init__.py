from .dsl import job, sh, axis, on, trigger, wf, JobBuilder, build
from .matrix import expand_job, expand_workflow, overlay, trigger_matches
from .model import Job, Step, Axis, WorkflowSpec, TriggerContext, JobInstance, JobState, PipelineState
from .scheduler import Scheduler, WorkerPool, PipelineRun

__all__ = [
    "job", "sh", "axis", "on", "trigger", "wf", "JobBuilder", "build",
    "expand_job", "expand_workflow", "overlay", "trigger_matches",
    "Job", "Step", "Axis", "WorkflowSpec", "TriggerContext", "JobInstance", "JobState", "PipelineState",
    "Scheduler", "WorkerPool", "PipelineRun",
]
