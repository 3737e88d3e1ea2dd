from .dsl import env, job, sh, wf
from .jobset import workflow
from .model import Environment, Event, EventKind, Job, JobResult, JobStatus, PipelineResult, Step
from .runner import run_job, run_pipeline
from .trigger import should_fire

__all__ = [
    "env",
    "job",
    "sh",
    "wf",
    "workflow",
    "Environment",
    "Event",
    "EventKind",
    "Job",
    "JobResult",
    "JobStatus",
    "PipelineResult",
    "Step",
    "run_job",
    "run_pipeline",
    "should_fire",
]
