# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union


class EventKind(str, Enum):
    PUSH = "push"
    PULL_REQUEST = "pull_request"


class JobStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class FailureKind(str, Enum):
    PROVISIONING = "provisioning"
    VERIFICATION = "verification"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class Event:
    """
    A trigger event coming from outside (a push or a pull request).

    `kind` is kept as a plain string when it is not a known EventKind so
    that unknown events can still be evaluated (and rejected) by the trigger.
    """
    kind: Union[EventKind, str]
    target_branch: str


@dataclass(frozen=True)
class Environment:
    """Execution environment a job needs before its steps can run."""
    image: str = "ubuntu-latest"
    system_packages: Tuple[str, ...] = ()
    toolchain: Optional[str] = None
    toolchain_profile: Optional[str] = None
    tools: Tuple[str, ...] = ()
    working_directory: Optional[str] = None
    # refresh the package index even when nothing is installed up front
    refresh_packages: bool = False


@dataclass(frozen=True)
class Step:
    """A single command (step) inside a CI job."""
    name: str
    run: str
    cwd: str | None = None


@dataclass(frozen=True)
class Job:
    """
    A CI job: an environment plus an ordered list of steps.

    Jobs are read-only configuration. There is no dependency field: every
    job is independent of every other job.
    """
    name: str
    steps: Tuple[Step, ...]
    environment: Environment = field(default_factory=Environment)
    env: Dict[str, str] = field(default_factory=dict)


@dataclass
class JobResult:
    """Outcome of one job in one pipeline run."""
    job_name: str
    status: JobStatus
    exit_code: int
    failed_step: Optional[str] = None
    kind: Optional[FailureKind] = None
    duration: float = 0.0
    output: str = ""

    @property
    def ok(self) -> bool:
        return self.status is JobStatus.SUCCESS

    @classmethod
    def success(cls, job_name: str, duration: float = 0.0) -> JobResult:
        return cls(job_name=job_name, status=JobStatus.SUCCESS, exit_code=0, duration=duration)

    @classmethod
    def failure(
        cls,
        job_name: str,
        exit_code: int,
        *,
        failed_step: Optional[str] = None,
        kind: FailureKind = FailureKind.VERIFICATION,
        duration: float = 0.0,
        output: str = "",
    ) -> JobResult:
        # a failure always carries a nonzero code
        return cls(
            job_name=job_name,
            status=JobStatus.FAILURE,
            exit_code=exit_code or 1,
            failed_step=failed_step,
            kind=kind,
            duration=duration,
            output=output,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON reports."""
        return {
            "job_name": self.job_name,
            "status": self.status.value,
            "exit_code": self.exit_code,
            "failed_step": self.failed_step,
            "kind": self.kind.value if self.kind else None,
            "duration": round(self.duration, 3),
        }


@dataclass
class PipelineResult:
    """
    Aggregate of one pipeline evaluation.

    When the trigger did not fire, `fired` is False and `results` is empty.
    """
    event: Event
    fired: bool
    results: List[JobResult] = field(default_factory=list)

    @property
    def status(self) -> JobStatus:
        if all(r.ok for r in self.results):
            return JobStatus.SUCCESS
        return JobStatus.FAILURE

    @property
    def ok(self) -> bool:
        return self.status is JobStatus.SUCCESS

    @property
    def failed(self) -> List[JobResult]:
        return [r for r in self.results if not r.ok]

    def to_dict(self) -> Dict[str, Any]:
        kind = self.event.kind
        return {
            "event": {
                "kind": kind.value if isinstance(kind, EventKind) else kind,
                "target_branch": self.event.target_branch,
            },
            "fired": self.fired,
            "status": self.status.value,
            "jobs": [r.to_dict() for r in self.results],
        }
