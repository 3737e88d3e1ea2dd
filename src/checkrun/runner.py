# runner.py
from __future__ import annotations

import os
import signal
import subprocess
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from .config import DEFAULT_TIMEOUT_MINUTES
from .environment import HostBackend, acquire_workspace, package_lock, provisioning_steps
from .errors import CIError, StepFailure, TOOL_HINTS
from .model import Event, FailureKind, Job, JobResult, PipelineResult, Step
from .trigger import DEFAULT_TRIGGERS, TriggerRule, should_fire
from .ui.console import get_console

# Exit code reported for a step killed by the job timeout (same as coreutils `timeout`).
TIMEOUT_EXIT_CODE = 124

# bash exit status for an unknown command.
COMMAND_NOT_FOUND = 127

# Amount of captured output kept for reporting.
OUTPUT_TAIL = 4000

DEFAULT_TIMEOUT = DEFAULT_TIMEOUT_MINUTES * 60.0


@dataclass
class StepOutcome:
    exit_code: int
    output: str
    timed_out: bool = False


# ----------------------------------------------------------------------
# Execution primitives
# ----------------------------------------------------------------------

def _kill(proc: subprocess.Popen) -> None:
    # steps run in their own session; take down the whole process group
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError, AttributeError):
        proc.kill()


def _execute(argv: List[str], cwd: Optional[str], env: Optional[Dict[str, str]], timeout: Optional[float]) -> StepOutcome:
    proc = subprocess.Popen(
        argv,
        cwd=cwd,
        env=env,
        text=True,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        start_new_session=True,
    )
    try:
        out, _ = proc.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        _kill(proc)
        out, _ = proc.communicate()
        return StepOutcome(exit_code=TIMEOUT_EXIT_CODE, output=(out or "")[-OUTPUT_TAIL:], timed_out=True)

    return StepOutcome(exit_code=proc.returncode, output=(out or "")[-OUTPUT_TAIL:])


def run_step(session, job: Job, step: Step, *, timeout: Optional[float] = None, kind: FailureKind = FailureKind.VERIFICATION) -> StepOutcome:
    """
    Run one step in `session`. Raises StepFailure on nonzero exit or timeout.

    `kind` is the failure kind reported for a nonzero exit (provisioning
    steps pass FailureKind.PROVISIONING).
    """
    argv, cwd, env = session.command(step)
    outcome = _execute(argv, cwd, env, timeout)

    if outcome.timed_out:
        raise StepFailure(
            job=job.name,
            step=step.name,
            cmd=step.run,
            exit_code=TIMEOUT_EXIT_CODE,
            output=outcome.output,
            kind=FailureKind.TIMEOUT,
        )
    if outcome.exit_code != 0:
        raise StepFailure(
            job=job.name,
            step=step.name,
            cmd=step.run,
            exit_code=outcome.exit_code,
            output=outcome.output,
            kind=kind,
        )
    return outcome


def _remaining(deadline: Optional[float], job: Job, step: Step) -> Optional[float]:
    if deadline is None:
        return None
    left = deadline - time.monotonic()
    if left <= 0:
        raise StepFailure(
            job=job.name,
            step=step.name,
            cmd=step.run,
            exit_code=TIMEOUT_EXIT_CODE,
            kind=FailureKind.TIMEOUT,
        )
    return left


def _with_hint(failure: StepFailure) -> str:
    """Append an install hint when the step's program was not found."""
    if failure.exit_code != COMMAND_NOT_FOUND:
        return failure.output
    words = failure.cmd.split()
    hint = TOOL_HINTS.get(words[0]) if words else None
    if not hint:
        return failure.output
    return f"{failure.output.rstrip()}\nHint: {hint}".lstrip()


def run_job(
    job: Job,
    *,
    repo_root: str | Path = ".",
    backend=None,
    strategy: str = "copy",
    provision: bool = True,
    timeout: Optional[float] = DEFAULT_TIMEOUT,
) -> JobResult:
    """
    Provision `job`'s environment, then run its steps in order.

    Never raises for job-level failures: the first failing step ends the
    job and is reported in the returned JobResult. Steps are not retried.
    """
    console = get_console()
    backend = backend or HostBackend()
    started = time.monotonic()
    deadline = started + timeout if timeout is not None else None

    console.print_job_start(job.name)
    try:
        with acquire_workspace(job, repo_root, strategy) as workspace:
            with backend.session(job, workspace) as session:
                if provision:
                    for step in provisioning_steps(job.environment, sudo=session.sudo):
                        console.print_step(job.name, step.name)
                        with package_lock(session, step):
                            run_step(
                                session,
                                job,
                                step,
                                timeout=_remaining(deadline, job, step),
                                kind=FailureKind.PROVISIONING,
                            )

                for step in job.steps:
                    console.print_step(job.name, step.name)
                    run_step(session, job, step, timeout=_remaining(deadline, job, step))

        result = JobResult.success(job.name, duration=time.monotonic() - started)

    except StepFailure as e:
        result = JobResult.failure(
            job.name,
            e.exit_code,
            failed_step=e.step,
            kind=e.kind,
            duration=time.monotonic() - started,
            output=_with_hint(e),
        )
    except CIError as e:
        result = JobResult.failure(
            job.name,
            1,
            failed_step=e.step,
            kind=e.failure_kind,
            duration=time.monotonic() - started,
            output=str(e),
        )
    except (OSError, subprocess.SubprocessError) as e:
        # missing cwd, shell not executable, ...
        result = JobResult.failure(
            job.name,
            1,
            kind=FailureKind.VERIFICATION,
            duration=time.monotonic() - started,
            output=str(e),
        )

    console.print_job_finished(result)
    return result


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def run_jobs(
    jobs: Iterable[Job],
    run_fn: Callable[[Job], JobResult],
    max_workers: int | None = None,
) -> List[JobResult]:
    """
    Run every job concurrently and return results in declaration order.

    Jobs are independent: a failing job never stops the others.
    """
    jobs = list(jobs)
    if not jobs:
        return []

    if max_workers is None:
        max_workers = len(jobs)

    results: List[Optional[JobResult]] = [None] * len(jobs)

    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        futures = {pool.submit(run_fn, job): idx for idx, job in enumerate(jobs)}

        for future in as_completed(futures):
            idx = futures[future]
            try:
                results[idx] = future.result()
            except Exception as e:
                # run_fn is not supposed to raise; keep the sibling jobs' results anyway
                get_console().print_exception(e)
                results[idx] = JobResult.failure(jobs[idx].name, 1, output=str(e))

    return [r for r in results if r is not None]


def run_pipeline(
    event: Event,
    jobs: List[Job],
    *,
    rules: Iterable[TriggerRule] = DEFAULT_TRIGGERS,
    max_workers: int | None = None,
    repo_root: str | Path = ".",
    backend=None,
    strategy: str = "copy",
    provision: bool = True,
    timeout: Optional[float] = DEFAULT_TIMEOUT,
    run_fn: Optional[Callable[[Job], JobResult]] = None,
) -> PipelineResult:
    """
    Evaluate `event` and, when it fires, run all jobs.

    An event that fires no rule is not an error: nothing runs and the
    result has fired=False and no job results.
    """
    if not should_fire(event, rules):
        return PipelineResult(event=event, fired=False)

    if run_fn is None:
        backend = backend or HostBackend()

        def run_fn(job: Job) -> JobResult:
            return run_job(
                job,
                repo_root=repo_root,
                backend=backend,
                strategy=strategy,
                provision=provision,
                timeout=timeout,
            )

    results = run_jobs(jobs, run_fn, max_workers=max_workers)
    return PipelineResult(event=event, fired=True, results=results)
