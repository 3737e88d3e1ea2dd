# src/checkrun/dsl.py
from __future__ import annotations

from dataclasses import replace
from typing import Dict, Iterable, List, Optional

from .model import Environment, Job, Step


# ---------------------------------------------------------------------
# Step helper
# ---------------------------------------------------------------------

def sh(name: str, cmd: str, *, cwd: str | None = None) -> Step:
    """Create a shell step."""
    return Step(name=name, run=cmd, cwd=cwd)


# ---------------------------------------------------------------------
# Environment helper
# ---------------------------------------------------------------------

def env(
    image: str = "ubuntu-latest",
    *,
    packages: Optional[Iterable[str]] = None,
    toolchain: Optional[str] = None,
    profile: Optional[str] = None,
    tools: Optional[Iterable[str]] = None,
    working_directory: Optional[str] = None,
    refresh_packages: bool = False,
) -> Environment:
    """Describe the environment a job runs in."""
    return Environment(
        image=image,
        system_packages=tuple(packages or ()),
        toolchain=toolchain,
        toolchain_profile=profile,
        tools=tuple(tools or ()),
        working_directory=working_directory,
        refresh_packages=refresh_packages,
    )


# ---------------------------------------------------------------------
# Functional Job helper
# ---------------------------------------------------------------------

def job(
    name: str,
    *steps: Step,  # allow: job("x", sh(...), sh(...))
    environment: Optional[Environment] = None,
    env: Optional[Dict[str, str]] = None,
    cwd: str | None = None,  # default cwd applied to steps missing cwd
) -> Job:
    if not steps:
        raise ValueError(f"job({name!r}) must have at least one step")

    environment = environment or Environment()
    default_cwd = cwd if cwd is not None else environment.working_directory

    steps_final: List[Step] = list(steps)
    if default_cwd is not None:
        steps_final = [s if s.cwd is not None else replace(s, cwd=default_cwd) for s in steps_final]

    return Job(
        name=name,
        steps=tuple(steps_final),
        environment=environment,
        # force values to str so they can be passed to subprocesses as-is
        env={k: str(v) for k, v in (env or {}).items()},
    )


# ---------------------------------------------------------------------
# Workflow helper
# ---------------------------------------------------------------------

def wf(*jobs: Job) -> List[Job]:
    """
    Workflow definition helper.

        from checkrun.dsl import wf, job, sh

        def workflow():
            return wf(
                job(...),
                job(...),
            )
    """
    names = [j.name for j in jobs]
    if len(set(names)) != len(names):
        dupes = sorted({n for n in names if names.count(n) > 1})
        raise ValueError(f"Duplicate job names found: {dupes}")
    return list(jobs)
