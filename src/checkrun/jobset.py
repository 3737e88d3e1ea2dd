# jobset.py
# The declared job set: one independent job per verification concern.
from __future__ import annotations

import runpy
from pathlib import Path
from typing import Iterable, List

from .dsl import env, job, wf
from .model import Job
from .step_workflows.scripts import CrateMode, FmtMode, Profile, check_crates, check_docs, check_fmt, just

# Applied to every job.
PIPELINE_ENV = {"CARGO_TERM_COLOR": "always"}

CRATE_DEPS = ("libdbus-1-dev", "pkg-config")
EMBEDDED_EXAMPLE = "./crates/nostr/examples/embedded"


def workflow() -> List[Job]:
    return wf(
        job(
            "Format",
            check_fmt(FmtMode.CHECK),
            environment=env("ubuntu-latest"),
            env=PIPELINE_ENV,
        ),
        job(
            "Check crates",
            check_crates(CrateMode.DEFAULT, Profile.CI),
            environment=env("ubuntu-latest", packages=CRATE_DEPS),
            env=PIPELINE_ENV,
        ),
        job(
            "Check crates (MSRV)",
            check_crates(CrateMode.MSRV, Profile.CI),
            environment=env("ubuntu-latest", packages=CRATE_DEPS),
            env=PIPELINE_ENV,
        ),
        job(
            "Check docs",
            check_docs(),
            environment=env("ubuntu-latest"),
            env=PIPELINE_ENV,
        ),
        job(
            "Build no_std",
            just("init"),
            just("build"),
            environment=env(
                "ubuntu-latest",
                toolchain="nightly",
                profile="minimal",
                tools=["just"],
                working_directory=EMBEDDED_EXAMPLE,
                # `just init` installs system packages itself
                refresh_packages=True,
            ),
            env=PIPELINE_ENV,
        ),
    )


def get_job(name: str, jobs: Iterable[Job] | None = None) -> Job:
    jobs = list(jobs) if jobs is not None else workflow()
    for j in jobs:
        if j.name == name:
            return j
    raise KeyError(f"Unknown job {name!r}. Known jobs: {[j.name for j in jobs]}")


def select(jobs: List[Job], names: Iterable[str]) -> List[Job]:
    """Keep only the named jobs, preserving declaration order. No names keeps all."""
    wanted = list(names)
    if not wanted:
        return list(jobs)

    known = {j.name for j in jobs}
    missing = [n for n in wanted if n not in known]
    if missing:
        raise ValueError(f"Unknown job(s): {missing}. Known jobs: {[j.name for j in jobs]}")

    return [j for j in jobs if j.name in wanted]


# ----------------------------------------------------------------------
# Workflow loading (local file)
# ----------------------------------------------------------------------

def load_workflow(path: str | Path) -> List[Job]:
    """
    Load a workflow from a python file path.

    The file must define either:
      - workflow() -> List[Job]
      - JOBS = [Job, ...]
    """
    wf_path = Path(path).expanduser().resolve()
    if not wf_path.exists():
        raise FileNotFoundError(f"Workflow file not found: {wf_path}")
    if wf_path.suffix != ".py":
        raise ValueError(f"Workflow must be a .py file, got: {wf_path.name}")

    module_name = f"checkrun_workflow_{wf_path.stem}"
    globals_dict = runpy.run_path(str(wf_path), run_name=module_name)

    jobs = None
    if "workflow" in globals_dict and callable(globals_dict["workflow"]):
        jobs = globals_dict["workflow"]()
    elif "JOBS" in globals_dict:
        jobs = globals_dict["JOBS"]

    if not isinstance(jobs, list) or not all(isinstance(j, Job) for j in jobs):
        raise TypeError(
            "Workflow must return/define a List[Job]. "
            "Define workflow() -> List[Job] or JOBS = [Job, ...]."
        )

    return jobs
