# step_workflows/docker.py
from __future__ import annotations

import subprocess
import uuid
from contextlib import contextmanager
from pathlib import PurePosixPath
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from ..environment import SHELL, Workspace, _slug, job_env
from ..errors import CIError, TOOL_HINTS
from ..model import Job, Step

# Mount point of the job's workspace base inside its container.
CONTAINER_BASE = "/checkrun"


# ---------------------------------------------------------------------
# Docker availability
# ---------------------------------------------------------------------

def _check_docker_available(job: Job) -> None:
    """Check if Docker is available, raise helpful error if not."""
    try:
        subprocess.run(
            ["docker", "--version"],
            capture_output=True,
            check=True,
        )
    except (subprocess.CalledProcessError, FileNotFoundError):
        raise CIError(
            kind="provisioning",
            job=job.name,
            step=None,
            message="Docker is not available",
            details={"hint": TOOL_HINTS["docker"]},
        )


# ---------------------------------------------------------------------
# One container per job
# ---------------------------------------------------------------------

class DockerSession:
    """Runs a job's steps via `docker exec` in the job's own container."""

    sudo = False  # containers run as root
    shares_host_packages = False

    def __init__(self, job: Job, workspace: Workspace, container: str):
        self.job = job
        self.workspace = workspace
        self.container = container

    def _container_cwd(self, step: Step) -> str:
        return str(PurePosixPath(CONTAINER_BASE, "src", step.cwd or "."))

    def command(self, step: Step) -> Tuple[List[str], Optional[str], Dict[str, str]]:
        host_cwd = (self.workspace.tree / (step.cwd or ".")).resolve()
        if not host_cwd.exists():
            raise FileNotFoundError(f"[{self.job.name}] step '{step.name}' cwd not found: {host_cwd}")

        cmd = ["docker", "exec", "-w", self._container_cwd(step)]

        # only job-level variables cross into the container, never the host env
        env: Dict[str, str] = {}
        env.update(self.workspace.scratch_env(CONTAINER_BASE))
        env.update(job_env(self.job))
        for key, value in env.items():
            cmd.extend(["-e", f"{key}={value}"])

        cmd.append(self.container)
        cmd.extend([*SHELL, step.run])
        return cmd, None, None


class DockerBackend:
    name = "docker"

    def __init__(self, image_for: Optional[Callable[[str], str]] = None):
        self.image_for = image_for or (lambda label: label)

    def _run_args(self, job: Job, workspace: Workspace, container: str) -> List[str]:
        image = self.image_for(job.environment.image)
        cmd = ["docker", "run", "-d", "--rm", "--name", container]
        cmd.extend(["-v", f"{workspace.base}:{CONTAINER_BASE}"])
        if not workspace.isolated:
            # in-place trees live outside the workspace base
            cmd.extend(["-v", f"{workspace.tree}:{CONTAINER_BASE}/src"])
        cmd.extend(["-w", f"{CONTAINER_BASE}/src"])
        cmd.extend([image, "sleep", "infinity"])
        return cmd

    @contextmanager
    def session(self, job: Job, workspace: Workspace) -> Iterator[DockerSession]:
        _check_docker_available(job)

        container = f"checkrun-{_slug(job.name)}-{uuid.uuid4().hex[:8]}"
        proc = subprocess.run(
            self._run_args(job, workspace, container),
            text=True,
            capture_output=True,
        )
        if proc.returncode != 0:
            raise CIError(
                kind="provisioning",
                job=job.name,
                step=None,
                message="could not start job container",
                details={"image": self.image_for(job.environment.image), "stderr": proc.stderr.strip()[-2000:]},
            )

        try:
            yield DockerSession(job, workspace, container)
        finally:
            subprocess.run(["docker", "rm", "-f", container], capture_output=True)
