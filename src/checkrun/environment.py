# environment.py
# Per-job environment acquisition: an isolated workspace, the provisioning
# steps for the job's declared environment, and the host execution backend.
from __future__ import annotations

import os
import re
import shlex
import shutil
import tempfile
import threading
from contextlib import contextmanager, nullcontext
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import ContextManager, Dict, Iterator, List, Optional, Set, Tuple

from .errors import CIError, TOOL_HINTS
from .model import Environment, Job, Step

# Not copied into an isolated workspace. Root-only names are cargo/VCS output
# at the repository root; nested directories with the same name are sources.
ROOT_IGNORE = frozenset({".git", "target", ".checkrun"})
ANYWHERE_IGNORE = frozenset({"__pycache__"})

# Same default shell as hosted runners use for `run:` steps.
SHELL = ("bash", "-e", "-c")

# Provisioning steps that write machine-wide state (dpkg database, rustup home).
SYSTEM_PACKAGES_STEP = "Install deps"
TOOLCHAIN_STEP = "Install toolchain"
HOST_WIDE_STEPS = frozenset({SYSTEM_PACKAGES_STEP, TOOLCHAIN_STEP})

# Host jobs take turns on HOST_WIDE_STEPS.
PACKAGE_LOCK = threading.Lock()

# Seconds apt waits for a dpkg lock held by another process.
APT_LOCK_TIMEOUT = 300


def _slug(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-") or "job"


# ---------------------------------------------------------------------
# Workspace
# ---------------------------------------------------------------------

@dataclass
class Workspace:
    """
    The directories one job owns for the duration of a run.

    base: private temp dir (scratch space, cargo target dir, installed tools)
    tree: source tree the job's steps run in
    """
    base: Path
    tree: Path
    isolated: bool

    def scratch_env(self, base: str | PurePosixPath | None = None) -> Dict[str, str]:
        """Per-job cargo target dir and TMPDIR, so concurrent jobs never share build locks."""
        root = PurePosixPath(base) if base is not None else PurePosixPath(self.base)
        return {
            "CARGO_TARGET_DIR": str(root / "target"),
            "TMPDIR": str(root / "tmp"),
        }

    @property
    def tools_root(self) -> Path:
        return self.base / "tools"


def _copy_ignore(root: Path):
    def ignore(directory: str, names: List[str]) -> Set[str]:
        skip = {n for n in names if n in ANYWHERE_IGNORE}
        if Path(directory) == root:
            skip.update(n for n in names if n in ROOT_IGNORE)
        return skip
    return ignore


@contextmanager
def acquire_workspace(job: Job, repo_root: str | Path, strategy: str = "copy") -> Iterator[Workspace]:
    """
    Acquire a workspace for `job` and always release it.

    strategy:
      - "copy": the repository is copied to a fresh temp dir
      - "inplace": steps run in the repository itself
    """
    repo_root = Path(repo_root).resolve()
    if not repo_root.is_dir():
        raise CIError(
            kind="provisioning",
            job=job.name,
            step=None,
            message=f"repository root not found: {repo_root}",
        )
    if strategy not in ("copy", "inplace"):
        raise ValueError(f"Unknown workspace strategy: {strategy!r}")

    base = Path(tempfile.mkdtemp(prefix=f"checkrun-{_slug(job.name)}-"))
    try:
        (base / "tmp").mkdir()
        (base / "target").mkdir()

        if strategy == "copy":
            tree = base / "src"
            try:
                shutil.copytree(
                    repo_root,
                    tree,
                    symlinks=True,
                    ignore=_copy_ignore(repo_root),
                )
            except (OSError, shutil.Error) as e:
                raise CIError(
                    kind="provisioning",
                    job=job.name,
                    step="Checkout",
                    message="could not copy repository into workspace",
                    details={"error": str(e)},
                ) from e
            yield Workspace(base=base, tree=tree, isolated=True)
        else:
            yield Workspace(base=base, tree=repo_root, isolated=False)
    finally:
        shutil.rmtree(base, ignore_errors=True)


# ---------------------------------------------------------------------
# Provisioning
# ---------------------------------------------------------------------

def provisioning_steps(environment: Environment, *, sudo: bool = True) -> List[Step]:
    """
    Setup commands that bring a bare runner to `environment`.

    Nothing here changes machine-wide defaults: the toolchain is installed
    but selected per job through RUSTUP_TOOLCHAIN (see job_env).
    """
    steps: List[Step] = []
    prefix = "sudo " if sudo else ""
    apt = f"{prefix}apt-get -o DPkg::Lock::Timeout={APT_LOCK_TIMEOUT}"

    if environment.system_packages or environment.refresh_packages:
        cmd = f"{apt} update"
        if environment.system_packages:
            pkgs = " ".join(shlex.quote(p) for p in environment.system_packages)
            cmd += f" && {apt} install -y {pkgs}"
        steps.append(Step(name=SYSTEM_PACKAGES_STEP, run=cmd))

    if environment.toolchain:
        cmd = f"rustup toolchain install {shlex.quote(environment.toolchain)}"
        if environment.toolchain_profile:
            cmd += f" --profile {shlex.quote(environment.toolchain_profile)}"
        steps.append(Step(name=TOOLCHAIN_STEP, run=cmd))

    for tool in environment.tools:
        t = shlex.quote(tool)
        steps.append(Step(
            name=f"Install {tool}",
            run=f"command -v {t} >/dev/null 2>&1 || cargo install {t}",
        ))

    return steps


def job_env(job: Job) -> Dict[str, str]:
    """Variables a job's steps see on top of the session's base environment."""
    env: Dict[str, str] = {}
    if job.environment.toolchain:
        env["RUSTUP_TOOLCHAIN"] = job.environment.toolchain
    env.update(job.env or {})
    return env


def package_lock(session, step: Step) -> ContextManager:
    """Hold PACKAGE_LOCK while a host session changes machine-wide state."""
    if getattr(session, "shares_host_packages", False) and step.name in HOST_WIDE_STEPS:
        return PACKAGE_LOCK
    return nullcontext()


# ---------------------------------------------------------------------
# Host backend
# ---------------------------------------------------------------------

class HostSession:
    """Runs a job's steps directly on this machine, inside its workspace."""

    shares_host_packages = True

    def __init__(self, job: Job, workspace: Workspace):
        self.job = job
        self.workspace = workspace

    @property
    def sudo(self) -> bool:
        return hasattr(os, "geteuid") and os.geteuid() != 0

    def command(self, step: Step) -> Tuple[List[str], Optional[str], Dict[str, str]]:
        cwd = (self.workspace.tree / (step.cwd or ".")).resolve()
        if not cwd.exists():
            raise FileNotFoundError(f"[{self.job.name}] step '{step.name}' cwd not found: {cwd}")

        env = os.environ.copy()
        env.update(self.workspace.scratch_env())
        # cargo-installed tools land in the workspace and go away with it
        tools = self.workspace.tools_root
        env["CARGO_INSTALL_ROOT"] = str(tools)
        env["PATH"] = f"{tools / 'bin'}{os.pathsep}{env.get('PATH', '')}"
        env.update(job_env(self.job))
        return [*SHELL, step.run], str(cwd), env


class HostBackend:
    name = "host"

    @contextmanager
    def session(self, job: Job, workspace: Workspace) -> Iterator[HostSession]:
        if shutil.which(SHELL[0]) is None:
            raise CIError(
                kind="provisioning",
                job=job.name,
                step=None,
                message=f"{SHELL[0]} is not available",
                details={"hint": TOOL_HINTS["bash"]},
            )
        yield HostSession(job, workspace)


def make_backend(name: str, *, image_for=None):
    """Backend by name; `image_for` maps a runner label to a docker image."""
    if name == "host":
        return HostBackend()
    if name == "docker":
        from .step_workflows.docker import DockerBackend

        return DockerBackend(image_for=image_for)
    raise ValueError(f"Unknown backend: {name!r}")
