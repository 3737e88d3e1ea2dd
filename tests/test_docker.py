"""Tests for docker command construction and container lifecycle (no docker daemon needed)."""
from __future__ import annotations

import subprocess

import pytest

from checkrun import runner
from checkrun.dsl import env, job, sh
from checkrun.environment import Workspace
from checkrun.model import FailureKind, JobStatus
from checkrun.runner import StepOutcome, run_job
from checkrun.step_workflows import docker
from checkrun.step_workflows.docker import DockerBackend, DockerSession


def _workspace(tmp_path, isolated=True):
    base = tmp_path / "base"
    tree = base / "src" if isolated else tmp_path / "repo"
    (tree / "crates" / "embedded").mkdir(parents=True)
    return Workspace(base=base, tree=tree, isolated=isolated)


def test_run_args_mount_workspace(tmp_path):
    ws = _workspace(tmp_path)
    backend = DockerBackend(image_for=lambda label: {"ubuntu-latest": "rust:latest"}[label])
    j = job("Format", sh("Check", "true"), environment=env("ubuntu-latest"))

    args = backend._run_args(j, ws, "checkrun-format-1")

    assert args[:6] == ["docker", "run", "-d", "--rm", "--name", "checkrun-format-1"]
    assert f"{ws.base}:/checkrun" in args
    assert args[-3:] == ["rust:latest", "sleep", "infinity"]


def test_run_args_inplace_mounts_tree(tmp_path):
    ws = _workspace(tmp_path, isolated=False)
    j = job("Format", sh("Check", "true"))
    args = DockerBackend()._run_args(j, ws, "c")
    assert f"{ws.tree}:/checkrun/src" in args


def test_exec_command(tmp_path):
    ws = _workspace(tmp_path)
    j = job(
        "Build no_std",
        sh("Build", "just build"),
        cwd="./crates/embedded",
        env={"CARGO_TERM_COLOR": "always"},
    )
    session = DockerSession(j, ws, "checkrun-build-1")

    argv, cwd, environ = session.command(j.steps[0])

    assert argv[:4] == ["docker", "exec", "-w", "/checkrun/src/crates/embedded"]
    assert "CARGO_TERM_COLOR=always" in argv
    assert "CARGO_TARGET_DIR=/checkrun/target" in argv
    assert argv[-5:] == ["checkrun-build-1", "bash", "-e", "-c", "just build"]
    assert cwd is None and environ is None
    assert session.sudo is False


def test_exec_command_selects_toolchain(tmp_path):
    ws = _workspace(tmp_path)
    j = job("Build no_std", sh("Build", "just build"), environment=env(toolchain="nightly"))
    argv, _, _ = DockerSession(j, ws, "c").command(j.steps[0])
    assert "RUSTUP_TOOLCHAIN=nightly" in argv


@pytest.fixture
def docker_calls(monkeypatch):
    """Record docker CLI calls; `docker run` exits with `calls.start_code`."""

    class Calls(list):
        start_code = 0

        @property
        def container(self):
            run = next(c for c in self if c[:2] == ["docker", "run"])
            return run[run.index("--name") + 1]

    calls = Calls()

    def fake_run(args, **kwargs):
        calls.append(list(args))
        if args[:2] == ["docker", "run"]:
            return subprocess.CompletedProcess(args, calls.start_code, "", "Unable to find image")
        return subprocess.CompletedProcess(args, 0, "", "")

    monkeypatch.setattr(docker.subprocess, "run", fake_run)
    return calls


def _run_in_container(repo):
    j = job("Check crates", sh("Check", "bash contrib/scripts/check-crates.sh '' ci"))
    return run_job(j, repo_root=repo, backend=DockerBackend(), provision=False)


def test_container_removed_after_failing_step(repo, docker_calls, monkeypatch):
    monkeypatch.setattr(runner, "_execute", lambda argv, cwd, env, timeout: StepOutcome(3, "error[E0425]"))

    result = _run_in_container(repo)

    assert result.status is JobStatus.FAILURE
    assert result.exit_code == 3
    assert docker_calls[-1] == ["docker", "rm", "-f", docker_calls.container]


def test_container_removed_when_exec_raises(repo, docker_calls, monkeypatch):
    def broken(argv, cwd, env, timeout):
        raise OSError("exec format error")

    monkeypatch.setattr(runner, "_execute", broken)

    result = _run_in_container(repo)

    assert result.exit_code == 1
    assert "exec format error" in result.output
    assert docker_calls[-1] == ["docker", "rm", "-f", docker_calls.container]


def test_container_start_failure_is_provisioning(repo, docker_calls, monkeypatch):
    docker_calls.start_code = 125
    monkeypatch.setattr(runner, "_execute", lambda *a: pytest.fail("no step may run"))

    result = _run_in_container(repo)

    assert result.kind is FailureKind.PROVISIONING
    assert result.exit_code == 1
    assert "could not start job container" in result.output
    assert "Unable to find image" in result.output
    assert not any(c[:3] == ["docker", "rm", "-f"] for c in docker_calls)
