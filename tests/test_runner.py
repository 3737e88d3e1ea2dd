"""Tests for job execution and pipeline aggregation."""
from __future__ import annotations

import os
import threading

import pytest

from checkrun import runner
from checkrun.dsl import env, job, sh, wf
from checkrun.errors import TOOL_HINTS
from checkrun.model import Event, EventKind, FailureKind, JobResult, JobStatus, Step
from checkrun.runner import TIMEOUT_EXIT_CODE, StepOutcome, run_job, run_jobs, run_pipeline

PUSH_MASTER = Event(EventKind.PUSH, "master")


def _run(j, repo, **kw):
    kw.setdefault("strategy", "inplace")
    kw.setdefault("provision", False)
    return run_job(j, repo_root=repo, **kw)


def test_all_steps_succeed(repo):
    result = _run(job("ok", sh("one", "true"), sh("two", "echo fine")), repo)
    assert result.status is JobStatus.SUCCESS
    assert result.exit_code == 0
    assert result.failed_step is None


def test_failing_step_stops_job(repo):
    j = job(
        "bad",
        sh("first", "touch first.txt"),
        sh("second", "echo broken; exit 3"),
        sh("third", "touch third.txt"),
    )
    result = _run(j, repo)

    assert result.status is JobStatus.FAILURE
    assert result.exit_code == 3
    assert result.failed_step == "second"
    assert result.kind is FailureKind.VERIFICATION
    assert "broken" in result.output
    assert (repo / "first.txt").exists()
    assert not (repo / "third.txt").exists()


def test_steps_run_in_order_in_step_cwd(repo):
    j = job(
        "order",
        sh("a", "echo a >> log.txt", cwd="sub"),
        sh("b", "echo b >> log.txt", cwd="sub"),
    )
    assert _run(j, repo).ok
    assert (repo / "sub" / "log.txt").read_text() == "a\nb\n"


def test_job_env_is_visible_to_steps(repo):
    j = job("env", sh("check", 'test "$CARGO_TERM_COLOR" = always'), env={"CARGO_TERM_COLOR": "always"})
    assert _run(j, repo).ok


def test_copy_strategy_leaves_repo_untouched(repo):
    j = job("iso", sh("write", "echo x > made.txt && test -f README.md"))
    assert _run(j, repo, strategy="copy").ok
    assert not (repo / "made.txt").exists()


def test_missing_cwd_is_failure(repo):
    result = _run(job("cwd", sh("a", "true", cwd="does-not-exist")), repo)
    assert not result.ok
    assert result.exit_code == 1
    assert "cwd not found" in result.output


def test_timeout_kills_step(repo):
    j = job("slow", sh("sleep", "sleep 10"), sh("after", "touch after.txt"))
    result = _run(j, repo, timeout=0.5)

    assert result.kind is FailureKind.TIMEOUT
    assert result.exit_code == TIMEOUT_EXIT_CODE
    assert result.failed_step == "sleep"
    assert not (repo / "after.txt").exists()


def test_provisioning_failure(repo, monkeypatch):
    monkeypatch.setattr(
        runner,
        "provisioning_steps",
        lambda environment, sudo=True: [Step("Install deps", "exit 100")],
    )
    result = _run(job("prov", sh("never", "touch never.txt")), repo, provision=True)

    assert result.kind is FailureKind.PROVISIONING
    assert result.exit_code == 100
    assert result.failed_step == "Install deps"
    assert not (repo / "never.txt").exists()


def test_provisioning_skipped_when_disabled(repo, monkeypatch):
    called = []
    monkeypatch.setattr(runner, "provisioning_steps", lambda *a, **kw: called.append(1) or [])
    assert _run(job("p", sh("a", "true")), repo, provision=False).ok
    assert called == []


def test_zero_timeout_is_not_unlimited(repo):
    result = _run(job("instant", sh("a", "touch ran.txt")), repo, timeout=0)
    assert result.kind is FailureKind.TIMEOUT
    assert result.exit_code == TIMEOUT_EXIT_CODE
    assert not (repo / "ran.txt").exists()


def test_toolchain_provisioning_leaves_rustup_defaults_alone(repo, tmp_path, monkeypatch):
    bin_dir = tmp_path / "fakebin"
    bin_dir.mkdir()
    calls = tmp_path / "rustup-calls.txt"
    rustup = bin_dir / "rustup"
    rustup.write_text(f'#!/bin/sh\necho "$@" >> "{calls}"\n')
    rustup.chmod(0o755)
    monkeypatch.setenv("PATH", f"{bin_dir}{os.pathsep}{os.environ.get('PATH', '')}")

    seen = tmp_path / "toolchain.txt"
    j = job(
        "Build no_std",
        sh("Build", f'echo "$RUSTUP_TOOLCHAIN" > "{seen}"'),
        environment=env(toolchain="nightly", profile="minimal"),
    )
    result = _run(j, repo, provision=True)

    assert result.ok, result.output
    assert calls.read_text().splitlines() == ["toolchain install nightly --profile minimal"]
    assert seen.read_text() == "nightly\n"


def test_host_package_installs_do_not_overlap(repo, tmp_path, monkeypatch):
    marker = tmp_path / "installing"
    install = Step("Install deps", f'mkdir "{marker}" && sleep 0.3 && rmdir "{marker}"')
    monkeypatch.setattr(runner, "provisioning_steps", lambda environment, sudo=True: [install])

    jobs = wf(
        job("Check crates", sh("Check", "true")),
        job("Check crates (MSRV)", sh("Check", "true")),
    )
    result = run_pipeline(PUSH_MASTER, jobs, repo_root=repo, strategy="inplace", provision=True)

    assert [r.ok for r in result.results] == [True, True], [r.output for r in result.results]


def test_missing_tool_gets_install_hint(repo, monkeypatch):
    monkeypatch.setattr(
        runner,
        "_execute",
        lambda argv, cwd, env, timeout: StepOutcome(127, "bash: just: command not found\n"),
    )
    result = _run(job("Build no_std", sh("Build", "just build")), repo)

    assert result.exit_code == 127
    assert result.output.endswith(f"Hint: {TOOL_HINTS['just']}")
    assert "command not found" in result.output


def _scenario_jobs():
    return wf(
        job("Format", sh("Check", "exit 0")),
        job("Check crates", sh("Check", "exit 2")),
        job("Check crates (MSRV)", sh("Check", "exit 0")),
        job("Check docs", sh("Check", "exit 0")),
        job("Build no_std", sh("Init", "exit 0"), sh("Build", "exit 0")),
    )


def test_push_to_master_with_one_failing_job(repo):
    result = run_pipeline(PUSH_MASTER, _scenario_jobs(), repo_root=repo, strategy="inplace", provision=False)

    assert result.fired
    assert result.status is JobStatus.FAILURE
    summary = {r.job_name: (r.status, r.exit_code) for r in result.results}
    assert summary == {
        "Format": (JobStatus.SUCCESS, 0),
        "Check crates": (JobStatus.FAILURE, 2),
        "Check crates (MSRV)": (JobStatus.SUCCESS, 0),
        "Check docs": (JobStatus.SUCCESS, 0),
        "Build no_std": (JobStatus.SUCCESS, 0),
    }


def test_pull_request_to_develop_does_not_run(repo):
    ran = []
    result = run_pipeline(
        Event(EventKind.PULL_REQUEST, "develop"),
        _scenario_jobs(),
        run_fn=lambda j: ran.append(j.name) or JobResult.success(j.name),
    )
    assert not result.fired
    assert result.results == []
    assert ran == []


def test_concurrent_equals_sequential(repo):
    def summary(workers):
        result = run_pipeline(
            PUSH_MASTER,
            _scenario_jobs(),
            repo_root=repo,
            strategy="copy",
            provision=False,
            max_workers=workers,
        )
        return [(r.job_name, r.status, r.exit_code) for r in result.results]

    assert summary(1) == summary(5)


def test_results_in_declaration_order_and_jobs_overlap():
    jobs = _scenario_jobs()
    barrier = threading.Barrier(len(jobs), timeout=5)

    def run_fn(j):
        # every job must be running at the same time to pass the barrier
        barrier.wait()
        return JobResult.success(j.name)

    results = run_jobs(jobs, run_fn)
    assert [r.job_name for r in results] == [j.name for j in jobs]


def test_failure_does_not_cancel_siblings():
    jobs = _scenario_jobs()

    def run_fn(j):
        if j.name == "Format":
            raise RuntimeError("unexpected")
        return JobResult.success(j.name)

    results = run_jobs(jobs, run_fn)
    assert len(results) == len(jobs)
    assert results[0].exit_code == 1
    assert all(r.ok for r in results[1:])


def test_run_jobs_empty():
    assert run_jobs([], lambda j: pytest.fail("should not run")) == []
