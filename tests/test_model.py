"""Tests for JobResult / PipelineResult aggregation."""
from __future__ import annotations

import dataclasses

import pytest

from checkrun.model import Event, EventKind, FailureKind, JobResult, JobStatus, PipelineResult, Step


def test_success_result():
    r = JobResult.success("Format", duration=1.5)
    assert r.ok
    assert r.status is JobStatus.SUCCESS
    assert r.exit_code == 0
    assert r.kind is None


def test_failure_result_keeps_exit_code():
    r = JobResult.failure("Check crates", 2, failed_step="Check")
    assert not r.ok
    assert r.exit_code == 2
    assert r.failed_step == "Check"
    assert r.kind is FailureKind.VERIFICATION


def test_failure_result_never_reports_zero():
    assert JobResult.failure("x", 0).exit_code == 1


def test_pipeline_status_is_conjunction():
    event = Event(EventKind.PUSH, "master")
    ok = PipelineResult(event, True, [JobResult.success("a"), JobResult.success("b")])
    bad = PipelineResult(event, True, [JobResult.success("a"), JobResult.failure("b", 3)])

    assert ok.ok
    assert not bad.ok
    assert bad.status is JobStatus.FAILURE
    assert [r.job_name for r in bad.failed] == ["b"]


def test_not_fired_pipeline_has_no_results():
    result = PipelineResult(Event(EventKind.PULL_REQUEST, "develop"), fired=False)
    assert result.results == []
    assert result.to_dict()["fired"] is False


def test_to_dict():
    result = PipelineResult(
        Event(EventKind.PUSH, "master"),
        True,
        [JobResult.success("a"), JobResult.failure("b", 2, failed_step="Check", kind=FailureKind.TIMEOUT)],
    )
    data = result.to_dict()

    assert data["event"] == {"kind": "push", "target_branch": "master"}
    assert data["status"] == "failure"
    assert data["jobs"][1] == {
        "job_name": "b",
        "status": "failure",
        "exit_code": 2,
        "failed_step": "Check",
        "kind": "timeout",
        "duration": 0.0,
    }


def test_unknown_event_kind_serializes_as_string():
    data = PipelineResult(Event("tag", "master"), False).to_dict()
    assert data["event"]["kind"] == "tag"


def test_steps_are_immutable():
    step = Step("Check", "true")
    with pytest.raises(dataclasses.FrozenInstanceError):
        step.run = "false"
