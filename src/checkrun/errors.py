# errors.py
from __future__ import annotations

from dataclasses import dataclass, field

from .model import FailureKind


TOOL_HINTS = {
    "bash": "Install bash or fix PATH.",
    "docker": "Install Docker and ensure the daemon is running.",
    "just": "Install just (e.g., cargo install just).",
    "rustup": "Install rustup from https://rustup.rs or fix PATH.",
}


@dataclass
class CIError(Exception):
    """
    Structured CI error with enough context for:
      - clean CLI output
      - a JobResult when raised inside a job
      - debugging without full tracebacks
    """
    kind: str
    job: str
    step: str | None
    message: str
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}", f"job={self.job}"]
        if self.step:
            lines.append(f"step={self.step}")
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)

    @property
    def failure_kind(self) -> FailureKind:
        if self.kind == FailureKind.PROVISIONING.value:
            return FailureKind.PROVISIONING
        return FailureKind.VERIFICATION


@dataclass
class StepFailure(Exception):
    job: str
    step: str
    cmd: str
    exit_code: int
    output: str = ""
    kind: FailureKind = FailureKind.VERIFICATION

    def __str__(self) -> str:
        if self.kind is FailureKind.TIMEOUT:
            return f"[{self.job}] step '{self.step}' timed out: {self.cmd}"
        return f"[{self.job}] step '{self.step}' failed (exit={self.exit_code}): {self.cmd}"
