"""Console output formatting utilities for checkrun."""

from __future__ import annotations

import sys
import threading
from typing import Iterable, Optional

from ..model import Job, JobResult, PipelineResult


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
        """
        self.debug = debug
        # jobs report from worker threads; keep each message's lines together
        self._lock = threading.Lock()

    def _emit(self, *lines: str, err: bool = False) -> None:
        stream = sys.stderr if err else sys.stdout
        with self._lock:
            for line in lines:
                print(line, file=stream)

    def print_run_started(
        self,
        repository: str,
        event: str,
        branch: str,
        job_count: int,
    ) -> None:
        """Print run start information."""
        self._emit(
            "\nRUN STARTED",
            f"Repository: {repository}",
            f"Event: {event} -> {branch}",
            f"Jobs: {job_count}",
            "",
        )

    def print_not_triggered(self, event: str, branch: str) -> None:
        self._emit(f"NOT TRIGGERED: {event} -> {branch} matches no trigger rule")

    def print_job_start(self, name: str) -> None:
        """Print job start message."""
        self._emit(f"JOB STARTED: {name}")

    def print_step(self, job: str, name: str) -> None:
        """Print step start message."""
        self._emit(f"[{job}] STEP: {name}")

    def print_job_finished(self, result: JobResult) -> None:
        if result.ok:
            self._emit(f"JOB FINISHED: {result.job_name} (success, {result.duration:.1f}s)")
            return

        lines = [
            f"JOB FAILED: {result.job_name}",
            f"  Step: {result.failed_step or '-'}",
            f"  Kind: {result.kind.value if result.kind else '-'}",
            f"  Exit code: {result.exit_code}",
        ]
        if result.output:
            tail = result.output if self.debug else "\n".join(result.output.splitlines()[-20:])
            lines.append("  Output (tail):")
            lines.extend(f"    {line}" for line in tail.splitlines())
        self._emit(*lines)

    def print_jobs(self, jobs: Iterable[Job]) -> None:
        """Print the job set with environments and steps."""
        lines = []
        for job in jobs:
            env = job.environment
            lines.append(f"{job.name}")
            lines.append(f"  runs-on: {env.image}")
            if env.system_packages:
                lines.append(f"  packages: {', '.join(env.system_packages)}")
            if env.toolchain:
                profile = f" ({env.toolchain_profile})" if env.toolchain_profile else ""
                lines.append(f"  toolchain: {env.toolchain}{profile}")
            if env.tools:
                lines.append(f"  tools: {', '.join(env.tools)}")
            for step in job.steps:
                where = f"  [cwd {step.cwd}]" if step.cwd else ""
                lines.append(f"  - {step.name}: {step.run}{where}")
        self._emit(*lines)

    def print_results(self, result: PipelineResult) -> None:
        """Print final results summary."""
        lines = ["", "=" * 40, "RESULTS", "=" * 40]
        for r in result.results:
            status = "SUCCESS" if r.ok else f"FAILURE (exit {r.exit_code})"
            lines.append(f"  {r.job_name}: {status}")
        lines.append("-" * 40)
        lines.append(f"  PIPELINE: {result.status.value.upper()}")
        self._emit(*lines)

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        lines = [f"\nERROR: {title}", message]
        if details:
            lines.extend(f"  {detail}" for detail in details)
        if suggestion:
            lines.append(f"\n{suggestion}")
        self._emit(*lines, err=True)

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            with self._lock:
                traceback.print_exception(type(exc), exc, exc.__traceback__)
        else:
            self._emit(f"Error: {exc}", err=True)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        self._emit(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            self._emit(f"[DEBUG] {message}", err=True)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
