# cli.py
from __future__ import annotations

import json
import subprocess
import sys
from dataclasses import replace
from pathlib import Path

import click

from .config import BACKENDS, WORKSPACE_STRATEGIES, Settings
from .environment import make_backend
from .git_facts.git import current_branch, get_remote_url
from .jobset import load_workflow, select, workflow
from .runner import run_pipeline
from .trigger import parse_event, should_fire
from .ui.console import Console, get_console, set_console


def _repo_name(repo_root: Path) -> str:
    try:
        repo_url = get_remote_url("origin", cwd=repo_root)
        return repo_url.rstrip("/").split("/")[-1].replace(".git", "")
    except (subprocess.CalledProcessError, FileNotFoundError):
        return repo_root.resolve().name


def _resolve_branch(branch: str | None, repo_root: Path) -> str:
    console = get_console()
    if branch:
        return branch

    try:
        name = current_branch(cwd=repo_root)
    except (subprocess.CalledProcessError, FileNotFoundError):
        name = None

    if not name:
        console.print_error(
            "Could not determine target branch",
            "No --branch specified and the current git branch is unknown.",
            suggestion="Specify the branch explicitly:\n  checkrun run --event push --branch master",
        )
        sys.exit(1)

    console.print_debug(f"Using current git branch: {name}")
    return name


def _load_settings(**overrides) -> Settings:
    console = get_console()
    try:
        settings = Settings.from_env()
        settings = replace(settings, **{k: v for k, v in overrides.items() if v is not None})
        settings.validate()
    except ValueError as e:
        console.print_error("Invalid configuration", str(e))
        sys.exit(1)
    return settings


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.pass_context
def cli(ctx, debug):
    """checkrun: run the repository's verification jobs locally."""
    console = Console(debug=debug)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.option("--event", "event_kind", default="push", show_default=True, help="Event kind (push or pull_request)")
@click.option("--branch", default=None, help="Target branch (defaults to the current git branch)")
@click.option("--job", "job_names", multiple=True, help="Only run the named job (repeatable)")
@click.option("--workflow", "workflow_file", default=None, help="Python file defining workflow() or JOBS")
@click.option("--repo-root", default=".", show_default=True, type=click.Path(file_okay=False), help="Repository to check")
@click.option("--workers", default=None, type=int, help="Number of parallel workers [env: CHECKRUN_WORKERS]")
@click.option("--timeout-minutes", default=None, type=float, help="Per-job wall-clock limit [env: CHECKRUN_TIMEOUT_MINUTES]")
@click.option("--backend", default=None, type=click.Choice(BACKENDS), help="Where steps run [env: CHECKRUN_BACKEND]")
@click.option("--workspace", default=None, type=click.Choice(WORKSPACE_STRATEGIES), help="Workspace strategy [env: CHECKRUN_WORKSPACE]")
@click.option("--provision/--no-provision", default=True, show_default=True, help="Install declared packages and toolchains first")
@click.option("--report", default=None, type=click.Path(dir_okay=False), help="Write a JSON report of the results")
def run(event_kind, branch, job_names, workflow_file, repo_root, workers, timeout_minutes, backend, workspace, provision, report):
    """Evaluate the trigger and run the job set."""
    console = get_console()
    root = Path(repo_root)

    settings = _load_settings(
        workers=workers,
        timeout_minutes=timeout_minutes,
        backend=backend,
        workspace=workspace,
    )
    event = parse_event(event_kind, _resolve_branch(branch, root))

    try:
        jobs = load_workflow(workflow_file) if workflow_file else workflow()
        jobs = select(jobs, job_names)
    except (FileNotFoundError, ValueError, TypeError) as e:
        console.print_error("Failed to load jobs", str(e))
        sys.exit(1)

    if not should_fire(event):
        console.print_not_triggered(event_kind, event.target_branch)
        return

    console.print_run_started(
        repository=_repo_name(root),
        event=event_kind,
        branch=event.target_branch,
        job_count=len(jobs),
    )

    try:
        result = run_pipeline(
            event,
            jobs,
            max_workers=settings.workers,
            repo_root=root,
            backend=make_backend(settings.backend, image_for=settings.image_for),
            strategy=settings.workspace,
            provision=provision,
            timeout=settings.timeout_seconds,
        )
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)

    console.print_results(result)

    if report:
        try:
            Path(report).write_text(json.dumps(result.to_dict(), indent=2) + "\n", encoding="utf-8")
        except OSError as e:
            console.print_error("Could not write report", str(e))
            sys.exit(1)
        console.print_debug(f"Report written to {report}")

    if not result.ok:
        sys.exit(1)


@cli.command()
@click.option("--workflow", "workflow_file", default=None, help="Python file defining workflow() or JOBS")
def jobs(workflow_file):
    """List the job set."""
    console = get_console()
    try:
        job_list = load_workflow(workflow_file) if workflow_file else workflow()
    except (FileNotFoundError, ValueError, TypeError) as e:
        console.print_error("Failed to load jobs", str(e))
        sys.exit(1)
    console.print_jobs(job_list)


@cli.command()
@click.option("--event", "event_kind", required=True, help="Event kind (push or pull_request)")
@click.option("--branch", required=True, help="Target branch")
def trigger(event_kind, branch):
    """Exit 0 if the event would run the pipeline, 1 otherwise."""
    console = get_console()
    event = parse_event(event_kind, branch)
    if should_fire(event):
        console.print_info(f"TRIGGERED: {event_kind} -> {branch}")
        return
    console.print_not_triggered(event_kind, branch)
    sys.exit(1)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
