# config.py
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

BACKENDS = ("host", "docker")
WORKSPACE_STRATEGIES = ("copy", "inplace")

# Hosted runners stop a job after six hours; keep the same ceiling locally.
DEFAULT_TIMEOUT_MINUTES = 360.0

# Runner label -> docker image. ubuntu-latest runners ship a Rust toolchain.
DOCKER_IMAGES = {
    "ubuntu-latest": "rust:latest",
}


@dataclass(frozen=True)
class Settings:
    workers: Optional[int] = None
    timeout_minutes: float = DEFAULT_TIMEOUT_MINUTES
    backend: str = "host"
    workspace: str = "copy"
    docker_image: Optional[str] = None

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_minutes * 60.0

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        environ = os.environ if environ is None else environ

        workers = environ.get("CHECKRUN_WORKERS")
        timeout = environ.get("CHECKRUN_TIMEOUT_MINUTES")
        backend = environ.get("CHECKRUN_BACKEND", "host")
        workspace = environ.get("CHECKRUN_WORKSPACE", "copy")

        settings = cls(
            workers=_int("CHECKRUN_WORKERS", workers) if workers else None,
            timeout_minutes=_float("CHECKRUN_TIMEOUT_MINUTES", timeout) if timeout else DEFAULT_TIMEOUT_MINUTES,
            backend=backend,
            workspace=workspace,
            docker_image=environ.get("CHECKRUN_DOCKER_IMAGE") or None,
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        """Range and choice checks; CLI overrides go through here too."""
        if self.workers is not None and self.workers < 1:
            raise ValueError(f"CHECKRUN_WORKERS must be >= 1, got {self.workers}")
        if not self.timeout_minutes > 0:
            raise ValueError(f"CHECKRUN_TIMEOUT_MINUTES must be > 0, got {self.timeout_minutes}")
        if self.backend not in BACKENDS:
            raise ValueError(f"CHECKRUN_BACKEND must be one of {BACKENDS}, got {self.backend!r}")
        if self.workspace not in WORKSPACE_STRATEGIES:
            raise ValueError(f"CHECKRUN_WORKSPACE must be one of {WORKSPACE_STRATEGIES}, got {self.workspace!r}")

    def image_for(self, label: str) -> str:
        if self.docker_image:
            return self.docker_image
        return DOCKER_IMAGES.get(label, label)


def _int(name: str, raw: str) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    return value


def _float(name: str, raw: str) -> float:
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
    return value
