# step_workflows/scripts.py
from __future__ import annotations

import shlex
from enum import Enum
from typing import Dict

from ..model import Step


# ---------------------------------------------------------------------
# External collaborator scripts
# ---------------------------------------------------------------------
# Scripts are referenced by name; the path lives only in this table.

SCRIPTS: Dict[str, str] = {
    "check-fmt": "contrib/scripts/check-fmt.sh",
    "check-crates": "contrib/scripts/check-crates.sh",
    "check-docs": "contrib/scripts/check-docs.sh",
}


class FmtMode(str, Enum):
    CHECK = "check"


class CrateMode(str, Enum):
    DEFAULT = ""
    MSRV = "msrv"


class Profile(str, Enum):
    CI = "ci"


def script_command(name: str, *args: str) -> str:
    """Render the shell command for a named script, quoting every argument."""
    try:
        path = SCRIPTS[name]
    except KeyError:
        raise ValueError(f"Unknown script: {name!r}. Known scripts: {sorted(SCRIPTS)}") from None

    parts = ["bash", path]
    # shlex.quote("") gives "''" so an empty mode is still passed positionally
    parts.extend(shlex.quote(str(a)) for a in args)
    return " ".join(parts)


# ---------------------------------------------------------------------
# Step helpers
# ---------------------------------------------------------------------

def check_fmt(mode: FmtMode = FmtMode.CHECK, *, name: str = "Check") -> Step:
    return Step(name=name, run=script_command("check-fmt", mode.value))


def check_crates(
    mode: CrateMode = CrateMode.DEFAULT,
    profile: Profile = Profile.CI,
    *,
    name: str = "Check",
) -> Step:
    return Step(name=name, run=script_command("check-crates", mode.value, profile.value))


def check_docs(*, name: str = "Check") -> Step:
    return Step(name=name, run=script_command("check-docs"))


def just(recipe: str, *, name: str | None = None, cwd: str | None = None) -> Step:
    """A `just` recipe invocation (the embedded example's task runner)."""
    return Step(name=name or recipe.capitalize(), run=f"just {shlex.quote(recipe)}", cwd=cwd)
