# trigger.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Tuple, Union

from .model import Event, EventKind


@dataclass(frozen=True)
class TriggerRule:
    """Fire on `kind` events whose target branch is one of `branches`."""
    kind: EventKind
    branches: Tuple[str, ...]

    def matches(self, event: Event) -> bool:
        # exact match: raw refs like "refs/heads/master" are a different branch string
        return _kind_of(event.kind) == self.kind.value and event.target_branch in self.branches


DEFAULT_TRIGGERS: Tuple[TriggerRule, ...] = (
    TriggerRule(EventKind.PUSH, ("master",)),
    TriggerRule(EventKind.PULL_REQUEST, ("master",)),
)


def _kind_of(kind: Union[EventKind, str]) -> str:
    if isinstance(kind, EventKind):
        return kind.value
    return str(kind)


def should_fire(event: Event, rules: Iterable[TriggerRule] = DEFAULT_TRIGGERS) -> bool:
    """
    Decide whether the pipeline runs for `event`.

    Pure predicate: events that match no rule simply do not fire.
    """
    return any(rule.matches(event) for rule in rules)


def parse_event(kind: str, branch: str) -> Event:
    """Build an Event from CLI strings. Unknown kinds stay raw strings."""
    kind = kind.strip()
    try:
        parsed: Union[EventKind, str] = EventKind(kind)
    except ValueError:
        parsed = kind
    return Event(kind=parsed, target_branch=branch.strip())
