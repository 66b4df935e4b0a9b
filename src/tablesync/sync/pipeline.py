"""
The four-stage load pipeline.

A load runs as ``prepare -> extract -> load -> post_load``. Each stage takes
the current action and returns the next one, and always returns one: a table
that should not be synced turns into a ``NullAction`` at prepare, whose
stages do nothing and return itself. Callers either fold all four stages
with ``run_stages`` or take ``STAGES`` apart and interleave the stages of
different tables.
"""

from __future__ import annotations

from functools import reduce
from typing import Callable, NamedTuple, Protocol, Sequence


class Action(Protocol):
    """What every stage function operates on."""

    skipped: bool

    def do_prepare(self) -> "Action | None": ...

    def extract_data(self) -> "Action": ...

    def load_data(self) -> "Action": ...

    def post_load(self) -> "Action": ...


class NullAction:
    """
    Skipped variant of a load action.

    Returned by prepare when a table is not ready. Every stage is the
    identity, so the rest of the pipeline runs through without side effects.
    """

    skipped = True

    def __init__(self, table_name: str | None = None, reason: str | None = None) -> None:
        self.table_name = table_name
        self.reason = reason

    def do_prepare(self) -> "NullAction":
        return self

    def extract_data(self) -> "NullAction":
        return self

    def load_data(self) -> "NullAction":
        return self

    def post_load(self) -> "NullAction":
        return self

    def __call__(self) -> "NullAction":
        return run_stages(self)

    def __repr__(self) -> str:
        return f"NullAction(table_name={self.table_name!r}, reason={self.reason!r})"


class Stage(NamedTuple):
    """A named stage function."""

    name: str
    run: Callable[[Action], Action]


def _prepare(action: Action) -> Action:
    ready = action.do_prepare()
    if ready is None:
        return NullAction(getattr(action, "table_name", None), reason="not ready")
    return ready


STAGES: tuple[Stage, ...] = (
    Stage("prepare", _prepare),
    Stage("extract", lambda action: action.extract_data()),
    Stage("load", lambda action: action.load_data()),
    Stage("post_load", lambda action: action.post_load()),
)


def run_stages(action: Action, stages: Sequence[Stage] = STAGES) -> Action:
    """Thread an action through the stages in order, returning the final action."""
    return reduce(lambda current, stage: stage.run(current), stages, action)


__all__ = ["Action", "NullAction", "Stage", "STAGES", "run_stages"]
