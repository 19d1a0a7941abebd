"""Error taxonomy for the rules engine.

Every error exposes ``code`` (the class name) so the sequencer can report it
in an :class:`~warbook.domain.actions.ActionResult` without leaking the
exception object to callers.
"""

from __future__ import annotations

from collections.abc import Mapping


class WarbookError(Exception):
    """Base class for every rules-engine error."""

    @property
    def code(self) -> str:
        return type(self).__name__


class InvalidFact(WarbookError):
    """A fact supplied to a decision table is missing, mistyped or out of range."""

    def __init__(self, table: str, field: str, message: str) -> None:
        super().__init__(f"{table}.{field}: {message}")
        self.table = table
        self.field = field


class AmbiguousTable(WarbookError):
    """A table fails load-time validation (authoring defect, never raised at runtime)."""

    def __init__(self, table: str, message: str, rows: tuple[int, ...] = ()) -> None:
        super().__init__(f"{table}: {message}")
        self.table = table
        self.rows = rows


class NoMatchingRule(WarbookError):
    """No row of a table covers the supplied facts.

    Recoverable: the caller may apply a declared default or surface the gap.
    """

    def __init__(self, table: str, facts: Mapping[str, object]) -> None:
        rendered = ", ".join(f"{key}={value!r}" for key, value in sorted(facts.items()))
        super().__init__(f"no rule in {table} covers {rendered}")
        self.table = table
        self.facts = dict(facts)


class InvalidTarget(WarbookError):
    """The target of an attack, spell or charge is missing or not allowed."""


class InvalidAction(WarbookError):
    """The action request itself is malformed or refers to unknown entities."""


class IllegalPhaseAction(WarbookError):
    """The action is not legal in the current phase (or for the current player)."""


class MandatoryTestsOutstanding(IllegalPhaseAction):
    """The phase cannot advance while mandatory tests remain outstanding."""


class IllegalStateTransition(WarbookError):
    """A unit or combat transition that its lifecycle table does not allow."""

    def __init__(self, subject: str, current: str, requested: str) -> None:
        super().__init__(f"{subject}: cannot move from {current} to {requested}")
        self.subject = subject
        self.current = current
        self.requested = requested


class DiceExhausted(WarbookError):
    """A scripted dice source ran out of recorded draws."""
