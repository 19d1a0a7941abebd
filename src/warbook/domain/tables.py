"""Decision table engine.

A :class:`DecisionTable` is pure data: an ordered list of rows, each a set of
per-field conditions over a fixed fact schema plus an output record and the
citation that justifies it.  Tables are validated when constructed, so a
table object that exists is a table that passed load-time checks.

Hit policies
------------
``UNIQUE``
    Rows must partition the input space.  Overlap is detected at load time by
    intersecting each pair of rows over the finite declared domain.
``FIRST``
    The first matching row wins; later overlapping rows are allowed.  Errata
    rows are placed *before* the base rows they refine.
``PRIORITY``
    Every matching row is collected and the highest ``priority`` wins.  Equal
    priorities resolve to the row declared first.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from itertools import combinations
from types import MappingProxyType

from .enums import FactKind, HitPolicy
from .errors import AmbiguousTable, InvalidFact, NoMatchingRule
from .explain import traced
from .models import Citation

logger = logging.getLogger(__name__)

FactValue = int | bool | str


# --- Schema ---------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class FactField:
    """Declared input of a table."""

    name: str
    kind: FactKind = FactKind.INT
    minimum: int | None = None
    maximum: int | None = None
    choices: tuple[str, ...] = ()

    def domain(self) -> tuple[FactValue, ...]:
        if self.kind == FactKind.BOOL:
            return (False, True)
        if self.kind == FactKind.ENUM:
            return self.choices
        assert self.minimum is not None and self.maximum is not None
        return tuple(range(self.minimum, self.maximum + 1))

    def check(self, table: str, value: object) -> FactValue:
        """Return ``value`` if it belongs to the declared domain."""

        if self.kind == FactKind.BOOL:
            if not isinstance(value, bool):
                raise InvalidFact(table, self.name, f"expected bool, got {value!r}")
            return value
        if self.kind == FactKind.ENUM:
            if not isinstance(value, str) or value not in self.choices:
                raise InvalidFact(table, self.name, f"{value!r} not in {list(self.choices)}")
            return str(value)
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidFact(table, self.name, f"expected int, got {value!r}")
        if self.minimum is not None and value < self.minimum:
            raise InvalidFact(table, self.name, f"{value} below minimum {self.minimum}")
        if self.maximum is not None and value > self.maximum:
            raise InvalidFact(table, self.name, f"{value} above maximum {self.maximum}")
        return value

    def clamp(self, value: int) -> int:
        """Pull an int fact into the declared range (the rules cap most scores)."""

        if self.minimum is not None:
            value = max(self.minimum, value)
        if self.maximum is not None:
            value = min(self.maximum, value)
        return value


def int_field(name: str, minimum: int, maximum: int) -> FactField:
    return FactField(name, FactKind.INT, minimum, maximum)


def bool_field(name: str) -> FactField:
    return FactField(name, FactKind.BOOL)


def enum_field(name: str, *choices: str) -> FactField:
    return FactField(name, FactKind.ENUM, choices=tuple(choices))


# --- Conditions -----------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Condition:
    """Per-field test: an inclusive range, an explicit value set, or anything."""

    low: int | None = None
    high: int | None = None
    values: tuple[FactValue, ...] | None = None

    def matches(self, value: FactValue) -> bool:
        if self.values is not None:
            # bool is an int subclass; True must not match 1
            return any(
                value == candidate and type(value) is type(candidate) for candidate in self.values
            )
        if self.low is not None and value < self.low:  # type: ignore[operator]
            return False
        if self.high is not None and value > self.high:  # type: ignore[operator]
            return False
        return True

    def selects(self, fact: FactField) -> frozenset[FactValue]:
        return frozenset(value for value in fact.domain() if self.matches(value))

    def describe(self) -> str:
        if self.values is not None:
            return " | ".join(repr(value) for value in self.values)
        if self.low is None and self.high is None:
            return "-"
        if self.low == self.high:
            return str(self.low)
        low = "" if self.low is None else str(self.low)
        high = "" if self.high is None else str(self.high)
        return f"{low}..{high}"


ANY = Condition()


def between(low: int, high: int) -> Condition:
    return Condition(low=low, high=high)


def at_least(low: int) -> Condition:
    return Condition(low=low)


def at_most(high: int) -> Condition:
    return Condition(high=high)


def equals(value: FactValue) -> Condition:
    return Condition(values=(value,))


def one_of(*values: FactValue) -> Condition:
    return Condition(values=tuple(values))


# --- Tables ---------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Row:
    """One rule of a table."""

    conditions: Mapping[str, Condition]
    output: Mapping[str, object]
    citation: Citation
    priority: int = 0

    @property
    def rule_id(self) -> str:
        return self.citation.rule_id

    def condition_for(self, name: str) -> Condition:
        return self.conditions.get(name, ANY)


def row(
    citation: Citation,
    output: Mapping[str, object],
    *,
    priority: int = 0,
    **conditions: Condition,
) -> Row:
    """Build a :class:`Row` with read-only conditions and output."""

    return Row(
        conditions=MappingProxyType(dict(conditions)),
        output=MappingProxyType(dict(output)),
        citation=citation,
        priority=priority,
    )


@dataclass(frozen=True, slots=True)
class DecisionTable:
    """Immutable, validated decision table."""

    name: str
    inputs: tuple[FactField, ...]
    outputs: tuple[str, ...]
    rows: tuple[Row, ...]
    hit_policy: HitPolicy = HitPolicy.UNIQUE
    description: str = ""

    def __post_init__(self) -> None:
        validate_table(self)

    def input(self, name: str) -> FactField:
        for fact in self.inputs:
            if fact.name == name:
                return fact
        raise KeyError(f"{self.name} has no input {name!r}")

    def input_names(self) -> tuple[str, ...]:
        return tuple(fact.name for fact in self.inputs)


def validate_table(table: DecisionTable) -> None:
    """Raise :class:`AmbiguousTable` for any authoring defect."""

    names = table.input_names()
    if len(set(names)) != len(names):
        raise AmbiguousTable(table.name, "duplicate input field")
    for fact in table.inputs:
        if fact.kind == FactKind.INT and (fact.minimum is None or fact.maximum is None):
            raise AmbiguousTable(table.name, f"int input {fact.name!r} must declare its range")
        if fact.kind == FactKind.ENUM and not fact.choices:
            raise AmbiguousTable(table.name, f"enum input {fact.name!r} has no choices")
    if not table.rows:
        raise AmbiguousTable(table.name, "table has no rows")

    expected_outputs = set(table.outputs)
    for index, entry in enumerate(table.rows):
        unknown = set(entry.conditions) - set(names)
        if unknown:
            raise AmbiguousTable(
                table.name, f"row {index} tests undeclared inputs {sorted(unknown)}", (index,)
            )
        if set(entry.output) != expected_outputs:
            raise AmbiguousTable(
                table.name,
                f"row {index} outputs {sorted(entry.output)}, expected {sorted(expected_outputs)}",
                (index,),
            )

    if table.hit_policy == HitPolicy.UNIQUE:
        overlap = find_overlap(table)
        if overlap is not None:
            first, second = overlap
            raise AmbiguousTable(
                table.name,
                f"rows {first} and {second} overlap under hit policy UNIQUE",
                overlap,
            )


def find_overlap(table: DecisionTable) -> tuple[int, int] | None:
    """Return the first pair of rows that can match the same facts."""

    selections = [
        {fact.name: entry.condition_for(fact.name).selects(fact) for fact in table.inputs}
        for entry in table.rows
    ]
    for (i, left), (j, right) in combinations(enumerate(selections), 2):
        if all(left[name] & right[name] for name in left):
            return i, j
    return None


# --- Evaluation -----------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Outcome:
    """Output of the row that won."""

    table: str
    row: int
    citation: Citation
    values: Mapping[str, object]
    facts: Mapping[str, FactValue] = field(default_factory=dict)

    def __getitem__(self, key: str) -> object:
        return self.values[key]

    def get(self, key: str, default: object = None) -> object:
        return self.values.get(key, default)


@dataclass(frozen=True, slots=True)
class NoMatch:
    """No row covered the facts; the caller decides what that means."""

    table: str
    facts: Mapping[str, FactValue]

    def __bool__(self) -> bool:
        return False


def _describe_evaluation(result: Outcome | NoMatch, table: DecisionTable, *_args, **_kwargs):
    if isinstance(result, NoMatch):
        yield f"{table.name}: no matching row", None, ()
        return
    rendered = ", ".join(f"{key}={value}" for key, value in result.values.items())
    yield f"{table.name}: row {result.row} -> {rendered}", result.citation, ()


@traced("table", _describe_evaluation)
def evaluate(table: DecisionTable, facts: Mapping[str, object]) -> Outcome | NoMatch:
    """Evaluate ``table`` against ``facts`` under the table's hit policy."""

    checked: dict[str, FactValue] = {}
    for fact in table.inputs:
        if fact.name not in facts:
            raise InvalidFact(table.name, fact.name, "missing")
        checked[fact.name] = fact.check(table.name, facts[fact.name])

    frozen_facts = MappingProxyType(checked)
    matches = [
        (index, entry)
        for index, entry in enumerate(table.rows)
        if all(entry.condition_for(name).matches(value) for name, value in checked.items())
    ]
    if not matches:
        return NoMatch(table.name, frozen_facts)

    if table.hit_policy == HitPolicy.PRIORITY:
        index, winner = max(matches, key=lambda item: (item[1].priority, -item[0]))
    else:
        index, winner = matches[0]
    return Outcome(table.name, index, winner.citation, winner.output, frozen_facts)


def require_outcome(
    table: DecisionTable,
    facts: Mapping[str, object],
    *,
    default: Mapping[str, object] | None = None,
) -> Outcome:
    """Evaluate and insist on an outcome.

    A caller-declared ``default`` is used when no row matches; otherwise the
    gap is raised as :class:`NoMatchingRule`.
    """

    result = evaluate(table, facts)
    if isinstance(result, Outcome):
        return result
    if default is None:
        raise NoMatchingRule(table.name, result.facts)
    return Outcome(
        table.name,
        -1,
        Citation(f"{table.name}:default", "declared default"),
        MappingProxyType(dict(default)),
        result.facts,
    )


class TableRegistry:
    """Named collection of validated tables, loaded once at engine start-up."""

    def __init__(self, tables: Iterable[DecisionTable] = ()) -> None:
        self._tables: dict[str, DecisionTable] = {}
        for table in tables:
            self.register(table)
        if self._tables:
            logger.info("loaded %d decision tables", len(self._tables))

    def register(self, table: DecisionTable) -> None:
        if table.name in self._tables:
            raise AmbiguousTable(table.name, "a table with this name is already registered")
        self._tables[table.name] = table

    def get(self, name: str) -> DecisionTable:
        try:
            return self._tables[name]
        except KeyError:
            raise NoMatchingRule(name, {}) from None

    def __getitem__(self, name: str) -> DecisionTable:
        return self.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._tables

    def __iter__(self) -> Iterator[DecisionTable]:
        return iter(self._tables.values())

    def __len__(self) -> int:
        return len(self._tables)

    def names(self) -> list[str]:
        return list(self._tables)
