"""Explanation recorder.

Rule modules never log their own rulings.  Instead their entry points are
wrapped with :func:`traced`, which observes the return value and, when a
recording is active, appends ``(decision, citation, draws)`` entries to the
current trace.  With no active recording the wrapper is a pass-through, so
engine behaviour is identical with or without explanations enabled.
"""

from __future__ import annotations

import functools
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any, ParamSpec, TypeVar

from .models import Citation

P = ParamSpec("P")
R = TypeVar("R")

Describer = Callable[..., Iterable[tuple[str, Citation | None, Iterable[int]]]]


@dataclass(frozen=True, slots=True)
class TraceEntry:
    """One observed ruling."""

    kind: str
    decision: str
    citation: Citation | None = None
    draws: tuple[int, ...] = ()


@dataclass(frozen=True, slots=True)
class Trace:
    """Append-only record of every ruling made while resolving one action."""

    outcome_id: str
    entries: tuple[TraceEntry, ...]

    def citations(self) -> list[Citation]:
        return [entry.citation for entry in self.entries if entry.citation is not None]

    def draws(self) -> list[int]:
        return [value for entry in self.entries if entry.kind == "dice" for value in entry.draws]


_ACTIVE: ContextVar[list[TraceEntry] | None] = ContextVar("warbook_trace", default=None)


def traced(kind: str, describe: Describer) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """Decorate an engine entry point so its results are recorded.

    ``describe`` receives the result followed by the call arguments and yields
    ``(decision, citation, draws)`` tuples.
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        @functools.wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            result = func(*args, **kwargs)
            sink = _ACTIVE.get()
            if sink is not None:
                for decision, citation, draws in describe(result, *args, **kwargs):
                    sink.append(TraceEntry(kind, decision, citation, tuple(draws)))
            return result

        return wrapper

    return decorator


class ExplanationRecorder:
    """Collects traces keyed by outcome id for the lifetime of a session."""

    def __init__(self, *, enabled: bool = True) -> None:
        self.enabled = enabled
        self._traces: dict[str, Trace] = {}

    @contextmanager
    def recording(self, outcome_id: str) -> Iterator[None]:
        """Record every traced call made inside the block under ``outcome_id``."""

        if not self.enabled:
            yield
            return
        sink: list[TraceEntry] = []
        token = _ACTIVE.set(sink)
        try:
            yield
        finally:
            _ACTIVE.reset(token)
            self._traces[outcome_id] = Trace(outcome_id, tuple(sink))

    def trace(self, outcome: Any) -> Trace:
        """Return the trace for an outcome (or its id)."""

        outcome_id = outcome if isinstance(outcome, str) else getattr(outcome, "outcome_id", None)
        if outcome_id is None or outcome_id not in self._traces:
            raise LookupError(f"no trace recorded for outcome {outcome_id!r}")
        return self._traces[outcome_id]

    def explain(self, outcome: Any) -> list[Citation]:
        """Ordered citations consumed while producing ``outcome``."""

        return self.trace(outcome).citations()

    def relabel(self, outcome_id: str, new_id: str) -> None:
        """File an existing trace under another id (used for rejected actions)."""

        trace = self._traces.pop(outcome_id, None)
        if trace is not None:
            self._traces[new_id] = Trace(new_id, trace.entries)

    def known_outcomes(self) -> list[str]:
        return list(self._traces)
