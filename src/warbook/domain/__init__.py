"""Warbook rules layer.

Everything here operates purely on in-memory dataclasses:

* Entities, enumerations and strongly typed identifiers (:mod:`models`,
  :mod:`enums`) and the error taxonomy (:mod:`errors`).
* Rules as data: decision tables (:mod:`tables`, :mod:`standard_tables`),
  rule constants and the precedence policy (:mod:`rules_config`).
* Rule functions: modifier resolution (:mod:`modifiers`), test resolution
  (:mod:`resolution`), unit and combat lifecycle (:mod:`lifecycle`,
  :mod:`psychology`) and magic (:mod:`magic`).
* The sequencer that commits actions (:mod:`sequencer`, :mod:`actions`) and
  the read-only queries over its state (:mod:`queries`).

Only the leaf modules are imported eagerly; the rule modules depend on
:mod:`warbook.utils.rng`, which itself needs :mod:`errors`.
"""

from . import enums, errors, explain, models, rules_config, tables

__all__ = [
    "enums",
    "errors",
    "explain",
    "models",
    "rules_config",
    "tables",
]
