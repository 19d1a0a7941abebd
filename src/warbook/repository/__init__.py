"""Persistence adapters for Warbook games."""

from warbook.repository.json_store import JsonGameRepository, dump_state, load_state

__all__ = ["JsonGameRepository", "dump_state", "load_state"]
