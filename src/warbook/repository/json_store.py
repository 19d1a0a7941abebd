"""JSON-based repository for Warbook games."""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import TypeAdapter

from warbook.domain import models as dm

logger = logging.getLogger(__name__)

_STATE_ADAPTER: TypeAdapter[dm.GameState] = TypeAdapter(dm.GameState)


def dump_state(state: dm.GameState, *, indent: int | None = None) -> bytes:
    """Serialize a game state to JSON."""

    return _STATE_ADAPTER.dump_json(state, indent=indent)


def load_state(data: bytes | str) -> dm.GameState:
    """Rebuild a game state from :func:`dump_state` output."""

    return _STATE_ADAPTER.validate_json(data)


class JsonGameRepository:
    """Persist games as JSON snapshots on disk."""

    def __init__(self, base_path: Path) -> None:
        self.base_path = base_path
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _path_for(self, game_id: dm.GameID) -> Path:
        return self.base_path / f"game_{int(game_id)}.json"

    def save(self, state: dm.GameState) -> Path:
        """Serialize a game to disk and return the snapshot path."""

        path = self._path_for(state.id)
        path.write_bytes(dump_state(state, indent=2))
        logger.info("saved game %s after %s actions to %s", state.id, state.action_counter, path)
        return path

    def load(self, game_id: dm.GameID) -> dm.GameState:
        """Load a previously saved game snapshot."""

        path = self._path_for(game_id)
        return load_state(path.read_bytes())

    def list_games(self) -> list[dm.GameID]:
        """Return all game ids currently persisted in the repository."""

        ids: list[dm.GameID] = []
        prefix = "game_"
        suffix = ".json"
        for path in self.base_path.glob("game_*.json"):
            stem = path.name
            if stem.startswith(prefix) and stem.endswith(suffix):
                raw = stem[len(prefix) : -len(suffix)]
                try:
                    ids.append(dm.GameID(int(raw)))
                except ValueError:  # pragma: no cover - ignored malformed file
                    continue
        return sorted(ids, key=int)

    def delete(self, game_id: dm.GameID) -> None:
        """Remove a game snapshot if it exists."""

        path = self._path_for(game_id)
        if path.exists():
            path.unlink()
