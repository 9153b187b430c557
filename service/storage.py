"""Key-value persistence for best score, statistics and the user profile."""

import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)

STORAGE_KEYS = {
    "BEST_SCORE": "@best_score",
    "STATS": "@stats",
    "USER_ID": "@userId",
    "USER_PROFILE": "@userProfile",
}


class KeyValueStore(Protocol):
    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...

    def keys(self) -> List[str]: ...

    def clear(self) -> None: ...


class MemoryStore:
    """Process-local store, mostly for tests."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._items: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._items)

    def clear(self) -> None:
        self._items.clear()


class JsonFileStore:
    """All keys kept in a single JSON object on disk.

    Writes go to a temporary file in the same directory that then replaces
    the target, so a crash never leaves a half-written store behind. One
    instance may be shared between threads; a lock serialises each
    read-modify-write cycle.
    """

    def __init__(self, path: str) -> None:
        self.path = path
        self._lock = threading.Lock()

    def _load(self) -> Dict[str, str]:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
        if not isinstance(data, dict):
            raise ValueError(f"Store file {self.path} does not hold a JSON object")
        return data

    def _dump(self, items: Dict[str, str]) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".store-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(items, fh, indent=2, sort_keys=True)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._load().get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            items = self._load()
            items[key] = value
            self._dump(items)

    def remove_item(self, key: str) -> None:
        with self._lock:
            items = self._load()
            if key in items:
                del items[key]
                self._dump(items)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._load())

    def clear(self) -> None:
        with self._lock:
            self._dump({})


class StorageService:
    """JSON values on top of a ``KeyValueStore``.

    Backend failures are logged and reported through the return value
    (``default`` for reads, ``False`` for writes); they never reach the game.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    def get(self, key: str, default: Any = None) -> Any:
        try:
            raw = self.store.get_item(key)
            return json.loads(raw) if raw is not None else default
        except (OSError, ValueError) as exc:
            logger.error("Storage get error [%s]: %s", key, exc)
            return default

    def set(self, key: str, value: Any) -> bool:
        try:
            self.store.set_item(key, json.dumps(value))
            return True
        except (OSError, TypeError, ValueError) as exc:
            logger.error("Storage set error [%s]: %s", key, exc)
            return False

    def remove(self, key: str) -> bool:
        try:
            self.store.remove_item(key)
            return True
        except (OSError, ValueError) as exc:
            logger.error("Storage remove error [%s]: %s", key, exc)
            return False

    def update(self, key: str, update_fn: Callable[[Any], Any], default: Any = None) -> Any:
        updated = update_fn(self.get(key, default))
        self.set(key, updated)
        return updated

    def get_many(self, keys: Iterable[Tuple[str, Any]]) -> Dict[str, Any]:
        return {key: self.get(key, default) for key, default in keys}

    def set_many(self, items: Dict[str, Any]) -> List[bool]:
        return [self.set(key, value) for key, value in items.items()]

    def clear(self) -> bool:
        try:
            self.store.clear()
            return True
        except (OSError, ValueError) as exc:
            logger.error("Storage clear error: %s", exc)
            return False

    def keys(self) -> List[str]:
        try:
            return self.store.keys()
        except (OSError, ValueError) as exc:
            logger.error("Storage keys error: %s", exc)
            return []


@dataclass(frozen=True)
class GameStats:
    games_played: int = 0
    games_won: int = 0
    total_moves: int = 0
    best_tile: int = 0
    best_score: int = 0

    @property
    def win_rate(self) -> float:
        return self.games_won / self.games_played if self.games_played > 0 else 0.0

    @property
    def win_rate_percentage(self) -> float:
        return self.win_rate * 100

    @property
    def average_moves_per_game(self) -> float:
        return self.total_moves / self.games_played if self.games_played > 0 else 0.0

    def increment_game(self, won: bool, moves: int, tile: int, score: int) -> "GameStats":
        return GameStats(
            games_played=self.games_played + 1,
            games_won=self.games_won + (1 if won else 0),
            total_moves=self.total_moves + moves,
            best_tile=max(self.best_tile, tile),
            best_score=max(self.best_score, score),
        )

    def to_dict(self) -> Dict[str, int]:
        return {
            "gamesPlayed": self.games_played,
            "gamesWon": self.games_won,
            "totalMoves": self.total_moves,
            "bestTile": self.best_tile,
            "bestScore": self.best_score,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "GameStats":
        if not data:
            return cls()
        return cls(
            games_played=int(data.get("gamesPlayed") or 0),
            games_won=int(data.get("gamesWon") or 0),
            total_moves=int(data.get("totalMoves") or 0),
            best_tile=int(data.get("bestTile") or 0),
            best_score=int(data.get("bestScore") or 0),
        )


class GameRecords:
    """Best score and cumulative statistics."""

    def __init__(self, storage: StorageService) -> None:
        self.storage = storage

    def get_best_score(self) -> int:
        return int(self.storage.get(STORAGE_KEYS["BEST_SCORE"], 0) or 0)

    def save_best_score(self, score: int) -> bool:
        return self.storage.set(STORAGE_KEYS["BEST_SCORE"], int(score))

    def get_stats(self) -> GameStats:
        return GameStats.from_dict(self.storage.get(STORAGE_KEYS["STATS"], None))

    def save_stats(self, stats: GameStats) -> bool:
        return self.storage.set(STORAGE_KEYS["STATS"], stats.to_dict())

    def record_game(self, won: bool, moves: int, best_tile: int, score: int) -> GameStats:
        stats = self.get_stats().increment_game(won, moves, best_tile, score)
        self.save_stats(stats)
        if score > self.get_best_score():
            self.save_best_score(score)
        logger.info(
            "Recorded game: won=%s moves=%d best_tile=%d score=%d (played=%d)",
            won, moves, best_tile, score, stats.games_played,
        )
        return stats
