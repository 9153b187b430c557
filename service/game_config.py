import os
from dataclasses import dataclass
from typing import Optional

from board_rules import GRID_SIZE, TILE_2_PROBABILITY, WIN_TILE


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in ("1", "true", "yes")


@dataclass(frozen=True)
class GameConfig:
    grid_size: int = GRID_SIZE
    tile_2_probability: float = TILE_2_PROBABILITY
    win_tile: int = WIN_TILE
    # None keeps every snapshot for undo.
    history_limit: Optional[int] = None

    def __post_init__(self) -> None:
        if self.grid_size < 2:
            raise ValueError(f"grid_size must be at least 2, got {self.grid_size}")
        if not 0.0 <= self.tile_2_probability <= 1.0:
            raise ValueError(f"tile_2_probability must be within [0, 1], got {self.tile_2_probability}")
        if self.win_tile < 4 or self.win_tile & (self.win_tile - 1):
            raise ValueError(f"win_tile must be a power of two >= 4, got {self.win_tile}")
        if self.history_limit is not None and self.history_limit < 1:
            raise ValueError(f"history_limit must be positive, got {self.history_limit}")

    @classmethod
    def from_env(cls) -> "GameConfig":
        return cls(
            grid_size=_env_int("GAME_GRID_SIZE", GRID_SIZE),
            tile_2_probability=_env_float("GAME_TILE_2_PROBABILITY", TILE_2_PROBABILITY),
            win_tile=_env_int("GAME_WIN_TILE", WIN_TILE),
            history_limit=_env_int("GAME_HISTORY_LIMIT", None),
        )


def resolve_store_path() -> str:
    env_path = os.environ.get("GAME_STORE_PATH")
    if env_path:
        return os.path.abspath(env_path)

    here = os.path.dirname(__file__)
    return os.path.abspath(os.path.join(here, "..", "game_store.json"))


@dataclass(frozen=True)
class ServerConfig:
    store_path: str
    allowed_origins: str = "*"
    port: int = 5050
    debug: bool = False
    log_level: str = "INFO"
    # Oldest games are dropped once this many are open.
    max_sessions: int = 1000

    def __post_init__(self) -> None:
        if self.max_sessions < 1:
            raise ValueError(f"max_sessions must be positive, got {self.max_sessions}")

    @classmethod
    def from_env(cls) -> "ServerConfig":
        return cls(
            store_path=resolve_store_path(),
            allowed_origins=os.environ.get("GAME_ALLOWED_ORIGINS", "*"),
            port=_env_int("PORT", 5050),
            debug=_env_flag("FLASK_DEBUG"),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
            max_sessions=_env_int("GAME_MAX_SESSIONS", 1000),
        )
