"""One game of 2048: grid, score, undo history and win / game-over flags."""

import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, Optional, Union

import numpy as np

from board_rules import Direction, MoveResult, can_move, has_won, init_grid, max_tile, move, spawn
from game_config import GameConfig
from storage import GameRecords

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class SessionSnapshot:
    grid: np.ndarray
    score: int
    moves: int
    won: bool
    continue_after_win: bool
    game_over: bool


def _frozen(grid: np.ndarray) -> np.ndarray:
    copy = np.array(grid, dtype=np.int64)
    copy.setflags(write=False)
    return copy


class GameSession:
    """Drives the board engine for a single player.

    ``records`` is optional; without it the session keeps its best score in
    memory and completed games are not persisted.
    """

    def __init__(
        self,
        config: Optional[GameConfig] = None,
        records: Optional[GameRecords] = None,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        self.config = config or GameConfig()
        self.records = records
        self.rng = rng if rng is not None else np.random.default_rng()
        self.best_score = 0
        self.won = False
        self._recorded = True
        self.restart()

    def restart(self) -> None:
        if self.won and not self._recorded:
            self._record_game()

        self.grid = _frozen(init_grid(self.config.grid_size, self.rng, self.config.tile_2_probability))
        self.score = 0
        self.moves = 0
        self.won = False
        self.continue_after_win = False
        self.game_over = False
        self.history: Deque[SessionSnapshot] = deque(maxlen=self.config.history_limit)
        self._recorded = False

        if self.records is not None:
            self.best_score = self.records.get_best_score()

    @property
    def accepting_moves(self) -> bool:
        return not (self.game_over or (self.won and not self.continue_after_win))

    @property
    def can_undo(self) -> bool:
        return len(self.history) > 0

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            grid=self.grid,
            score=self.score,
            moves=self.moves,
            won=self.won,
            continue_after_win=self.continue_after_win,
            game_over=self.game_over,
        )

    def move(self, direction: Union[Direction, str]) -> Optional[MoveResult]:
        """Apply one move and spawn a tile.

        Returns ``None`` when the session is not accepting moves or the move
        leaves the grid unchanged. An unknown direction raises
        ``InvalidDirectionError`` even when the move would be rejected.
        """
        direction = Direction.parse(direction)
        if not self.accepting_moves:
            return None

        result = move(self.grid, direction)
        if not result.moved:
            return None

        self.history.append(self.snapshot())

        self.grid = _frozen(spawn(result.grid, self.rng, self.config.tile_2_probability))
        self.score += result.score
        self.moves += 1

        if self.score > self.best_score:
            self.best_score = self.score
            if self.records is not None:
                self.records.save_best_score(self.score)

        if not self.won and has_won(self.grid, self.config.win_tile):
            self.won = True
            logger.info("Reached %d after %d moves", self.config.win_tile, self.moves)

        if not can_move(self.grid):
            self.game_over = True
            if not self._recorded:
                self._record_game()

        return result

    def continue_game(self) -> None:
        self.continue_after_win = True

    def undo(self) -> bool:
        if not self.history:
            return False

        last = self.history.pop()
        self.grid = last.grid
        self.score = last.score
        self.moves = last.moves
        self.won = last.won
        self.continue_after_win = last.continue_after_win
        self.game_over = last.game_over
        return True

    def _record_game(self) -> None:
        self._recorded = True
        if self.records is None:
            return
        self.records.record_game(self.won, self.moves, max_tile(self.grid), self.score)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "grid": self.grid.tolist(),
            "score": self.score,
            "best_score": self.best_score,
            "moves": self.moves,
            "won": self.won,
            "continue_after_win": self.continue_after_win,
            "game_over": self.game_over,
            "can_undo": self.can_undo,
            "max_tile": max_tile(self.grid),
        }
