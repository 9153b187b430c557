"""Core 2048 board mechanics shared by the game session, the server and tests."""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np

GRID_SIZE = 4
TILE_2_PROBABILITY = 0.9
WIN_TILE = 2048
# Largest tile a grid may hold; merging two of them still fits in int64.
MAX_TILE = 2 ** 61

# Clockwise quarter turns applied before and after the leftward slide.
_ROTATIONS = {
    "left": (0, 0),
    "up": (3, 1),
    "right": (2, 2),
    "down": (1, 3),
}


class InvalidGridError(ValueError):
    """Raised when a grid is not a square matrix of empty cells and tiles."""


class InvalidDirectionError(ValueError):
    """Raised for anything that is not one of the four directions."""


class Direction(Enum):
    """Direction of a move."""

    UP = "up"
    DOWN = "down"
    LEFT = "left"
    RIGHT = "right"

    @classmethod
    def parse(cls, value: Union["Direction", str]) -> "Direction":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise InvalidDirectionError(f"Unknown direction: {value!r}")


DIRECTIONS: Sequence[Direction] = (Direction.UP, Direction.RIGHT, Direction.DOWN, Direction.LEFT)


@dataclass(frozen=True, eq=False)
class MoveResult:
    """Outcome of one move: the next grid, points scored and whether anything changed."""

    grid: np.ndarray
    score: int
    moved: bool


def as_grid(cells: Union[np.ndarray, Sequence[Sequence[int]]], size: Optional[int] = None) -> np.ndarray:
    """Validate ``cells`` and return an independent integer grid.

    Raises ``InvalidGridError`` for non-square or mis-sized input and for
    values that are not integers, neither 0 nor a power of two >= 2, or
    larger than ``MAX_TILE``.
    """
    try:
        raw = np.array(cells)
    except (TypeError, ValueError, OverflowError) as exc:
        raise InvalidGridError(f"Grid is not a rectangular matrix of integers: {exc}") from exc
    if raw.size and raw.dtype.kind not in ("i", "u"):
        raise InvalidGridError(f"Grid cells must be integers, received dtype {raw.dtype}")
    if raw.size and raw.max() > MAX_TILE:
        raise InvalidGridError(f"Tiles above {MAX_TILE} are not supported")
    arr = raw.astype(np.int64)

    if arr.ndim != 2 or arr.shape[0] != arr.shape[1] or arr.shape[0] == 0:
        raise InvalidGridError(f"Expected a non-empty square grid, received shape {arr.shape}")
    if size is not None and arr.shape[0] != size:
        raise InvalidGridError(f"Expected {size}x{size} grid, received shape {arr.shape}")

    invalid = (arr != 0) & ((arr < 2) | ((arr & (arr - 1)) != 0))
    if invalid.any():
        raise InvalidGridError(f"Invalid cell value: {int(arr[invalid][0])}")

    return arr


def empty_grid(size: int = GRID_SIZE) -> np.ndarray:
    return np.zeros((size, size), dtype=np.int64)


def empty_cells(grid: np.ndarray) -> List[Tuple[int, int]]:
    """Coordinates of every empty cell in row-major order."""
    rows, cols = np.nonzero(np.asarray(grid) == 0)
    return [(int(r), int(c)) for r, c in zip(rows, cols)]


def max_tile(grid: np.ndarray) -> int:
    arr = np.asarray(grid)
    return int(arr.max()) if arr.size else 0


def grids_equal(a: np.ndarray, b: np.ndarray) -> bool:
    return bool(np.array_equal(a, b))


def rotate_clockwise(grid: np.ndarray, times: int = 1) -> np.ndarray:
    """Rotate by ``times`` quarter turns clockwise (transpose, then reverse each row)."""
    rotated = np.asarray(grid)
    for _ in range(times % 4):
        rotated = rotated.T[:, ::-1]
    return np.ascontiguousarray(rotated).copy()


def slide_row_left(row: Iterable[int]) -> Tuple[List[int], int, bool]:
    """Compact a row to the left and merge equal neighbours pairwise.

    A tile produced by a merge does not merge again in the same pass, so
    ``[2, 2, 2, 2]`` becomes ``[4, 4, 0, 0]``.
    """
    original = [int(v) for v in row]
    non_zero = [v for v in original if v != 0]
    merged: List[int] = []
    score = 0
    idx = 0

    while idx < len(non_zero):
        value = non_zero[idx]
        if idx + 1 < len(non_zero) and non_zero[idx + 1] == value:
            merged.append(value * 2)
            score += value * 2
            idx += 2
        else:
            merged.append(value)
            idx += 1

    merged.extend([0] * (len(original) - len(merged)))
    return merged, score, merged != original


def _apply_left(board: np.ndarray) -> Tuple[np.ndarray, int, bool]:
    rows = []
    score = 0
    changed_any = False
    for row in board:
        new_row, row_score, changed = slide_row_left(row.tolist())
        rows.append(new_row)
        score += row_score
        if changed:
            changed_any = True
    return np.array(rows, dtype=np.int64).reshape(board.shape), score, changed_any


def move(grid: Union[np.ndarray, Sequence[Sequence[int]]], direction: Union[Direction, str]) -> MoveResult:
    """Slide and merge every tile of ``grid`` towards ``direction``.

    The grid is rotated so that ``direction`` faces left, the leftward rule is
    applied to each row and the result is rotated back. The input is never
    modified.
    """
    direction = Direction.parse(direction)
    arr = as_grid(grid)
    before, after = _ROTATIONS[direction.value]

    moved_board, score, changed = _apply_left(rotate_clockwise(arr, before))
    next_board = rotate_clockwise(moved_board, after)
    next_board.setflags(write=False)

    return MoveResult(grid=next_board, score=score, moved=changed)


def spawn(
    grid: np.ndarray,
    rng: Optional[np.random.Generator] = None,
    two_probability: float = TILE_2_PROBABILITY,
) -> np.ndarray:
    """Return a copy of ``grid`` with one new tile in a random empty cell.

    A full grid comes back unchanged; callers that need to tell the two
    cases apart check ``empty_cells`` first.
    """
    rng = rng if rng is not None else np.random.default_rng()
    next_board = np.array(grid, dtype=np.int64)
    candidates = empty_cells(next_board)
    if not candidates:
        return next_board

    row, col = candidates[int(rng.integers(len(candidates)))]
    next_board[row, col] = 2 if rng.random() < two_probability else 4
    return next_board


def init_grid(
    size: int = GRID_SIZE,
    rng: Optional[np.random.Generator] = None,
    two_probability: float = TILE_2_PROBABILITY,
) -> np.ndarray:
    rng = rng if rng is not None else np.random.default_rng()
    board = spawn(empty_grid(size), rng, two_probability)
    return spawn(board, rng, two_probability)


def has_won(grid: np.ndarray, win_tile: int = WIN_TILE) -> bool:
    return bool((np.asarray(grid) == win_tile).any())


def can_move(grid: np.ndarray) -> bool:
    """True while the grid has an empty cell or two equal neighbouring tiles.

    Comparing each cell with its right and lower neighbour covers every
    adjacent pair exactly once.
    """
    arr = np.asarray(grid)
    if (arr == 0).any():
        return True
    if (arr[:, :-1] == arr[:, 1:]).any():
        return True
    return bool((arr[:-1, :] == arr[1:, :]).any())


def valid_moves(grid: Union[np.ndarray, Sequence[Sequence[int]]]) -> List[Direction]:
    allowed: List[Direction] = []
    for direction in DIRECTIONS:
        if move(grid, direction).moved:
            allowed.append(direction)
    return allowed


__all__ = [
    "DIRECTIONS",
    "GRID_SIZE",
    "MAX_TILE",
    "TILE_2_PROBABILITY",
    "WIN_TILE",
    "Direction",
    "InvalidDirectionError",
    "InvalidGridError",
    "MoveResult",
    "as_grid",
    "can_move",
    "empty_cells",
    "empty_grid",
    "grids_equal",
    "has_won",
    "init_grid",
    "max_tile",
    "move",
    "rotate_clockwise",
    "slide_row_left",
    "spawn",
    "valid_moves",
]
