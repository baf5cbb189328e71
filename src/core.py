# core.py
# Stateless rules for the tile merge puzzle: compaction, spawning and terminal checks.

from enum import Enum
from typing import List, NamedTuple, Optional, Sequence, Tuple
import random

Grid = List[List[int]]

MIN_BOARD_SIZE = 3
MAX_BOARD_SIZE = 8
DEFAULT_BOARD_SIZE = 4

WIN_TILE = 2048
SMALL_BOARD_WIN_TILE = 256  # 3x3 boards cannot practically reach 2048
SPAWN_FOUR_PROBABILITY = 0.1

PREVIEW_VALUES: Tuple[int, ...] = (2, 4, 8, 16, 32, 64, 128, 256)
PREVIEW_FILL_RATIO = 0.3


class GameProgressState(Enum):
    """Represents the current progress state of the game."""
    IN_PROGRESS = 1
    GAME_OVER = 2  # Lost
    GAME_WON = 3


class Direction(Enum):
    """Represents the possible move directions."""
    LEFT = "LEFT"
    RIGHT = "RIGHT"
    UP = "UP"
    DOWN = "DOWN"


class GridInvariantError(ValueError):
    """Raised when a grid breaks the board invariants (shape or tile values)."""


class SlideResult(NamedTuple):
    grid: Grid
    score_delta: int
    merged: List[int]
    changed: bool


# --- Board Helper Functions ---

def get_board_size(grid: Sequence[Sequence[int]]) -> int:
    """
    Gets the size (N) of an N x N grid.
    Args:
        grid: The game grid.
    Returns:
        int: The dimension of the grid.
    Raises:
        ValueError: If the grid is not square or empty.
    """
    if not grid or not all(len(row) == len(grid) for row in grid):
        raise ValueError("Grid must be a non-empty square matrix.")
    return len(grid)


def copy_grid(grid: Sequence[Sequence[int]]) -> Grid:
    return [list(row) for row in grid]


def get_empty_cells(grid: Sequence[Sequence[int]]) -> List[Tuple[int, int]]:
    """
    Get coordinates of empty (0-value) cells in row-major order.
    Args:
        grid: The grid to check.
    Returns:
        List[Tuple[int, int]]: List of (row, col) tuples for empty cells.
    """
    n = get_board_size(grid)
    return [(row, col) for row in range(n) for col in range(n) if grid[row][col] == 0]


def is_valid_tile(value: int) -> bool:
    """True for 0 (empty) or a power of two >= 2."""
    if value == 0:
        return True
    return value >= 2 and value & (value - 1) == 0


def validate_grid(grid: Sequence[Sequence[int]], size: int) -> None:
    """
    Checks that a grid is size x size and holds only legal tile values.
    Raises:
        GridInvariantError: On a shape mismatch or an illegal tile value.
    """
    if len(grid) != size or any(len(row) != size for row in grid):
        raise GridInvariantError(f"Grid shape does not match board size {size}.")
    for r, row in enumerate(grid):
        for c, value in enumerate(row):
            if not isinstance(value, int) or not is_valid_tile(value):
                raise GridInvariantError(f"Illegal tile value {value!r} at ({r}, {c}).")


# --- Line Compaction ---

def compact_line(line: Sequence[int]) -> Tuple[List[int], int, List[int]]:
    """
    Slides a single line toward index 0, merging equal neighbours once.

    Empty cells are dropped, then adjacent pairs are scanned from index 0;
    an equal pair becomes one tile of double value and the scan moves past
    both, so a merged tile never merges again in the same move. The result
    is padded with zeros back to the original length.

    Args:
        line: The line to process, ordered from the target wall outward.
    Returns:
        Tuple[List[int], int, List[int]]: The processed line, the score gained,
                                          and the merged values in scan order.
    """
    n = len(line)
    tiles = [v for v in line if v != 0]
    result: List[int] = []
    merged: List[int] = []
    score_delta = 0

    i = 0
    while i < len(tiles):
        if i + 1 < len(tiles) and tiles[i] == tiles[i + 1]:
            value = tiles[i] * 2
            result.append(value)
            merged.append(value)
            score_delta += value
            i += 2
        else:
            result.append(tiles[i])
            i += 1

    result += [0] * (n - len(result))
    return result, score_delta, merged


# --- Board Transformations ---

def transpose_grid(grid: Sequence[Sequence[int]]) -> Grid:
    """Returns a new grid with rows and columns swapped."""
    return [list(col) for col in zip(*grid)]


def reverse_rows(grid: Sequence[Sequence[int]]) -> Grid:
    """Returns a new grid with every row reversed."""
    return [list(row)[::-1] for row in grid]


def _orient(grid: Sequence[Sequence[int]], direction: Direction) -> Grid:
    # Lays the grid out so that every line runs away from the target wall.
    if direction == Direction.LEFT:
        return copy_grid(grid)
    if direction == Direction.RIGHT:
        return reverse_rows(grid)
    if direction == Direction.UP:
        return transpose_grid(grid)
    if direction == Direction.DOWN:
        return reverse_rows(transpose_grid(grid))
    raise ValueError(f"Invalid direction: {direction!r}")


def _restore(grid: Grid, direction: Direction) -> Grid:
    if direction == Direction.LEFT:
        return grid
    if direction == Direction.RIGHT:
        return reverse_rows(grid)
    if direction == Direction.UP:
        return transpose_grid(grid)
    return transpose_grid(reverse_rows(grid))


# --- Core Move Processing ---

def slide_grid(grid: Sequence[Sequence[int]], direction: Direction) -> SlideResult:
    """
    Applies a move in the given direction to a copy of the grid.

    Rows are processed top to bottom for LEFT/RIGHT and columns left to
    right for UP/DOWN; within a line the scan starts at the wall the tiles
    are pushed toward, so the first collision from that wall wins.

    Args:
        grid: The current grid. It is not modified.
        direction: The direction to move.
    Returns:
        SlideResult: The new grid, the score gained, the merged values in
                     scan order, and whether any cell changed.
    Raises:
        ValueError: If the grid is malformed or the direction is unknown.
    """
    get_board_size(grid)
    oriented = _orient(grid, direction)

    lines: Grid = []
    merged: List[int] = []
    score_delta = 0
    for line in oriented:
        new_line, line_score, line_merged = compact_line(line)
        lines.append(new_line)
        merged.extend(line_merged)
        score_delta += line_score

    new_grid = _restore(lines, direction)
    changed = any(
        new_grid[r][c] != grid[r][c]
        for r in range(len(grid))
        for c in range(len(grid))
    )
    return SlideResult(new_grid, score_delta, merged, changed)


# --- Random Tiles ---

def spawn_random_tile(grid: Grid, rng: random.Random) -> Optional[Tuple[int, int, int]]:
    """
    Places a 2 (90%) or a 4 (10%) on a uniformly chosen empty cell, in place.
    Args:
        grid: The grid to modify.
        rng: The random source to draw from.
    Returns:
        The (row, col, value) placed, or None when no empty cell exists.
    """
    empty_cells = get_empty_cells(grid)
    if not empty_cells:
        return None
    row, col = empty_cells[rng.randrange(len(empty_cells))]
    value = 4 if rng.random() < SPAWN_FOUR_PROBABILITY else 2
    grid[row][col] = value
    return row, col, value


def generate_preview_grid(size: int, rng: random.Random) -> Grid:
    """
    Builds a decorative board for menus: a few random cells hold small tiles.
    Larger boards draw from a wider range of values. Unrelated to any game.
    """
    grid = [[0] * size for _ in range(size)]
    cell_count = max(int(size * size * PREVIEW_FILL_RATIO), 2)
    positions = [(r, c) for r in range(size) for c in range(size)]
    rng.shuffle(positions)
    choices = PREVIEW_VALUES[:min(len(PREVIEW_VALUES), size)]
    for row, col in positions[:cell_count]:
        grid[row][col] = rng.choice(choices)
    return grid


# --- Game State Checks ---

def win_tiles_for_size(size: int) -> Tuple[int, ...]:
    if size == 3:
        return (SMALL_BOARD_WIN_TILE, WIN_TILE)
    return (WIN_TILE,)


def is_winning_grid(grid: Sequence[Sequence[int]]) -> bool:
    """True if any cell holds 2048, or 256 on a 3x3 board."""
    targets = win_tiles_for_size(get_board_size(grid))
    return any(value in targets for row in grid for value in row)


def is_frozen_grid(grid: Sequence[Sequence[int]]) -> bool:
    """
    True when the grid is full and no cell has an equal orthogonal neighbour,
    i.e. no move in any direction can change it.
    """
    n = get_board_size(grid)
    if get_empty_cells(grid):
        return False
    for r in range(n):
        for c in range(n):
            current = grid[r][c]
            if r + 1 < n and grid[r + 1][c] == current:
                return False
            if c + 1 < n and grid[r][c + 1] == current:
                return False
    return True


def determine_game_status(grid: Sequence[Sequence[int]]) -> GameProgressState:
    """
    Determines the current progress state of the game based on the grid.
    A frozen board is over even when it holds a winning tile, since play
    may continue after a win.
    """
    if is_frozen_grid(grid):
        return GameProgressState.GAME_OVER
    if is_winning_grid(grid):
        return GameProgressState.GAME_WON
    return GameProgressState.IN_PROGRESS
