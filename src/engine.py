# engine.py
# Stateful game engine: owns the live grid, score, achievements and undo history.

from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, FrozenSet, Iterable, List, Optional, Sequence, Tuple
import logging
import random

import core
from core import Direction, GameProgressState, Grid

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 20


@dataclass(frozen=True)
class GameState:
    """Immutable snapshot of one point in a game, kept in the undo history."""
    grid: Tuple[Tuple[int, ...], ...]
    score: int
    size: int
    achieved_numbers: FrozenSet[int] = frozenset()

    @classmethod
    def capture(cls, grid: Sequence[Sequence[int]], score: int, size: int,
                achieved_numbers: Iterable[int] = ()) -> "GameState":
        return cls(
            grid=tuple(tuple(row) for row in grid),
            score=score,
            size=size,
            achieved_numbers=frozenset(achieved_numbers),
        )

    def grid_copy(self) -> Grid:
        return [list(row) for row in self.grid]


@dataclass(frozen=True)
class MovePreview:
    """Result of simulating a move without touching the engine."""
    grid: Tuple[Tuple[int, ...], ...]
    score: int
    changed: bool
    score_delta: int
    new_achievements: Tuple[int, ...] = ()
    merged_numbers: Tuple[int, ...] = ()


class GameListener:
    """
    Receives engine notifications. Subclasses override what they need;
    every hook defaults to a no-op. Handlers run synchronously inside the
    engine call and must not call back into the engine.
    """

    def on_score_changed(self, score: int) -> None:
        pass

    def on_grid_changed(self) -> None:
        pass

    def on_game_won(self) -> None:
        pass

    def on_game_over(self) -> None:
        pass

    def on_first_time_achievement(self, number: int) -> None:
        pass

    def on_number_merged(self, number: int) -> None:
        pass


class RecordingListener(GameListener):
    """Collects notifications as (event, value) pairs in delivery order."""

    def __init__(self) -> None:
        self.events: List[Tuple[str, Optional[int]]] = []

    def on_score_changed(self, score: int) -> None:
        self.events.append(("score_changed", score))

    def on_grid_changed(self) -> None:
        self.events.append(("grid_changed", None))

    def on_game_won(self) -> None:
        self.events.append(("game_won", None))

    def on_game_over(self) -> None:
        self.events.append(("game_over", None))

    def on_first_time_achievement(self, number: int) -> None:
        self.events.append(("first_time_achievement", number))

    def on_number_merged(self, number: int) -> None:
        self.events.append(("number_merged", number))

    def names(self) -> List[str]:
        return [name for name, _ in self.events]

    def values(self, name: str) -> List[Optional[int]]:
        return [value for event, value in self.events if event == name]

    def clear(self) -> None:
        self.events.clear()


class GameEngine:
    """
    Rule engine for one N x N game.

    The board size is fixed for the engine's lifetime. Randomness comes from
    a per-instance ``random.Random`` so games can be replayed from a seed.
    """

    HISTORY_LIMIT = HISTORY_LIMIT

    def __init__(self, size: int, listener: Optional[GameListener] = None,
                 rng: Optional[random.Random] = None, seed: Optional[int] = None):
        self._size = size
        self._rng = rng if rng is not None else random.Random(seed)
        self._grid: Grid = [[0] * size for _ in range(size)]
        self._score = 0
        self._achieved: set = set()
        self._history: Deque[GameState] = deque(maxlen=self.HISTORY_LIMIT)
        self._listeners: List[GameListener] = []
        if listener is not None:
            self.add_listener(listener)
        self.init_game()

    @classmethod
    def from_state(cls, state: GameState, listener: Optional[GameListener] = None,
                   rng: Optional[random.Random] = None,
                   seed: Optional[int] = None) -> "GameEngine":
        """
        Builds an engine positioned at ``state``, which becomes the only
        history entry. No notifications are sent for the load itself.
        Raises:
            GridInvariantError: If the snapshot grid is malformed.
        """
        core.validate_grid(state.grid, state.size)
        engine = cls.__new__(cls)
        engine._size = state.size
        engine._rng = rng if rng is not None else random.Random(seed)
        engine._listeners = []
        engine._history = deque(maxlen=cls.HISTORY_LIMIT)
        engine._restore(state)
        engine._history.append(state)
        if listener is not None:
            engine.add_listener(listener)
        return engine

    # --- Listeners ---

    def add_listener(self, listener: GameListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: GameListener) -> None:
        self._listeners.remove(listener)

    def _notify(self, hook: str, *args: Any) -> None:
        for listener in list(self._listeners):
            getattr(listener, hook)(*args)

    # --- Queries ---

    @property
    def size(self) -> int:
        return self._size

    @property
    def score(self) -> int:
        return self._score

    @property
    def grid(self) -> Tuple[Tuple[int, ...], ...]:
        """Read-only view of the live grid."""
        return tuple(tuple(row) for row in self._grid)

    @property
    def achieved_numbers(self) -> FrozenSet[int]:
        return frozenset(self._achieved)

    @property
    def history(self) -> Tuple[GameState, ...]:
        """Undo history, oldest first; the last entry is the current state."""
        return tuple(self._history)

    @property
    def can_undo(self) -> bool:
        return len(self._history) > 1

    @property
    def status(self) -> GameProgressState:
        return core.determine_game_status(self._grid)

    def has_won(self) -> bool:
        return core.is_winning_grid(self._grid)

    def is_game_over(self) -> bool:
        return core.is_frozen_grid(self._grid)

    def snapshot(self) -> GameState:
        return GameState.capture(self._grid, self._score, self._size, self._achieved)

    def generate_preview_grid(self) -> Grid:
        """Decorative board for menus; has no relation to the live game."""
        return core.generate_preview_grid(self._size, self._rng)

    # --- Commands ---

    def init_game(self) -> None:
        """Starts a fresh game on the same board size."""
        self._grid = [[0] * self._size for _ in range(self._size)]
        self._score = 0
        self._achieved = set()
        self._history.clear()

        core.spawn_random_tile(self._grid, self._rng)
        core.spawn_random_tile(self._grid, self._rng)

        self._save_state()
        logger.info("Started %dx%d game", self._size, self._size)
        self._notify("on_score_changed", self._score)
        self._notify("on_grid_changed")

    def preview_move(self, direction: Direction) -> MovePreview:
        """Simulates ``direction`` on a copy of the grid. Never spawns a tile."""
        result = core.slide_grid(self._grid, direction)
        return MovePreview(
            grid=tuple(tuple(row) for row in result.grid),
            score=self._score + result.score_delta,
            changed=result.changed,
            score_delta=result.score_delta,
            new_achievements=tuple(n for n in _unique(result.merged) if n not in self._achieved),
            merged_numbers=tuple(result.merged),
        )

    def move(self, direction: Direction) -> bool:
        """
        Applies a move to the live game.

        Returns False, with no side effects, when the move would not change
        the grid. Otherwise notifies merges and first-time achievements,
        spawns a tile, records history, notifies score and grid changes and
        finally reports a win or a loss.
        """
        result = core.slide_grid(self._grid, direction)
        if not result.changed:
            return False

        self._grid = result.grid
        self._score += result.score_delta

        for number in result.merged:
            self._notify("on_number_merged", number)

        for number in _unique(result.merged):
            if number not in self._achieved:
                self._achieved.add(number)
                self._notify("on_first_time_achievement", number)

        core.spawn_random_tile(self._grid, self._rng)
        self._save_state()
        logger.debug("Moved %s: +%d (score %d)", direction.name, result.score_delta, self._score)

        self._notify("on_score_changed", self._score)
        self._notify("on_grid_changed")

        if self.has_won():
            logger.info("Game won with score %d", self._score)
            self._notify("on_game_won")
        elif self.is_game_over():
            logger.info("Game over with score %d", self._score)
            self._notify("on_game_over")

        return True

    def undo(self) -> bool:
        """
        Steps back to the previous history entry.
        Returns False if there is nothing to undo.
        """
        if len(self._history) <= 1:
            return False

        self._history.pop()
        self._restore(self._history[-1])
        logger.info("Undo: score restored to %d", self._score)

        self._notify("on_score_changed", self._score)
        self._notify("on_grid_changed")
        return True

    # --- Internals ---

    def _save_state(self) -> None:
        # deque(maxlen=...) drops the oldest entry on overflow
        self._history.append(self.snapshot())

    def _restore(self, state: GameState) -> None:
        if state.size != self._size:
            raise core.GridInvariantError(
                f"Snapshot size {state.size} does not match board size {self._size}."
            )
        core.validate_grid(state.grid, self._size)
        self._grid = state.grid_copy()
        self._score = state.score
        self._achieved = set(state.achieved_numbers)


def _unique(values: Iterable[int]) -> List[int]:
    """Values in first-seen order with duplicates removed."""
    seen = set()
    ordered = []
    for value in values:
        if value not in seen:
            seen.add(value)
            ordered.append(value)
    return ordered
