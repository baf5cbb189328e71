from collections import OrderedDict
from typing import List, Optional, Tuple
import logging
import random
import uuid

from fastapi import FastAPI, HTTPException, Request, Response
from pydantic import BaseModel, Field
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

import core
from engine import GameEngine, RecordingListener
from settings import load_settings

logger = logging.getLogger(__name__)

settings = load_settings()

# Initialize the rate limiter
limiter = Limiter(key_func=get_remote_address)
app = FastAPI(
    title="2048 Game API",
    description="Play the 2048 tile merge puzzle. Games are kept on the server "
                "and addressed by the game_id returned when a game is created.",
    version="1.0.0"
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


class GameSession:
    """One engine plus the listener that records its notifications."""

    def __init__(self, engine: GameEngine, listener: RecordingListener):
        self.engine = engine
        self.listener = listener

    def drain_events(self) -> List["GameEvent"]:
        events = [GameEvent(name=name, value=value) for name, value in self.listener.events]
        self.listener.clear()
        return events


class GameStore:
    """In-memory games, oldest dropped once max_sessions is exceeded."""

    def __init__(self, max_sessions: int):
        self.max_sessions = max_sessions
        self._sessions: "OrderedDict[str, GameSession]" = OrderedDict()

    def create(self, size: int, seed: Optional[int] = None) -> Tuple[str, GameSession]:
        listener = RecordingListener()
        engine = GameEngine(size, listener=listener, seed=seed)
        game_id = uuid.uuid4().hex
        session = GameSession(engine, listener)
        self._sessions[game_id] = session
        while len(self._sessions) > self.max_sessions:
            evicted_id, _ = self._sessions.popitem(last=False)
            logger.info("Dropped game %s (session limit %d)", evicted_id, self.max_sessions)
        return game_id, session

    def get(self, game_id: str) -> GameSession:
        """
        Raises:
            KeyError: If no game with this id is stored.
        """
        return self._sessions[game_id]

    def delete(self, game_id: str) -> None:
        del self._sessions[game_id]

    def __len__(self) -> int:
        return len(self._sessions)


store = GameStore(settings.max_sessions)

# --- Pydantic Models for API requests and responses ---

class NewGameSettings(BaseModel):
    """Settings for creating a new game."""
    size: Optional[int] = Field(
        default=None,
        ge=core.MIN_BOARD_SIZE,
        le=core.MAX_BOARD_SIZE,
        description="Size of the N x N game board (3 to 8). Defaults to the server setting."
    )
    seed: Optional[int] = Field(
        default=None,
        description="Seed for tile spawning, for reproducible games."
    )

class GameEvent(BaseModel):
    """A notification emitted by the engine while handling a request."""
    name: str = Field(..., description="Event name, e.g. number_merged or game_won.")
    value: Optional[int] = Field(default=None, description="Score or tile value carried by the event.")

class GameStateData(BaseModel):
    """Represents the complete state of a game instance."""
    game_id: str = Field(..., description="Identifier to use for further requests on this game.")
    board: List[List[int]] = Field(..., description="The N x N game board, represented as a list of lists.")
    score: int = Field(..., ge=0, description="Current score of the game.")
    progress: core.GameProgressState = Field(
        ...,
        description="Current progress state of the game (IN_PROGRESS, GAME_WON, GAME_OVER)."
    )
    board_size: int = Field(..., gt=0, description="The dimension N of the N x N board.")
    achieved_numbers: List[int] = Field(default_factory=list, description="Tile values reached so far, ascending.")
    can_undo: bool = Field(..., description="True if an undo target exists.")
    events: List[GameEvent] = Field(default_factory=list, description="Notifications emitted by this request.")

class MoveRequestData(BaseModel):
    """Data required to make or preview a move."""
    direction: core.Direction = Field(
        ...,
        description="Direction of the move (LEFT, RIGHT, UP, DOWN)."
    )

class MoveResponseData(GameStateData):
    """Response after a move, including the new game state and move effectiveness."""
    move_was_effective: bool = Field(
        ...,
        description="True if the move resulted in a change to the board state, False otherwise."
    )
    message: Optional[str] = Field(
        default=None,
        description="An optional message, e.g., if a move was not effective or the game ended."
    )

class UndoResponseData(GameStateData):
    """Response after an undo request."""
    undone: bool = Field(..., description="False when there was no earlier state to return to.")
    message: Optional[str] = Field(default=None)

class MovePreviewData(BaseModel):
    """Outcome of a move simulated on a copy of the board; the game is untouched."""
    board: List[List[int]]
    score: int = Field(..., ge=0)
    changed: bool
    score_delta: int = Field(..., ge=0)
    new_achievements: List[int]
    merged_numbers: List[int]

class PreviewGridData(BaseModel):
    """Decorative board for menus; not tied to any game."""
    board: List[List[int]]
    board_size: int


def _state_payload(game_id: str, session: GameSession) -> dict:
    engine = session.engine
    return dict(
        game_id=game_id,
        board=[list(row) for row in engine.grid],
        score=engine.score,
        progress=engine.status,
        board_size=engine.size,
        achieved_numbers=sorted(engine.achieved_numbers),
        can_undo=engine.can_undo,
        events=session.drain_events(),
    )


def _find_session(game_id: str) -> GameSession:
    try:
        return store.get(game_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Game {game_id} not found.")

# --- API Endpoints ---

@app.post("/game/new", response_model=GameStateData, summary="Start a New 2048 Game")
@limiter.limit(settings.rate_limit)
async def start_new_game(request: Request, new_game: NewGameSettings):
    """
    Creates a new game and returns its initial state.

    - **size**: Dimension of the N x N board (3 to 8).
    - **seed**: Optional seed making tile spawns reproducible.

    The board starts with two random tiles and a score of 0.
    """
    size = new_game.size if new_game.size is not None else settings.default_size
    try:
        game_id, session = store.create(size, seed=new_game.seed)
        return GameStateData(**_state_payload(game_id, session))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error("Unexpected error in /game/new: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail=f"An unexpected error occurred during game creation: {str(e)}")


@app.get("/game/{game_id}", response_model=GameStateData, summary="Get Game State")
@limiter.limit(settings.rate_limit)
async def get_game(request: Request, game_id: str):
    """Returns the current state of a game."""
    session = _find_session(game_id)
    return GameStateData(**_state_payload(game_id, session))


@app.post("/game/{game_id}/move", response_model=MoveResponseData, summary="Make a Move in the Game")
@limiter.limit(settings.rate_limit)
async def make_move(request: Request, game_id: str, request_data: MoveRequestData):
    """
    Applies a move to the game.

    If the move changes the board, a new tile (2 or 4) is spawned and the
    engine's notifications (merges, first-time achievements, score and grid
    changes, win or loss) are returned in `events`, in emission order.
    """
    session = _find_session(game_id)
    message_for_client: Optional[str] = None
    try:
        move_was_effective = session.engine.move(request_data.direction)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Error processing move: {str(e)}")
    except Exception as e:
        logger.error("Unexpected error in /game/%s/move: %s", game_id, e, exc_info=True)
        raise HTTPException(status_code=500, detail=f"An unexpected server error occurred while processing the move: {str(e)}")

    if not move_was_effective:
        message_for_client = "Move was not effective; board state unchanged by slide."

    payload = _state_payload(game_id, session)
    if payload["progress"] == core.GameProgressState.GAME_WON:
        message_for_client = "Congratulations! You won!"
    elif payload["progress"] == core.GameProgressState.GAME_OVER:
        message_for_client = "Game Over. No more valid moves."

    return MoveResponseData(
        **payload,
        move_was_effective=move_was_effective,
        message=message_for_client
    )


@app.post("/game/{game_id}/preview", response_model=MovePreviewData, summary="Preview a Move")
@limiter.limit(settings.rate_limit)
async def preview_move(request: Request, game_id: str, request_data: MoveRequestData):
    """Simulates a move without changing the game. No tile is spawned."""
    session = _find_session(game_id)
    preview = session.engine.preview_move(request_data.direction)
    return MovePreviewData(
        board=[list(row) for row in preview.grid],
        score=preview.score,
        changed=preview.changed,
        score_delta=preview.score_delta,
        new_achievements=list(preview.new_achievements),
        merged_numbers=list(preview.merged_numbers),
    )


@app.post("/game/{game_id}/undo", response_model=UndoResponseData, summary="Undo the Last Move")
@limiter.limit(settings.rate_limit)
async def undo_move(request: Request, game_id: str):
    """Restores the state before the last effective move, if there is one."""
    session = _find_session(game_id)
    undone = session.engine.undo()
    return UndoResponseData(
        **_state_payload(game_id, session),
        undone=undone,
        message=None if undone else "Cannot undo",
    )


@app.post("/game/{game_id}/restart", response_model=GameStateData, summary="Restart a Game")
@limiter.limit(settings.rate_limit)
async def restart_game(request: Request, game_id: str):
    """Starts over on the same board size, clearing score, achievements and history."""
    session = _find_session(game_id)
    session.engine.init_game()
    return GameStateData(**_state_payload(game_id, session))


@app.delete("/game/{game_id}", status_code=204, summary="Discard a Game")
@limiter.limit(settings.rate_limit)
async def delete_game(request: Request, game_id: str):
    try:
        store.delete(game_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Game {game_id} not found.")
    return Response(status_code=204)


@app.get("/preview-grid", response_model=PreviewGridData, summary="Decorative Menu Board")
@limiter.limit(settings.rate_limit)
async def preview_grid(request: Request, size: Optional[int] = None):
    """Cosmetic board; `size` defaults to the server's default board size."""
    if size is None:
        size = settings.default_size
    if not core.MIN_BOARD_SIZE <= size <= core.MAX_BOARD_SIZE:
        raise HTTPException(
            status_code=400,
            detail=f"Board size must be between {core.MIN_BOARD_SIZE} and {core.MAX_BOARD_SIZE}."
        )
    board = core.generate_preview_grid(size, random.Random())
    return PreviewGridData(board=board, board_size=size)
