import logging
import threading
import uuid
from typing import Dict, Optional, Tuple

from flask import Flask, jsonify, request
from flask_cors import CORS

from board_rules import (
    Direction,
    InvalidDirectionError,
    InvalidGridError,
    as_grid,
    can_move,
    has_won,
    move,
    valid_moves,
)
from game_config import GameConfig, ServerConfig
from game_session import GameSession
from leaderboard import DEFAULT_LIMIT, Leaderboard
from storage import GameRecords, JsonFileStore, StorageService
from user_profile import ProfileService, UsernameError

logger = logging.getLogger(__name__)

SERVER_CONFIG = ServerConfig.from_env()
GAME_CONFIG = GameConfig.from_env()

app = Flask(__name__)
CORS(app, resources={r"/*": {"origins": SERVER_CONFIG.allowed_origins}})
_storage: Optional[StorageService] = None
_storage_lock = threading.Lock()
_sessions: Dict[str, GameSession] = {}
# Held around every read or change of _sessions and the sessions in it.
_lock = threading.Lock()


def get_storage() -> StorageService:
    global _storage
    with _storage_lock:
        if _storage is None:
            _storage = StorageService(JsonFileStore(SERVER_CONFIG.store_path))
            logger.info("Using store at %s", SERVER_CONFIG.store_path)
        return _storage


def get_records() -> GameRecords:
    return GameRecords(get_storage())


def get_profiles() -> ProfileService:
    return ProfileService(get_storage())


def _error(message: str, status: int, **extra):
    body = {"error": message}
    body.update(extra)
    return jsonify(body), status


def _json_object() -> Optional[Dict]:
    """Request body as a dict, {} when absent or unparseable, None when not an object."""
    payload = request.get_json(force=True, silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        return None
    return payload


def _lookup(game_id: str) -> Tuple[Optional[GameSession], Optional[tuple]]:
    session = _sessions.pop(game_id, None)
    if session is None:
        return None, _error(f"Unknown game: {game_id}", 404)
    # Re-insert so the least recently used game is evicted first.
    _sessions[game_id] = session
    return session, None


def _session_response(game_id: str, session: GameSession, status: int = 200, **extra):
    body = {"game_id": game_id, "state": session.to_dict()}
    body.update(extra)
    return jsonify(body), status


@app.post("/games")
def create_game():
    game_id = uuid.uuid4().hex
    session = GameSession(GAME_CONFIG, records=get_records())
    with _lock:
        while len(_sessions) >= SERVER_CONFIG.max_sessions:
            evicted = next(iter(_sessions))
            del _sessions[evicted]
            logger.info("Evicted game %s", evicted)
        _sessions[game_id] = session
        logger.info("Started game %s", game_id)
        return _session_response(game_id, session, 201)


@app.get("/games/<game_id>")
def get_game(game_id: str):
    with _lock:
        session, failure = _lookup(game_id)
        if failure:
            return failure
        return _session_response(game_id, session)


@app.delete("/games/<game_id>")
def delete_game(game_id: str):
    with _lock:
        if _sessions.pop(game_id, None) is None:
            return _error(f"Unknown game: {game_id}", 404)
    logger.info("Closed game %s", game_id)
    return "", 204


@app.post("/games/<game_id>/move")
def move_game(game_id: str):
    payload = _json_object()
    if payload is None:
        return _error("Payload must be a JSON object", 400)

    with _lock:
        session, failure = _lookup(game_id)
        if failure:
            return failure

        direction = payload.get("direction")
        if direction is None:
            return _error("Payload must include 'direction' key", 400)

        try:
            result = session.move(direction)
        except InvalidDirectionError as exc:
            return _error(str(exc), 400)

        return _session_response(
            game_id,
            session,
            moved=result is not None,
            score_delta=result.score if result is not None else 0,
        )


@app.post("/games/<game_id>/undo")
def undo_game(game_id: str):
    with _lock:
        session, failure = _lookup(game_id)
        if failure:
            return failure
        if not session.undo():
            return _error("Nothing to undo", 409)
        return _session_response(game_id, session)


@app.post("/games/<game_id>/continue")
def continue_game(game_id: str):
    with _lock:
        session, failure = _lookup(game_id)
        if failure:
            return failure
        session.continue_game()
        return _session_response(game_id, session)


@app.post("/games/<game_id>/restart")
def restart_game(game_id: str):
    with _lock:
        session, failure = _lookup(game_id)
        if failure:
            return failure
        session.restart()
        return _session_response(game_id, session)


@app.post("/simulate")
def simulate():
    payload = _json_object()
    if payload is None:
        return _error("Payload must be a JSON object", 400)
    grid = payload.get("grid")
    if grid is None:
        return _error("Payload must include 'grid' key", 400)

    try:
        board = as_grid(grid)
        direction = Direction.parse(payload.get("direction", ""))
    except (InvalidGridError, InvalidDirectionError) as exc:
        return _error(str(exc), 400)

    result = move(board, direction)
    return jsonify(
        {
            "grid": result.grid.tolist(),
            "score": result.score,
            "moved": result.moved,
            "valid_moves": [d.value for d in valid_moves(board)],
            "can_move": can_move(result.grid),
            "has_won": has_won(result.grid, GAME_CONFIG.win_tile),
        }
    )


@app.get("/best-score")
def best_score():
    return jsonify({"best_score": get_records().get_best_score()})


@app.get("/stats")
def stats():
    current = get_records().get_stats()
    body = current.to_dict()
    body["winRate"] = current.win_rate_percentage
    body["averageMovesPerGame"] = current.average_moves_per_game
    return jsonify(body)


@app.get("/profile")
def get_profile():
    profile = get_profiles().get_profile()
    if profile is None:
        return _error("No profile set up", 404)
    return jsonify(profile.to_dict())


@app.put("/profile")
def put_profile():
    payload = _json_object()
    if payload is None:
        return _error("Payload must be a JSON object", 400)
    username = payload.get("username")
    if not isinstance(username, str):
        return _error("Payload must include 'username' string", 400)

    try:
        profile = get_profiles().update_username(username)
    except UsernameError as exc:
        return _error(str(exc), 400, errors=exc.errors)
    return jsonify(profile.to_dict())


def _leaderboard() -> Leaderboard:
    return Leaderboard(get_records(), get_profiles())


@app.get("/leaderboard/<category>")
def leaderboard(category: str):
    try:
        limit = int(request.args.get("limit", DEFAULT_LIMIT))
        entries = _leaderboard().get_leaderboard(category, limit)
    except ValueError as exc:
        return _error(str(exc), 400)
    return jsonify({"category": category, "entries": entries})


@app.get("/leaderboard/<category>/rank")
def leaderboard_rank(category: str):
    try:
        rank = _leaderboard().get_current_user_rank(category)
    except ValueError as exc:
        return _error(str(exc), 400)
    if rank is None:
        return _error("Current user is not ranked", 404)
    return jsonify(rank)


if __name__ == "__main__":
    logging.basicConfig(level=SERVER_CONFIG.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    # Use 0.0.0.0 so a frontend can reach it from another process on the same machine.
    app.run(host="0.0.0.0", port=SERVER_CONFIG.port, debug=SERVER_CONFIG.debug)
