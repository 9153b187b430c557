import json
import os
import socket
import subprocess
import sys
import time
from pathlib import Path
from urllib import error as urllib_error
from urllib import request as urllib_request

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[2]
SERVICE_DIR = PROJECT_ROOT / "service"


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture(scope="session")
def game_server(tmp_path_factory):
    port = _free_port()
    env = os.environ.copy()
    env["PORT"] = str(port)
    env["GAME_STORE_PATH"] = str(tmp_path_factory.mktemp("store") / "game_store.json")
    env.pop("FLASK_DEBUG", None)
    proc = subprocess.Popen(
        [sys.executable, str(SERVICE_DIR / "game_server.py")],
        cwd=str(PROJECT_ROOT),
        env=env,
    )

    try:
        for _ in range(40):
            if proc.poll() is not None:
                raise RuntimeError("game server exited before responding")
            try:
                with socket.create_connection(("127.0.0.1", port), timeout=0.5):
                    break
            except OSError:
                time.sleep(0.25)
        else:
            raise RuntimeError("game server did not accept connections in time")

        yield f"http://127.0.0.1:{port}"
    finally:
        proc.terminate()
        try:
            proc.wait(timeout=5)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.wait(timeout=5)


def _call(url: str, method: str = "GET", payload=None):
    data = json.dumps(payload).encode("utf-8") if payload is not None else None
    req = urllib_request.Request(
        url=url,
        data=data,
        method=method,
        headers={"Content-Type": "application/json"},
    )
    try:
        with urllib_request.urlopen(req, timeout=10) as response:
            return response.status, json.loads(response.read().decode("utf-8"))
    except urllib_error.HTTPError as exc:
        return exc.code, json.loads(exc.read().decode("utf-8"))


def _tile_count(grid) -> int:
    return sum(1 for row in grid for cell in row if cell)


def test_server_boots(game_server):
    status, payload = _call(f"{game_server}/best-score")
    assert status == 200
    assert payload == {"best_score": 0}


# Play until the board locks up, then check the game was recorded.
def test_play_until_game_over_records_stats(game_server):
    status, created = _call(f"{game_server}/games", "POST", {})
    assert status == 201
    game_id = created["game_id"]
    state = created["state"]

    max_turns = 5000
    for _ in range(max_turns):
        if state["game_over"]:
            break
        if state["won"] and not state["continue_after_win"]:
            _, body = _call(f"{game_server}/games/{game_id}/continue", "POST", {})
            state = body["state"]
            continue

        _, simulated = _call(
            f"{game_server}/simulate",
            "POST",
            {"grid": state["grid"], "direction": "up"},
        )
        options = simulated["valid_moves"]
        assert options, f"Board reported playable but no valid moves: {state['grid']}"

        tiles_before = _tile_count(state["grid"])
        status, body = _call(
            f"{game_server}/games/{game_id}/move",
            "POST",
            {"direction": options[0]},
        )
        assert status == 200
        assert body["moved"], f"Valid move {options[0]} was not applied: {state['grid']}"
        assert body["score_delta"] % 2 == 0
        assert _tile_count(body["state"]["grid"]) <= tiles_before + 1
        state = body["state"]
    else:
        pytest.fail(f"Game did not reach a terminal state within {max_turns} moves")

    assert state["game_over"], "Expected game over"
    assert all(cell != 0 for row in state["grid"] for cell in row), "Board not full at game over"

    status, rejected = _call(f"{game_server}/games/{game_id}/move", "POST", {"direction": "left"})
    assert status == 200
    assert rejected["moved"] is False

    _, stats = _call(f"{game_server}/stats")
    assert stats["gamesPlayed"] == 1
    assert stats["totalMoves"] == state["moves"]
    assert stats["bestScore"] == state["score"]

    _, best = _call(f"{game_server}/best-score")
    assert best["best_score"] == state["score"]
