"""
Async WebSocket integration tests using a real uvicorn server.

Covers timer behaviour the sync TestClient can't observe well:
- Reveal timer expiry notifying room and host
- Explicit reveal cancelling the timer
- Host disconnect cancelling the timer

Requires: pytest-asyncio, websockets
"""
import sys
import os
import json
import asyncio

import pytest
import pytest_asyncio
import websockets

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import uvicorn
from main import app, _rate_limit_store
from quiz_catalog import quiz_catalog
from socket_manager import session_manager


# ---------------------------------------------------------------------------
# Fixtures & helpers
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(autouse=True)
async def server_port():
    """Start a real uvicorn server on a random port, yield the port, shut down."""
    _rate_limit_store.clear()
    saved_origins = session_manager.allowed_origins
    session_manager.allowed_origins = []

    config = uvicorn.Config(app, host="127.0.0.1", port=0, log_level="warning")
    server = uvicorn.Server(config)
    serve_task = asyncio.create_task(server.serve())

    # Wait for server to start
    while not server.started:
        await asyncio.sleep(0.01)

    # Lifespan has loaded the bundled catalog; swap in test quizzes
    quiz_catalog.load_data({"quizzes": [
        {
            "id": "quick",
            "title": "Async Test Quiz",
            "questions": [
                {"text": "Q1?", "choices": ["A", "B"], "correctIndex": 1, "timeLimitSec": 1},
                {"text": "Q2?", "choices": ["A", "B"], "correctIndex": 0, "timeLimitSec": 1},
            ],
        },
    ]})

    # Extract the OS-assigned port
    port = server.servers[0].sockets[0].getsockname()[1]
    yield port

    # Teardown
    server.should_exit = True
    await serve_task
    session_manager.registry.clear()
    session_manager.allowed_origins = saved_origins


def ws_url(port):
    return f"ws://127.0.0.1:{port}/ws"


async def send_json(ws, msg):
    """Send a JSON message over a websockets connection."""
    await ws.send(json.dumps(msg))


async def recv_until(ws, msg_type, timeout=10.0, max_messages=100):
    """Drain messages until we get the expected type, with timeout."""
    deadline = asyncio.get_event_loop().time() + timeout
    for _ in range(max_messages):
        remaining = deadline - asyncio.get_event_loop().time()
        if remaining <= 0:
            raise TimeoutError(f"Never received {msg_type} within {timeout}s")
        data = await asyncio.wait_for(ws.recv(), timeout=remaining)
        msg = json.loads(data)
        if msg.get("type") == msg_type:
            return msg
    raise TimeoutError(f"Never received {msg_type} after {max_messages} messages")


async def drain(ws, duration):
    """Collect every message that arrives within `duration` seconds."""
    collected = []
    deadline = asyncio.get_event_loop().time() + duration
    while True:
        remaining = deadline - asyncio.get_event_loop().time()
        if remaining <= 0:
            return collected
        try:
            data = await asyncio.wait_for(ws.recv(), timeout=remaining)
        except asyncio.TimeoutError:
            return collected
        collected.append(json.loads(data))


async def open_game(port, host_ws, player_ws, name="Alice"):
    """Create a game, join one player, start the game and the first question."""
    await recv_until(host_ws, "CONNECTED")
    await send_json(host_ws, {"type": "CREATE_GAME", "quiz_id": "quick"})
    pin = (await recv_until(host_ws, "GAME_CREATED"))["pin"]

    await recv_until(player_ws, "CONNECTED")
    await send_json(player_ws, {"type": "JOIN", "pin": pin, "name": name})
    await recv_until(player_ws, "JOINED")

    await send_json(host_ws, {"type": "START_GAME", "pin": pin})
    await send_json(host_ws, {"type": "START_QUESTION", "pin": pin})
    await recv_until(host_ws, "HOST_QUESTION")
    await recv_until(player_ws, "PLAYER_QUESTION")
    return pin


# ---------------------------------------------------------------------------
# Timer Expiry Tests
# ---------------------------------------------------------------------------

class TestTimerExpiry:
    @pytest.mark.asyncio
    async def test_time_up_and_reveal_ready(self, server_port):
        async with websockets.connect(ws_url(server_port)) as host_ws:
            async with websockets.connect(ws_url(server_port)) as p_ws:
                pin = await open_game(server_port, host_ws, p_ws)

                time_up = await recv_until(p_ws, "TIME_UP", timeout=5)
                assert time_up["index"] == 1
                ready = await recv_until(host_ws, "REVEAL_READY", timeout=5)
                assert ready["pin"] == pin

                # Phase stays open until the host reveals
                await send_json(host_ws, {"type": "REVEAL", "pin": pin})
                reveal = await recv_until(p_ws, "QUESTION_REVEAL")
                assert reveal["correct_index"] == 1

    @pytest.mark.asyncio
    async def test_time_up_sent_once(self, server_port):
        async with websockets.connect(ws_url(server_port)) as host_ws:
            async with websockets.connect(ws_url(server_port)) as p_ws:
                await open_game(server_port, host_ws, p_ws)
                messages = await drain(p_ws, 2.5)
                assert [m["type"] for m in messages].count("TIME_UP") == 1


class TestTimerCancellation:
    @pytest.mark.asyncio
    async def test_reveal_before_timeout_cancels_timer(self, server_port):
        async with websockets.connect(ws_url(server_port)) as host_ws:
            async with websockets.connect(ws_url(server_port)) as p_ws:
                pin = await open_game(server_port, host_ws, p_ws)
                await send_json(p_ws, {"type": "ANSWER", "pin": pin, "choice_index": 1})
                result = await recv_until(p_ws, "ANSWER_RESULT")
                assert result["correct"] is True

                await send_json(host_ws, {"type": "REVEAL", "pin": pin})
                await recv_until(p_ws, "LEADERBOARD_UPDATE")

                player_msgs = await drain(p_ws, 1.5)
                host_msgs = await drain(host_ws, 0.1)
                assert "TIME_UP" not in [m["type"] for m in player_msgs]
                assert "REVEAL_READY" not in [m["type"] for m in host_msgs]

    @pytest.mark.asyncio
    async def test_host_disconnect_cancels_timer(self, server_port):
        async with websockets.connect(ws_url(server_port)) as p_ws:
            async with websockets.connect(ws_url(server_port)) as host_ws:
                pin = await open_game(server_port, host_ws, p_ws)
            ended = await recv_until(p_ws, "GAME_ENDED")
            assert ended["message"] == "Host disconnected."
            assert session_manager.registry.get(pin) is None

            later = await drain(p_ws, 1.5)
            assert later == []
