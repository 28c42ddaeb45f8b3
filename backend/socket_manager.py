from fastapi import WebSocket, WebSocketDisconnect
from typing import Dict, List, Optional
import json
import time
import uuid
import asyncio
import logging

import config
from broadcast import BroadcastGateway, WebSocketGateway
from errors import GameError, QuizNotFound, RoomNotFound
from game_session import QUESTION, AnswerResult, GameSession
from quiz_catalog import QuizCatalog, quiz_catalog
from session_registry import SessionRegistry

logger = logging.getLogger(__name__)


class SessionManager:
    """Routes host and player commands to game sessions and owns their reveal timers.

    Every state change for a room happens under that room's lock, so a command
    never observes a half-applied transition from another command or a timer.
    """

    def __init__(self, catalog: QuizCatalog, gateway: Optional[BroadcastGateway] = None,
                 clock=time.monotonic):
        self.registry = SessionRegistry(catalog)
        self.gateway = gateway if gateway is not None else WebSocketGateway()
        self.clock = clock
        self.allowed_origins: List[str] = []
        # WS rate limiting: client_id -> list of timestamps
        self.msg_timestamps: Dict[str, list] = {}

    def shutdown(self):
        """Cancel every reveal timer and drop all rooms."""
        for session in self.registry.sessions():
            self.gateway.close_room(session.pin)
        self.registry.clear()
        self.msg_timestamps.clear()

    # --- transport ---

    async def connect(self, websocket: WebSocket):
        origin = websocket.headers.get("origin", "")
        if self.allowed_origins and origin not in self.allowed_origins:
            logger.warning("Rejected WebSocket from unauthorized origin: %s", origin)
            await websocket.close(code=1008)
            return

        await websocket.accept()
        client_id = uuid.uuid4().hex
        self.gateway.register(client_id, websocket)
        await websocket.send_json({"type": "CONNECTED", "client_id": client_id})

        try:
            while True:
                data = await websocket.receive_text()

                if len(data) > config.MAX_WS_MESSAGE_SIZE:
                    await websocket.send_json({"type": "ERROR", "message": "Message too large"})
                    continue

                now = time.time()
                timestamps = self.msg_timestamps.setdefault(client_id, [])
                timestamps[:] = [t for t in timestamps if now - t < 1.0]
                if len(timestamps) >= config.WS_RATE_LIMIT_PER_SEC:
                    await websocket.send_json({"type": "ERROR", "message": "Too many messages"})
                    continue
                timestamps.append(now)

                try:
                    message = json.loads(data)
                except json.JSONDecodeError:
                    logger.warning("Malformed JSON from client %s: %s", client_id, data[:100])
                    await websocket.send_json({"type": "ERROR", "message": "Invalid message format"})
                    continue
                if not isinstance(message, dict):
                    await websocket.send_json({"type": "ERROR", "message": "Invalid message format"})
                    continue

                await self.handle_message(client_id, message)
        except WebSocketDisconnect:
            logger.info("Client %s disconnected", client_id)
        except Exception:
            logger.exception("WebSocket error for client %s", client_id)
        finally:
            self.gateway.unregister(client_id)
            self.msg_timestamps.pop(client_id, None)
            await self.disconnect(client_id)

    async def handle_message(self, client_id: str, message: dict):
        msg_type = message.get("type")
        pin = message.get("pin")

        if msg_type == "CREATE_GAME":
            await self.create_game(client_id, message.get("quiz_id"))
        elif msg_type == "START_GAME":
            await self.start_game(client_id, pin)
        elif msg_type == "START_QUESTION":
            await self.start_question(client_id, pin)
        elif msg_type == "REVEAL":
            await self.reveal(client_id, pin)
        elif msg_type == "JOIN":
            await self.join(client_id, pin, message.get("name"))
        elif msg_type == "ANSWER":
            await self.answer(client_id, pin, message.get("choice_index"))
        else:
            logger.debug("Ignoring unknown message type %r from %s", msg_type, client_id)

    # --- helpers ---

    def _is_live(self, session: GameSession) -> bool:
        return self.registry.get(session.pin) is session

    def _hosted_session(self, client_id: str, pin) -> Optional[GameSession]:
        session = self.registry.get(pin)
        if session is None or not session.is_host(client_id):
            logger.debug("Ignoring host command from %s for game %s", client_id, pin)
            return None
        return session

    def _cancel_timer(self, session: GameSession):
        if session.reveal_task:
            session.reveal_task.cancel()
            session.reveal_task = None

    def _arm_timer(self, session: GameSession, delay: float):
        self._cancel_timer(session)
        session.timer_generation += 1
        session.reveal_task = asyncio.create_task(
            self._reveal_timer(session, session.timer_generation, delay)
        )

    async def _reveal_timer(self, session: GameSession, generation: int, delay: float):
        """Wait out the question's time limit, then announce that time is up."""
        await asyncio.sleep(delay)
        await self.time_up(session, generation)

    async def _end_session(self, session: GameSession, reason: str):
        async with session.lock:
            if not self._is_live(session):
                return
            self._cancel_timer(session)
            self.registry.remove(session.pin)
            await self.gateway.send_to_room(session.pin, {"type": "GAME_ENDED", "message": reason})
            self.gateway.close_room(session.pin)
        logger.info("Game %s ended: %s", session.pin, reason)

    # --- host commands ---

    async def create_game(self, host_id: str, quiz_id) -> Optional[GameSession]:
        previous = self.registry.hosted_by(host_id)
        if previous is not None:
            await self._end_session(previous, "Host started a new game.")

        try:
            session = self.registry.create_session(quiz_id, host_id)
        except QuizNotFound as e:
            logger.info("Create game rejected for %s: %s", host_id, e.message)
            await self.gateway.send_to_player(host_id, {"type": "HOST_ERROR", "message": e.message})
            return None

        self.gateway.join_room(session.pin, host_id)
        await self.gateway.send_to_host(session, {
            "type": "GAME_CREATED",
            "pin": session.pin,
            "title": session.quiz.title,
            "question_count": session.total_questions,
        })
        await self.gateway.send_to_room(session.pin, {"type": "LOBBY_UPDATE", "players": []})
        return session

    async def start_game(self, host_id: str, pin):
        session = self._hosted_session(host_id, pin)
        if session is None:
            return
        async with session.lock:
            if not self._is_live(session) or not session.start_game():
                return
            logger.info("Game %s started with %d players", session.pin, len(session.players))
            await self.gateway.send_to_room(session.pin, {
                "type": "GAME_STARTED",
                "title": session.quiz.title,
                "question_count": session.total_questions,
            })

    async def start_question(self, host_id: str, pin):
        session = self._hosted_session(host_id, pin)
        if session is None:
            return
        async with session.lock:
            if not self._is_live(session) or not session.can_start_question():
                return
            self._cancel_timer(session)
            question = session.next_question(self.clock())

            if question is None:
                results = session.final_results()
                self.registry.remove(session.pin)
                await self.gateway.send_to_room(session.pin, {"type": "GAME_FINAL", **results})
                self.gateway.close_room(session.pin)
                logger.info("Game %s finished, winner: %s", session.pin,
                            results["podium"][0]["name"] if results["podium"] else "-")
                return

            self._arm_timer(session, question.time_limit_sec)
            await self.gateway.send_to_host(session, session.host_question_view())
            await self.gateway.send_to_room(session.pin, session.player_question_view())

    async def time_up(self, session: GameSession, generation: int):
        """Handle a reveal timer firing. Stale timers are ignored."""
        async with session.lock:
            if (not self._is_live(session) or session.phase != QUESTION
                    or session.timer_generation != generation):
                logger.debug("Ignoring stale reveal timer for game %s", session.pin)
                return
            session.reveal_task = None
            await self.gateway.send_to_room(session.pin, {
                "type": "TIME_UP",
                "index": session.current_index + 1,
            })
            await self.gateway.send_to_host(session, {"type": "REVEAL_READY", "pin": session.pin})

    async def reveal(self, host_id: str, pin):
        session = self._hosted_session(host_id, pin)
        if session is None:
            return
        async with session.lock:
            if not self._is_live(session) or session.phase != QUESTION:
                return
            self._cancel_timer(session)
            session.reveal()
            board = session.leaderboard()
            await self.gateway.send_to_room(session.pin, {
                "type": "QUESTION_REVEAL",
                "index": session.current_index + 1,
                "correct_index": session.current_question.correct_index,
            })
            await self.gateway.send_to_room(session.pin, {
                "type": "LEADERBOARD_UPDATE",
                "full": board,
                "top": board[:config.LEADERBOARD_TOP_SIZE],
            })

    # --- player commands ---

    async def join(self, client_id: str, pin, raw_name):
        try:
            session = self.registry.get(pin)
            if session is None:
                raise RoomNotFound()
            async with session.lock:
                if not self._is_live(session):
                    raise RoomNotFound()
                if client_id in session.players:
                    logger.debug("Client %s already joined game %s", client_id, session.pin)
                    return None
                player = session.add_player(client_id, raw_name)
                self.gateway.join_room(session.pin, client_id)
                logger.info("Player '%s' joined game %s", player.name, session.pin)
                await self.gateway.send_to_room(session.pin, {
                    "type": "LOBBY_UPDATE",
                    "players": session.player_names(),
                })
                await self.gateway.send_to_player(client_id, {
                    "type": "JOINED",
                    "pin": session.pin,
                    "name": player.name,
                    "title": session.quiz.title,
                })
                return player
        except GameError as e:
            logger.info("Join to game %s rejected: %s", pin, e.message)
            await self.gateway.send_to_player(client_id, {"type": "PLAYER_ERROR", "message": e.message})
            return None

    async def answer(self, client_id: str, pin, choice_index) -> Optional[AnswerResult]:
        session = self.registry.get(pin)
        if session is None:
            return None
        async with session.lock:
            if not self._is_live(session):
                return None
            result = session.submit_answer(client_id, choice_index, self.clock())
            if result is None:
                logger.debug("Ignoring answer from %s in game %s", client_id, session.pin)
                return None
            await self.gateway.send_to_player(client_id, result.to_message())
            return result

    async def disconnect(self, client_id: str):
        """Host leaving ends its game; a player leaving only drops that player."""
        for session in self.registry.sessions():
            if session.is_host(client_id):
                await self._end_session(session, "Host disconnected.")
                continue
            if client_id not in session.players:
                continue
            async with session.lock:
                if not self._is_live(session):
                    continue
                player = session.remove_player(client_id)
                if player is None:
                    continue
                logger.info("Player '%s' left game %s", player.name, session.pin)
                await self.gateway.send_to_room(session.pin, {
                    "type": "LOBBY_UPDATE",
                    "players": session.player_names(),
                })


session_manager = SessionManager(quiz_catalog)
