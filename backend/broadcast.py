from fastapi import WebSocket
from typing import Dict, List, Set
import logging

logger = logging.getLogger(__name__)


class BroadcastGateway:
    """Delivery capability used by the game: one connection, a room's host, or a whole room."""

    def register(self, identity: str, websocket: WebSocket):
        raise NotImplementedError

    def unregister(self, identity: str):
        raise NotImplementedError

    async def send_to_host(self, session, message: dict):
        raise NotImplementedError

    async def send_to_player(self, identity: str, message: dict):
        raise NotImplementedError

    async def send_to_room(self, pin: str, message: dict):
        raise NotImplementedError

    def join_room(self, pin: str, identity: str):
        raise NotImplementedError

    def close_room(self, pin: str):
        raise NotImplementedError


class WebSocketGateway(BroadcastGateway):
    def __init__(self):
        self.connections: Dict[str, WebSocket] = {}  # identity -> ws
        self.rooms: Dict[str, Set[str]] = {}  # pin -> member identities (host included)

    def register(self, identity: str, websocket: WebSocket):
        self.connections[identity] = websocket

    def unregister(self, identity: str):
        self.connections.pop(identity, None)
        for members in self.rooms.values():
            members.discard(identity)

    def join_room(self, pin: str, identity: str):
        self.rooms.setdefault(pin, set()).add(identity)

    def close_room(self, pin: str):
        self.rooms.pop(pin, None)

    def members(self, pin: str) -> List[str]:
        return list(self.rooms.get(pin, ()))

    async def _send(self, identity: str, message: dict) -> bool:
        ws = self.connections.get(identity)
        if ws is None:
            return False
        try:
            await ws.send_json(message)
            return True
        except Exception:
            # The socket loop's disconnect handling cleans up game state
            logger.debug("Dropping dead connection %s", identity)
            self.unregister(identity)
            return False

    async def send_to_host(self, session, message: dict):
        await self._send(session.host_id, message)

    async def send_to_player(self, identity: str, message: dict):
        await self._send(identity, message)

    async def send_to_room(self, pin: str, message: dict):
        for identity in self.members(pin):
            await self._send(identity, message)
