from typing import Dict, List, Optional
import logging
import random

import config
from errors import QuizNotFound
from game_session import GameSession
from quiz_catalog import QuizCatalog

logger = logging.getLogger(__name__)


class SessionRegistry:
    """All live game rooms, keyed by PIN."""

    def __init__(self, catalog: QuizCatalog):
        self.catalog = catalog
        self.rooms: Dict[str, GameSession] = {}

    def generate_pin(self) -> str:
        """Generate a numeric PIN that no live room is using."""
        low = 10 ** (config.PIN_LENGTH - 1)
        high = 10 ** config.PIN_LENGTH - 1
        for _ in range(config.MAX_PIN_ATTEMPTS):
            pin = str(random.randint(low, high))
            if pin not in self.rooms:
                return pin
        raise RuntimeError("Failed to generate unique game PIN")

    def create_session(self, quiz_id, host_id: str) -> GameSession:
        quiz = self.catalog.get_quiz(quiz_id)
        if quiz is None:
            raise QuizNotFound()
        session = GameSession(self.generate_pin(), host_id, quiz)
        self.rooms[session.pin] = session
        logger.info("Game %s created for quiz '%s' (%d questions)",
                    session.pin, quiz.title, session.total_questions)
        return session

    def get(self, pin) -> Optional[GameSession]:
        if pin is None:
            return None
        return self.rooms.get(str(pin).strip())

    def hosted_by(self, host_id: str) -> Optional[GameSession]:
        for session in self.rooms.values():
            if session.host_id == host_id:
                return session
        return None

    def sessions(self) -> List[GameSession]:
        return list(self.rooms.values())

    def remove(self, pin) -> Optional[GameSession]:
        session = self.rooms.pop(str(pin), None)
        if session and session.reveal_task:
            session.reveal_task.cancel()
            session.reveal_task = None
        return session

    def clear(self):
        for pin in list(self.rooms):
            self.remove(pin)
