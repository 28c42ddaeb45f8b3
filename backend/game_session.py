from dataclasses import dataclass
from typing import Dict, List, Optional, Set
import asyncio

import config
import scoring
from errors import InvalidName, NameTaken
from quiz_catalog import Question, Quiz
from sanitize import sanitize_text

# Phases
LOBBY = "lobby"
IN_GAME = "inGame"
QUESTION = "question"
REVEAL = "reveal"
FINAL = "final"


def parse_choice(value) -> Optional[int]:
    """Read a submitted choice as an integer index.

    Accepts ints, integral floats (``1.0``) and numeric strings (``"1"``).
    Anything else, including booleans, gives None.
    """
    # bool is an int subclass, but True is not a choice
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


@dataclass
class Player:
    identity: str
    name: str
    score: int = 0
    streak: int = 0


@dataclass
class AnswerResult:
    correct: bool
    gained: int
    streak_bonus: int
    streak: int
    total: int

    def to_message(self) -> dict:
        return {
            "type": "ANSWER_RESULT",
            "correct": self.correct,
            "gained": self.gained,
            "streak_bonus": self.streak_bonus,
            "streak": self.streak,
            "total": self.total,
        }


class GameSession:
    """State of one room. Transitions here are synchronous and do no I/O.

    Host authorization, the room lock, timers and message delivery are handled
    by SessionManager.
    """

    def __init__(self, pin: str, host_id: str, quiz: Quiz):
        self.pin = pin
        self.host_id = host_id
        self.quiz = quiz
        self.phase = LOBBY
        self.current_index = -1
        self.question_start: float = 0
        self.answered: Set[str] = set()
        self.players: Dict[str, Player] = {}  # identity -> Player, in join order
        self.reveal_task: Optional[asyncio.Task] = None
        self.timer_generation = 0
        self.lock = asyncio.Lock()

    @property
    def total_questions(self) -> int:
        return len(self.quiz.questions)

    @property
    def current_question(self) -> Optional[Question]:
        if 0 <= self.current_index < self.total_questions:
            return self.quiz.questions[self.current_index]
        return None

    def is_host(self, identity: str) -> bool:
        return identity == self.host_id

    # --- host transitions ---

    def start_game(self) -> bool:
        if self.phase != LOBBY:
            return False
        self.phase = IN_GAME
        return True

    def can_start_question(self) -> bool:
        return self.phase in (IN_GAME, QUESTION, REVEAL)

    def next_question(self, now: float) -> Optional[Question]:
        """Advance to the next question, or to FINAL when the quiz is exhausted (returns None)."""
        self.current_index += 1
        question = self.current_question
        if question is None:
            self.phase = FINAL
            return None
        self.phase = QUESTION
        self.question_start = now
        self.answered = set()
        return question

    def reveal(self) -> bool:
        if self.phase != QUESTION:
            return False
        self.phase = REVEAL
        return True

    # --- players ---

    def add_player(self, identity: str, raw_name) -> Player:
        name = sanitize_text(raw_name, config.MAX_NAME_LENGTH)
        if not name:
            raise InvalidName()
        lowered = name.lower()
        if any(p.name.lower() == lowered for p in self.players.values()):
            raise NameTaken()
        player = Player(identity=identity, name=name)
        self.players[identity] = player
        return player

    def remove_player(self, identity: str) -> Optional[Player]:
        return self.players.pop(identity, None)

    def player_names(self) -> List[dict]:
        return [{"name": p.name} for p in self.players.values()]

    def submit_answer(self, identity: str, choice_index, now: float) -> Optional[AnswerResult]:
        """Score the first answer of a player for the current question.

        Returns None when the answer has no effect: wrong phase, unknown
        player, or a repeat answer.
        """
        if self.phase != QUESTION:
            return None
        player = self.players.get(identity)
        if player is None or identity in self.answered:
            return None
        question = self.current_question
        if question is None:
            return None

        self.answered.add(identity)
        elapsed_ms = (now - self.question_start) * 1000
        correct = parse_choice(choice_index) == question.correct_index
        gained = scoring.points(correct, elapsed_ms, question.time_limit_sec)

        bonus = 0
        if correct:
            player.streak += 1
            bonus = scoring.streak_bonus(player.streak)
            player.score += gained + bonus
        else:
            player.streak = 0

        return AnswerResult(correct=correct, gained=gained, streak_bonus=bonus,
                            streak=player.streak, total=player.score)

    # --- views ---

    def host_question_view(self) -> dict:
        question = self.current_question
        return {
            "type": "HOST_QUESTION",
            "index": self.current_index + 1,
            "total": self.total_questions,
            "text": question.text,
            "choices": list(question.choices),
            "correct_index": question.correct_index,
            "time_limit_sec": question.time_limit_sec,
        }

    def player_question_view(self) -> dict:
        question = self.current_question
        return {
            "type": "PLAYER_QUESTION",
            "index": self.current_index + 1,
            "total": self.total_questions,
            "text": question.text,
            "choices": list(question.choices),
            "time_limit_sec": question.time_limit_sec,
        }

    def leaderboard(self) -> List[dict]:
        # sorted() is stable, so equal scores keep join order
        ranked = sorted(self.players.values(), key=lambda p: p.score, reverse=True)
        return [{"rank": i + 1, "name": p.name, "score": p.score} for i, p in enumerate(ranked)]

    def final_results(self) -> dict:
        board = self.leaderboard()
        return {"podium": board[:config.PODIUM_SIZE], "leaderboard": board}
