import json
import logging
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

import config
from sanitize import clean_text

logger = logging.getLogger(__name__)


class Question(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    text: str
    choices: Tuple[str, ...] = Field(min_length=2)
    correct_index: int = Field(alias="correctIndex")
    time_limit_sec: float = Field(default=config.DEFAULT_TIME_LIMIT, alias="timeLimitSec", gt=0)

    @field_validator('text')
    @classmethod
    def clean_question_text(cls, v: str) -> str:
        v = clean_text(v, config.MAX_QUESTION_TEXT_LENGTH)
        if not v:
            raise ValueError('Question text must not be empty')
        return v

    @field_validator('choices')
    @classmethod
    def clean_choices(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        return tuple(clean_text(c, config.MAX_CHOICE_LENGTH) for c in v)

    @model_validator(mode='after')
    def check_correct_index(self):
        if not 0 <= self.correct_index < len(self.choices):
            raise ValueError('correctIndex must point at one of the choices')
        return self


class Quiz(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    questions: Tuple[Question, ...] = Field(min_length=1)

    @field_validator('id', mode='before')
    @classmethod
    def coerce_id(cls, v) -> str:
        return str(v).strip()

    @field_validator('title')
    @classmethod
    def clean_title(cls, v: str) -> str:
        return clean_text(v, config.MAX_QUIZ_TITLE_LENGTH) or "Untitled"

    def summary(self) -> dict:
        return {"id": self.id, "title": self.title, "questionCount": len(self.questions)}


class QuizCatalog:
    """Read-only store of quiz definitions loaded from a JSON file."""

    def __init__(self, path: str):
        self.path = path
        self.quizzes: Dict[str, Quiz] = {}

    def reload(self) -> int:
        """Re-read the quiz file. Returns the number of quizzes loaded."""
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            logger.warning("Quiz file %s not found, catalog is empty", self.path)
            data = {}
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Could not read quiz file %s: %s", self.path, e)
            data = {}
        return self.load_data(data)

    def load_data(self, data) -> int:
        raw_quizzes = data.get("quizzes") if isinstance(data, dict) else None
        if not isinstance(raw_quizzes, list):
            raw_quizzes = []

        quizzes: Dict[str, Quiz] = {}
        for raw in raw_quizzes:
            try:
                quiz = Quiz.model_validate(raw)
            except ValidationError as e:
                logger.warning("Skipping invalid quiz %r: %s",
                               raw.get("id") if isinstance(raw, dict) else raw, e.errors()[:3])
                continue
            if quiz.id in quizzes:
                logger.warning("Skipping duplicate quiz id %s", quiz.id)
                continue
            quizzes[quiz.id] = quiz

        self.quizzes = quizzes
        logger.info("Loaded %d quizzes", len(quizzes))
        return len(quizzes)

    def list_quizzes(self) -> List[dict]:
        return [quiz.summary() for quiz in self.quizzes.values()]

    def get_quiz(self, quiz_id) -> Optional[Quiz]:
        if quiz_id is None:
            return None
        return self.quizzes.get(str(quiz_id))


quiz_catalog = QuizCatalog(config.QUIZ_FILE)
