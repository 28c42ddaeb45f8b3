"""Centralized configuration — all env vars in one place."""
import os
import logging
from dotenv import load_dotenv

load_dotenv()

_BACKEND_DIR = os.path.dirname(os.path.abspath(__file__))

# --- Server ---
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "5000"))
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "")  # empty = same origin only

# --- Content ---
QUIZ_FILE = os.getenv("QUIZ_FILE", os.path.join(_BACKEND_DIR, "quizzes.json"))
PUBLIC_DIR = os.getenv("PUBLIC_DIR", os.path.join(_BACKEND_DIR, "public"))
DEFAULT_TIME_LIMIT = 20  # seconds, when a question omits timeLimitSec
MAX_QUIZ_TITLE_LENGTH = 200
MAX_QUESTION_TEXT_LENGTH = 1000
MAX_CHOICE_LENGTH = 200

# --- HTTP Rate Limiting ---
HTTP_RATE_LIMIT_WINDOW = 60  # seconds
HTTP_RATE_LIMIT_MAX_REQUESTS = 120  # per IP per window

# --- WebSocket Security ---
WS_RATE_LIMIT_PER_SEC = 10  # max messages per second per client
MAX_WS_MESSAGE_SIZE = 4096  # bytes

# --- Game ---
PIN_LENGTH = 6
MAX_PIN_ATTEMPTS = 20
MAX_NAME_LENGTH = 16
LEADERBOARD_TOP_SIZE = 5
PODIUM_SIZE = 3

# --- Logging ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("LOG_FILE", "")  # empty = stdout only


def setup_logging():
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if LOG_FILE:
        handlers.append(logging.FileHandler(LOG_FILE))
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )
