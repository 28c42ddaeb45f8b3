"""Answer scoring: speed-weighted points plus a streak bonus.

Both functions are pure so they can be exercised without sockets or timers.
"""
import math

BASE_POINTS = 200
SPEED_POINTS = 1000
STREAK_BONUS_STEP = 50


def points(correct: bool, elapsed_ms: float, time_limit_sec: float) -> int:
    """Points for one answer, in [200, 1200] when correct and 0 otherwise.

    Elapsed time is clamped to the question's time limit, so an instant answer
    earns 1200 and one at (or after) the deadline earns 200. Halves round up.
    """
    if not correct:
        return 0
    total_ms = time_limit_sec * 1000
    if total_ms <= 0:
        raise ValueError("time_limit_sec must be positive")
    clamped = max(0, min(elapsed_ms, total_ms))
    frac = 1 - clamped / total_ms  # 1.0 instant -> 0.0 full time used
    return math.floor(BASE_POINTS + SPEED_POINTS * frac + 0.5)


def streak_bonus(streak: int) -> int:
    """Bonus for a correct answer given the streak count *after* that answer."""
    if streak < 2:
        return 0
    return STREAK_BONUS_STEP * (streak - 1)
