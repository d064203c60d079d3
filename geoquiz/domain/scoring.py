"""Scoring policy shared by solo sessions and the multiplayer coordinator.

Solo sessions score with score_answer, the coordinator with score_answer_ms;
both share one formula so solo and head-to-head scores stay comparable on
leaderboards.
"""

import math
from dataclasses import dataclass
from typing import Iterable, Optional

from .model import AnswerRecord, InputMode, Question, SessionSummary
from .similarity import is_match

BASE_POINTS = 100
SPEED_BONUS_PER_SECOND = 10
STREAK_BONUS = 20


@dataclass(frozen=True)
class ScoreResult:
    points_awarded: int
    new_streak: int


def _award(is_correct: bool, speed_bonus: int, streak_before: int) -> ScoreResult:
    if not is_correct:
        return ScoreResult(points_awarded=0, new_streak=0)
    points = BASE_POINTS + speed_bonus + streak_before * STREAK_BONUS
    return ScoreResult(points_awarded=points, new_streak=streak_before + 1)


def score_answer(is_correct: bool, time_left_seconds: float, streak_before: int) -> ScoreResult:
    time_left = max(0.0, float(time_left_seconds))
    return _award(is_correct, math.floor(time_left * SPEED_BONUS_PER_SECOND), streak_before)


def score_answer_ms(is_correct: bool, duration_ms: int, time_ms: int, streak_before: int) -> ScoreResult:
    """score_answer for a reported latency, with the bonus counted in whole
    tenths of a second left so no float rounding can drop a point."""
    left_ms = max(0, int(duration_ms) - max(0, int(time_ms)))
    return _award(is_correct, left_ms * SPEED_BONUS_PER_SECOND // 1000, streak_before)


def _round_half_up(numerator: int, denominator: int) -> int:
    return (2 * numerator + denominator) // (2 * denominator)


def xp_for_score(score: int) -> int:
    # round(score * 0.1) with halves rounded up
    return _round_half_up(max(0, score), 10)


def summarize(answers: Iterable[AnswerRecord], score: int) -> SessionSummary:
    answers = tuple(answers)
    correct_count = sum(1 for a in answers if a.is_correct)
    if answers:
        average_time_ms = _round_half_up(sum(a.time_ms for a in answers), len(answers))
    else:
        average_time_ms = 0
    return SessionSummary(
        score=score,
        xp_earned=xp_for_score(score),
        correct_count=correct_count,
        average_time_ms=average_time_ms,
        answers=answers,
    )


def check_answer(question: Question, answer: Optional[str], input_mode: InputMode = InputMode.MULTIPLE_CHOICE) -> bool:
    """Option equality for choice questions, fuzzy match for typed ones."""
    if answer is None:
        return False
    if InputMode(input_mode) == InputMode.TYPING or question.is_free_text:
        return is_match(answer, question.correct_answer)
    return answer == question.correct_answer
