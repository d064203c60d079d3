"""Solo session state and its transitions.

SessionState is immutable; every transition takes the current state and
returns a new one. A transition that does not apply (wrong phase, answer
already recorded, result already showing) returns the state it was given,
unchanged, so callers can tell ignored events apart with an identity check.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Sequence, Tuple

from geoquiz.core.config import settings
from geoquiz.domain.model import AnswerRecord, Difficulty, InputMode, Question, SessionSummary
from geoquiz.domain.scoring import check_answer, score_answer, summarize


class Phase(str, Enum):
    MODE_SELECT = "mode-select"
    LOADING = "loading"
    PLAYING = "playing"
    FINISHED = "finished"
    ERROR = "error"


@dataclass(frozen=True)
class GameConfig:
    game_type: str
    input_mode: InputMode = InputMode.MULTIPLE_CHOICE
    difficulty: Difficulty = Difficulty.MEDIUM
    region: Optional[str] = None
    direction: Optional[str] = None
    count: int = settings.DEFAULT_QUESTION_COUNT

    @property
    def duration(self) -> int:
        return settings.duration_for(Difficulty(self.difficulty).value)

    def query_params(self) -> dict:
        params = {
            "type": self.game_type,
            "count": self.count,
            "difficulty": Difficulty(self.difficulty).value,
        }
        if self.region:
            params["region"] = self.region
        mode = self.direction or InputMode(self.input_mode).value
        if mode:
            params["mode"] = mode
        return params

    def session_params(self) -> dict:
        return {
            "gameType": self.game_type,
            "gameMode": "solo",
            "difficulty": Difficulty(self.difficulty).value,
            "regionFilter": self.region,
        }


@dataclass(frozen=True)
class SessionState:
    phase: Phase = Phase.MODE_SELECT
    config: Optional[GameConfig] = None
    questions: Tuple[Question, ...] = ()
    current_index: int = 0
    time_left: int = 0
    score: int = 0
    streak: int = 0
    answers: Tuple[AnswerRecord, ...] = ()
    paused: bool = False
    offline_paused: bool = False
    show_result: bool = False
    selected_answer: Optional[str] = None
    quit_pending: bool = False
    error: Optional[str] = None
    session_id: Optional[str] = None
    finalized: bool = False

    @property
    def duration(self) -> int:
        return self.config.duration if self.config else 0

    @property
    def total_questions(self) -> int:
        return len(self.questions)

    @property
    def current_question(self) -> Optional[Question]:
        if 0 <= self.current_index < len(self.questions):
            return self.questions[self.current_index]
        return None

    @property
    def is_last_question(self) -> bool:
        return self.current_index >= len(self.questions) - 1

    @property
    def awaiting_answer(self) -> bool:
        return (
            self.phase == Phase.PLAYING
            and not self.show_result
            and len(self.answers) == self.current_index
        )

    @property
    def summary(self) -> SessionSummary:
        return summarize(self.answers, self.score)


def can_tick(state: SessionState) -> bool:
    return (
        state.awaiting_answer
        and not state.paused
        and not state.quit_pending
        and state.time_left > 0
    )


# --- loading -----------------------------------------------------------

def select_mode(state: SessionState, config: GameConfig) -> SessionState:
    if state.phase != Phase.MODE_SELECT:
        return state
    return SessionState(phase=Phase.LOADING, config=config)


def restart(state: SessionState) -> SessionState:
    """Fresh session with the same configuration, back in loading."""
    if state.config is None:
        return state
    return SessionState(phase=Phase.LOADING, config=state.config)


def back_to_menu(state: SessionState) -> SessionState:
    if state.phase not in (Phase.ERROR, Phase.FINISHED):
        return state
    return SessionState()


def questions_loaded(state: SessionState, questions: Sequence[Question]) -> SessionState:
    if state.phase != Phase.LOADING:
        return state
    if not questions:
        return load_failed(state, "No questions available for this game type. Please try another game.")
    return replace(
        state,
        phase=Phase.PLAYING,
        questions=tuple(questions),
        current_index=0,
        time_left=state.duration,
        error=None,
    )


def load_failed(state: SessionState, message: str) -> SessionState:
    if state.phase != Phase.LOADING:
        return state
    return replace(state, phase=Phase.ERROR, error=message)


def session_opened(state: SessionState, session_id: str) -> SessionState:
    if state.phase in (Phase.FINISHED, Phase.MODE_SELECT) or state.session_id is not None:
        return state
    return replace(state, session_id=session_id)


# --- playing -----------------------------------------------------------

def tick(state: SessionState) -> SessionState:
    if not can_tick(state):
        return state
    remaining = state.time_left - 1
    if remaining <= 0:
        return record_timeout(replace(state, time_left=0))
    return replace(state, time_left=remaining)


def record_timeout(state: SessionState) -> SessionState:
    if not state.awaiting_answer:
        return state
    question = state.current_question
    record = AnswerRecord(
        question_index=state.current_index,
        user_answer=None,
        correct_answer=question.correct_answer,
        is_correct=False,
        time_ms=state.duration * 1000,
    )
    return replace(
        state,
        time_left=0,
        streak=0,
        answers=state.answers + (record,),
        show_result=True,
    )


def submit_answer(state: SessionState, answer: str) -> SessionState:
    if (
        not state.awaiting_answer
        or state.selected_answer is not None
        or state.paused
        or state.quit_pending
    ):
        return state

    question = state.current_question
    correct = check_answer(question, answer, state.config.input_mode)
    result = score_answer(correct, state.time_left, state.streak)
    record = AnswerRecord(
        question_index=state.current_index,
        user_answer=answer,
        correct_answer=question.correct_answer,
        is_correct=correct,
        time_ms=max(0, state.duration - state.time_left) * 1000,
    )
    return replace(
        state,
        score=state.score + result.points_awarded,
        streak=result.new_streak,
        answers=state.answers + (record,),
        selected_answer=answer,
        show_result=True,
    )


def advance(state: SessionState, expected_index: Optional[int] = None) -> SessionState:
    """Leave the result screen for question `expected_index`.

    Repeated deliveries for the same question fall through the guards, so the
    session reaches `finished` (and `finalized`) exactly once. An open quit
    confirmation holds the result screen until it is cancelled.
    """
    if state.phase != Phase.PLAYING or not state.show_result or state.quit_pending:
        return state
    if expected_index is not None and expected_index != state.current_index:
        return state
    if len(state.answers) != state.current_index + 1:
        return state

    if state.is_last_question:
        return replace(
            state,
            phase=Phase.FINISHED,
            show_result=False,
            paused=False,
            finalized=True,
        )

    return replace(
        state,
        current_index=state.current_index + 1,
        selected_answer=None,
        show_result=False,
        time_left=state.duration,
    )


def pause(state: SessionState) -> SessionState:
    if state.phase != Phase.PLAYING or state.paused or state.show_result:
        return state
    return replace(state, paused=True)


def resume(state: SessionState) -> SessionState:
    if state.phase != Phase.PLAYING or not state.paused:
        return state
    if state.offline_paused or state.quit_pending:
        return state
    return replace(state, paused=False)


def connectivity_lost(state: SessionState) -> SessionState:
    if state.phase != Phase.PLAYING or state.offline_paused:
        return state
    return replace(state, paused=True, offline_paused=True)


def connectivity_restored(state: SessionState) -> SessionState:
    # stays paused; the player resumes by hand
    if not state.offline_paused:
        return state
    return replace(state, offline_paused=False)


def request_quit(state: SessionState) -> SessionState:
    if state.phase != Phase.PLAYING or state.quit_pending:
        return state
    return replace(state, quit_pending=True)


def cancel_quit(state: SessionState) -> SessionState:
    if not state.quit_pending:
        return state
    return replace(state, quit_pending=False)
