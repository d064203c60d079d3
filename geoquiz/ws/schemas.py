from pydantic import BaseModel, Field, TypeAdapter
from typing import Annotated, Dict, Literal, Optional, Union


class QuestionPayload(BaseModel):
    """A question as players see it: no correct answer."""
    id: str = ""
    prompt: str
    promptType: str = "text"
    options: list[str] = Field(default_factory=list)
    mode: Optional[str] = None


# --- client -> coordinator ---


class JoinMatch(BaseModel):
    type: Literal["join_match"] = "join_match"
    matchId: int


class SubmitAnswer(BaseModel):
    type: Literal["submit_answer"] = "submit_answer"
    matchId: int
    questionIndex: int = Field(..., ge=0)
    # null means the local countdown ran out
    answer: Optional[str] = None
    timeMs: int = Field(..., ge=0)


class LeaveMatch(BaseModel):
    type: Literal["leave_match"] = "leave_match"
    matchId: int


class Ping(BaseModel):
    type: Literal["ping"] = "ping"


ClientMessage = Annotated[
    Union[JoinMatch, SubmitAnswer, LeaveMatch, Ping],
    Field(discriminator="type"),
]
CLIENT_MESSAGE_TYPES = {"join_match", "submit_answer", "leave_match", "ping"}


# --- coordinator -> client ---


class MatchJoined(BaseModel):
    type: Literal["match_joined"] = "match_joined"
    matchId: int
    totalQuestions: int


class WaitingForOpponent(BaseModel):
    type: Literal["waiting_for_opponent"] = "waiting_for_opponent"


class MatchStart(BaseModel):
    type: Literal["match_start"] = "match_start"
    question: QuestionPayload
    questionIndex: int
    totalQuestions: int
    durationMs: int


class OpponentAnswered(BaseModel):
    type: Literal["opponent_answered"] = "opponent_answered"
    questionIndex: int


class PlayerResult(BaseModel):
    answer: Optional[str] = None
    isCorrect: bool
    score: int = 0
    timeMs: int = 0


class QuestionResults(BaseModel):
    type: Literal["question_results"] = "question_results"
    questionIndex: int
    correctAnswer: str
    results: Dict[str, PlayerResult]
    scores: Dict[str, int]


class NextQuestion(BaseModel):
    type: Literal["next_question"] = "next_question"
    question: QuestionPayload
    questionIndex: int
    durationMs: int


class MatchEnd(BaseModel):
    type: Literal["match_end"] = "match_end"
    winnerId: Optional[str] = None
    isTie: bool
    scores: Dict[str, int]


class OpponentLeft(BaseModel):
    type: Literal["opponent_left"] = "opponent_left"


class ErrorMessage(BaseModel):
    type: Literal["error"] = "error"
    message: str


class Pong(BaseModel):
    type: Literal["pong"] = "pong"


ServerMessage = Annotated[
    Union[
        MatchJoined,
        WaitingForOpponent,
        MatchStart,
        OpponentAnswered,
        QuestionResults,
        NextQuestion,
        MatchEnd,
        OpponentLeft,
        ErrorMessage,
        Pong,
    ],
    Field(discriminator="type"),
]

_client_adapter: TypeAdapter = TypeAdapter(ClientMessage)
_server_adapter: TypeAdapter = TypeAdapter(ServerMessage)


def parse_client_message(data: dict) -> BaseModel:
    return _client_adapter.validate_python(data)


def parse_server_message(data: dict) -> BaseModel:
    return _server_adapter.validate_python(data)


class FinishedMatchSnapshot(BaseModel):
    type: Literal["finished_match"] = "finished_match"
    matchId: int
    gameType: str
    startedAt: int | None = None
    endedAt: int
    questions: list[dict]
    answers: list[dict]
    scores: Dict[str, int]
    winnerId: Optional[str] = None
    outcome: Literal["completed", "abandoned"] = "completed"
