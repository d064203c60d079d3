from typing import List, Literal, Optional
from pydantic import BaseModel, Field


class GameTypeOut(BaseModel):
    id: str
    name: str
    description: str
    modes: List[str]
    icon: str


class GameTypesOut(BaseModel):
    gameTypes: List[GameTypeOut]


class RegionOut(BaseModel):
    id: str
    name: str


class RegionsOut(BaseModel):
    regions: List[RegionOut]


class QuestionOut(BaseModel):
    id: str
    prompt: str
    promptType: str = "text"
    options: List[str] = Field(default_factory=list)
    correctAnswer: str
    mode: Optional[str] = None


class QuestionsOut(BaseModel):
    questions: List[QuestionOut]


class SessionCreateIn(BaseModel):
    gameType: str = Field(..., min_length=1)
    gameMode: Literal["solo", "multiplayer"] = "solo"
    difficulty: Literal["easy", "medium", "hard"] = "medium"
    regionFilter: Optional[str] = None


class SessionCreatedOut(BaseModel):
    sessionId: str
    message: str = "Game session started"


class AnswerIn(BaseModel):
    questionIndex: Optional[int] = None
    question: Optional[dict] = None
    userAnswer: Optional[str] = None
    correctAnswer: Optional[str] = None
    isCorrect: bool = False
    timeMs: int = Field(0, ge=0)


class SessionCompleteIn(BaseModel):
    score: int = Field(..., ge=0)
    xpEarned: int = Field(0, ge=0)
    correctCount: Optional[int] = Field(None, ge=0)
    averageTimeMs: int = Field(0, ge=0)
    answers: List[AnswerIn] = Field(default_factory=list)


class SessionOut(BaseModel):
    id: str
    gameType: str
    gameMode: str
    difficulty: Optional[str] = None
    regionFilter: Optional[str] = None
    score: int
    xpEarned: int
    correctCount: int
    averageTimeMs: int
    totalQuestions: int
    createdAt: str
    completedAt: Optional[str] = None


class SessionAnswerOut(BaseModel):
    questionIndex: int
    question: Optional[dict] = None
    userAnswer: Optional[str] = None
    correctAnswer: Optional[str] = None
    isCorrect: bool
    timeMs: int


class SessionDetailOut(BaseModel):
    session: SessionOut
    answers: List[SessionAnswerOut]
