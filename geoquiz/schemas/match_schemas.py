from typing import List, Optional
from pydantic import BaseModel, Field


class ChallengeIn(BaseModel):
    opponentId: str = Field(..., min_length=1)
    gameType: str = Field(..., min_length=1)


class ChallengeOut(BaseModel):
    matchId: int
    message: str = "Challenge sent"


class InviteOut(BaseModel):
    matchId: int
    challengerId: str
    challengerName: Optional[str] = None
    gameType: str
    createdAt: str


class InvitesOut(BaseModel):
    invites: List[InviteOut]


class MatchOut(BaseModel):
    id: int
    challengerId: str
    opponentId: str
    challengerName: Optional[str] = None
    opponentName: Optional[str] = None
    gameType: str
    status: str
    winnerId: Optional[str] = None
    challengerScore: int = 0
    opponentScore: int = 0


class MatchAnswerOut(BaseModel):
    userId: str
    questionIndex: int
    question: Optional[dict] = None
    userAnswer: Optional[str] = None
    correctAnswer: Optional[str] = None
    isCorrect: bool
    timeMs: int


class MatchDetailOut(BaseModel):
    match: MatchOut
    answers: List[MatchAnswerOut]
