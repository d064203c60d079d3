from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class InputMode(str, Enum):
    MULTIPLE_CHOICE = "multiple-choice"
    TYPING = "typing"


class MatchStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


@dataclass(frozen=True)
class Question:
    id: str
    prompt: str
    correct_answer: str
    options: Tuple[str, ...] = ()
    prompt_type: str = "text"
    mode: Optional[str] = None

    @property
    def is_free_text(self) -> bool:
        return not self.options

    @classmethod
    def from_dict(cls, data: dict) -> "Question":
        return cls(
            id=str(data.get("id", "")),
            prompt=data["prompt"],
            correct_answer=data["correctAnswer"],
            options=tuple(data.get("options") or ()),
            prompt_type=data.get("promptType", "text"),
            mode=data.get("mode"),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "prompt": self.prompt,
            "promptType": self.prompt_type,
            "options": list(self.options),
            "correctAnswer": self.correct_answer,
            "mode": self.mode,
        }

    def sanitized(self) -> dict:
        """Wire form for players: everything except the answer."""
        data = self.to_dict()
        data.pop("correctAnswer")
        return data


@dataclass(frozen=True)
class AnswerRecord:
    question_index: int
    user_answer: Optional[str]
    correct_answer: str
    is_correct: bool
    time_ms: int

    @property
    def timed_out(self) -> bool:
        return self.user_answer is None

    def to_dict(self) -> dict:
        return {
            "questionIndex": self.question_index,
            "userAnswer": self.user_answer,
            "correctAnswer": self.correct_answer,
            "isCorrect": self.is_correct,
            "timeMs": self.time_ms,
        }


@dataclass(frozen=True)
class SessionSummary:
    score: int
    xp_earned: int
    correct_count: int
    average_time_ms: int
    answers: Tuple[AnswerRecord, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "xpEarned": self.xp_earned,
            "correctCount": self.correct_count,
            "averageTimeMs": self.average_time_ms,
            "answers": [a.to_dict() for a in self.answers],
        }


@dataclass(frozen=True)
class Match:
    id: int
    challenger_id: str
    opponent_id: str
    game_type: str
    status: MatchStatus
    winner_id: Optional[str] = None
    challenger_score: int = 0
    opponent_score: int = 0
    challenger_name: Optional[str] = None
    opponent_name: Optional[str] = None

    @property
    def player_ids(self) -> Tuple[str, str]:
        return (self.challenger_id, self.opponent_id)

    def has_player(self, user_id: str) -> bool:
        return str(user_id) in self.player_ids

    def other_player(self, user_id: str) -> str:
        return self.opponent_id if str(user_id) == self.challenger_id else self.challenger_id

    @classmethod
    def from_row(cls, row: dict) -> "Match":
        winner = row.get("winner_id")
        return cls(
            id=int(row["id"]),
            challenger_id=str(row["challenger_id"]),
            opponent_id=str(row["opponent_id"]),
            game_type=row["game_type"],
            status=MatchStatus(row["status"]),
            winner_id=str(winner) if winner is not None else None,
            challenger_score=int(row.get("challenger_score") or 0),
            opponent_score=int(row.get("opponent_score") or 0),
            challenger_name=row.get("challenger_name"),
            opponent_name=row.get("opponent_name"),
        )
