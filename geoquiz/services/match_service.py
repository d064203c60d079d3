from typing import Dict, List, Optional

from .typing import to_iso
from ..core.logging import get_logger
from ..domain.model import AnswerRecord, Match, MatchStatus, Question
from ..repositories.match_repository import MatchRepository

logger = get_logger(__name__)


class NotFriends(Exception):
    pass


class MatchService:
    """Match registry: REST invite flow plus the store the coordinator writes to."""

    def __init__(self, repo: MatchRepository) -> None:
        self.repo = repo

    # --- invite flow ---

    def challenge(self, challenger_id: str, opponent_id: str, game_type: str) -> int:
        if str(challenger_id) == str(opponent_id) or not self.repo.are_friends(challenger_id, opponent_id):
            raise NotFriends("Can only challenge friends to matches")
        match_id = self.repo.create_match(challenger_id, opponent_id, game_type)
        logger.info("Challenge %s created for %s", match_id, game_type, extra={"match": match_id, "user": challenger_id})
        return match_id

    def list_invites(self, user_id: str) -> List[dict]:
        rows = self.repo.list_pending_for(user_id)
        names = self.repo.usernames(sorted({str(r["challenger_id"]) for r in rows}))
        return [
            {
                "matchId": int(r["id"]),
                "challengerId": str(r["challenger_id"]),
                "challengerName": names.get(str(r["challenger_id"])),
                "gameType": r["game_type"],
                "createdAt": to_iso(r.get("created_at")),
            }
            for r in rows
        ]

    def accept(self, match_id: int, user_id: str) -> bool:
        row = self.repo.get_match(match_id)
        if not row or str(row["opponent_id"]) != str(user_id) or row["status"] != MatchStatus.PENDING.value:
            return False
        self.repo.set_status(match_id, MatchStatus.ACTIVE.value)
        return True

    def decline(self, match_id: int, user_id: str) -> bool:
        row = self.repo.get_match(match_id)
        if not row or str(row["opponent_id"]) != str(user_id):
            return False
        changed = self.repo.update_match(
            match_id, {"status": MatchStatus.CANCELLED.value}, only_status=MatchStatus.PENDING.value
        )
        return changed > 0

    def details(self, match_id: int, user_id: str) -> Optional[dict]:
        match = self.get_match(match_id)
        if match is None or not match.has_player(user_id):
            return None
        answers = []
        if match.status == MatchStatus.COMPLETED:
            answers = [
                {
                    "userId": str(a["user_id"]),
                    "questionIndex": a["question_index"],
                    "question": a.get("question_data"),
                    "userAnswer": a.get("user_answer"),
                    "correctAnswer": a.get("correct_answer"),
                    "isCorrect": bool(a.get("is_correct")),
                    "timeMs": a.get("time_ms") or 0,
                }
                for a in self.repo.list_answers(match_id)
            ]
        return {"match": match_to_dict(match), "answers": answers}

    # --- coordinator store ---

    def get_match(self, match_id: int) -> Optional[Match]:
        row = self.repo.get_match(match_id)
        if not row:
            return None
        names = self.repo.usernames([str(row["challenger_id"]), str(row["opponent_id"])])
        row = {
            **row,
            "challenger_name": names.get(str(row["challenger_id"])),
            "opponent_name": names.get(str(row["opponent_id"])),
        }
        return Match.from_row(row)

    def mark_active(self, match_id: int) -> None:
        row = self.repo.get_match(match_id)
        if row and row["status"] == MatchStatus.PENDING.value:
            self.repo.set_status(match_id, MatchStatus.ACTIVE.value)

    def record_answer(self, match_id: int, user_id: str, question: Question, record: AnswerRecord) -> None:
        self.repo.insert_answer(
            {
                "match_id": match_id,
                "user_id": user_id,
                "question_index": record.question_index,
                "question_data": question.to_dict(),
                "user_answer": record.user_answer,
                "correct_answer": record.correct_answer,
                "is_correct": record.is_correct,
                "time_ms": record.time_ms,
            }
        )

    def complete_match(self, match_id: int, winner_id: Optional[str], scores: Dict[str, int]) -> None:
        row = self.repo.get_match(match_id)
        if not row:
            return
        self.repo.set_status(
            match_id,
            MatchStatus.COMPLETED.value,
            winner_id=winner_id,
            challenger_score=scores.get(str(row["challenger_id"]), 0),
            opponent_score=scores.get(str(row["opponent_id"]), 0),
        )

    def abandon_match(self, match_id: int, winner_id: str) -> None:
        self.repo.set_status(match_id, MatchStatus.COMPLETED.value, winner_id=winner_id)

    def cancel_match(self, match_id: int) -> None:
        self.repo.set_status(match_id, MatchStatus.CANCELLED.value)


def match_to_dict(match: Match) -> dict:
    return {
        "id": match.id,
        "challengerId": match.challenger_id,
        "opponentId": match.opponent_id,
        "challengerName": match.challenger_name,
        "opponentName": match.opponent_name,
        "gameType": match.game_type,
        "status": match.status.value,
        "winnerId": match.winner_id,
        "challengerScore": match.challenger_score,
        "opponentScore": match.opponent_score,
    }
