from typing import List, Optional

from .typing import to_iso
from ..repositories.session_repository import SessionRepository


class SessionService:
    def __init__(self, repo: SessionRepository) -> None:
        self.repo = repo

    def start_session(
        self,
        user_id: str,
        game_type: str,
        game_mode: str = "solo",
        difficulty: str = "medium",
        region_filter: Optional[str] = None,
    ) -> str:
        return self.repo.create_session(user_id, game_type, game_mode, difficulty, region_filter)

    def complete_session(
        self,
        session_id: str,
        user_id: str,
        score: int,
        xp_earned: int,
        correct_count: Optional[int],
        average_time_ms: int,
        answers: List[dict],
    ) -> bool:
        """Returns False when the session is not the user's."""
        if self.repo.get_session(session_id, user_id) is None:
            return False
        if correct_count is None:
            correct_count = sum(1 for a in answers if a.get("isCorrect"))
        self.repo.complete_session(session_id, score, xp_earned, correct_count, average_time_ms, answers)
        return True

    def get_session(self, session_id: str, user_id: str) -> Optional[dict]:
        res = self.repo.get_session_with_answers(session_id, user_id)
        if not res:
            return None
        session, answers = res
        completed = session.get("completed_at")
        return {
            "session": {
                "id": str(session["id"]),
                "gameType": session["game_type"],
                "gameMode": session.get("game_mode", "solo"),
                "difficulty": session.get("difficulty_level"),
                "regionFilter": session.get("region_filter"),
                "score": session.get("score") or 0,
                "xpEarned": session.get("xp_earned") or 0,
                "correctCount": session.get("correct_count") or 0,
                "averageTimeMs": session.get("average_time_ms") or 0,
                "totalQuestions": session.get("total_questions") or 0,
                "createdAt": to_iso(session.get("created_at")),
                "completedAt": to_iso(completed) if completed else None,
            },
            "answers": [
                {
                    "questionIndex": a["question_index"],
                    "question": a.get("question_data"),
                    "userAnswer": a.get("user_answer"),
                    "correctAnswer": a.get("correct_answer"),
                    "isCorrect": bool(a.get("is_correct")),
                    "timeMs": a.get("time_ms") or 0,
                }
                for a in answers
            ],
        }
