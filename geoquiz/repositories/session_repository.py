from datetime import datetime, timezone
from typing import List, Optional, Tuple
from supabase import Client


class SessionRepository:
    def __init__(self, client: Client) -> None:
        self.client = client

    def create_session(
        self,
        user_id: str,
        game_type: str,
        game_mode: str,
        difficulty: str,
        region_filter: Optional[str],
    ) -> str:
        res = (
            self.client.table("game_sessions")
            .insert(
                {
                    "user_id": user_id,
                    "game_type": game_type,
                    "game_mode": game_mode,
                    "difficulty_level": difficulty,
                    "region_filter": region_filter,
                }
            )
            .execute()
        )
        if not res.data or not isinstance(res.data, list) or "id" not in res.data[0]:
            raise RuntimeError("Insert game_sessions failed: no returned id")
        return str(res.data[0]["id"])

    def get_session(self, session_id: str, user_id: str) -> Optional[dict]:
        res = (
            self.client.table("game_sessions")
            .select("*")
            .eq("id", session_id)
            .eq("user_id", user_id)
            .execute()
        )
        return res.data[0] if res.data else None

    def get_session_with_answers(self, session_id: str, user_id: str) -> Optional[Tuple[dict, List[dict]]]:
        session = self.get_session(session_id, user_id)
        if session is None:
            return None
        a_res = (
            self.client.table("game_answers")
            .select("*")
            .eq("session_id", session_id)
            .order("question_index", desc=False)
            .execute()
        )
        return session, (a_res.data or [])

    def complete_session(
        self,
        session_id: str,
        score: int,
        xp_earned: int,
        correct_count: int,
        average_time_ms: int,
        answers: List[dict],
    ) -> None:
        self.client.table("game_sessions").update(
            {
                "score": score,
                "xp_earned": xp_earned,
                "correct_count": correct_count,
                "average_time_ms": average_time_ms,
                "total_questions": len(answers),
                "completed_at": datetime.now(timezone.utc).isoformat(),
            }
        ).eq("id", session_id).execute()

        rows = [
            {
                "session_id": session_id,
                "question_index": a.get("questionIndex", idx),
                "question_data": a.get("question"),
                "user_answer": a.get("userAnswer"),
                "correct_answer": a.get("correctAnswer"),
                "is_correct": bool(a.get("isCorrect")),
                "time_ms": a.get("timeMs"),
            }
            for idx, a in enumerate(answers)
        ]
        if rows:
            self.client.table("game_answers").insert(rows).execute()
