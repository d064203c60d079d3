from datetime import datetime, timezone
from typing import Dict, List, Optional
from supabase import Client


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class MatchRepository:
    def __init__(self, client: Client) -> None:
        self.client = client

    def are_friends(self, user_id: str, other_id: str) -> bool:
        res = (
            self.client.table("friendships")
            .select("user_id,friend_id")
            .in_("user_id", [user_id, other_id])
            .in_("friend_id", [user_id, other_id])
            .eq("status", "accepted")
            .execute()
        )
        return any(
            {str(row["user_id"]), str(row["friend_id"])} == {str(user_id), str(other_id)}
            for row in (res.data or [])
        )

    def usernames(self, user_ids: List[str]) -> Dict[str, str]:
        if not user_ids:
            return {}
        res = self.client.table("users").select("id,username").in_("id", user_ids).execute()
        return {str(row["id"]): row["username"] for row in (res.data or [])}

    def create_match(self, challenger_id: str, opponent_id: str, game_type: str) -> int:
        res = (
            self.client.table("multiplayer_matches")
            .insert(
                {
                    "challenger_id": challenger_id,
                    "opponent_id": opponent_id,
                    "game_type": game_type,
                    "status": "pending",
                }
            )
            .execute()
        )
        if not res.data or not isinstance(res.data, list) or "id" not in res.data[0]:
            raise RuntimeError("Insert multiplayer_matches failed: no returned id")
        return int(res.data[0]["id"])

    def get_match(self, match_id: int) -> Optional[dict]:
        res = self.client.table("multiplayer_matches").select("*").eq("id", match_id).execute()
        return res.data[0] if res.data else None

    def list_pending_for(self, opponent_id: str) -> List[dict]:
        res = (
            self.client.table("multiplayer_matches")
            .select("*")
            .eq("opponent_id", opponent_id)
            .eq("status", "pending")
            .order("created_at", desc=True)
            .execute()
        )
        return res.data or []

    def list_answers(self, match_id: int) -> List[dict]:
        res = (
            self.client.table("multiplayer_answers")
            .select("*")
            .eq("match_id", match_id)
            .order("question_index", desc=False)
            .execute()
        )
        return res.data or []

    def update_match(self, match_id: int, values: dict, *, only_status: Optional[str] = None) -> int:
        """Applies `values`; returns the number of rows changed."""
        query = self.client.table("multiplayer_matches").update(values).eq("id", match_id)
        if only_status is not None:
            query = query.eq("status", only_status)
        res = query.execute()
        return len(res.data or [])

    def set_status(self, match_id: int, status: str, **extra) -> None:
        values = {"status": status, **extra}
        if status == "active":
            values.setdefault("started_at", _now())
        if status in ("completed", "cancelled"):
            values.setdefault("completed_at", _now())
        self.update_match(match_id, values)

    def insert_answer(self, row: dict) -> None:
        self.client.table("multiplayer_answers").insert(row).execute()
