from typing import List, Optional
from supabase import Client


class QuestionRepository:
    def __init__(self, client: Client) -> None:
        self.client = client

    def list_countries(self) -> List[dict]:
        # the whole table: region games still draw distractors from every continent
        res = self.client.table("countries").select("id,name,code,continent,capital,flag_url").execute()
        return res.data or []

    def list_continents(self) -> List[str]:
        res = self.client.table("countries").select("continent").execute()
        names = {row["continent"] for row in (res.data or []) if row.get("continent")}
        return sorted(names)

    def list_trivia(self, region: Optional[str] = None, difficulty: Optional[str] = None) -> List[dict]:
        query = self.client.table("trivia_questions").select(
            "id,question,answer,options,region,difficulty,category"
        )
        if region:
            query = query.eq("region", region)
        if difficulty:
            query = query.eq("difficulty", difficulty)
        res = query.execute()
        return res.data or []
