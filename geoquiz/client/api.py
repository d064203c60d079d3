"""HTTP implementations of the engine contracts, for the game client."""

from __future__ import annotations

from typing import List, Optional

import httpx

from geoquiz.core.config import settings
from geoquiz.domain.model import Match, Question, SessionSummary
from geoquiz.engine.errors import MatchRegistryError, QuestionBankError, SessionSinkError


def _detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        return str(body.get("detail") or body.get("message") or body)
    return str(body)


class ApiClient:
    """Bearer-authenticated access to the backend's /api/v1 routes."""

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.token = token
        self.base_url = (base_url or settings.CLIENT_BASE_URL).rstrip("/") + settings.API_V1_PREFIX
        self._client = client or httpx.AsyncClient(timeout=settings.CLIENT_TIMEOUT_SEC)

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def request(self, method: str, path: str, **kwargs) -> httpx.Response:
        return await self._client.request(method, self.base_url + path, headers=self._headers(), **kwargs)

    async def aclose(self) -> None:
        await self._client.aclose()


class HttpQuestionBank:
    def __init__(self, api: ApiClient) -> None:
        self.api = api

    async def fetch_questions(self, params: dict) -> List[Question]:
        try:
            response = await self.api.request("GET", "/games/questions", params=params)
        except httpx.HTTPError as e:
            raise QuestionBankError(f"Failed to load questions: {e}") from e
        if response.is_error:
            raise QuestionBankError(_detail(response))
        return [Question.from_dict(q) for q in response.json().get("questions", [])]


class HttpSessionSink:
    def __init__(self, api: ApiClient) -> None:
        self.api = api

    async def open_session(self, params: dict) -> str:
        try:
            response = await self.api.request("POST", "/games/sessions", json=params)
        except httpx.HTTPError as e:
            raise SessionSinkError(f"Failed to start session: {e}") from e
        if response.is_error:
            raise SessionSinkError(_detail(response))
        return str(response.json()["sessionId"])

    async def finalize_session(self, session_id: str, summary: SessionSummary) -> None:
        try:
            response = await self.api.request("PATCH", f"/games/sessions/{session_id}", json=summary.to_dict())
        except httpx.HTTPError as e:
            raise SessionSinkError(f"Failed to save session: {e}") from e
        if response.is_error:
            raise SessionSinkError(_detail(response))


class HttpMatchRegistry:
    def __init__(self, api: ApiClient) -> None:
        self.api = api

    async def get_match(self, match_id: int) -> Match:
        try:
            response = await self.api.request("GET", f"/multiplayer/matches/{match_id}")
        except httpx.HTTPError as e:
            raise MatchRegistryError(f"Failed to load match: {e}") from e
        if response.is_error:
            raise MatchRegistryError(_detail(response))
        m = response.json()["match"]
        return Match.from_row(
            {
                "id": m["id"],
                "challenger_id": m["challengerId"],
                "opponent_id": m["opponentId"],
                "game_type": m["gameType"],
                "status": m["status"],
                "winner_id": m.get("winnerId"),
                "challenger_score": m.get("challengerScore"),
                "opponent_score": m.get("opponentScore"),
                "challenger_name": m.get("challengerName"),
                "opponent_name": m.get("opponentName"),
            }
        )
