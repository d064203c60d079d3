"""Contracts for the collaborators the engine pulls from and pushes to.

The HTTP clients in geoquiz.client.api implement these for the game client;
tests use in-memory fakes.
"""

from typing import List, Protocol

from geoquiz.domain.model import Match, Question, SessionSummary


class QuestionBank(Protocol):
    async def fetch_questions(self, params: dict) -> List[Question]:
        """Return a batch for the query params (type, count, difficulty, region?, mode?)."""
        ...


class SessionSink(Protocol):
    async def open_session(self, params: dict) -> str:
        """Open a session record and return its opaque id."""
        ...

    async def finalize_session(self, session_id: str, summary: SessionSummary) -> None:
        ...


class MatchRegistry(Protocol):
    async def get_match(self, match_id: int) -> Match:
        ...
