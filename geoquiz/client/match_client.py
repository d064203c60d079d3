"""Client side of a head-to-head match.

Keeps a shadow of the coordinator's state for one player. The local countdown
only drives the display and the timeout auto-submit; scores, results and the
winner come from the coordinator alone.
"""

import asyncio
import json
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, Optional, Set
from urllib.parse import quote

import websockets
from pydantic import BaseModel, ValidationError
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK, WebSocketException

from geoquiz.core.config import settings
from geoquiz.core.logging import get_logger
from geoquiz.domain.model import Match
from geoquiz.engine.contracts import MatchRegistry
from geoquiz.engine.errors import MatchRegistryError
from geoquiz.ws.schemas import (
    ErrorMessage,
    JoinMatch,
    LeaveMatch,
    MatchEnd,
    MatchJoined,
    MatchStart,
    NextQuestion,
    OpponentAnswered,
    OpponentLeft,
    QuestionPayload,
    QuestionResults,
    SubmitAnswer,
    WaitingForOpponent,
    parse_server_message,
)

logger = get_logger(__name__)

CLEAN_CLOSE_CODES = (1000, 1001)


class ClientPhase(str, Enum):
    CONNECTING = "connecting"
    WAITING = "waiting"
    PLAYING = "playing"
    FINISHED = "finished"


@dataclass(frozen=True)
class MatchView:
    phase: ClientPhase = ClientPhase.CONNECTING
    question: Optional[QuestionPayload] = None
    question_index: int = 0
    total_questions: int = 0
    duration_ms: int = 0
    time_left: int = 0
    answered: bool = False
    opponent_answered: bool = False
    my_score: int = 0
    opponent_score: int = 0
    last_result: Optional[QuestionResults] = None
    winner_id: Optional[str] = None
    is_tie: bool = False
    opponent_left: bool = False
    error: Optional[str] = None


def default_ws_url(token: str) -> str:
    base = settings.CLIENT_BASE_URL.rstrip("/")
    if base.startswith("https://"):
        base = "wss://" + base[len("https://"):]
    elif base.startswith("http://"):
        base = "ws://" + base[len("http://"):]
    return f"{base}/ws?token={quote(token)}"


class MatchClient:
    def __init__(
        self,
        match_id: int,
        user_id: str,
        token: str,
        *,
        url: Optional[str] = None,
        connect: Callable[..., Any] = websockets.connect,
        registry: Optional[MatchRegistry] = None,
        tick_interval: float = 1.0,
        on_change: Optional[Callable[[MatchView], None]] = None,
    ) -> None:
        self.match_id = match_id
        self.user_id = str(user_id)
        self.url = url or default_ws_url(token)
        self._connect = connect
        self.registry = registry
        self.tick_interval = tick_interval
        self.on_change = on_change

        self._view = MatchView()
        self._ws = None
        self._established = False
        self._closing = False
        self._reader: Optional[asyncio.Task] = None
        self._countdown: Optional[asyncio.Task] = None
        self._sends: Set[asyncio.Task] = set()
        self._question_started: float = 0.0

    @property
    def view(self) -> MatchView:
        return self._view

    @property
    def connection_established(self) -> bool:
        return self._established

    def _update(self, **changes) -> MatchView:
        self._view = replace(self._view, **changes)
        if self.on_change is not None:
            self.on_change(self._view)
        return self._view

    # --- channel ---

    async def open(self) -> MatchView:
        """Connect, join the match and start reading coordinator events."""
        try:
            self._ws = await self._connect(self.url)
        except (OSError, TimeoutError, WebSocketException) as e:
            if self._closing:
                return self._view
            logger.warning("Could not connect to match %s: %s", self.match_id, e)
            return self._update(error="Failed to connect to match server")

        if self._closing:
            # torn down while the handshake was in flight
            await self._ws.close()
            return self._view

        self._established = True
        logger.info("Connected to match %s", self.match_id, extra={"match": self.match_id, "user": self.user_id})
        await self._send(JoinMatch(matchId=self.match_id))
        self._reader = asyncio.create_task(self._run_reader())
        return self._view

    async def _send(self, message: BaseModel) -> None:
        if self._ws is None:
            return
        try:
            await self._ws.send(message.model_dump_json())
        except ConnectionClosed as e:
            logger.debug("Dropped %s, channel closed: %s", getattr(message, "type", "?"), e)

    def _send_later(self, message: BaseModel) -> None:
        task = asyncio.create_task(self._send(message))
        self._sends.add(task)
        task.add_done_callback(self._sends.discard)

    async def _run_reader(self) -> None:
        try:
            async for raw in self._ws:
                self._receive(raw)
        except ConnectionClosedOK:
            pass
        except ConnectionClosed as e:
            code = e.rcvd.code if e.rcvd is not None else None
            self._connection_dropped(code)
        finally:
            self._stop_countdown()

    def _connection_dropped(self, code: Optional[int]) -> None:
        if self._closing or not self._established or code in CLEAN_CLOSE_CODES:
            return
        if self._view.phase == ClientPhase.FINISHED:
            return
        logger.warning("Lost match %s channel (code %s)", self.match_id, code, extra={"match": self.match_id})
        self._update(error="Connection lost")

    def _receive(self, raw) -> None:
        try:
            message = parse_server_message(json.loads(raw))
        except (ValueError, ValidationError) as e:
            logger.warning("Ignored unreadable coordinator message: %s", e)
            return
        handler = self._handlers.get(type(message))
        if handler is not None:
            handler(self, message)

    # --- coordinator events ---

    def _on_joined(self, msg: MatchJoined) -> None:
        self._update(phase=ClientPhase.WAITING, total_questions=msg.totalQuestions)

    def _on_waiting(self, msg: WaitingForOpponent) -> None:
        self._update(phase=ClientPhase.WAITING)

    def _show_question(self, question: QuestionPayload, index: int, duration_ms: int, **extra) -> None:
        self._update(
            phase=ClientPhase.PLAYING,
            question=question,
            question_index=index,
            duration_ms=duration_ms,
            time_left=duration_ms // 1000,
            answered=False,
            opponent_answered=False,
            last_result=None,
            **extra,
        )
        self._question_started = asyncio.get_running_loop().time()
        self._start_countdown()

    def _on_start(self, msg: MatchStart) -> None:
        self._show_question(msg.question, msg.questionIndex, msg.durationMs, total_questions=msg.totalQuestions)

    def _on_next(self, msg: NextQuestion) -> None:
        self._show_question(msg.question, msg.questionIndex, msg.durationMs)

    def _on_opponent_answered(self, msg: OpponentAnswered) -> None:
        if msg.questionIndex == self._view.question_index:
            self._update(opponent_answered=True)

    def _scores(self, scores: Dict[str, int]) -> dict:
        opponent = sum(v for uid, v in scores.items() if uid != self.user_id)
        return {"my_score": scores.get(self.user_id, 0), "opponent_score": opponent}

    def _on_results(self, msg: QuestionResults) -> None:
        self._stop_countdown()
        self._update(last_result=msg, answered=True, **self._scores(msg.scores))

    def _on_end(self, msg: MatchEnd) -> None:
        self._stop_countdown()
        self._update(
            phase=ClientPhase.FINISHED,
            winner_id=msg.winnerId,
            is_tie=msg.isTie,
            **self._scores(msg.scores),
        )

    def _on_opponent_left(self, msg: OpponentLeft) -> None:
        self._stop_countdown()
        self._update(phase=ClientPhase.FINISHED, opponent_left=True, winner_id=self.user_id)

    def _on_error(self, msg: ErrorMessage) -> None:
        self._stop_countdown()
        self._update(error=msg.message)

    _handlers = {
        MatchJoined: _on_joined,
        WaitingForOpponent: _on_waiting,
        MatchStart: _on_start,
        NextQuestion: _on_next,
        OpponentAnswered: _on_opponent_answered,
        QuestionResults: _on_results,
        MatchEnd: _on_end,
        OpponentLeft: _on_opponent_left,
        ErrorMessage: _on_error,
    }

    # --- answering ---

    def submit_answer(self, answer: Optional[str]) -> MatchView:
        """One answer per question; sent without waiting for the coordinator."""
        view = self._view
        if view.phase != ClientPhase.PLAYING or view.answered or view.error or not self._established:
            return view
        if answer is None:
            time_ms = view.duration_ms
        else:
            elapsed = asyncio.get_running_loop().time() - self._question_started
            time_ms = min(int(elapsed * 1000), view.duration_ms)
        self._send_later(
            SubmitAnswer(matchId=self.match_id, questionIndex=view.question_index, answer=answer, timeMs=time_ms)
        )
        self._stop_countdown()
        return self._update(answered=True)

    def _start_countdown(self) -> None:
        self._stop_countdown()
        self._countdown = asyncio.create_task(self._run_countdown())

    def _stop_countdown(self) -> None:
        task, self._countdown = self._countdown, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _run_countdown(self) -> None:
        me = asyncio.current_task()
        while self._countdown is me and self._view.time_left > 0:
            await asyncio.sleep(self.tick_interval)
            if self._countdown is not me:
                return
            self._update(time_left=self._view.time_left - 1)
        if self._countdown is me:
            self.submit_answer(None)

    # --- registry ---

    async def fetch_match(self) -> Match:
        if self.registry is None:
            raise MatchRegistryError("No match registry configured")
        return await self.registry.get_match(self.match_id)

    # --- teardown ---

    async def close(self) -> None:
        """Leave the match (best effort) and release the channel and timers."""
        if self._closing:
            return
        self._closing = True
        self._stop_countdown()

        if self._ws is not None and self._established:
            if self._view.phase != ClientPhase.FINISHED:
                await self._send(LeaveMatch(matchId=self.match_id))
            await self._ws.close()

        tasks = [t for t in (self._reader, *self._sends) if t is not None and t is not asyncio.current_task()]
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info("Left match %s", self.match_id, extra={"match": self.match_id, "user": self.user_id})
