import asyncio
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Protocol

from fastapi.websockets import WebSocket
from pydantic import BaseModel

from geoquiz.core.config import settings
from geoquiz.core.logging import get_logger
from geoquiz.domain.model import AnswerRecord, Match, MatchStatus, Question
from geoquiz.domain.scoring import check_answer, score_answer_ms
from geoquiz.ws.schemas import (
    ErrorMessage,
    FinishedMatchSnapshot,
    MatchEnd,
    MatchJoined,
    MatchStart,
    NextQuestion,
    OpponentAnswered,
    OpponentLeft,
    PlayerResult,
    QuestionPayload,
    QuestionResults,
    SubmitAnswer,
    WaitingForOpponent,
)

logger = get_logger(__name__)

JOINABLE = (MatchStatus.PENDING, MatchStatus.ACTIVE)
RATE_LIMIT_SWEEP_MS = 60_000


class MatchStore(Protocol):
    """Registry side of a match: the persisted record and its answers."""

    def get_match(self, match_id: int) -> Optional[Match]: ...

    def mark_active(self, match_id: int) -> None: ...

    def record_answer(self, match_id: int, user_id: str, question: Question, record: AnswerRecord) -> None: ...

    def complete_match(self, match_id: int, winner_id: Optional[str], scores: Dict[str, int]) -> None: ...

    def abandon_match(self, match_id: int, winner_id: str) -> None: ...

    def cancel_match(self, match_id: int) -> None: ...


class MatchArchive(Protocol):
    async def save(self, snapshot: FinishedMatchSnapshot) -> None: ...


QuestionSource = Callable[[str, int], List[Question]]


def _now_ms() -> int:
    return int(time.time() * 1000)


def decide_winner(scores: Dict[str, int]) -> Optional[str]:
    """Highest score wins; None when the top score is shared."""
    if not scores:
        return None
    ranked = sorted(scores.items(), key=lambda item: item[1], reverse=True)
    if len(ranked) > 1 and ranked[0][1] == ranked[1][1]:
        return None
    return ranked[0][0]


@dataclass
class ScoredAnswer:
    record: AnswerRecord
    points: int


@dataclass
class LivePlayer:
    user_id: str
    ws: WebSocket
    score: int = 0
    streak: int = 0


@dataclass
class LiveMatch:
    match: Match
    questions: List[Question]
    players: Dict[str, LivePlayer] = field(default_factory=dict)
    current_index: int = 0
    started: bool = False
    finished: bool = False
    started_at: Optional[int] = None
    answers: Dict[int, Dict[str, ScoredAnswer]] = field(default_factory=dict)
    resolved: set[int] = field(default_factory=set)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)
    deadline_task: Optional[asyncio.Task] = field(default=None, repr=False)
    advance_task: Optional[asyncio.Task] = field(default=None, repr=False)

    @property
    def id(self) -> int:
        return self.match.id

    @property
    def total_questions(self) -> int:
        return len(self.questions)

    def scores(self) -> Dict[str, int]:
        return {uid: p.score for uid, p in self.players.items()}

    def cancel_timers(self) -> None:
        current = asyncio.current_task()
        for task in (self.deadline_task, self.advance_task):
            if task is not None and task is not current and not task.done():
                task.cancel()
        self.deadline_task = None
        self.advance_task = None


class MatchCoordinator:
    """Authoritative side of head-to-head matches.

    Sequences questions for both players, accepts the first answer per player
    per question, scores with the shared policy, and never waits on a silent
    player past the question deadline.
    """

    def __init__(
        self,
        store: MatchStore,
        question_source: QuestionSource,
        archive: Optional[MatchArchive] = None,
        *,
        question_count: Optional[int] = None,
        question_duration: Optional[float] = None,
        deadline_grace: Optional[float] = None,
        results_dwell: Optional[float] = None,
        answer_rate_limit: Optional[int] = None,
    ) -> None:
        self.store = store
        self.question_source = question_source
        self.archive = archive
        self.question_count = question_count or settings.MATCH_QUESTION_COUNT
        self.question_duration = (
            settings.MATCH_QUESTION_DURATION_SEC if question_duration is None else question_duration
        )
        self.deadline_grace = settings.MATCH_DEADLINE_GRACE_SEC if deadline_grace is None else deadline_grace
        self.results_dwell = settings.RESULTS_DWELL_SEC if results_dwell is None else results_dwell
        self.answer_rate_limit = answer_rate_limit or settings.ANSWER_RATE_LIMIT

        self.matches: Dict[int, LiveMatch] = {}
        self.connections: Dict[str, WebSocket] = {}
        self._rate_limits: Dict[tuple, tuple] = {}
        self._rate_sweep_at = 0.0

    @property
    def duration_ms(self) -> int:
        return int(round(self.question_duration * 1000))

    # --- connections ---

    async def register(self, user_id: str, ws: WebSocket) -> None:
        """Accepts the channel and remembers it as the user's live connection"""
        await ws.accept()
        self.connections[user_id] = ws
        logger.info("Channel opened", extra={"user": user_id})

    async def unregister(self, user_id: str, ws: WebSocket) -> None:
        """Forgets the channel and abandons any match it was playing in"""
        if self.connections.get(user_id) is ws:
            del self.connections[user_id]
        for match_id, live in list(self.matches.items()):
            player = live.players.get(user_id)
            if player is not None and player.ws is ws:
                await self.leave(user_id, match_id)
        logger.info("Channel closed", extra={"user": user_id})

    def is_online(self, user_id: str) -> bool:
        return user_id in self.connections

    async def send(self, ws: WebSocket, message: BaseModel) -> bool:
        try:
            await ws.send_text(message.model_dump_json())
            return True
        except Exception as e:
            logger.warning("Send of %s failed: %s", getattr(message, "type", "?"), e)
            return False

    async def send_error(self, ws: WebSocket, message: str) -> None:
        await self.send(ws, ErrorMessage(message=message))

    async def broadcast(self, live: LiveMatch, message: BaseModel, exclude: Optional[str] = None) -> None:
        for uid, player in list(live.players.items()):
            if exclude is not None and uid == exclude:
                continue
            await self.send(player.ws, message)

    # --- join ---

    async def join(self, user_id: str, ws: WebSocket, match_id: int) -> None:
        match = self.store.get_match(match_id)
        if match is None or not match.has_player(user_id) or match.status not in JOINABLE:
            await self.send_error(ws, "Match not found or not active")
            return

        live = self.matches.get(match_id)
        if live is None:
            questions = list(self.question_source(match.game_type, self.question_count))
            if not questions:
                await self.send_error(ws, "No questions available for this match")
                return
            live = LiveMatch(match=match, questions=questions)
            self.matches[match_id] = live
            logger.info(
                "Match %s loaded with %d questions", match_id, len(questions), extra={"match": match_id}
            )

        async with live.lock:
            if live.finished:
                await self.send_error(ws, "Match not found or not active")
                return
            if live.started:
                await self.send_error(ws, "Match already in progress")
                return

            live.players[user_id] = LivePlayer(user_id=user_id, ws=ws)
            await self.send(ws, MatchJoined(matchId=match_id, totalQuestions=live.total_questions))
            logger.info(
                "Player joined match %s (%d/2)", match_id, len(live.players),
                extra={"match": match_id, "user": user_id},
            )

            if len(live.players) == 2:
                await self._start(live)
            else:
                await self.send(ws, WaitingForOpponent())

    async def _start(self, live: LiveMatch) -> None:
        live.started = True
        live.started_at = _now_ms()
        try:
            self.store.mark_active(live.id)
        except Exception:
            logger.exception("Could not mark match %s active", live.id)

        question = live.questions[0]
        await self.broadcast(
            live,
            MatchStart(
                question=QuestionPayload(**question.sanitized()),
                questionIndex=0,
                totalQuestions=live.total_questions,
                durationMs=self.duration_ms,
            ),
        )
        self._open_question(live, 0)
        logger.info("Match %s started", live.id, extra={"match": live.id})

    def _open_question(self, live: LiveMatch, index: int) -> None:
        live.current_index = index
        live.answers.setdefault(index, {})
        live.deadline_task = asyncio.create_task(self._deadline(live, index))

    async def _deadline(self, live: LiveMatch, index: int) -> None:
        """Scores whatever is missing once the question's time is up"""
        await asyncio.sleep(self.question_duration + self.deadline_grace)
        async with live.lock:
            if live.finished or index in live.resolved:
                return
            logger.info(
                "Deadline reached for question %d of match %s", index, live.id, extra={"match": live.id}
            )
            await self._resolve(live, index)

    # --- answers ---

    def _rate_limited(self, user_id: str, match_id: int) -> bool:
        key = (user_id, match_id)
        now = time.monotonic() * 1000
        if now > self._rate_sweep_at:
            self._sweep_rate_limits(now)
        count, reset_at = self._rate_limits.get(key, (0, 0.0))
        if now > reset_at:
            self._rate_limits[key] = (1, now + settings.ANSWER_RATE_WINDOW_MS)
            return False
        if count >= self.answer_rate_limit:
            return True
        self._rate_limits[key] = (count + 1, reset_at)
        return False

    def _sweep_rate_limits(self, now: float) -> None:
        expired = [key for key, (_, reset_at) in self._rate_limits.items() if reset_at < now]
        for key in expired:
            del self._rate_limits[key]
        self._rate_sweep_at = now + RATE_LIMIT_SWEEP_MS

    def _drop_rate_limits(self, match_id: int) -> None:
        for key in [k for k in self._rate_limits if k[1] == match_id]:
            del self._rate_limits[key]

    async def submit_answer(self, user_id: str, ws: WebSocket, msg: SubmitAnswer) -> None:
        if self._rate_limited(user_id, msg.matchId):
            await self.send_error(ws, "Rate limit exceeded. Please slow down.")
            return

        live = self.matches.get(msg.matchId)
        if live is None:
            await self.send_error(ws, "Match not found")
            return
        player = live.players.get(user_id)
        if player is None:
            await self.send_error(ws, "Not in match")
            return

        async with live.lock:
            if live.finished or not live.started:
                await self.send_error(ws, "Match is not in progress")
                return
            index = msg.questionIndex
            if index < live.current_index or index in live.resolved:
                # late auto-submit for a question that is already scored
                logger.debug("Ignored late answer for question %d", index, extra={"match": live.id})
                return
            if index > live.current_index:
                await self.send_error(ws, "Invalid question index")
                return
            answers = live.answers.setdefault(index, {})
            if user_id in answers:
                await self.send_error(ws, "Answer already submitted")
                return
            if msg.answer is not None and msg.timeMs < settings.MIN_ANSWER_TIME_MS:
                await self.send_error(ws, "Invalid answer timing")
                return

            self._score(live, player, index, msg.answer, msg.timeMs)
            await self.broadcast(live, OpponentAnswered(questionIndex=index), exclude=user_id)

            if len(answers) >= len(live.players):
                await self._resolve(live, index)

    def _score(self, live: LiveMatch, player: LivePlayer, index: int, answer: Optional[str], time_ms: int) -> ScoredAnswer:
        question = live.questions[index]
        time_ms = min(max(0, time_ms), self.duration_ms)
        correct = check_answer(question, answer)
        result = score_answer_ms(correct, self.duration_ms, time_ms, player.streak)
        player.score += result.points_awarded
        player.streak = result.new_streak

        record = AnswerRecord(
            question_index=index,
            user_answer=answer,
            correct_answer=question.correct_answer,
            is_correct=correct,
            time_ms=time_ms,
        )
        scored = ScoredAnswer(record=record, points=result.points_awarded)
        live.answers.setdefault(index, {})[player.user_id] = scored

        try:
            self.store.record_answer(live.id, player.user_id, question, record)
        except Exception:
            logger.exception("Could not persist answer for match %s", live.id)
        return scored

    async def _resolve(self, live: LiveMatch, index: int) -> None:
        """Emits question_results once per question; caller holds live.lock"""
        if live.finished or index in live.resolved:
            return
        live.resolved.add(index)
        live.cancel_timers()

        answers = live.answers.setdefault(index, {})
        for uid, player in live.players.items():
            if uid not in answers:
                # silent player: incorrect, full question time
                self._score(live, player, index, None, self.duration_ms)

        question = live.questions[index]
        results = {
            uid: PlayerResult(
                answer=a.record.user_answer,
                isCorrect=a.record.is_correct,
                score=a.points,
                timeMs=a.record.time_ms,
            )
            for uid, a in answers.items()
        }
        await self.broadcast(
            live,
            QuestionResults(
                questionIndex=index,
                correctAnswer=question.correct_answer,
                results=results,
                scores=live.scores(),
            ),
        )
        live.advance_task = asyncio.create_task(self._advance_after_results(live, index))

    async def _advance_after_results(self, live: LiveMatch, index: int) -> None:
        await asyncio.sleep(self.results_dwell)
        async with live.lock:
            if live.finished or live.current_index != index:
                return
            next_index = index + 1
            if next_index < live.total_questions:
                question = live.questions[next_index]
                await self.broadcast(
                    live,
                    NextQuestion(
                        question=QuestionPayload(**question.sanitized()),
                        questionIndex=next_index,
                        durationMs=self.duration_ms,
                    ),
                )
                self._open_question(live, next_index)
            else:
                await self._end(live)

    # --- end of match ---

    async def _end(self, live: LiveMatch) -> None:
        scores = live.scores()
        winner_id = decide_winner(scores)
        live.finished = True
        live.cancel_timers()

        try:
            self.store.complete_match(live.id, winner_id, scores)
        except Exception:
            logger.exception("Could not complete match %s", live.id)
        await self._archive(live, winner_id, "completed")

        await self.broadcast(live, MatchEnd(winnerId=winner_id, isTie=winner_id is None, scores=scores))
        self.matches.pop(live.id, None)
        self._drop_rate_limits(live.id)
        logger.info(
            "Match %s ended, winner=%s scores=%s", live.id, winner_id, scores, extra={"match": live.id}
        )

    async def leave(self, user_id: str, match_id: int) -> None:
        live = self.matches.get(match_id)
        if live is None:
            return
        async with live.lock:
            if live.finished or user_id not in live.players:
                return
            live.players.pop(user_id)
            live.finished = True
            live.cancel_timers()
            self.matches.pop(match_id, None)
            self._drop_rate_limits(match_id)

            await self.broadcast(live, OpponentLeft())

            if live.started:
                winner_id = live.match.other_player(user_id)
                try:
                    self.store.abandon_match(match_id, winner_id)
                except Exception:
                    logger.exception("Could not record abandoned match %s", match_id)
                await self._archive(live, winner_id, "abandoned")
            else:
                try:
                    self.store.cancel_match(match_id)
                except Exception:
                    logger.exception("Could not cancel match %s", match_id)

        logger.info(
            "Player left match %s (%s)", match_id, "abandoned" if live.started else "cancelled",
            extra={"match": match_id, "user": user_id},
        )

    async def _archive(self, live: LiveMatch, winner_id: Optional[str], outcome: str) -> None:
        if self.archive is None:
            return
        snapshot = FinishedMatchSnapshot(
            matchId=live.id,
            gameType=live.match.game_type,
            startedAt=live.started_at,
            endedAt=_now_ms(),
            questions=[q.to_dict() for q in live.questions],
            answers=[
                {"userId": uid, "score": a.points, **a.record.to_dict()}
                for index in sorted(live.answers)
                for uid, a in live.answers[index].items()
            ],
            scores=live.scores(),
            winnerId=winner_id,
            outcome=outcome,
        )
        try:
            await self.archive.save(snapshot)
        except Exception:
            logger.exception("Could not archive match %s", live.id)

    async def shutdown(self) -> None:
        """Stops every match timer (app shutdown)"""
        for live in list(self.matches.values()):
            live.finished = True
            live.cancel_timers()
        self.matches.clear()
        self._rate_limits.clear()
