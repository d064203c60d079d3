"""Asyncio driver for a solo session.

The countdown task and the caller's own events are the only things that move
the session forward, and both go through `_apply`, which swaps in the state
returned by one of the transitions in geoquiz.engine.state and then brings
the background tasks in line with it: the ticker runs only while the state
can tick, a result screen schedules exactly one delayed advance, and the
first transition into `finalized` flushes the summary to the session sink.
"""

import asyncio
from typing import Callable, Optional

from geoquiz.core.config import settings
from geoquiz.core.logging import get_logger
from geoquiz.engine import state as transitions
from geoquiz.engine.contracts import QuestionBank, SessionSink
from geoquiz.engine.errors import QuestionBankError, SessionSinkError
from geoquiz.engine.state import GameConfig, Phase, SessionState, can_tick

logger = get_logger(__name__)


class SoloSession:
    def __init__(
        self,
        question_bank: QuestionBank,
        session_sink: SessionSink,
        *,
        tick_interval: float = 1.0,
        result_dwell: Optional[float] = None,
        on_change: Optional[Callable[[SessionState], None]] = None,
    ) -> None:
        self.question_bank = question_bank
        self.session_sink = session_sink
        self.tick_interval = tick_interval
        self.result_dwell = settings.RESULT_DWELL_SEC if result_dwell is None else result_dwell
        self.on_change = on_change

        self._state = SessionState()
        self._ticker: Optional[asyncio.Task] = None
        self._advance_task: Optional[asyncio.Task] = None
        # bumped whenever the session is replaced, so late loads are dropped
        self._generation = 0

    @property
    def state(self) -> SessionState:
        return self._state

    # --- state container -------------------------------------------------

    def _apply(self, transition: Callable[..., SessionState], *args) -> SessionState:
        old = self._state
        new = transition(old, *args)
        if new is old:
            logger.debug("Ignored %s in phase %s", transition.__name__, old.phase.value)
            return old
        self._state = new
        self._sync_tasks(old, new)
        if self.on_change is not None:
            self.on_change(new)
        return new

    def _sync_tasks(self, old: SessionState, new: SessionState) -> None:
        if can_tick(new):
            self._start_ticker()
        else:
            self._stop_ticker()

        if new.show_result and not old.show_result:
            self._schedule_advance(new.current_index)
        elif new.show_result and old.quit_pending and not new.quit_pending:
            # the dwell may have expired behind the quit dialog
            self._schedule_advance(new.current_index)
        elif not new.show_result:
            self._cancel_advance()

    def _start_ticker(self) -> None:
        if self._ticker is None or self._ticker.done():
            self._ticker = asyncio.create_task(self._run_ticker())

    def _stop_ticker(self) -> None:
        task, self._ticker = self._ticker, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _run_ticker(self) -> None:
        me = asyncio.current_task()
        while self._ticker is me:
            await asyncio.sleep(self.tick_interval)
            if self._ticker is not me:
                break
            self._apply(transitions.tick)

    def _schedule_advance(self, index: int) -> None:
        self._cancel_advance()
        self._advance_task = asyncio.create_task(self._advance_after_dwell(index))

    def _cancel_advance(self) -> None:
        task, self._advance_task = self._advance_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _advance_after_dwell(self, index: int) -> None:
        await asyncio.sleep(self.result_dwell)
        await self.advance(index)

    def _cancel_all(self) -> None:
        self._stop_ticker()
        self._cancel_advance()

    # --- loading ---------------------------------------------------------

    async def start(self, config: GameConfig) -> SessionState:
        """Select mode/difficulty/region and load the first batch."""
        if self._apply(transitions.select_mode, config).phase != Phase.LOADING:
            return self._state
        return await self._load()

    async def retry(self) -> SessionState:
        if self._state.phase != Phase.ERROR:
            return self._state
        return await self.restart()

    async def restart(self) -> SessionState:
        """Throw away the current session and reload with the same settings."""
        if self._state.config is None:
            return self._state
        self._cancel_all()
        self._generation += 1
        self._apply(transitions.restart)
        return await self._load()

    def back_to_menu(self) -> SessionState:
        self._cancel_all()
        self._generation += 1
        return self._apply(transitions.back_to_menu)

    async def _load(self) -> SessionState:
        generation = self._generation
        config = self._state.config
        try:
            questions = await self.question_bank.fetch_questions(config.query_params())
        except QuestionBankError as e:
            logger.warning("Question batch failed for %s: %s", config.game_type, e)
            if generation == self._generation:
                self._apply(transitions.load_failed, str(e))
            return self._state

        if generation != self._generation:
            return self._state
        if not questions:
            return self._apply(transitions.questions_loaded, [])

        session_id = await self._open_session(config)
        if generation != self._generation:
            return self._state

        self._apply(transitions.questions_loaded, questions)
        if session_id is not None:
            self._apply(transitions.session_opened, session_id)
        logger.info(
            "Solo session started: %s, %d questions, %ss per question",
            config.game_type,
            len(questions),
            config.duration,
        )
        return self._state

    async def _open_session(self, config: GameConfig) -> Optional[str]:
        try:
            return await self.session_sink.open_session(config.session_params())
        except SessionSinkError as e:
            # play goes on; this session just won't be saved
            logger.warning("Could not open session record: %s", e)
            return None

    # --- playing ---------------------------------------------------------

    def submit_answer(self, answer: str) -> SessionState:
        """Choice or typed answer for the current question."""
        return self._apply(transitions.submit_answer, answer)

    def tick(self) -> SessionState:
        return self._apply(transitions.tick)

    async def advance(self, expected_index: Optional[int] = None) -> SessionState:
        before = self._state
        after = self._apply(transitions.advance, expected_index)
        if after.finalized and not before.finalized:
            await self._flush(after)
        return self._state

    async def _flush(self, finished: SessionState) -> None:
        summary = finished.summary
        logger.info(
            "Solo session finished: score=%d correct=%d/%d xp=%d",
            summary.score,
            summary.correct_count,
            len(summary.answers),
            summary.xp_earned,
        )
        if finished.session_id is None:
            logger.info("No session record was opened; results stay local")
            return
        try:
            await self.session_sink.finalize_session(finished.session_id, summary)
        except SessionSinkError as e:
            logger.warning("Could not save session %s: %s", finished.session_id, e)

    def pause(self) -> SessionState:
        return self._apply(transitions.pause)

    def resume(self) -> SessionState:
        return self._apply(transitions.resume)

    def set_online(self, online: bool) -> SessionState:
        if online:
            return self._apply(transitions.connectivity_restored)
        return self._apply(transitions.connectivity_lost)

    def request_quit(self) -> SessionState:
        return self._apply(transitions.request_quit)

    def cancel_quit(self) -> SessionState:
        return self._apply(transitions.cancel_quit)

    def confirm_quit(self) -> SessionState:
        """Drop the session without saving anything."""
        if not self._state.quit_pending:
            return self._state
        logger.info("Solo session quit at question %d", self._state.current_index)
        self._cancel_all()
        self._generation += 1
        self._state = SessionState()
        if self.on_change is not None:
            self.on_change(self._state)
        return self._state

    async def close(self) -> None:
        """Stop every timer; partial state is discarded, never flushed."""
        tasks = [t for t in (self._ticker, self._advance_task) if t is not None]
        self._cancel_all()
        self._generation += 1
        for task in tasks:
            if task is asyncio.current_task():
                continue
            try:
                await task
            except asyncio.CancelledError:
                pass
