"""
Coordinator tests with mock sockets, an in-memory match store and archive.
Timings are shrunk so deadlines and results dwell pass in milliseconds.
"""
import asyncio
import json

import pytest

from geoquiz.domain.model import MatchStatus
from geoquiz.ws.match_coordinator import MatchCoordinator, decide_winner
from geoquiz.ws.schemas import SubmitAnswer

from conftest import ALICE, BOB, EVE, STREAK_TABLE, FakeArchive, FakeStore, make_questions


class MockWebSocket:
    """Lightweight mock for fastapi.WebSocket."""
    def __init__(self):
        self.sent_messages: list[dict] = []
        self.accepted = False
        self.fail_sends = False

    async def accept(self):
        self.accepted = True

    async def send_text(self, data: str):
        if self.fail_sends:
            raise RuntimeError("socket gone")
        self.sent_messages.append(json.loads(data))

    def last(self, msg_type: str) -> dict | None:
        for msg in reversed(self.sent_messages):
            if msg.get("type") == msg_type:
                return msg
        return None

    def all(self, msg_type: str) -> list[dict]:
        return [m for m in self.sent_messages if m.get("type") == msg_type]

    def types(self) -> list[str]:
        return [m["type"] for m in self.sent_messages]


def make_coordinator(store=None, n_questions=2, **kwargs):
    kwargs.setdefault("question_duration", 0.05)
    kwargs.setdefault("deadline_grace", 0.01)
    kwargs.setdefault("results_dwell", 0.01)
    archive = FakeArchive()
    coordinator = MatchCoordinator(
        store or FakeStore(),
        lambda game_type, count: make_questions(n_questions),
        archive,
        **kwargs,
    )
    return coordinator, archive


async def join_both(coordinator):
    a, b = MockWebSocket(), MockWebSocket()
    await coordinator.register(ALICE, a)
    await coordinator.register(BOB, b)
    await coordinator.join(ALICE, a, 7)
    await coordinator.join(BOB, b, 7)
    return a, b


def answer(index, value, time_ms=1500):
    return SubmitAnswer(matchId=7, questionIndex=index, answer=value, timeMs=time_ms)


def test_decide_winner():
    assert decide_winner({ALICE: 300, BOB: 200}) == ALICE
    assert decide_winner({ALICE: 100, BOB: 250}) == BOB
    assert decide_winner({ALICE: 200, BOB: 200}) is None


@pytest.mark.asyncio
async def test_first_player_waits_for_opponent():
    coordinator, _ = make_coordinator()
    a = MockWebSocket()
    await coordinator.register(ALICE, a)
    await coordinator.join(ALICE, a, 7)
    assert a.accepted
    assert a.types() == ["match_joined", "waiting_for_opponent"]
    assert a.last("match_joined")["totalQuestions"] == 2
    await coordinator.shutdown()


@pytest.mark.asyncio
async def test_second_join_starts_match_exactly_once():
    store = FakeStore()
    coordinator, _ = make_coordinator(store)
    a, b = await join_both(coordinator)

    for ws in (a, b):
        starts = ws.all("match_start")
        assert len(starts) == 1
        assert starts[0]["questionIndex"] == 0
        assert starts[0]["durationMs"] == 50
        assert "correctAnswer" not in starts[0]["question"]
    assert store.events == [("active", 7)]

    c = MockWebSocket()
    await coordinator.join(ALICE, c, 7)
    assert c.last("error")["message"] == "Match already in progress"
    await coordinator.shutdown()


@pytest.mark.asyncio
async def test_strangers_and_finished_matches_are_refused():
    coordinator, _ = make_coordinator(FakeStore(status=MatchStatus.COMPLETED))
    ws = MockWebSocket()
    await coordinator.join(ALICE, ws, 7)
    assert ws.last("error")["message"] == "Match not found or not active"

    coordinator, _ = make_coordinator()
    ws = MockWebSocket()
    await coordinator.join(EVE, ws, 7)
    await coordinator.join(ALICE, ws, 99)
    assert [m["message"] for m in ws.all("error")] == ["Match not found or not active"] * 2


@pytest.mark.asyncio
async def test_both_answers_resolve_question():
    store = FakeStore()
    coordinator, _ = make_coordinator(store, question_duration=10)
    a, b = await join_both(coordinator)

    await coordinator.submit_answer(ALICE, a, answer(0, "France", 2000))
    assert b.last("opponent_answered") == {"type": "opponent_answered", "questionIndex": 0}
    assert a.last("opponent_answered") is None
    assert a.last("question_results") is None

    await coordinator.submit_answer(BOB, b, answer(0, "Narnia", 1000))
    results = a.last("question_results")
    assert results == b.last("question_results")
    assert results["correctAnswer"] == "France"
    # 100 base + floor(8s * 10)
    assert results["results"][ALICE] == {"answer": "France", "isCorrect": True, "score": 180, "timeMs": 2000}
    assert results["results"][BOB]["isCorrect"] is False
    assert results["scores"] == {ALICE: 180, BOB: 0}
    assert len(store.answers) == 2
    await coordinator.shutdown()


@pytest.mark.asyncio
async def test_silent_player_is_scored_at_deadline():
    coordinator, _ = make_coordinator(results_dwell=10)
    a, b = await join_both(coordinator)
    await coordinator.submit_answer(ALICE, a, answer(0, "France", 200))

    await asyncio.sleep(0.04)
    assert a.last("question_results") is None
    await asyncio.sleep(0.1)

    results = a.last("question_results")
    assert results["questionIndex"] == 0
    assert results["results"][BOB] == {"answer": None, "isCorrect": False, "score": 0, "timeMs": 50}
    assert len(a.all("question_results")) == 1
    await coordinator.shutdown()


@pytest.mark.asyncio
async def test_full_match_ends_with_winner_and_archive():
    store = FakeStore()
    coordinator, archive = make_coordinator(store, question_duration=10)
    a, b = await join_both(coordinator)

    await coordinator.submit_answer(ALICE, a, answer(0, "France"))
    await coordinator.submit_answer(BOB, b, answer(0, "Oz"))
    await asyncio.sleep(0.05)
    nxt = b.last("next_question")
    assert nxt["questionIndex"] == 1
    assert "correctAnswer" not in nxt["question"]

    await coordinator.submit_answer(ALICE, a, answer(1, "Peru"))
    await coordinator.submit_answer(BOB, b, answer(1, "Peru"))
    await asyncio.sleep(0.05)

    end = a.last("match_end")
    assert end == b.last("match_end")
    assert end["winnerId"] == ALICE
    assert end["isTie"] is False
    assert end["scores"][ALICE] > end["scores"][BOB]
    assert store.events[-1] == ("completed", ALICE, end["scores"])
    assert archive.saved[0].outcome == "completed"
    assert len(archive.saved[0].answers) == 4
    assert 7 not in coordinator.matches


@pytest.mark.asyncio
async def test_equal_scores_are_a_tie():
    coordinator, _ = make_coordinator(n_questions=1, question_duration=10)
    a, b = await join_both(coordinator)
    await coordinator.submit_answer(ALICE, a, answer(0, "France", 3000))
    await coordinator.submit_answer(BOB, b, answer(0, "France", 3000))
    await asyncio.sleep(0.05)
    end = a.last("match_end")
    assert end["isTie"] is True
    assert end["winnerId"] is None


@pytest.mark.asyncio
async def test_answer_errors():
    coordinator, _ = make_coordinator(question_duration=10)
    a, b = await join_both(coordinator)

    await coordinator.submit_answer(ALICE, a, answer(1, "Peru"))
    assert a.last("error")["message"] == "Invalid question index"

    await coordinator.submit_answer(ALICE, a, answer(0, "France", 50))
    assert a.last("error")["message"] == "Invalid answer timing"

    eve = MockWebSocket()
    await coordinator.submit_answer(EVE, eve, answer(0, "France"))
    assert eve.last("error")["message"] == "Not in match"
    await coordinator.submit_answer(EVE, eve, SubmitAnswer(matchId=99, questionIndex=0, answer="x", timeMs=500))
    assert eve.last("error")["message"] == "Match not found"
    await coordinator.shutdown()


@pytest.mark.asyncio
async def test_second_answer_is_refused():
    coordinator, _ = make_coordinator(question_duration=10)
    a, b = await join_both(coordinator)
    await coordinator.submit_answer(ALICE, a, answer(0, "France"))
    await coordinator.submit_answer(ALICE, a, answer(0, "Oz"))
    assert a.last("error")["message"] == "Answer already submitted"
    assert coordinator.matches[7].answers[0][ALICE].record.user_answer == "France"
    await coordinator.shutdown()


@pytest.mark.asyncio
async def test_answer_spam_is_rate_limited():
    coordinator, _ = make_coordinator(question_duration=10)
    a, b = await join_both(coordinator)
    for _ in range(4):
        await coordinator.submit_answer(ALICE, a, answer(5, "x"))
    assert a.last("error")["message"] == "Rate limit exceeded. Please slow down."
    await coordinator.shutdown()


@pytest.mark.asyncio
async def test_late_timeout_submit_is_ignored():
    coordinator, _ = make_coordinator(question_duration=10, results_dwell=10)
    a, b = await join_both(coordinator)
    await coordinator.submit_answer(ALICE, a, answer(0, "France"))
    await coordinator.submit_answer(BOB, b, answer(0, "France"))
    before = list(b.sent_messages)
    await coordinator.submit_answer(BOB, b, answer(0, None, 10000))
    assert b.sent_messages == before
    await coordinator.shutdown()


@pytest.mark.asyncio
async def test_leaving_mid_match_hands_win_to_opponent():
    store = FakeStore()
    coordinator, archive = make_coordinator(store, question_duration=10)
    a, b = await join_both(coordinator)

    await coordinator.leave(ALICE, 7)
    assert b.last("opponent_left") == {"type": "opponent_left"}
    assert store.events[-1] == ("abandoned", BOB)
    assert archive.saved[0].outcome == "abandoned"
    assert archive.saved[0].winnerId == BOB
    assert 7 not in coordinator.matches


@pytest.mark.asyncio
async def test_leaving_before_start_cancels():
    store = FakeStore()
    coordinator, archive = make_coordinator(store)
    a = MockWebSocket()
    await coordinator.register(ALICE, a)
    await coordinator.join(ALICE, a, 7)
    await coordinator.leave(ALICE, 7)
    assert store.events == [("cancelled", 7)]
    assert archive.saved == []


@pytest.mark.asyncio
async def test_disconnect_abandons_only_for_the_live_socket():
    store = FakeStore()
    coordinator, _ = make_coordinator(store, question_duration=10)
    a, b = await join_both(coordinator)

    stale = MockWebSocket()
    await coordinator.unregister(ALICE, stale)
    assert 7 in coordinator.matches

    await coordinator.unregister(ALICE, a)
    assert not coordinator.is_online(ALICE)
    assert b.last("opponent_left") is not None
    assert ("abandoned", BOB) in store.events


@pytest.mark.asyncio
async def test_failed_send_does_not_break_the_match():
    coordinator, _ = make_coordinator(question_duration=10)
    a, b = await join_both(coordinator)
    a.fail_sends = True
    await coordinator.submit_answer(BOB, b, answer(0, "France"))
    await coordinator.submit_answer(ALICE, a, answer(0, "France"))
    assert b.last("question_results") is not None
    await coordinator.shutdown()


@pytest.mark.asyncio
async def test_speed_bonus_counts_whole_tenths():
    coordinator, _ = make_coordinator(n_questions=1, question_duration=15, results_dwell=10)
    a, b = await join_both(coordinator)
    await coordinator.submit_answer(ALICE, a, answer(0, "France", 8800))
    await coordinator.submit_answer(BOB, b, answer(0, "France", 14900))
    results = a.last("question_results")["results"]
    assert results[ALICE]["score"] == 162
    assert results[BOB]["score"] == 101
    await coordinator.shutdown()


@pytest.mark.asyncio
async def test_streak_table_through_the_coordinator():
    questions = make_questions(len(STREAK_TABLE))
    coordinator, _ = make_coordinator(
        n_questions=len(STREAK_TABLE), question_duration=15, answer_rate_limit=100
    )
    a, b = await join_both(coordinator)

    for index, (correct, seconds_left, points) in enumerate(STREAK_TABLE):
        value = questions[index].correct_answer if correct else "Oz"
        await coordinator.submit_answer(ALICE, a, answer(index, value, (15 - seconds_left) * 1000))
        await coordinator.submit_answer(BOB, b, answer(index, "Oz", 5000))
        results = a.last("question_results")
        assert results["questionIndex"] == index
        assert results["results"][ALICE]["score"] == points
        await asyncio.sleep(0.05)

    end = a.last("match_end")
    assert end["scores"][ALICE] == sum(points for _, _, points in STREAK_TABLE)
    assert end["winnerId"] == ALICE


@pytest.mark.asyncio
async def test_finished_match_releases_rate_limits():
    coordinator, _ = make_coordinator(n_questions=1, question_duration=10)
    a, b = await join_both(coordinator)
    await coordinator.submit_answer(ALICE, a, answer(0, "France"))
    await coordinator.submit_answer(BOB, b, answer(0, "France"))
    assert (ALICE, 7) in coordinator._rate_limits
    await asyncio.sleep(0.05)

    assert a.last("match_end") is not None
    assert coordinator.matches == {}
    assert coordinator._rate_limits == {}


@pytest.mark.asyncio
async def test_leaving_releases_rate_limits():
    coordinator, _ = make_coordinator(question_duration=10)
    a, b = await join_both(coordinator)
    await coordinator.submit_answer(ALICE, a, answer(0, "France"))
    await coordinator.submit_answer(BOB, b, answer(0, "France"))
    await coordinator.leave(BOB, 7)
    assert coordinator._rate_limits == {}


@pytest.mark.asyncio
async def test_expired_rate_limits_are_swept():
    coordinator, _ = make_coordinator(question_duration=10)
    coordinator._rate_limits[(EVE, 3)] = (3, 0.0)
    a, b = await join_both(coordinator)
    await coordinator.submit_answer(ALICE, a, answer(0, "France"))
    assert (EVE, 3) not in coordinator._rate_limits
    assert (ALICE, 7) in coordinator._rate_limits
    await coordinator.shutdown()
