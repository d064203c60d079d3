from geoquiz.domain.model import Difficulty, InputMode
from geoquiz.engine import state as st
from geoquiz.engine.state import GameConfig, Phase, SessionState

from conftest import STREAK_TABLE, make_questions


def playing(n=3, **config) -> SessionState:
    s = st.select_mode(SessionState(), GameConfig(game_type="flags", **config))
    return st.questions_loaded(s, make_questions(n))


def test_select_mode_enters_loading():
    s = st.select_mode(SessionState(), GameConfig(game_type="flags"))
    assert s.phase == Phase.LOADING
    assert s.config.game_type == "flags"


def test_loaded_batch_starts_full_countdown():
    s = playing(difficulty=Difficulty.HARD)
    assert s.phase == Phase.PLAYING
    assert s.time_left == 10
    assert s.current_index == 0


def test_empty_batch_is_an_error():
    s = st.select_mode(SessionState(), GameConfig(game_type="trivia"))
    s = st.questions_loaded(s, [])
    assert s.phase == Phase.ERROR
    assert "No questions available" in s.error


def test_query_and_session_params():
    config = GameConfig(game_type="capitals", input_mode=InputMode.TYPING, difficulty=Difficulty.EASY, region="asia", count=5)
    assert config.query_params() == {
        "type": "capitals",
        "count": 5,
        "difficulty": "easy",
        "region": "asia",
        "mode": "typing",
    }
    assert config.session_params()["gameMode"] == "solo"
    assert config.duration == 20


def test_correct_answer_scores_with_time_left():
    s = playing()
    s = st.tick(st.tick(s))
    s = st.submit_answer(s, "France")
    assert s.score == 100 + 13 * 10
    assert s.streak == 1
    assert s.show_result
    assert s.answers[0].time_ms == 2000


def test_second_answer_is_ignored():
    s = st.submit_answer(playing(), "Narnia")
    assert st.submit_answer(s, "France") is s


def test_timeout_records_once():
    s = playing()
    for _ in range(15):
        s = st.tick(s)
    assert s.time_left == 0
    assert len(s.answers) == 1
    assert s.answers[0].user_answer is None
    assert s.answers[0].time_ms == 15000
    assert st.tick(s) is s
    assert st.record_timeout(s) is s


def test_typing_mode_uses_fuzzy_match():
    s = playing(input_mode=InputMode.TYPING)
    s = st.submit_answer(s, "Farnce")
    assert s.answers[0].is_correct


def test_pause_then_resume_keeps_time_left():
    s = st.tick(playing())
    paused = st.pause(s)
    assert st.tick(paused) is paused
    resumed = st.resume(paused)
    assert resumed.time_left == s.time_left
    assert not resumed.paused


def test_no_pause_during_result():
    s = st.submit_answer(playing(), "France")
    assert st.pause(s) is s


def test_offline_pause_needs_reconnect_and_manual_resume():
    s = st.connectivity_lost(playing())
    assert s.paused and s.offline_paused
    assert st.resume(s) is s
    s = st.connectivity_restored(s)
    assert s.paused and not s.offline_paused
    assert not st.resume(s).paused


def test_quit_request_blocks_answers_and_resume():
    s = st.request_quit(st.pause(playing()))
    assert st.submit_answer(s, "France") is s
    assert st.resume(s) is s
    s = st.cancel_quit(s)
    assert not st.resume(s).paused


def test_advance_moves_to_next_question():
    s = st.submit_answer(playing(), "France")
    s = st.advance(s, 0)
    assert s.current_index == 1
    assert not s.show_result
    assert s.selected_answer is None
    assert s.time_left == 15


def test_stale_advance_is_ignored():
    s = st.advance(st.submit_answer(playing(), "France"), 0)
    assert st.advance(s, 0) is s


def test_last_answer_finalizes_once():
    s = playing(n=1)
    s = st.advance(st.submit_answer(s, "France"), 0)
    assert s.phase == Phase.FINISHED
    assert s.finalized
    assert st.advance(s, 0) is s
    summary = s.summary
    assert summary.correct_count == 1
    assert summary.xp_earned == 25


def test_restart_keeps_config():
    s = st.submit_answer(playing(), "France")
    again = st.restart(s)
    assert again.phase == Phase.LOADING
    assert again.config == s.config
    assert again.score == 0


def test_back_to_menu_only_from_terminal_phases():
    s = playing()
    assert st.back_to_menu(s) is s
    failed = st.load_failed(st.select_mode(SessionState(), GameConfig(game_type="flags")), "boom")
    assert st.back_to_menu(failed).phase == Phase.MODE_SELECT


def answer_with(s: SessionState, correct: bool, seconds_left: int) -> SessionState:
    while s.time_left > seconds_left:
        s = st.tick(s)
    question = s.current_question
    return st.submit_answer(s, question.correct_answer if correct else "Narnia")


def test_streak_table():
    s = playing(n=len(STREAK_TABLE))
    for index, (correct, seconds_left, points) in enumerate(STREAK_TABLE):
        before = s.score
        s = answer_with(s, correct, seconds_left)
        assert s.score - before == points
        s = st.advance(s, index)
    assert s.phase == Phase.FINISHED
    assert s.score == sum(points for _, _, points in STREAK_TABLE)


def test_ten_correct_answers_with_ten_seconds_left_score_2800():
    s = playing(n=10)
    for index in range(10):
        s = st.advance(answer_with(s, True, 10), index)
    assert s.phase == Phase.FINISHED
    assert s.score == 2800
    assert s.summary.xp_earned == 280


def test_quit_dialog_holds_the_last_result():
    s = st.request_quit(st.submit_answer(playing(n=1), "France"))
    assert st.advance(s, 0) is s
    assert not s.finalized

    s = st.advance(st.cancel_quit(s), 0)
    assert s.phase == Phase.FINISHED
    assert s.finalized
