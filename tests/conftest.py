

from geoquiz.domain.model import Match, MatchStatus, Question

ALICE, BOB, EVE = "u-alice", "u-bob", "u-eve"

# consecutive answers in one game: (correct, seconds left, points awarded)
STREAK_TABLE = [
    (True, 10, 200),
    (True, 7, 190),
    (True, 1, 150),
    (False, 12, 0),
    (True, 14, 240),
    (True, 6, 180),
]


def make_questions(n: int = 3, with_options: bool = True) -> list[Question]:
    countries = ["France", "Peru", "Chad", "Japan", "Chile", "Spain", "Italy", "Egypt", "Kenya", "Nepal"]
    questions = []
    for i in range(n):
        answer = countries[i % len(countries)]
        options = (answer, "Atlantis", "Narnia", "Oz") if with_options else ()
        questions.append(Question(id=f"q{i}", prompt=f"flag-{i}.png", correct_answer=answer, options=options))
    return questions


class FakeQuestionBank:
    def __init__(self, questions=None, error=None):
        self.questions = questions if questions is not None else make_questions()
        self.error = error
        self.calls: list[dict] = []

    async def fetch_questions(self, params: dict):
        self.calls.append(params)
        if self.error is not None:
            raise self.error
        return list(self.questions)


class FakeSessionSink:
    def __init__(self, session_id="s-1", open_error=None, finalize_error=None):
        self.session_id = session_id
        self.open_error = open_error
        self.finalize_error = finalize_error
        self.opened: list[dict] = []
        self.finalized: list[tuple] = []

    async def open_session(self, params: dict) -> str:
        self.opened.append(params)
        if self.open_error is not None:
            raise self.open_error
        return self.session_id

    async def finalize_session(self, session_id, summary) -> None:
        self.finalized.append((session_id, summary))
        if self.finalize_error is not None:
            raise self.finalize_error



class FakeStore:
    def __init__(self, status=MatchStatus.PENDING):
        self.match = Match(id=7, challenger_id=ALICE, opponent_id=BOB, game_type="flags", status=status)
        self.events: list[tuple] = []
        self.answers: list[tuple] = []

    def get_match(self, match_id):
        return self.match if match_id == self.match.id else None

    def mark_active(self, match_id):
        self.events.append(("active", match_id))

    def record_answer(self, match_id, user_id, question, record):
        self.answers.append((user_id, record))

    def complete_match(self, match_id, winner_id, scores):
        self.events.append(("completed", winner_id, scores))

    def abandon_match(self, match_id, winner_id):
        self.events.append(("abandoned", winner_id))

    def cancel_match(self, match_id):
        self.events.append(("cancelled", match_id))


class FakeArchive:
    def __init__(self):
        self.saved = []

    async def save(self, snapshot):
        self.saved.append(snapshot)
