import random
import re
from typing import List, Optional

from ..core.config import settings
from ..domain.model import Question
from ..repositories.question_repository import QuestionRepository

GAME_TYPES = [
    {
        "id": "flags",
        "name": "Flags",
        "description": "Identify countries by their flags",
        "modes": ["flag-to-country", "country-to-flag"],
        "icon": "flag",
    },
    {
        "id": "capitals",
        "name": "Capitals",
        "description": "Match countries with their capital cities",
        "modes": ["country-to-capital", "capital-to-country"],
        "icon": "building",
    },
    {
        "id": "trivia",
        "name": "Trivia",
        "description": "General geography facts and knowledge",
        "modes": ["multiple-choice", "typing"],
        "icon": "lightbulb",
    },
]
GAME_TYPE_IDS = {t["id"] for t in GAME_TYPES}
GAME_TYPE_MODES = {t["id"]: t["modes"] for t in GAME_TYPES}

DEFAULT_DIRECTION = {"flags": "flag-to-country", "capitals": "country-to-capital"}
DISTRACTORS = 3


class UnknownGameType(ValueError):
    pass


def region_slug(name: str) -> str:
    return re.sub(r"\s+", "-", name.strip().lower())


def clamp_count(count: Optional[int]) -> int:
    if count is None:
        return settings.DEFAULT_QUESTION_COUNT
    return max(1, min(int(count), settings.MAX_QUESTION_COUNT))


class QuestionService:
    def __init__(self, repo: QuestionRepository, rng: Optional[random.Random] = None) -> None:
        self.repo = repo
        self.rng = rng or random.Random()

    def list_types(self) -> list[dict]:
        return GAME_TYPES

    def list_regions(self) -> list[dict]:
        return [{"id": region_slug(c), "name": c} for c in self.repo.list_continents()]

    def _resolve_region(self, region: Optional[str]) -> Optional[str]:
        # accepts either the display name or its slug
        if not region:
            return None
        for name in self.repo.list_continents():
            if region in (name, region_slug(name)):
                return name
        return region

    def generate(
        self,
        game_type: str,
        count: Optional[int] = None,
        difficulty: Optional[str] = None,
        region: Optional[str] = None,
        mode: Optional[str] = None,
    ) -> List[Question]:
        if game_type not in GAME_TYPE_IDS:
            raise UnknownGameType(game_type)
        count = clamp_count(count)
        continent = self._resolve_region(region)

        if game_type == "trivia":
            return self._trivia(count, continent, difficulty, typing=mode == "typing")

        typing = mode == "typing"
        direction = mode if mode in GAME_TYPE_MODES[game_type] else DEFAULT_DIRECTION[game_type]
        if game_type == "flags":
            return self._flags(count, continent, direction, typing)
        return self._capitals(count, continent, direction, typing)

    def match_questions(self, game_type: str, count: int) -> List[Question]:
        """Question source for head-to-head matches: always multiple choice."""
        if game_type not in GAME_TYPE_IDS:
            game_type = "flags"
        return self.generate(game_type, count=count)

    # --- generators ---

    def _pick(self, pool: list, count: int) -> list:
        return self.rng.sample(pool, min(count, len(pool)))

    def _options(self, correct: str, pool: List[str]) -> tuple:
        wrong = [p for p in dict.fromkeys(pool) if p and p != correct]
        options = self.rng.sample(wrong, min(DISTRACTORS, len(wrong))) + [correct]
        self.rng.shuffle(options)
        return tuple(options)

    def _flags(self, count: int, continent: Optional[str], direction: str, typing: bool) -> List[Question]:
        everyone = [c for c in self.repo.list_countries() if c.get("flag_url")]
        pool = [c for c in everyone if not continent or c.get("continent") == continent]
        to_country = direction == "flag-to-country"
        questions = []
        for country in self._pick(pool, count):
            if to_country:
                correct, prompt, prompt_type = country["name"], country["flag_url"], "image"
                candidates = [c["name"] for c in everyone]
            else:
                correct, prompt, prompt_type = country["flag_url"], country["name"], "text"
                candidates = [c["flag_url"] for c in everyone]
            # flag images cannot be typed
            free_text = typing and to_country
            questions.append(
                Question(
                    id=f"flags-{country['id']}",
                    prompt=prompt,
                    prompt_type=prompt_type,
                    correct_answer=correct,
                    options=() if free_text else self._options(correct, candidates),
                    mode=direction,
                )
            )
        return questions

    def _capitals(self, count: int, continent: Optional[str], direction: str, typing: bool) -> List[Question]:
        everyone = [c for c in self.repo.list_countries() if c.get("capital")]
        pool = [c for c in everyone if not continent or c.get("continent") == continent]
        to_capital = direction == "country-to-capital"
        questions = []
        for country in self._pick(pool, count):
            prompt, correct = (country["name"], country["capital"]) if to_capital else (country["capital"], country["name"])
            candidates = [c["capital"] if to_capital else c["name"] for c in everyone]
            questions.append(
                Question(
                    id=f"capitals-{country['id']}",
                    prompt=prompt,
                    correct_answer=correct,
                    options=() if typing else self._options(correct, candidates),
                    mode=direction,
                )
            )
        return questions

    def _trivia(self, count: int, region: Optional[str], difficulty: Optional[str], typing: bool) -> List[Question]:
        facts = self.repo.list_trivia(region, difficulty)
        questions = []
        for fact in self._pick(facts, count):
            options = () if typing else tuple(fact.get("options") or ())
            questions.append(
                Question(
                    id=f"trivia-{fact['id']}",
                    prompt=fact["question"],
                    correct_answer=fact["answer"],
                    options=options,
                    mode="typing" if typing or not options else "multiple-choice",
                )
            )
        return questions

