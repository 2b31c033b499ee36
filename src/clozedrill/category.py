"""Grammar category flow: intro pages, MC quiz, short quiz, optional question bank."""

from __future__ import annotations

import logging
import random
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

from .grading import grade_choice, grade_short_answer, percent_of
from .models import ChoiceQuestion, ShortQuestion

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CategoryConfig:
    """Content for one grammar category."""

    id: str
    title: str
    intro_pages: tuple[str, ...]
    mc_quiz: tuple[ChoiceQuestion, ...]
    short_questions: tuple[ShortQuestion, ...]
    optional_bank: tuple[ShortQuestion, ...] = ()
    optional_batch_size: int = 3


class Stage(Enum):
    INTRO = "intro"
    MC_QUIZ = "mc-quiz"
    SHORT_QUIZ = "short-quiz"
    OPTIONAL = "optional"


@dataclass(frozen=True)
class QuizResult:
    """Outcome of one quiz round inside a category."""

    correct: int
    total: int
    wrong: tuple[int, ...]

    @property
    def percent(self) -> int:
        return percent_of(self.correct, self.total)


class ShuffledBag(Generic[T]):
    """Draw items without replacement; reshuffle only once the bag is empty."""

    def __init__(self, items: Sequence[T], rng: random.Random | None = None) -> None:
        self._items = list(items)
        self._rng = rng if rng is not None else random.Random()
        self._pending: list[T] = []

    def __len__(self) -> int:
        return len(self._pending)

    def draw(self, count: int) -> list[T]:
        """Return up to `count` items; a batch never repeats an item."""
        if not self._items or count <= 0:
            return []
        if not self._pending:
            self._refill()
        batch = self._pending[:count]
        self._pending = self._pending[count:]
        return batch

    def _refill(self) -> None:
        self._pending = list(self._items)
        self._rng.shuffle(self._pending)


class CategorySession:
    """Per-category state owned by the caller, reset only on retry."""

    def __init__(self, config: CategoryConfig, rng: random.Random | None = None) -> None:
        self.config = config
        self._rng = rng if rng is not None else random.Random()
        self.stage = Stage.INTRO
        self.page = 0
        self.mc_result: QuizResult | None = None
        self.short_result: QuizResult | None = None
        self.optional_batch: list[ShortQuestion] = []
        self._bag = ShuffledBag(config.optional_bank, self._rng)

    def intro_page(self) -> str | None:
        """Return the current intro page, or None when there are none left."""
        if self.stage is not Stage.INTRO or self.page >= len(self.config.intro_pages):
            return None
        return self.config.intro_pages[self.page]

    def next_page(self) -> bool:
        """Advance the intro; moving past the last page opens the MC quiz."""
        if self.stage is not Stage.INTRO:
            return False
        self.page += 1
        if self.page >= len(self.config.intro_pages):
            self.stage = Stage.MC_QUIZ
        return True

    def skip_intro(self) -> None:
        if self.stage is Stage.INTRO:
            self.stage = Stage.MC_QUIZ

    def submit_mc(self, responses: Sequence[object]) -> QuizResult:
        """Grade the MC quiz by option index; a second call returns the first result."""
        if self.mc_result is not None:
            return self.mc_result
        self.skip_intro()
        wrong: list[int] = []
        for index, question in enumerate(self.config.mc_quiz):
            given = responses[index] if index < len(responses) else None
            if not grade_choice(given, question.answer_index, question.options):
                wrong.append(index)
        total = len(self.config.mc_quiz)
        self.mc_result = QuizResult(correct=total - len(wrong), total=total, wrong=tuple(wrong))
        self.stage = Stage.SHORT_QUIZ
        return self.mc_result

    def submit_short(self, responses: Sequence[object]) -> QuizResult:
        """Grade the short-answer quiz against accepted alternatives."""
        if self.short_result is not None:
            return self.short_result
        if self.stage in (Stage.INTRO, Stage.MC_QUIZ):
            raise RuntimeError("Finish the multiple-choice quiz first.")
        self.short_result = _grade_short(self.config.short_questions, responses)
        self.stage = Stage.OPTIONAL
        return self.short_result

    def next_optional_batch(self) -> list[ShortQuestion]:
        """Draw the next batch of extra questions from the bank."""
        if self.stage is not Stage.OPTIONAL:
            raise RuntimeError("Optional questions open after the short quiz.")
        self.optional_batch = self._bag.draw(max(1, self.config.optional_batch_size))
        return list(self.optional_batch)

    def submit_optional(self, responses: Sequence[object]) -> QuizResult:
        """Grade the batch most recently drawn from the bank."""
        return _grade_short(self.optional_batch, responses)

    def reset(self) -> None:
        """Start the category again from the first intro page."""
        logger.debug("Resetting category %s", self.config.id)
        self.stage = Stage.INTRO
        self.page = 0
        self.mc_result = None
        self.short_result = None
        self.optional_batch = []
        self._bag = ShuffledBag(self.config.optional_bank, self._rng)


def _grade_short(questions: Sequence[ShortQuestion], responses: Sequence[object]) -> QuizResult:
    wrong: list[int] = []
    for index, question in enumerate(questions):
        given = responses[index] if index < len(responses) else None
        if not grade_short_answer(given, question.accepted):
            wrong.append(index)
    return QuizResult(correct=len(questions) - len(wrong), total=len(questions), wrong=tuple(wrong))


class CategoryRegistry:
    """Creates one session per category on first entry and keeps it."""

    def __init__(self, configs: Sequence[CategoryConfig], seed: int | None = None) -> None:
        self.configs = {config.id: config for config in configs}
        self._seed = seed
        self._sessions: dict[str, CategorySession] = {}

    def session(self, category_id: str) -> CategorySession:
        existing = self._sessions.get(category_id)
        if existing is not None:
            return existing
        config = self.configs[category_id]
        rng = random.Random(f"{self._seed}:{category_id}") if self._seed is not None else random.Random()
        created = CategorySession(config, rng)
        self._sessions[category_id] = created
        return created
