"""Level unlock state machine driven by rolling average pass checks.

Unlock order is intro quiz -> easy -> medium -> hard -> expert. The intro quiz
unlocks easy directly; every later level unlocks once the mean of all test
scores recorded at the previous level in the current session reaches the pass
threshold. Flags are persisted and never revert; the score lists live only as
long as the `LevelProgression` object.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from fractions import Fraction
from typing import cast

from .grading import percent_of
from .models import LEVEL_ORDER, Level, LevelFlags
from .storage import Corrupt, DocumentStore, Empty, StorageUnavailableError, read_or_default

LEVEL_PROGRESS_KEY = "level-progress"
PASS_PERCENT = 70

FLAG_KEYS = {
    "intro_quiz_passed": "introQuizPassed",
    "easy_passed": "easyPassed",
    "medium_passed": "mediumPassed",
    "hard_passed": "hardPassed",
}

# Flag set when a level's average passes; expert unlocks nothing further.
_PASS_FLAG: dict[Level, str | None] = {
    Level.EASY: "easy_passed",
    Level.MEDIUM: "medium_passed",
    Level.HARD: "hard_passed",
    Level.EXPERT: None,
}

# Flag that must be set before a level can be entered.
_UNLOCK_FLAG: dict[Level, str] = {
    Level.EASY: "intro_quiz_passed",
    Level.MEDIUM: "easy_passed",
    Level.HARD: "medium_passed",
    Level.EXPERT: "hard_passed",
}

logger = logging.getLogger(__name__)


def flags_to_dict(flags: LevelFlags) -> dict[str, bool]:
    """Return the persisted camelCase form of a flags snapshot."""
    return {key: bool(getattr(flags, field)) for field, key in FLAG_KEYS.items()}


def flags_from_dict(raw: dict[str, object]) -> LevelFlags:
    """Read flags from a persisted document; anything but `true` reads as false."""
    return LevelFlags(**{field: raw.get(key) is True for field, key in FLAG_KEYS.items()})


class LevelLockedError(RuntimeError):
    """A locked level was entered or scored."""

    def __init__(self, level: Level) -> None:
        super().__init__(f"Level '{level.value}' is locked.")
        self.level = level


@dataclass(frozen=True)
class QuizOutcome:
    """Result of one intro quiz submission."""

    percent: int
    passed: bool
    newly_passed: bool


@dataclass(frozen=True)
class LevelTestOutcome:
    """Result of one level test submission."""

    level: Level
    percent: int
    average: float
    attempts: int
    passed: bool
    newly_passed: bool


@dataclass(frozen=True)
class LevelState:
    """Display state for one level."""

    level: Level
    unlocked: bool
    passed: bool
    attempts: int
    average: float | None


class LevelProgression:
    """Persisted unlock flags plus in-session per-level scores."""

    def __init__(self, documents: DocumentStore, pass_percent: int = PASS_PERCENT) -> None:
        self.documents = documents
        self.pass_percent = pass_percent
        self._scores: dict[Level, list[int]] = {}

    @property
    def flags(self) -> LevelFlags:
        """Return persisted flags; unreadable data reads as all-locked."""
        return flags_from_dict(self._read_document())

    def _read_document(self) -> dict[str, object]:
        result = read_or_default(self.documents, LEVEL_PROGRESS_KEY)
        if isinstance(result, Empty):
            return {}
        if isinstance(result, Corrupt):
            logger.warning("Ignoring unreadable level progress: %s", result.reason)
            return {}
        if not isinstance(result.value, dict):
            logger.warning("Ignoring level progress with unexpected shape: %s", type(result.value).__name__)
            return {}
        return cast(dict[str, object], result.value)

    def _set_flag(self, field: str) -> bool:
        """Merge one true flag into the stored document; return whether it changed."""
        document = self._read_document()
        key = FLAG_KEYS[field]
        if document.get(key) is True:
            return False
        merged = dict(document)
        merged[key] = True
        try:
            self.documents.write(LEVEL_PROGRESS_KEY, merged)
        except StorageUnavailableError as exc:
            logger.warning("Could not save level progress: %s", exc)
            return False
        logger.info("Level flag %s set", key)
        return True

    def merge_flags(self, flags: LevelFlags) -> None:
        """Set every true flag from another snapshot; false flags are ignored."""
        for field in FLAG_KEYS:
            if getattr(flags, field):
                self._set_flag(field)

    def record_intro_quiz(self, correct: int, total: int) -> QuizOutcome:
        """Score the entry quiz; passing unlocks easy permanently."""
        percent = percent_of(correct, total)
        passed = total > 0 and percent >= self.pass_percent
        newly_passed = self._set_flag("intro_quiz_passed") if passed else False
        return QuizOutcome(percent=percent, passed=passed, newly_passed=newly_passed)

    def is_unlocked(self, level: Level) -> bool:
        return bool(getattr(self.flags, _UNLOCK_FLAG[level]))

    def is_passed(self, level: Level) -> bool:
        field = _PASS_FLAG[level]
        return bool(getattr(self.flags, field)) if field is not None else False

    def can_enter(self, level: Level) -> bool:
        return self.is_unlocked(level)

    def enter(self, level: Level) -> None:
        """Start working at a level; its score list is created on first entry."""
        if not self.is_unlocked(level):
            raise LevelLockedError(level)
        self._scores.setdefault(level, [])

    def record_test(self, level: Level, correct: int, total: int) -> LevelTestOutcome:
        """Add one test score and re-run the rolling average pass check."""
        self.enter(level)
        percent = percent_of(correct, total)
        scores = self._scores[level]
        scores.append(percent)
        # Integer comparison keeps the threshold check exact.
        meets = sum(scores) >= self.pass_percent * len(scores)
        field = _PASS_FLAG[level]
        newly_passed = self._set_flag(field) if meets and field is not None else False
        return LevelTestOutcome(
            level=level,
            percent=percent,
            average=float(Fraction(sum(scores), len(scores))),
            attempts=len(scores),
            passed=self.is_passed(level),
            newly_passed=newly_passed,
        )

    def record_cloze(self, level: Level, correct: int, total: int) -> int:
        """Score a practice cloze drill; it never affects the pass check."""
        if not self.is_unlocked(level):
            raise LevelLockedError(level)
        return percent_of(correct, total)

    def scores(self, level: Level) -> list[int]:
        return list(self._scores.get(level, []))

    def average(self, level: Level) -> float | None:
        scores = self._scores.get(level)
        if not scores:
            return None
        return float(Fraction(sum(scores), len(scores)))

    def states(self) -> list[LevelState]:
        """Return unlock and score state for every level in order."""
        flags = self.flags
        states: list[LevelState] = []
        for level in LEVEL_ORDER:
            pass_field = _PASS_FLAG[level]
            states.append(
                LevelState(
                    level=level,
                    unlocked=bool(getattr(flags, _UNLOCK_FLAG[level])),
                    passed=bool(getattr(flags, pass_field)) if pass_field is not None else False,
                    attempts=len(self._scores.get(level, [])),
                    average=self.average(level),
                )
            )
        return states

    def reset_session(self) -> None:
        """Forget in-session scores; persisted flags are untouched."""
        self._scores.clear()
