"""Core domain models for gapped-text drills and level progression."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


@dataclass(frozen=True)
class Literal:
    """Plain text between gaps."""

    text: str


@dataclass(frozen=True)
class GapRef:
    """Reference to a 1-based gap ordinal."""

    ordinal: int


Segment = Literal | GapRef


@dataclass(frozen=True)
class ExerciseTemplate:
    """One gapped text exercise.

    `answers[i]` belongs to gap ordinal `i + 1`. For choice exercises the
    answer is the expected option index and `options[i]` lists the choices.
    """

    id: str
    title: str
    text: str
    answers: tuple[str, ...]
    word_types: tuple[str, ...] = ()
    options: tuple[tuple[str, ...], ...] = ()
    accepted: tuple[tuple[str, ...], ...] = ()
    base_words: tuple[str, ...] = ()
    pos_hints: tuple[str, ...] = ()
    explanations: tuple[str, ...] = ()

    def answer_for(self, ordinal: int) -> str:
        """Return expected answer for a gap, or empty string when missing."""
        return _at(self.answers, ordinal - 1)

    def options_for(self, ordinal: int) -> tuple[str, ...]:
        index = ordinal - 1
        if 0 <= index < len(self.options):
            return self.options[index]
        return ()

    def explanation_for(self, ordinal: int) -> str:
        return _at(self.explanations, ordinal - 1)


def _at(values: tuple[str, ...], index: int) -> str:
    if 0 <= index < len(values):
        return values[index]
    return ""


@dataclass(frozen=True)
class GradedAnswer:
    """Grading outcome for one gap."""

    ordinal: int
    given: object
    normalized_given: str
    expected: str
    is_correct: bool


@dataclass(frozen=True)
class AttemptRecord:
    """One logged exercise outcome."""

    kind: str
    identifier: str
    score: int
    total: int
    timestamp: int

    def to_dict(self) -> dict[str, object]:
        """Return persisted wire form."""
        return {
            "type": self.kind,
            "id": self.identifier,
            "score": self.score,
            "total": self.total,
            "date": self.timestamp,
        }


class Level(Enum):
    """Difficulty tiers in unlock order."""

    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"
    EXPERT = "expert"


LEVEL_ORDER: tuple[Level, ...] = (Level.EASY, Level.MEDIUM, Level.HARD, Level.EXPERT)


@dataclass(frozen=True)
class LevelFlags:
    """Persisted unlock flags."""

    intro_quiz_passed: bool = False
    easy_passed: bool = False
    medium_passed: bool = False
    hard_passed: bool = False


@dataclass(frozen=True)
class ChoiceQuestion:
    """Multiple-choice question graded by option index."""

    prompt: str
    options: tuple[str, ...]
    answer_index: int
    explanation: str = ""


@dataclass(frozen=True)
class ShortQuestion:
    """Short free-text question with accepted alternatives."""

    prompt: str
    accepted: tuple[str, ...]
    explanation: str = ""


@dataclass(frozen=True)
class PrefixItem:
    """Prefix drill: prefix + base word = answer."""

    prefix: str
    base: str
    answer: str


@dataclass(frozen=True)
class SuffixItem:
    """Suffix drill: base word turned into another part of speech."""

    base: str
    part_of_speech: str
    answer: str


@dataclass(frozen=True)
class PosItem:
    """Part-of-speech drill sentence with radio-style options."""

    sentence: str
    options: tuple[str, ...]
    correct: str


@dataclass(frozen=True)
class WordFormationSet:
    """Word-formation content document."""

    prefix_items: tuple[PrefixItem, ...] = ()
    suffix_items: tuple[SuffixItem, ...] = ()
    pos_items: tuple[PosItem, ...] = ()
    guided_test: ExerciseTemplate | None = None
    mcq_tests: tuple[ExerciseTemplate, ...] = ()
    full_tests: tuple[ExerciseTemplate, ...] = ()


@dataclass(frozen=True)
class LevelContent:
    """Tests and cloze drills available at one level."""

    level: Level
    tests: tuple[ExerciseTemplate, ...] = ()
    cloze: tuple[ExerciseTemplate, ...] = ()


@dataclass(frozen=True)
class LevelSet:
    """Intro quiz plus per-level content."""

    intro_quiz: tuple[ChoiceQuestion, ...] = ()
    levels: dict[Level, LevelContent] = field(default_factory=dict)
