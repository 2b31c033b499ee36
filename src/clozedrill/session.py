"""Single active exercise with submit-once grading."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum

from .grading import Shape, coerce_index, grade, normalize_for, percent_of
from .models import ExerciseTemplate, GradedAnswer, Segment
from .tokenizer import distinct_ordinals, parse_gaps

logger = logging.getLogger(__name__)


class Mode(Enum):
    """How an exercise is presented and graded."""

    GUIDED_LETTER = "guided-letter"
    GUIDED_TYPE = "guided-type"
    PRACTICE = "practice"
    WF_GUIDED = "guided"
    WF_MCQ = "mcq"
    WF_FULL = "full"
    SHORT = "short"

    @property
    def shape(self) -> Shape:
        if self is Mode.WF_MCQ:
            return Shape.CHOICE
        if self is Mode.SHORT:
            return Shape.SHORT_ANSWER
        return Shape.FREE_TEXT

    @property
    def attempt_kind(self) -> str:
        """Attempt-log kind recorded for this mode."""
        if self in (Mode.GUIDED_LETTER, Mode.GUIDED_TYPE, Mode.PRACTICE):
            return "practice"
        return self.value


class SessionState(Enum):
    UNSUBMITTED = "unsubmitted"
    GRADED = "graded"


@dataclass(frozen=True)
class MissedGap:
    """Expected value for one incorrectly answered gap."""

    ordinal: int
    expected: str
    explanation: str = ""


@dataclass(frozen=True)
class SubmissionResult:
    """Aggregate outcome of one submission."""

    correct_count: int
    total: int
    graded: tuple[GradedAnswer, ...]
    missed: tuple[MissedGap, ...]

    @property
    def band(self) -> str:
        return score_band(self.correct_count, self.total)

    @property
    def percent(self) -> int:
        return percent_of(self.correct_count, self.total)


def score_band(correct: int, total: int) -> str:
    """Classify a score for display: good, ok or low."""
    if correct == total:
        return "good"
    if total - correct <= 2:
        return "ok"
    return "low"


class ExerciseSession:
    """Holds the active exercise and its grading state.

    A session can be reused across exercises; `start` is a hard reset to the
    unsubmitted state. Stale content loads are handled by `LoadTracker`.
    """

    def __init__(self) -> None:
        self.template: ExerciseTemplate | None = None
        self.mode = Mode.PRACTICE
        self.segments: list[Segment] = []
        self.ordinals: list[int] = []
        self.state = SessionState.UNSUBMITTED
        self._result: SubmissionResult | None = None

    def start(self, template: ExerciseTemplate, mode: Mode) -> None:
        """Load an exercise and reset to the unsubmitted state."""
        self.template = template
        self.mode = mode
        self.segments = parse_gaps(template.text)
        self.ordinals = distinct_ordinals(self.segments)
        self.state = SessionState.UNSUBMITTED
        self._result = None
        logger.debug("Started exercise %s in %s mode (%d gaps)", template.id, mode.value, len(self.ordinals))

    def retry(self) -> None:
        """Restart the current exercise."""
        if self.template is None:
            raise RuntimeError("No exercise has been started.")
        self.start(self.template, self.mode)

    @property
    def locked(self) -> bool:
        return self.state is SessionState.GRADED

    @property
    def result(self) -> SubmissionResult | None:
        return self._result

    def submit(self, responses: Sequence[object] | Mapping[int, object]) -> SubmissionResult:
        """Grade all gaps once; later calls return the first result."""
        if self.template is None:
            raise RuntimeError("No exercise has been started.")
        if self._result is not None:
            return self._result

        template = self.template
        shape = self.mode.shape
        graded: list[GradedAnswer] = []
        missed: list[MissedGap] = []
        for ordinal in self.ordinals:
            given = _response_for(responses, ordinal)
            expected = template.answer_for(ordinal)
            if shape is Shape.SHORT_ANSWER:
                accepted = _accepted_for(template, ordinal)
                correct = grade(shape, given, accepted)
            elif shape is Shape.CHOICE:
                correct = grade(shape, given, expected, template.options_for(ordinal))
            else:
                correct = grade(shape, given, expected)
            graded.append(
                GradedAnswer(
                    ordinal=ordinal,
                    given=given,
                    normalized_given=normalize_for(shape, given),
                    expected=expected,
                    is_correct=correct,
                )
            )
            if not correct:
                missed.append(
                    MissedGap(
                        ordinal=ordinal,
                        expected=self.expected_display(ordinal),
                        explanation=template.explanation_for(ordinal),
                    )
                )

        correct_count = sum(1 for item in graded if item.is_correct)
        self._result = SubmissionResult(
            correct_count=correct_count,
            total=len(self.ordinals),
            graded=tuple(graded),
            missed=tuple(missed),
        )
        self.state = SessionState.GRADED
        logger.info("Graded %s: %d/%d", template.id, correct_count, len(self.ordinals))
        return self._result

    def expected_display(self, ordinal: int) -> str:
        """Return the expected answer as shown to the learner."""
        if self.template is None:
            return ""
        expected = self.template.answer_for(ordinal)
        if self.mode.shape is Shape.CHOICE:
            index = coerce_index(expected)
            options = self.template.options_for(ordinal)
            if index is not None and 0 <= index < len(options):
                return options[index]
        return expected

    def hint(self, ordinal: int) -> str:
        """Return the hint shown next to a gap for the current mode."""
        if self.template is None:
            return ""
        index = ordinal - 1
        template = self.template
        if self.mode is Mode.GUIDED_LETTER:
            answer = template.answer_for(ordinal)
            return f"({answer[0]}…)" if answer else ""
        if self.mode is Mode.GUIDED_TYPE:
            word_type = template.word_types[index] if 0 <= index < len(template.word_types) else ""
            return f"[{word_type}]" if word_type else ""
        if self.mode in (Mode.WF_GUIDED, Mode.WF_MCQ, Mode.WF_FULL):
            base = template.base_words[index] if 0 <= index < len(template.base_words) else ""
            pos = template.pos_hints[index] if 0 <= index < len(template.pos_hints) else ""
            if self.mode is Mode.WF_GUIDED and pos:
                return f"[{base} → {pos}]"
            return f"[{base}]"
        return ""


def _response_for(responses: Sequence[object] | Mapping[int, object], ordinal: int) -> object:
    if isinstance(responses, Mapping):
        return responses.get(ordinal)
    index = ordinal - 1
    if 0 <= index < len(responses):
        return responses[index]
    return None


def _accepted_for(template: ExerciseTemplate, ordinal: int) -> tuple[str, ...]:
    index = ordinal - 1
    alternatives = template.accepted[index] if 0 <= index < len(template.accepted) else ()
    expected = template.answer_for(ordinal)
    if expected and expected not in alternatives:
        return (expected, *alternatives)
    return alternatives
