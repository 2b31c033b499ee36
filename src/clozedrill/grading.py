"""Answer normalization and grading for free-text, short-answer and choice questions."""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from enum import Enum

_WHITESPACE_RUN = re.compile(r"\s+")
# Trailing sentence punctuation, plus the spaces mixed into it.
_TRAILING_PUNCTUATION = " .,;:!?…"


class Shape(Enum):
    """Grading strategy for one question."""

    FREE_TEXT = "free-text"
    SHORT_ANSWER = "short-answer"
    CHOICE = "choice"


def normalize_free_text(value: object) -> str:
    """Trim and lowercase; internal whitespace and diacritics are left alone."""
    if not isinstance(value, str):
        return ""
    return value.strip().lower()


def normalize_short_answer(value: object) -> str:
    """Trim, lowercase, collapse whitespace and drop trailing punctuation."""
    if not isinstance(value, str):
        return ""
    collapsed = _WHITESPACE_RUN.sub(" ", value.strip().lower())
    return collapsed.rstrip(_TRAILING_PUNCTUATION)


def grade_free_text(given: object, expected: object) -> bool:
    """Return whether given matches expected after trim/lowercase."""
    if not isinstance(given, str) or not isinstance(expected, str) or not expected.strip():
        return False
    return normalize_free_text(given) == normalize_free_text(expected)


def grade_short_answer(given: object, accepted: Iterable[object]) -> bool:
    """Return whether given matches any accepted alternative."""
    normalized = normalize_short_answer(given)
    if not normalized:
        return False
    for alternative in accepted:
        if normalize_short_answer(alternative) == normalized:
            return True
    return False


def coerce_index(value: object) -> int | None:
    """Return an option index from int or digit-string input."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def grade_choice(given: object, expected_index: object, options: Sequence[str] | None = None) -> bool:
    """Return whether a selected option matches the expected index.

    `given` is normally an option index. With `options`, a non-numeric string
    is treated as the selected option's display text.
    """
    expected = coerce_index(expected_index)
    if expected is None or expected < 0:
        return False
    if options is not None and expected >= len(options):
        return False
    selected = coerce_index(given)
    if selected is not None:
        return selected == expected
    if options is not None and isinstance(given, str):
        return normalize_free_text(given) == normalize_free_text(options[expected])
    return False


def grade(shape: Shape, given: object, expected: object, options: Sequence[str] | None = None) -> bool:
    """Grade one answer for a question shape.

    For `Shape.SHORT_ANSWER`, `expected` is a single accepted answer or a list
    of accepted alternatives. Never raises on malformed input.
    """
    if shape is Shape.FREE_TEXT:
        return grade_free_text(given, expected)
    if shape is Shape.SHORT_ANSWER:
        if isinstance(expected, str):
            return grade_short_answer(given, [expected])
        if isinstance(expected, Iterable):
            return grade_short_answer(given, list(expected))
        return False
    if shape is Shape.CHOICE:
        return grade_choice(given, expected, options)
    return False


def normalize_for(shape: Shape, value: object) -> str:
    """Return the normalized display form used when reporting a graded answer."""
    if shape is Shape.SHORT_ANSWER:
        return normalize_short_answer(value)
    if shape is Shape.CHOICE:
        index = coerce_index(value)
        return "" if index is None else str(index)
    return normalize_free_text(value)


def percent_of(correct: int, total: int) -> int:
    """Return 100 * correct / total rounded half up, or 0 without questions."""
    if total <= 0:
        return 0
    return (200 * correct + total) // (2 * total)
