"""Split gapped exercise text into literal and gap segments."""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable

from .models import ExerciseTemplate, GapRef, Literal, Segment

GAP_PATTERN = re.compile(r"\((\d+)\)")


class MalformedTemplateError(ValueError):
    """Template gaps and answers do not line up."""


def parse_gaps(template: str) -> list[Segment]:
    """Return ordered segments for a template.

    A trailing literal is always emitted, even when empty, so a template with
    k markers yields exactly 2k + 1 segments.
    """
    segments: list[Segment] = []
    last_end = 0
    for match in GAP_PATTERN.finditer(template):
        segments.append(Literal(template[last_end : match.start()]))
        segments.append(GapRef(int(match.group(1))))
        last_end = match.end()
    segments.append(Literal(template[last_end:]))
    return segments


def gap_ordinals(segments: Iterable[Segment]) -> list[int]:
    """Return gap ordinals in order of appearance."""
    return [segment.ordinal for segment in segments if isinstance(segment, GapRef)]


def distinct_ordinals(segments: Iterable[Segment]) -> list[int]:
    """Return unique gap ordinals in ascending order."""
    return sorted(set(gap_ordinals(segments)))


def strip_gaps(text: str) -> str:
    """Return text with every gap marker removed."""
    return GAP_PATTERN.sub("", text)


def render_text(segments: Iterable[Segment], placeholder: Callable[[int], str]) -> str:
    """Join segments into display text using a placeholder per gap."""
    parts: list[str] = []
    for segment in segments:
        if isinstance(segment, GapRef):
            parts.append(placeholder(segment.ordinal))
        else:
            parts.append(segment.text)
    return "".join(parts)


def check_template(template: ExerciseTemplate) -> None:
    """Raise when a template references gaps it has no answers for."""
    ordinals = distinct_ordinals(parse_gaps(template.text))
    missing = [ordinal for ordinal in ordinals if not 1 <= ordinal <= len(template.answers)]
    if missing:
        listed = ", ".join(str(ordinal) for ordinal in missing)
        raise MalformedTemplateError(f"Template '{template.id}' has no answer for gap(s) {listed}.")
    if len(ordinals) != len(template.answers):
        raise MalformedTemplateError(
            f"Template '{template.id}' has {len(ordinals)} gap(s) but {len(template.answers)} answer(s)."
        )
