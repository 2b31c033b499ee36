"""Load exercise content documents from bundled JSON resources or a directory."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import Any

from .category import CategoryConfig
from .models import (
    ChoiceQuestion,
    ExerciseTemplate,
    Level,
    LevelContent,
    LevelSet,
    PosItem,
    PrefixItem,
    ShortQuestion,
    SuffixItem,
    WordFormationSet,
)
from .tokenizer import MalformedTemplateError, check_template

CONTENT_PACKAGE = "clozedrill.content"
OPEN_CLOZE_FILE = "open_cloze.json"
WORD_FORMATION_FILE = "word_formation.json"
LEVELS_FILE = "levels.json"
CATEGORIES_FILE = "categories.json"

logger = logging.getLogger(__name__)


class ContentLoadError(ValueError):
    """A content document is missing, unreadable or not valid JSON."""


@dataclass
class ContentBundle:
    """Every content document the drill tool uses."""

    cloze_tests: list[ExerciseTemplate] = field(default_factory=list)
    word_formation: WordFormationSet = field(default_factory=WordFormationSet)
    levels: LevelSet = field(default_factory=LevelSet)
    categories: list[CategoryConfig] = field(default_factory=list)


class LoadTracker:
    """Tags content loads so a superseded result can be dropped."""

    def __init__(self) -> None:
        self._current = 0

    def issue(self) -> int:
        """Start a load and return its token; earlier tokens become stale."""
        self._current += 1
        return self._current

    def accept(self, token: int) -> bool:
        return token == self._current


def read_document(name: str, content_dir: Path | None = None) -> dict[str, Any]:
    """Read one JSON document by file name."""
    try:
        if content_dir is None:
            text = resources.files(CONTENT_PACKAGE).joinpath(name).read_text(encoding="utf-8-sig")
        else:
            text = (content_dir / name).read_text(encoding="utf-8-sig")
    except (OSError, ModuleNotFoundError) as exc:
        raise ContentLoadError(f"Could not load {name}: {exc}") from exc
    try:
        raw = json.loads(text)
    except ValueError as exc:
        raise ContentLoadError(f"Could not parse {name}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ContentLoadError(f"{name} must contain a JSON object.")
    return raw


def _strings(raw: object) -> tuple[str, ...]:
    if not isinstance(raw, list):
        return ()
    return tuple("" if value is None else str(value) for value in raw)


def template_from_dict(raw: dict[str, Any]) -> ExerciseTemplate:
    """Build an exercise template from raw JSON content."""
    if "text" not in raw:
        raise ContentLoadError(f"Exercise '{raw.get('id', '<unknown>')}' has no text.")
    options_raw = raw.get("options", [])
    options = tuple(_strings(item) for item in options_raw) if isinstance(options_raw, list) else ()
    accepted_raw = raw.get("accepted", [])
    accepted = tuple(_strings(item) for item in accepted_raw) if isinstance(accepted_raw, list) else ()
    template = ExerciseTemplate(
        id=str(raw.get("id", "")),
        title=str(raw.get("title", raw.get("id", ""))),
        text=str(raw["text"]),
        answers=_strings(raw.get("answers", [])),
        word_types=_strings(raw.get("wordTypes", [])),
        options=options,
        accepted=accepted,
        base_words=_strings(raw.get("baseWords", [])),
        pos_hints=_strings(raw.get("posHints", [])),
        explanations=_strings(raw.get("explanations", [])),
    )
    try:
        check_template(template)
    except MalformedTemplateError as exc:
        logger.warning("%s Missing answers will grade as incorrect.", exc)
    return template


def _templates(raw: object) -> list[ExerciseTemplate]:
    if not isinstance(raw, list):
        return []
    return [template_from_dict(item) for item in raw if isinstance(item, dict)]


def choice_from_dict(raw: dict[str, Any]) -> ChoiceQuestion:
    """Build a multiple-choice question; `answer` is the correct option index."""
    answer = raw.get("answer", raw.get("correct", -1))
    return ChoiceQuestion(
        prompt=str(raw.get("question", "")),
        options=_strings(raw.get("options", [])),
        answer_index=answer if isinstance(answer, int) and not isinstance(answer, bool) else -1,
        explanation=str(raw.get("explanation", "")),
    )


def short_from_dict(raw: dict[str, Any]) -> ShortQuestion:
    """Build a short-answer question from `accepted` or a single `answer`."""
    accepted = _strings(raw.get("accepted", []))
    if not accepted and "answer" in raw:
        accepted = (str(raw["answer"]),)
    return ShortQuestion(
        prompt=str(raw.get("question", "")),
        accepted=accepted,
        explanation=str(raw.get("explanation", "")),
    )


def parse_cloze_tests(raw: dict[str, Any]) -> list[ExerciseTemplate]:
    """Parse `{tests: [...]}`; duplicate ids are rejected."""
    tests = _templates(raw.get("tests", []))
    _validate_unique_ids(tests, "test")
    return tests


def parse_word_formation(raw: dict[str, Any]) -> WordFormationSet:
    prefix_items = tuple(
        PrefixItem(
            prefix=str(item.get("prefix", "")),
            base=str(item.get("base", "")),
            answer=str(item.get("answer", "")),
        )
        for item in raw.get("prefixExercises", [])
        if isinstance(item, dict)
    )
    suffix_items = tuple(
        SuffixItem(
            base=str(item.get("base", "")),
            part_of_speech=str(item.get("partOfSpeech", "")),
            answer=str(item.get("answer", "")),
        )
        for item in raw.get("suffixExercises", [])
        if isinstance(item, dict)
    )
    pos_items = tuple(
        PosItem(
            sentence=str(item.get("sentence", "")),
            options=_strings(item.get("options", [])),
            correct=str(item.get("correct", "")),
        )
        for item in raw.get("posExercises", [])
        if isinstance(item, dict)
    )
    guided_raw = raw.get("guidedTest")
    guided = template_from_dict(guided_raw) if isinstance(guided_raw, dict) else None
    return WordFormationSet(
        prefix_items=prefix_items,
        suffix_items=suffix_items,
        pos_items=pos_items,
        guided_test=guided,
        mcq_tests=tuple(_templates(raw.get("mcqTests", []))),
        full_tests=tuple(_templates(raw.get("fullTests", []))),
    )


def parse_levels(raw: dict[str, Any]) -> LevelSet:
    intro = tuple(choice_from_dict(item) for item in raw.get("introQuiz", []) if isinstance(item, dict))
    levels_raw = raw.get("levels", {})
    levels: dict[Level, LevelContent] = {}
    if isinstance(levels_raw, dict):
        for level in Level:
            section = levels_raw.get(level.value)
            if not isinstance(section, dict):
                continue
            levels[level] = LevelContent(
                level=level,
                tests=tuple(_templates(section.get("tests", []))),
                cloze=tuple(_templates(section.get("cloze", []))),
            )
    return LevelSet(intro_quiz=intro, levels=levels)


def category_from_dict(raw: dict[str, Any]) -> CategoryConfig:
    batch = raw.get("optionalBatchSize", 3)
    return CategoryConfig(
        id=str(raw["id"]),
        title=str(raw.get("title", raw["id"])),
        intro_pages=_strings(raw.get("introPages", [])),
        mc_quiz=tuple(choice_from_dict(item) for item in raw.get("mcQuiz", []) if isinstance(item, dict)),
        short_questions=tuple(
            short_from_dict(item) for item in raw.get("shortQuestions", []) if isinstance(item, dict)
        ),
        optional_bank=tuple(
            short_from_dict(item) for item in raw.get("optionalQuestionsBank", []) if isinstance(item, dict)
        ),
        optional_batch_size=batch if isinstance(batch, int) and batch > 0 else 3,
    )


def parse_categories(raw: dict[str, Any]) -> list[CategoryConfig]:
    categories: list[CategoryConfig] = []
    seen: set[str] = set()
    for item in raw.get("categories", []):
        if not isinstance(item, dict) or "id" not in item:
            continue
        category = category_from_dict(item)
        if category.id in seen:
            raise ContentLoadError(f"Duplicate category id: {category.id}")
        seen.add(category.id)
        categories.append(category)
    return categories


def load_content(content_dir: Path | None = None) -> ContentBundle:
    """Load every document from the bundled package or a directory."""
    return ContentBundle(
        cloze_tests=parse_cloze_tests(read_document(OPEN_CLOZE_FILE, content_dir)),
        word_formation=parse_word_formation(read_document(WORD_FORMATION_FILE, content_dir)),
        levels=parse_levels(read_document(LEVELS_FILE, content_dir)),
        categories=parse_categories(read_document(CATEGORIES_FILE, content_dir)),
    )


def _validate_unique_ids(templates: list[ExerciseTemplate], label: str) -> None:
    seen: set[str] = set()
    for template in templates:
        if template.id in seen:
            raise ContentLoadError(f"Duplicate {label} id: {template.id}")
        seen.add(template.id)
