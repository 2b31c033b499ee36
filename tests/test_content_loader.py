import json
import logging
from pathlib import Path
from typing import Any

from clozedrill.content_loader import (
    CATEGORIES_FILE,
    LEVELS_FILE,
    OPEN_CLOZE_FILE,
    WORD_FORMATION_FILE,
    ContentLoadError,
    LoadTracker,
    category_from_dict,
    choice_from_dict,
    load_content,
    parse_cloze_tests,
    read_document,
    short_from_dict,
    template_from_dict,
)
from clozedrill.models import Level


def _write_content(base: Path, **overrides: Any) -> None:
    documents: dict[str, Any] = {
        OPEN_CLOZE_FILE: {"tests": [{"id": "t1", "title": "T1", "text": "I go (1) school.", "answers": ["to"]}]},
        WORD_FORMATION_FILE: {"prefixExercises": [{"prefix": "un", "base": "HAPPY", "answer": "unhappy"}]},
        LEVELS_FILE: {"introQuiz": [], "levels": {}},
        CATEGORIES_FILE: {"categories": []},
    }
    documents.update(overrides)
    for name, payload in documents.items():
        text = payload if isinstance(payload, str) else json.dumps(payload)
        (base / name).write_text(text, encoding="utf-8")


def test_bundled_content_loads() -> None:
    bundle = load_content()
    assert [test.id for test in bundle.cloze_tests] == ["daily-routine", "city-break", "new-hobby"]
    assert bundle.word_formation.guided_test is not None
    assert len(bundle.word_formation.prefix_items) == 5
    assert [test.id for test in bundle.word_formation.mcq_tests] == ["wf-mcq-1"]
    assert len(bundle.levels.intro_quiz) == 5
    assert set(bundle.levels.levels) == set(Level)
    assert [category.id for category in bundle.categories] == ["present-perfect", "articles"]


def test_content_dir_override(tmp_path: Path) -> None:
    _write_content(tmp_path)
    bundle = load_content(tmp_path)
    assert [test.id for test in bundle.cloze_tests] == ["t1"]
    assert bundle.word_formation.prefix_items[0].answer == "unhappy"
    assert bundle.word_formation.guided_test is None
    assert bundle.categories == []


def test_missing_document_raises(tmp_path: Path) -> None:
    _write_content(tmp_path)
    (tmp_path / LEVELS_FILE).unlink()
    try:
        load_content(tmp_path)
        raise AssertionError("Expected ContentLoadError.")
    except ContentLoadError as exc:
        assert LEVELS_FILE in str(exc)


def test_invalid_json_raises(tmp_path: Path) -> None:
    _write_content(tmp_path, **{OPEN_CLOZE_FILE: "{broken"})
    try:
        read_document(OPEN_CLOZE_FILE, tmp_path)
        raise AssertionError("Expected ContentLoadError.")
    except ContentLoadError as exc:
        assert "parse" in str(exc)


def test_non_object_root_raises(tmp_path: Path) -> None:
    _write_content(tmp_path, **{CATEGORIES_FILE: []})
    try:
        read_document(CATEGORIES_FILE, tmp_path)
        raise AssertionError("Expected ContentLoadError.")
    except ContentLoadError:
        pass


def test_duplicate_test_ids_raise() -> None:
    raw = {"tests": [{"id": "x", "text": "(1)", "answers": ["a"]}, {"id": "x", "text": "(1)", "answers": ["b"]}]}
    try:
        parse_cloze_tests(raw)
        raise AssertionError("Expected ContentLoadError.")
    except ContentLoadError as exc:
        assert "Duplicate" in str(exc)


def test_template_without_text_raises() -> None:
    try:
        template_from_dict({"id": "empty"})
        raise AssertionError("Expected ContentLoadError.")
    except ContentLoadError:
        pass


def test_misaligned_template_is_kept_with_warning(caplog: Any) -> None:
    with caplog.at_level(logging.WARNING, logger="clozedrill.content_loader"):
        template = template_from_dict({"id": "gappy", "text": "(1) and (2)", "answers": ["a"]})
    assert template.answer_for(2) == ""
    assert any("no answer for gap(s) 2" in record.getMessage() for record in caplog.records)


def test_template_fields_from_camel_case() -> None:
    template = template_from_dict(
        {
            "id": "wf",
            "text": "(1)",
            "answers": [1],
            "options": [["a", "b"]],
            "baseWords": ["FREE"],
            "posHints": ["noun"],
            "wordTypes": ["noun"],
            "explanations": ["why"],
        }
    )
    assert template.title == "wf"
    assert template.answers == ("1",)
    assert template.options == (("a", "b"),)
    assert template.base_words == ("FREE",)
    assert template.pos_hints == ("noun",)
    assert template.explanation_for(1) == "why"


def test_choice_and_short_questions() -> None:
    assert choice_from_dict({"question": "q", "options": ["a", "b"], "correct": 1}).answer_index == 1
    assert choice_from_dict({"question": "q", "options": ["a"], "answer": True}).answer_index == -1
    assert short_from_dict({"question": "q", "answer": "the"}).accepted == ("the",)
    assert short_from_dict({"question": "q", "accepted": ["a", "an"]}).accepted == ("a", "an")


def test_category_batch_size_falls_back() -> None:
    assert category_from_dict({"id": "c", "optionalBatchSize": 0}).optional_batch_size == 3
    assert category_from_dict({"id": "c", "optionalBatchSize": 2}).optional_batch_size == 2
    assert category_from_dict({"id": "c"}).title == "c"


def test_load_tracker_accepts_latest_token_only() -> None:
    tracker = LoadTracker()
    first = tracker.issue()
    second = tracker.issue()
    assert tracker.accept(first) is False
    assert tracker.accept(second) is True
