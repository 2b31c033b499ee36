"""Application service tying content, exercise sessions, progress and levels together."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import cast

from . import __version__
from .category import CategoryRegistry, CategorySession, QuizResult
from .content_loader import ContentBundle, ContentLoadError, LoadTracker, load_content
from .grading import grade_choice, grade_free_text
from .levels import (
    PASS_PERCENT,
    LevelLockedError,
    LevelProgression,
    LevelState,
    LevelTestOutcome,
    QuizOutcome,
    flags_from_dict,
    flags_to_dict,
)
from .models import AttemptRecord, ChoiceQuestion, ExerciseTemplate, Level, LevelFlags
from .progress import DEFAULT_CAPACITY, DEFAULT_COUNTED_KINDS, KindSummary, ProgressStore, ProgressSummary
from .progress import record_from_dict
from .session import ExerciseSession, Mode, SubmissionResult
from .storage import SCHEMA_VERSION, DocumentStore, StorageUnavailableError

EXPORT_FORMAT_VERSION = 1

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DrillResult:
    """Outcome of a one-shot word-formation drill."""

    kind: str
    correct: int
    total: int
    verdicts: tuple[bool, ...]


@dataclass(frozen=True)
class ProgressTransferSummary:
    """Summary emitted by progress export/import operations."""

    attempt_rows: int
    flags: LevelFlags


@dataclass
class ActiveExercise:
    """An exercise session plus the attempt kind it records under."""

    session: ExerciseSession
    kind: str
    level: Level | None = None
    recorded: bool = False


class DrillService:
    """Coordinates drill content, grading and persisted progress."""

    def __init__(
        self,
        db_path: Path | str,
        content_dir: Path | None = None,
        *,
        seed: int | None = None,
        pass_percent: int = PASS_PERCENT,
        log_capacity: int = DEFAULT_CAPACITY,
        counted_kinds: Sequence[str] | frozenset[str] = DEFAULT_COUNTED_KINDS,
    ) -> None:
        """Initialize service with database path and optional content directory."""
        self.content_dir = content_dir
        self.seed = seed
        self.loads = LoadTracker()
        self.content = ContentBundle()
        self.categories = CategoryRegistry([], seed=seed)
        self.reload_content()
        self.storage_error: str | None = None
        try:
            self.documents = DocumentStore(db_path)
        except StorageUnavailableError as exc:
            logger.warning("Progress will not be saved this session: %s", exc)
            self.storage_error = str(exc)
            self.documents = DocumentStore(":memory:")
        self.progress = ProgressStore(self.documents, capacity=log_capacity, counted_kinds=counted_kinds)
        self.levels = LevelProgression(self.documents, pass_percent=pass_percent)

    def reload_content(self) -> ContentBundle:
        """Load content documents; a load superseded by a newer one is discarded."""
        token = self.loads.issue()
        bundle = load_content(self.content_dir)
        if self.loads.accept(token):
            self.content = bundle
            self.categories = CategoryRegistry(bundle.categories, seed=self.seed)
        else:
            logger.info("Discarding stale content load %d", token)
        return self.content

    def list_cloze_tests(self) -> list[ExerciseTemplate]:
        return list(self.content.cloze_tests)

    def get_cloze_test(self, test_id: str) -> ExerciseTemplate:
        for test in self.content.cloze_tests:
            if test.id == test_id:
                return test
        raise KeyError(test_id)

    def start_cloze(self, test_id: str, mode: Mode = Mode.PRACTICE) -> ActiveExercise:
        """Start an open-cloze test in one of the practice modes."""
        if mode not in (Mode.GUIDED_LETTER, Mode.GUIDED_TYPE, Mode.PRACTICE):
            raise ValueError(f"Mode '{mode.value}' is not an open-cloze mode.")
        return self._start(self.get_cloze_test(test_id), mode, mode.attempt_kind)

    def start_word_formation(self, mode: Mode, test_id: str | None = None) -> ActiveExercise:
        """Start the guided, multiple-choice or full word-formation test."""
        wf = self.content.word_formation
        template: ExerciseTemplate | None
        if mode is Mode.WF_GUIDED:
            template = wf.guided_test
        elif mode is Mode.WF_MCQ:
            template = _pick(wf.mcq_tests, test_id)
        elif mode is Mode.WF_FULL:
            template = _pick(wf.full_tests, test_id)
        else:
            raise ValueError(f"Mode '{mode.value}' is not a word-formation mode.")
        if template is None:
            raise ContentLoadError(f"No word-formation content for mode '{mode.value}'.")
        return self._start(template, mode, mode.attempt_kind)

    def start_level_test(self, level: Level, test_id: str | None = None) -> ActiveExercise:
        """Start a scored test at an unlocked level."""
        self.levels.enter(level)
        content = self.content.levels.levels.get(level)
        template = _pick(content.tests, test_id) if content is not None else None
        if template is None:
            raise ContentLoadError(f"No tests for level '{level.value}'.")
        return self._start(template, Mode.PRACTICE, "level-test", level)

    def start_level_cloze(self, level: Level, test_id: str | None = None) -> ActiveExercise:
        """Start an ungated-by-average practice cloze at an unlocked level."""
        if not self.levels.is_unlocked(level):
            raise LevelLockedError(level)
        content = self.content.levels.levels.get(level)
        template = _pick(content.cloze, test_id) if content is not None else None
        if template is None:
            raise ContentLoadError(f"No cloze drills for level '{level.value}'.")
        return self._start(template, Mode.PRACTICE, "cloze", level)

    def _start(self, template: ExerciseTemplate, mode: Mode, kind: str, level: Level | None = None) -> ActiveExercise:
        session = ExerciseSession()
        session.start(template, mode)
        return ActiveExercise(session=session, kind=kind, level=level)

    def retry(self, active: ActiveExercise) -> None:
        """Reset an exercise so it can be answered and recorded again."""
        active.session.retry()
        active.recorded = False

    def submit(
        self, active: ActiveExercise, responses: Sequence[object] | Mapping[int, object]
    ) -> tuple[SubmissionResult, LevelTestOutcome | None]:
        """Grade an exercise and record it once; repeat calls return the same result."""
        result = active.session.submit(responses)
        if active.recorded:
            return (result, None)
        active.recorded = True
        template = active.session.template
        identifier = template.id if template is not None else active.kind
        self.progress.record(active.kind, identifier, result.correct_count, result.total)
        outcome: LevelTestOutcome | None = None
        if active.level is not None:
            if active.kind == "level-test":
                outcome = self.levels.record_test(active.level, result.correct_count, result.total)
            else:
                percent = self.levels.record_cloze(active.level, result.correct_count, result.total)
                logger.info("Level %s cloze %s scored %d%%", active.level.value, identifier, percent)
        return (result, outcome)

    def grade_prefix_drill(self, responses: Sequence[object]) -> DrillResult:
        items = self.content.word_formation.prefix_items
        verdicts = [grade_free_text(_at(responses, i), item.answer) for i, item in enumerate(items)]
        return self._record_drill("prefix", verdicts)

    def grade_suffix_drill(self, responses: Sequence[object]) -> DrillResult:
        items = self.content.word_formation.suffix_items
        verdicts = [grade_free_text(_at(responses, i), item.answer) for i, item in enumerate(items)]
        return self._record_drill("suffix", verdicts)

    def grade_pos_drill(self, responses: Sequence[object]) -> DrillResult:
        """Grade part-of-speech choices given as option indices."""
        items = self.content.word_formation.pos_items
        verdicts = []
        for i, item in enumerate(items):
            expected = item.options.index(item.correct) if item.correct in item.options else -1
            verdicts.append(grade_choice(_at(responses, i), expected, item.options))
        return self._record_drill("pos", verdicts)

    def _record_drill(self, kind: str, verdicts: list[bool]) -> DrillResult:
        correct = sum(1 for verdict in verdicts if verdict)
        self.progress.record(kind, kind, correct, len(verdicts))
        return DrillResult(kind=kind, correct=correct, total=len(verdicts), verdicts=tuple(verdicts))

    def intro_quiz(self) -> tuple[ChoiceQuestion, ...]:
        return self.content.levels.intro_quiz

    def submit_intro_quiz(self, responses: Sequence[object]) -> QuizOutcome:
        """Grade the entry quiz by option index and update the easy gate."""
        questions = self.content.levels.intro_quiz
        correct = sum(
            1
            for i, question in enumerate(questions)
            if grade_choice(_at(responses, i), question.answer_index, question.options)
        )
        self.progress.record("intro-quiz", "intro-quiz", correct, len(questions))
        return self.levels.record_intro_quiz(correct, len(questions))

    def level_states(self) -> list[LevelState]:
        return self.levels.states()

    def category_session(self, category_id: str) -> CategorySession:
        return self.categories.session(category_id)

    def record_category_result(self, category_id: str, stage: str, result: QuizResult) -> None:
        """Log a category quiz round under `category-mcq` or `category-short`."""
        self.progress.record(f"category-{stage}", category_id, result.correct, result.total)

    def progress_summary(self) -> ProgressSummary:
        return self.progress.aggregate()

    def summary_by_kind(self) -> list[KindSummary]:
        return self.progress.summary_by_kind()

    def export_progress(self, export_path: Path | str) -> ProgressTransferSummary:
        """Export the attempt log and level flags to a JSON file."""
        records = self.progress.records()
        flags = self.levels.flags
        payload = {
            "format_version": EXPORT_FORMAT_VERSION,
            "exported_at": datetime.now(UTC).isoformat(),
            "source": {
                "app_version": __version__,
                "schema_version": SCHEMA_VERSION,
            },
            "attempts": [record.to_dict() for record in records],
            "level_progress": flags_to_dict(flags),
        }
        path = Path(export_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        return ProgressTransferSummary(attempt_rows=len(records), flags=flags)

    def import_progress(self, import_path: Path | str) -> ProgressTransferSummary:
        """Import an export file, appending attempts and merging flags."""
        path = Path(import_path)
        raw_obj: object = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(raw_obj, dict):
            raise ValueError("Import file root must be a JSON object.")
        raw = cast(dict[str, object], raw_obj)
        format_version = raw.get("format_version", 0)
        if not isinstance(format_version, int):
            raise ValueError("Import file has invalid format_version.")
        if format_version > EXPORT_FORMAT_VERSION:
            raise ValueError(
                f"Import file format version {format_version} is newer than supported {EXPORT_FORMAT_VERSION}."
            )

        existing = self.progress.records()
        seen = {_record_key(record) for record in existing}
        attempts_raw = raw.get("attempts")
        imported = []
        if isinstance(attempts_raw, list):
            for item in cast(list[object], attempts_raw):
                record = record_from_dict(item)
                # Rows already in the log are skipped, so re-importing is a no-op.
                if record is None or _record_key(record) in seen:
                    continue
                seen.add(_record_key(record))
                imported.append(record)
        if imported:
            merged = sorted(existing + imported, key=lambda record: record.timestamp)
            self.progress.replace(merged)

        flags_raw = raw.get("level_progress")
        if isinstance(flags_raw, dict):
            self.levels.merge_flags(flags_from_dict(cast(dict[str, object], flags_raw)))
        return ProgressTransferSummary(attempt_rows=len(imported), flags=self.levels.flags)

    def close(self) -> None:
        """Close resources."""
        self.documents.close()

    def __del__(self) -> None:  # pragma: no cover
        """Best-effort cleanup for test/process teardown."""
        try:
            self.close()
        except Exception:
            pass


def _pick(templates: Sequence[ExerciseTemplate], test_id: str | None) -> ExerciseTemplate | None:
    if not templates:
        return None
    if test_id is None:
        return templates[0]
    for template in templates:
        if template.id == test_id:
            return template
    raise KeyError(test_id)


def _at(responses: Sequence[object], index: int) -> object:
    return responses[index] if index < len(responses) else None


def _record_key(record: AttemptRecord) -> tuple[str, str, int, int, int]:
    return (record.kind, record.identifier, record.score, record.total, record.timestamp)
