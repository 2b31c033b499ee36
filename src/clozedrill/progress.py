"""Capped attempt log and derived accuracy statistics."""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass
from typing import cast

from .models import AttemptRecord
from .grading import percent_of
from .storage import Corrupt, DocumentStore, Empty, StorageUnavailableError, read_or_default

ATTEMPT_LOG_KEY = "attempt-log"
DEFAULT_CAPACITY = 500
RECENT_WINDOW = 20
DEFAULT_COUNTED_KINDS = frozenset({"guided", "mcq", "full", "practice", "level-test"})

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SeriesPoint:
    """One bar of the recent-history chart."""

    kind: str
    score: int
    total: int
    percent: int
    band: str


@dataclass(frozen=True)
class KindSummary:
    """Totals for one attempt kind."""

    kind: str
    attempts: int
    correct: int
    questions: int


@dataclass(frozen=True)
class ProgressSummary:
    """Headline statistics over the attempt log."""

    total_correct: int
    total_questions: int
    accuracy_percent: int
    attempt_count: int
    recent_series: tuple[SeriesPoint, ...]


def series_band(percent: int) -> str:
    """Classify one chart bar."""
    if percent >= 80:
        return "good"
    if percent < 50:
        return "low"
    return "neutral"


def now_millis() -> int:
    return int(time.time() * 1000)


class ProgressStore:
    """Append-only attempt log persisted as one document."""

    def __init__(
        self,
        documents: DocumentStore,
        capacity: int = DEFAULT_CAPACITY,
        counted_kinds: Iterable[str] = DEFAULT_COUNTED_KINDS,
        window: int = RECENT_WINDOW,
    ) -> None:
        if capacity < 1:
            raise ValueError("Attempt log capacity must be at least 1.")
        self.documents = documents
        self.capacity = capacity
        self.counted_kinds = frozenset(counted_kinds)
        self.window = window

    def records(self) -> list[AttemptRecord]:
        """Return the stored log, oldest first.

        Missing, unreadable or malformed data yields an empty log; individual
        malformed entries are skipped.
        """
        result = read_or_default(self.documents, ATTEMPT_LOG_KEY)
        if isinstance(result, Empty):
            return []
        if isinstance(result, Corrupt):
            logger.warning("Ignoring unreadable attempt log: %s", result.reason)
            return []
        if not isinstance(result.value, list):
            logger.warning("Ignoring attempt log with unexpected shape: %s", type(result.value).__name__)
            return []
        records: list[AttemptRecord] = []
        for item in cast(list[object], result.value):
            record = record_from_dict(item)
            if record is not None:
                records.append(record)
        return records

    def append(self, record: AttemptRecord) -> list[AttemptRecord]:
        """Append a record, trimming the oldest entries beyond capacity."""
        records = self.records()
        records.append(record)
        if len(records) > self.capacity:
            records = records[-self.capacity :]
        self._save(records)
        return records

    def record(self, kind: str, identifier: str, score: int, total: int) -> AttemptRecord:
        """Build and append a record stamped with the current time."""
        attempt = AttemptRecord(
            kind=kind,
            identifier=identifier or kind,
            score=score,
            total=total,
            timestamp=now_millis(),
        )
        self.append(attempt)
        return attempt

    def replace(self, records: list[AttemptRecord]) -> None:
        """Overwrite the log; used by progress import."""
        self._save(records[-self.capacity :])

    def _save(self, records: list[AttemptRecord]) -> None:
        try:
            self.documents.write(ATTEMPT_LOG_KEY, [record.to_dict() for record in records])
        except StorageUnavailableError as exc:
            logger.warning("Could not save attempt log: %s", exc)

    def aggregate(self) -> ProgressSummary:
        """Return accuracy over counted kinds plus the recent series."""
        records = self.records()
        counted = [record for record in records if record.kind in self.counted_kinds]
        total_correct = sum(record.score for record in counted)
        total_questions = sum(record.total for record in counted)
        return ProgressSummary(
            total_correct=total_correct,
            total_questions=total_questions,
            accuracy_percent=percent_of(total_correct, total_questions),
            attempt_count=len(counted),
            recent_series=tuple(self._series(records)),
        )

    def _series(self, records: list[AttemptRecord]) -> list[SeriesPoint]:
        points: list[SeriesPoint] = []
        for record in records[-self.window :] if self.window > 0 else []:
            percent = percent_of(record.score, record.total)
            points.append(
                SeriesPoint(
                    kind=record.kind,
                    score=record.score,
                    total=record.total,
                    percent=percent,
                    band=series_band(percent),
                )
            )
        return points

    def summary_by_kind(self) -> list[KindSummary]:
        """Return per-kind totals sorted by kind."""
        totals: dict[str, list[int]] = {}
        for record in self.records():
            row = totals.setdefault(record.kind, [0, 0, 0])
            row[0] += 1
            row[1] += record.score
            row[2] += record.total
        return [
            KindSummary(kind=kind, attempts=row[0], correct=row[1], questions=row[2])
            for kind, row in sorted(totals.items())
        ]


def record_from_dict(raw: object) -> AttemptRecord | None:
    """Parse one persisted `{type, id, score, total, date}` entry."""
    if not isinstance(raw, dict):
        return None
    row = cast(dict[str, object], raw)
    kind = row.get("type")
    if not isinstance(kind, str) or not kind:
        return None
    score = _coerce_count(row.get("score"))
    total = _coerce_count(row.get("total"))
    if score is None or total is None:
        return None
    identifier = row.get("id")
    timestamp = _coerce_count(row.get("date"))
    return AttemptRecord(
        kind=kind,
        identifier=str(identifier) if identifier is not None else kind,
        score=score,
        total=total,
        timestamp=timestamp if timestamp is not None else 0,
    )


def _coerce_count(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return max(0, value)
    if isinstance(value, float):
        return max(0, int(value))
    if isinstance(value, str):
        try:
            return max(0, int(value))
        except ValueError:
            return None
    return None
