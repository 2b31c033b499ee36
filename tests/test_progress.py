from typing import Any

from clozedrill.models import AttemptRecord
from clozedrill.progress import (
    ATTEMPT_LOG_KEY,
    ProgressStore,
    record_from_dict,
    series_band,
)
from clozedrill.storage import DocumentStore, Ok


def _record(kind: str, score: int, total: int, timestamp: int = 0) -> AttemptRecord:
    return AttemptRecord(kind=kind, identifier=kind, score=score, total=total, timestamp=timestamp)


def test_empty_log_reports_zero_percent(documents: DocumentStore) -> None:
    summary = ProgressStore(documents).aggregate()
    assert summary.total_correct == 0
    assert summary.total_questions == 0
    assert summary.accuracy_percent == 0
    assert summary.attempt_count == 0
    assert summary.recent_series == ()


def test_aggregate_counts_only_scored_kinds(documents: DocumentStore) -> None:
    store = ProgressStore(documents)
    store.record("practice", "daily-routine", 4, 5)
    store.record("mcq", "wf-mcq-1", 2, 3)
    store.record("prefix", "prefix", 5, 5)

    summary = store.aggregate()
    assert (summary.total_correct, summary.total_questions) == (6, 8)
    assert summary.accuracy_percent == 75
    assert summary.attempt_count == 2
    assert [point.kind for point in summary.recent_series] == ["practice", "mcq", "prefix"]
    assert summary.recent_series[0].percent == 80
    assert summary.recent_series[0].band == "good"


def test_record_persists_wire_format(documents: DocumentStore) -> None:
    store = ProgressStore(documents)
    attempt = store.record("full", "wf-full-1", 3, 4)
    stored = documents.read(ATTEMPT_LOG_KEY)
    assert isinstance(stored, Ok)
    assert stored.value == [
        {"type": "full", "id": "wf-full-1", "score": 3, "total": 4, "date": attempt.timestamp}
    ]
    assert attempt.timestamp > 0


def test_log_is_capped_at_capacity(documents: DocumentStore) -> None:
    store = ProgressStore(documents, capacity=500)
    store.replace([_record("mcq", 1, 1, timestamp=index) for index in range(500)])
    records = store.append(_record("mcq", 0, 1, timestamp=500))
    assert len(records) == 500
    assert records[0].timestamp == 1
    assert records[-1].timestamp == 500
    assert len(store.records()) == 500


def test_small_capacity_drops_oldest(documents: DocumentStore) -> None:
    store = ProgressStore(documents, capacity=2)
    for index in range(3):
        store.append(_record("practice", index, 3, timestamp=index))
    assert [record.timestamp for record in store.records()] == [1, 2]


def test_capacity_must_be_positive(documents: DocumentStore) -> None:
    try:
        ProgressStore(documents, capacity=0)
        raise AssertionError("Expected ValueError.")
    except ValueError:
        pass


def test_recent_series_uses_last_window(documents: DocumentStore) -> None:
    store = ProgressStore(documents)
    store.replace([_record("practice", index % 6, 5, timestamp=index) for index in range(25)])
    summary = store.aggregate()
    assert len(summary.recent_series) == 20
    assert summary.attempt_count == 25


def test_unreadable_log_reads_as_empty(documents: DocumentStore) -> None:
    documents.write(ATTEMPT_LOG_KEY, {"not": "a list"})
    store = ProgressStore(documents)
    assert store.records() == []
    store.record("mcq", "wf-mcq-1", 1, 3)
    assert len(store.records()) == 1


def test_malformed_entries_are_skipped(documents: DocumentStore) -> None:
    raw: list[Any] = [
        {"type": "mcq", "id": "a", "score": 1, "total": 2, "date": 5},
        "junk",
        {"type": "", "score": 1, "total": 1},
        {"type": "full", "score": "x", "total": 1},
    ]
    documents.write(ATTEMPT_LOG_KEY, raw)
    records = ProgressStore(documents).records()
    assert records == [AttemptRecord(kind="mcq", identifier="a", score=1, total=2, timestamp=5)]


def test_record_from_dict_coerces_counts() -> None:
    record = record_from_dict({"type": "mcq", "score": "3", "total": 4.0, "date": 10})
    assert record == AttemptRecord(kind="mcq", identifier="mcq", score=3, total=4, timestamp=10)
    assert record_from_dict({"type": "mcq", "score": True, "total": 1}) is None
    assert record_from_dict(["mcq"]) is None


def test_summary_by_kind_sorted(documents: DocumentStore) -> None:
    store = ProgressStore(documents)
    store.record("suffix", "suffix", 4, 5)
    store.record("mcq", "wf-mcq-1", 2, 3)
    store.record("suffix", "suffix", 5, 5)
    rows = store.summary_by_kind()
    assert [(row.kind, row.attempts, row.correct, row.questions) for row in rows] == [
        ("mcq", 1, 2, 3),
        ("suffix", 2, 9, 10),
    ]


def test_series_band_thresholds() -> None:
    assert series_band(80) == "good"
    assert series_band(79) == "neutral"
    assert series_band(50) == "neutral"
    assert series_band(49) == "low"


def test_unavailable_storage_does_not_raise() -> None:
    documents = DocumentStore(":memory:")
    store = ProgressStore(documents)
    documents.close()
    store.record("mcq", "wf-mcq-1", 1, 3)
    assert store.records() == []
    assert store.aggregate().accuracy_percent == 0
