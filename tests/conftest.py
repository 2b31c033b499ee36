from __future__ import annotations

import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from clozedrill.models import ExerciseTemplate  # noqa: E402
from clozedrill.storage import DocumentStore  # noqa: E402


@pytest.fixture
def documents() -> Iterator[DocumentStore]:
    store = DocumentStore(":memory:")
    yield store
    store.close()


@pytest.fixture
def school_template() -> ExerciseTemplate:
    return ExerciseTemplate(
        id="school",
        title="School",
        text="I go (1) school (2) bus.",
        answers=("to", "by"),
        word_types=("preposition", "preposition"),
        explanations=("Movement towards a place.", "Means of transport."),
    )
