from clozedrill.levels import (
    LEVEL_PROGRESS_KEY,
    LevelLockedError,
    LevelProgression,
)
from clozedrill.models import Level, LevelFlags
from clozedrill.storage import DocumentStore, Ok


def _unlocked_easy(documents: DocumentStore) -> LevelProgression:
    levels = LevelProgression(documents)
    levels.record_intro_quiz(5, 5)
    return levels


def test_fresh_progress_is_all_locked(documents: DocumentStore) -> None:
    levels = LevelProgression(documents)
    assert levels.flags == LevelFlags()
    assert [state.unlocked for state in levels.states()] == [False, False, False, False]
    try:
        levels.enter(Level.EASY)
        raise AssertionError("Expected LevelLockedError.")
    except LevelLockedError as exc:
        assert exc.level is Level.EASY


def test_intro_quiz_four_of_five_unlocks_easy_only(documents: DocumentStore) -> None:
    levels = LevelProgression(documents)
    outcome = levels.record_intro_quiz(4, 5)
    assert outcome.percent == 80
    assert outcome.passed is True
    assert outcome.newly_passed is True
    assert levels.is_unlocked(Level.EASY) is True
    assert levels.is_unlocked(Level.MEDIUM) is False
    assert levels.record_intro_quiz(5, 5).newly_passed is False


def test_intro_quiz_below_threshold(documents: DocumentStore) -> None:
    levels = LevelProgression(documents)
    outcome = levels.record_intro_quiz(3, 5)
    assert outcome.percent == 60
    assert outcome.passed is False
    assert levels.is_unlocked(Level.EASY) is False


def test_rolling_average_passes_and_never_reverts(documents: DocumentStore) -> None:
    levels = _unlocked_easy(documents)

    first = levels.record_test(Level.EASY, 3, 5)
    assert (first.percent, first.average, first.passed) == (60, 60.0, False)

    second = levels.record_test(Level.EASY, 9, 10)
    assert second.average == 75.0
    assert second.passed is True
    assert second.newly_passed is True
    assert levels.is_unlocked(Level.MEDIUM) is True

    third = levels.record_test(Level.EASY, 3, 5)
    assert third.average == 70.0
    assert third.passed is True
    assert third.newly_passed is False

    fourth = levels.record_test(Level.EASY, 0, 5)
    assert fourth.average == 52.5
    assert fourth.passed is True
    assert levels.is_unlocked(Level.MEDIUM) is True
    assert levels.scores(Level.EASY) == [60, 90, 60, 0]


def test_exact_threshold_passes(documents: DocumentStore) -> None:
    levels = _unlocked_easy(documents)
    assert levels.record_test(Level.EASY, 7, 10).passed is True


def test_locked_level_cannot_be_scored(documents: DocumentStore) -> None:
    levels = _unlocked_easy(documents)
    try:
        levels.record_test(Level.MEDIUM, 5, 5)
        raise AssertionError("Expected LevelLockedError.")
    except LevelLockedError:
        pass
    try:
        levels.record_cloze(Level.HARD, 1, 1)
        raise AssertionError("Expected LevelLockedError.")
    except LevelLockedError:
        pass


def test_cloze_drills_do_not_count_toward_average(documents: DocumentStore) -> None:
    levels = _unlocked_easy(documents)
    assert levels.record_cloze(Level.EASY, 2, 2) == 100
    assert levels.scores(Level.EASY) == []
    assert levels.average(Level.EASY) is None
    assert levels.is_passed(Level.EASY) is False


def test_flags_persist_in_camel_case_and_merge(documents: DocumentStore) -> None:
    documents.write(LEVEL_PROGRESS_KEY, {"introQuizPassed": True, "theme": "dark"})
    levels = LevelProgression(documents)
    levels.record_test(Level.EASY, 5, 5)
    assert documents.read(LEVEL_PROGRESS_KEY) == Ok({"introQuizPassed": True, "theme": "dark", "easyPassed": True})


def test_scores_are_per_session_flags_are_persisted(documents: DocumentStore) -> None:
    first = _unlocked_easy(documents)
    first.record_test(Level.EASY, 5, 5)

    second = LevelProgression(documents)
    assert second.is_unlocked(Level.MEDIUM) is True
    assert second.scores(Level.EASY) == []
    first.reset_session()
    assert first.scores(Level.EASY) == []


def test_corrupt_flags_read_as_locked(documents: DocumentStore) -> None:
    documents.write(LEVEL_PROGRESS_KEY, ["not", "an", "object"])
    levels = LevelProgression(documents)
    assert levels.flags == LevelFlags()
    documents.write(LEVEL_PROGRESS_KEY, {"introQuizPassed": "yes"})
    assert levels.is_unlocked(Level.EASY) is False


def test_expert_has_no_pass_flag(documents: DocumentStore) -> None:
    levels = LevelProgression(documents)
    levels.merge_flags(LevelFlags(True, True, True, True))
    outcome = levels.record_test(Level.EXPERT, 2, 2)
    assert outcome.percent == 100
    assert outcome.passed is False
    assert outcome.newly_passed is False
    states = {state.level: state for state in levels.states()}
    assert states[Level.EXPERT].unlocked is True
    assert states[Level.EXPERT].attempts == 1
    assert states[Level.EXPERT].average == 100.0


def test_merge_flags_ignores_false(documents: DocumentStore) -> None:
    levels = _unlocked_easy(documents)
    levels.merge_flags(LevelFlags())
    assert levels.flags.intro_quiz_passed is True


def test_can_enter_follows_unlock(documents: DocumentStore) -> None:
    levels = LevelProgression(documents)
    assert levels.can_enter(Level.EASY) is False
    levels.record_intro_quiz(4, 5)
    assert levels.can_enter(Level.EASY) is True
    levels.enter(Level.EASY)
    assert levels.scores(Level.EASY) == []
