from clozedrill.grading import (
    Shape,
    coerce_index,
    grade,
    grade_choice,
    grade_free_text,
    grade_short_answer,
    normalize_for,
    normalize_free_text,
    normalize_short_answer,
    percent_of,
)


def test_free_text_trims_and_lowercases() -> None:
    assert grade_free_text(" Paris ", "paris") is True
    assert grade_free_text("TO", "to") is True
    assert normalize_free_text("  New York ") == "new york"


def test_free_text_keeps_internal_whitespace_and_punctuation() -> None:
    assert grade_free_text("new  york", "new york") is False
    assert grade_free_text("Paris.", "paris") is False


def test_free_text_blank_expected_never_matches() -> None:
    assert grade_free_text("", "") is False
    assert grade_free_text("anything", "   ") is False


def test_free_text_rejects_non_string_input() -> None:
    assert grade_free_text(None, "to") is False
    assert grade_free_text(3, "3") is False
    assert normalize_free_text(None) == ""


def test_short_answer_drops_trailing_punctuation() -> None:
    assert grade_short_answer("Paris.", ["paris"]) is True
    assert grade_short_answer("  have   known!! ", ["have known"]) is True
    assert normalize_short_answer("Hello , world .") == "hello , world"


def test_short_answer_matches_any_alternative() -> None:
    accepted = ["have known", "we have known", "'ve known"]
    assert grade_short_answer("We have known.", accepted) is True
    assert grade_short_answer("knew", accepted) is False


def test_short_answer_empty_never_matches() -> None:
    assert grade_short_answer("", [""]) is False
    assert grade_short_answer("...", ["."]) is False


def test_coerce_index() -> None:
    assert coerce_index(2) == 2
    assert coerce_index(" 1 ") == 1
    assert coerce_index("one") is None
    assert coerce_index(True) is None
    assert coerce_index(None) is None


def test_choice_compares_indices() -> None:
    assert grade_choice(1, 1) is True
    assert grade_choice("1", "1") is True
    assert grade_choice(0, "1") is False
    assert grade_choice(True, 1) is False
    assert grade_choice(None, 0) is False


def test_choice_accepts_option_text() -> None:
    options = ["freely", "freedom", "freeing"]
    assert grade_choice("Freedom", "1", options) is True
    assert grade_choice("freely", "1", options) is False


def test_choice_with_out_of_range_expected_is_incorrect() -> None:
    assert grade_choice(0, 5, ["a"]) is False
    assert grade_choice(0, -1, ["a"]) is False


def test_grade_dispatches_by_shape() -> None:
    assert grade(Shape.FREE_TEXT, " To ", "to") is True
    assert grade(Shape.SHORT_ANSWER, "a.", ["a", "an"]) is True
    assert grade(Shape.SHORT_ANSWER, "An", "an") is True
    assert grade(Shape.SHORT_ANSWER, "a", None) is False
    assert grade(Shape.CHOICE, "2", 2, ["x", "y", "z"]) is True


def test_normalize_for_shape() -> None:
    assert normalize_for(Shape.FREE_TEXT, " By ") == "by"
    assert normalize_for(Shape.SHORT_ANSWER, "Have  known.") == "have known"
    assert normalize_for(Shape.CHOICE, "2") == "2"
    assert normalize_for(Shape.CHOICE, "two") == ""


def test_short_answer_sentence_with_full_stop() -> None:
    assert grade(Shape.SHORT_ANSWER, "because it rains.", ["because it rains"]) is True


def test_short_answer_strips_long_punctuation_tail() -> None:
    assert normalize_short_answer("yes" + " .!" * 20000) == "yes"
    assert normalize_short_answer("a. b" + "." * 5) == "a. b"


def test_percent_rounds_half_up() -> None:
    assert percent_of(0, 0) == 0
    assert percent_of(2, 3) == 67
    assert percent_of(1, 8) == 13
    assert percent_of(4, 5) == 80
