from clozedrill.content_loader import load_content
from clozedrill.grading import coerce_index
from clozedrill.tokenizer import check_template


def test_bundled_templates_are_aligned() -> None:
    bundle = load_content()
    wf = bundle.word_formation
    templates = list(bundle.cloze_tests)
    templates += [wf.guided_test] if wf.guided_test is not None else []
    templates += list(wf.mcq_tests) + list(wf.full_tests)
    for content in bundle.levels.levels.values():
        templates += list(content.tests) + list(content.cloze)
    for template in templates:
        check_template(template)


def test_bundled_choice_answers_point_at_options() -> None:
    bundle = load_content()
    for template in bundle.word_formation.mcq_tests:
        for ordinal, answer in enumerate(template.answers, start=1):
            index = coerce_index(answer)
            assert index is not None
            assert 0 <= index < len(template.options_for(ordinal))
    for question in bundle.levels.intro_quiz:
        assert 0 <= question.answer_index < len(question.options)
    for category in bundle.categories:
        assert category.mc_quiz
        assert category.short_questions
        for mc in category.mc_quiz:
            assert 0 <= mc.answer_index < len(mc.options)


def test_bundled_pos_answers_are_options() -> None:
    for item in load_content().word_formation.pos_items:
        assert item.correct in item.options
