"""CLI entrypoint for the gapped-text drill trainer."""

from __future__ import annotations

import argparse
import logging
from collections.abc import Callable, Sequence
from pathlib import Path

from .category import CategorySession, Stage
from .content_loader import ContentLoadError
from .grading import Shape
from .levels import LevelLockedError
from .models import ChoiceQuestion, Level, ShortQuestion
from .service import ActiveExercise, DrillResult, DrillService
from .session import Mode, SubmissionResult, score_band
from .tokenizer import render_text

InputFn = Callable[[str], str]
PrintFn = Callable[[str], None]
BACK_COMMANDS = {":back", ":b", "back"}
FLOW_EXIT_COMMANDS = {":quit", ":exit", ":q"}
MENU_BACK_COMMANDS = {"b"}
MENU_QUIT_COMMANDS = {"q"}
OPTION_LETTERS = "ABCDEFGH"
DEFAULT_DATA_DIR = Path(".clozedrill")


class QuitApp(Exception):
    """Signal immediate app exit from nested menu flows."""


class LeaveFlow(Exception):
    """Signal leaving the current exercise without submitting."""


def _service(args: argparse.Namespace | None = None) -> DrillService:
    """Create app service with local database path."""
    data_dir = Path(args.data_dir) if args is not None else DEFAULT_DATA_DIR
    content_dir = Path(args.content_dir) if args is not None and args.content_dir else None
    seed = args.seed if args is not None else None
    return DrillService(db_path=data_dir / "progress.db", content_dir=content_dir, seed=seed)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="clozedrill", description="Gapped-text language drills")
    parser.add_argument("command", nargs="?", default="play", choices=["play", "stats"])
    parser.add_argument("--data-dir", default=str(DEFAULT_DATA_DIR), help="directory holding progress.db")
    parser.add_argument("--content-dir", default=None, help="load content JSON from this directory")
    parser.add_argument("--seed", type=int, default=None, help="seed for optional question batches")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="logging verbosity",
    )
    return parser


def run(argv: list[str] | None = None) -> int:
    """Run the CLI application."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    if args.command == "stats":
        return stats_command(args)
    return play_shell(args=args)


def _open_service(args: argparse.Namespace | None, print_fn: PrintFn) -> DrillService | None:
    try:
        service = _service(args)
    except ContentLoadError as exc:
        print_fn(f"Could not load exercises: {exc}")
        return None
    if service.storage_error:
        print_fn(f"Progress will not be saved this session. {service.storage_error}")
    return service


def stats_command(args: argparse.Namespace | None = None, print_fn: PrintFn = print) -> int:
    """Print progress summary and exit."""
    service = _open_service(args, print_fn)
    if service is None:
        return 1
    try:
        _progress_flow(service, print_fn)
        return 0
    finally:
        service.close()


def play_shell(input_fn: InputFn = input, print_fn: PrintFn = print, args: argparse.Namespace | None = None) -> int:
    """Run persistent menu-driven shell."""
    service = _open_service(args, print_fn)
    if service is None:
        return 1
    try:
        while True:
            print_fn("\n=== Cloze Drill ===")
            print_fn("1) Open cloze")
            print_fn("2) Word formation")
            print_fn("3) Levels")
            print_fn("4) Grammar categories")
            print_fn("5) Progress")
            print_fn("6) Admin")
            print_fn("q) Quit")
            choice = input_fn("Choose: ").strip().lower()

            if choice == "1":
                _open_cloze_flow(service, input_fn, print_fn)
            elif choice == "2":
                _word_formation_flow(service, input_fn, print_fn)
            elif choice == "3":
                _levels_flow(service, input_fn, print_fn)
            elif choice == "4":
                _categories_flow(service, input_fn, print_fn)
            elif choice == "5":
                _progress_flow(service, print_fn)
            elif choice == "6":
                _admin_flow(service, input_fn, print_fn)
            elif choice in MENU_QUIT_COMMANDS:
                return 0
            else:
                print_fn("Invalid choice.")
    except QuitApp:
        return 0
    finally:
        service.close()


def _choose_index(choice: str, count: int) -> int | None:
    """Return a zero-based index from a 1-based menu choice."""
    if not choice.isdigit():
        return None
    index = int(choice) - 1
    if 0 <= index < count:
        return index
    return None


def _menu_choice(input_fn: InputFn, prompt: str) -> str:
    choice = input_fn(prompt).strip().lower()
    if choice in MENU_QUIT_COMMANDS:
        raise QuitApp()
    return choice


def _open_cloze_flow(service: DrillService, input_fn: InputFn, print_fn: PrintFn) -> None:
    """Pick an open-cloze test and a hint mode, then run it."""
    tests = service.list_cloze_tests()
    print_fn("\n=== Open Cloze ===")
    if not tests:
        print_fn("No tests available.")
        return
    for idx, test in enumerate(tests, start=1):
        print_fn(f"{idx}) {test.title}")
    print_fn("b) Back")
    print_fn("q) Quit")
    choice = _menu_choice(input_fn, "Choose test: ")
    if choice in MENU_BACK_COMMANDS:
        return
    index = _choose_index(choice, len(tests))
    if index is None:
        print_fn("Invalid choice.")
        return

    print_fn("1) Guided: first letter shown")
    print_fn("2) Guided: word type shown")
    print_fn("3) Practice: no hints")
    modes = {"1": Mode.GUIDED_LETTER, "2": Mode.GUIDED_TYPE, "3": Mode.PRACTICE}
    mode_choice = _menu_choice(input_fn, "Choose mode: ")
    mode = modes.get(mode_choice)
    if mode is None:
        print_fn("Invalid choice.")
        return
    active = service.start_cloze(tests[index].id, mode)
    _run_exercise(service, active, input_fn, print_fn)


def _word_formation_flow(service: DrillService, input_fn: InputFn, print_fn: PrintFn) -> None:
    """Word-formation drills and tests."""
    while True:
        print_fn("\n=== Word Formation ===")
        print_fn("1) Prefix drill")
        print_fn("2) Suffix drill")
        print_fn("3) Part-of-speech drill")
        print_fn("4) Guided test")
        print_fn("5) Multiple-choice test")
        print_fn("6) Full test")
        print_fn("b) Back")
        print_fn("q) Quit")
        choice = _menu_choice(input_fn, "Choose: ")
        if choice in MENU_BACK_COMMANDS:
            return
        try:
            if choice == "1":
                _prefix_drill_flow(service, input_fn, print_fn)
            elif choice == "2":
                _suffix_drill_flow(service, input_fn, print_fn)
            elif choice == "3":
                _pos_drill_flow(service, input_fn, print_fn)
            elif choice in {"4", "5", "6"}:
                mode = {"4": Mode.WF_GUIDED, "5": Mode.WF_MCQ, "6": Mode.WF_FULL}[choice]
                _run_exercise(service, service.start_word_formation(mode), input_fn, print_fn)
            else:
                print_fn("Invalid choice.")
        except ContentLoadError as exc:
            print_fn(str(exc))


def _collect(input_fn: InputFn, prompts: Sequence[str]) -> list[str] | None:
    """Ask each prompt in turn; None when the learner leaves early."""
    answers: list[str] = []
    for prompt in prompts:
        given = input_fn(prompt)
        if given.strip().lower() in BACK_COMMANDS | FLOW_EXIT_COMMANDS:
            return None
        answers.append(given)
    return answers


def _print_drill_result(result: DrillResult, print_fn: PrintFn) -> None:
    marks = " ".join("✓" if verdict else "✗" for verdict in result.verdicts)
    band = score_band(result.correct, result.total)
    print_fn(f"Score: {result.correct} / {result.total} ({band})")
    if marks:
        print_fn(marks)


def _prefix_drill_flow(service: DrillService, input_fn: InputFn, print_fn: PrintFn) -> None:
    items = service.content.word_formation.prefix_items
    if not items:
        print_fn("No prefix exercises available.")
        return
    prompts = [f"{i}. {item.prefix} + {item.base} = " for i, item in enumerate(items, start=1)]
    answers = _collect(input_fn, prompts)
    if answers is None:
        print_fn("Drill abandoned.")
        return
    _print_drill_result(service.grade_prefix_drill(answers), print_fn)


def _suffix_drill_flow(service: DrillService, input_fn: InputFn, print_fn: PrintFn) -> None:
    items = service.content.word_formation.suffix_items
    if not items:
        print_fn("No suffix exercises available.")
        return
    prompts = [f"{i}. {item.base} -> {item.part_of_speech}: " for i, item in enumerate(items, start=1)]
    answers = _collect(input_fn, prompts)
    if answers is None:
        print_fn("Drill abandoned.")
        return
    _print_drill_result(service.grade_suffix_drill(answers), print_fn)


def _pos_drill_flow(service: DrillService, input_fn: InputFn, print_fn: PrintFn) -> None:
    items = service.content.word_formation.pos_items
    if not items:
        print_fn("No part-of-speech exercises available.")
        return
    answers: list[object] = []
    for i, item in enumerate(items, start=1):
        print_fn(f"\n{i}. {item.sentence}")
        _print_options(item.options, print_fn)
        given = input_fn("Option: ").strip()
        if given.lower() in BACK_COMMANDS | FLOW_EXIT_COMMANDS:
            print_fn("Drill abandoned.")
            return
        answers.append(_option_index(given, len(item.options)))
    _print_drill_result(service.grade_pos_drill(answers), print_fn)


def _print_options(options: Sequence[str], print_fn: PrintFn) -> None:
    for letter, option in zip(OPTION_LETTERS, options):
        print_fn(f"  {letter}) {option}")


def _option_index(given: str, count: int) -> int | None:
    """Accept a letter (A-D) or a 1-based number."""
    text = given.strip().upper()
    if len(text) == 1 and text in OPTION_LETTERS[:count]:
        return OPTION_LETTERS.index(text)
    if text.isdigit() and 1 <= int(text) <= count:
        return int(text) - 1
    return None


def _run_exercise(service: DrillService, active: ActiveExercise, input_fn: InputFn, print_fn: PrintFn) -> None:
    """Present a gapped exercise, grade it, and offer a retry."""
    while True:
        session = active.session
        template = session.template
        if template is None:
            return
        print_fn(f"\n=== {template.title} ===")
        print_fn(render_text(session.segments, lambda ordinal: f"[{ordinal}]____"))
        print_fn("Type :b to leave without submitting.")
        try:
            responses = _ask_gaps(active, input_fn, print_fn)
        except LeaveFlow:
            print_fn("Exercise left without submitting.")
            return
        result, outcome = service.submit(active, responses)
        _print_submission(result, print_fn)
        if outcome is not None:
            average = f"{outcome.average:.1f}"
            print_fn(
                f"Level {outcome.level.value}: {outcome.percent}% this test, "
                f"average {average}% over {outcome.attempts} test(s)."
            )
            if outcome.newly_passed:
                print_fn("Level passed. The next level is now unlocked.")

        choice = input_fn("r) Retry  b) Back: ").strip().lower()
        if choice in MENU_QUIT_COMMANDS:
            raise QuitApp()
        if choice != "r":
            return
        service.retry(active)


def _ask_gaps(active: ActiveExercise, input_fn: InputFn, print_fn: PrintFn) -> dict[int, object]:
    session = active.session
    template = session.template
    responses: dict[int, object] = {}
    if template is None:
        return responses
    choice = session.mode.shape is Shape.CHOICE
    for ordinal in session.ordinals:
        hint = session.hint(ordinal)
        label = f"Gap {ordinal}" + (f" {hint}" if hint else "")
        if choice:
            options = template.options_for(ordinal)
            print_fn(label)
            _print_options(options, print_fn)
            given = input_fn("Option: ").strip()
        else:
            given = input_fn(f"{label}: ")
        if given.strip().lower() in BACK_COMMANDS | FLOW_EXIT_COMMANDS:
            raise LeaveFlow()
        responses[ordinal] = _option_index(given, len(template.options_for(ordinal))) if choice else given
    return responses


def _print_submission(result: SubmissionResult, print_fn: PrintFn) -> None:
    print_fn(f"\nScore: {result.correct_count} / {result.total} ({result.band})")
    if not result.missed:
        return
    print_fn("Correct answers for the gaps you missed:")
    for missed in result.missed:
        print_fn(f"- Gap {missed.ordinal}: {missed.expected}")
        if missed.explanation:
            print_fn(f"  {missed.explanation}")


def _levels_flow(service: DrillService, input_fn: InputFn, print_fn: PrintFn) -> None:
    """Show level unlock state and run the intro quiz, level tests or cloze drills."""
    while True:
        print_fn("\n=== Levels ===")
        states = service.level_states()
        flags = service.levels.flags
        print_fn(f"Entry quiz: {'passed' if flags.intro_quiz_passed else 'not passed'}")
        header = f"{'#':>2} {'Level':<8} {'Unlock':<8} {'Passed':<7} {'Tests':>5} Average"
        print_fn(header)
        print_fn("-" * len(header))
        for idx, state in enumerate(states, start=1):
            unlocked = "unlocked" if state.unlocked else "locked"
            passed = "yes" if state.passed else "-"
            average = f"{state.average:.1f}%" if state.average is not None else "-"
            print_fn(f"{idx:>2} {state.level.value:<8} {unlocked:<8} {passed:<7} {state.attempts:>5} {average}")
        print_fn("i) Entry quiz")
        print_fn("b) Back")
        print_fn("q) Quit")
        choice = _menu_choice(input_fn, "Choose: ")
        if choice in MENU_BACK_COMMANDS:
            return
        if choice == "i":
            _intro_quiz_flow(service, input_fn, print_fn)
            continue
        index = _choose_index(choice, len(states))
        if index is None:
            print_fn("Invalid choice.")
            continue
        level = states[index].level
        if not states[index].unlocked:
            print_fn(f"Level {level.value} is locked.")
            continue
        _level_menu(service, level, input_fn, print_fn)


def _level_menu(service: DrillService, level: Level, input_fn: InputFn, print_fn: PrintFn) -> None:
    print_fn(f"\n=== Level: {level.value} ===")
    print_fn("t) Level test")
    print_fn("c) Cloze practice")
    print_fn("b) Back")
    choice = _menu_choice(input_fn, "Choose: ")
    if choice in MENU_BACK_COMMANDS:
        return
    try:
        if choice == "t":
            active = service.start_level_test(level, _pick_level_test(service, level, "tests", input_fn, print_fn))
        elif choice == "c":
            active = service.start_level_cloze(level, _pick_level_test(service, level, "cloze", input_fn, print_fn))
        else:
            print_fn("Invalid choice.")
            return
    except (ContentLoadError, LevelLockedError, KeyError) as exc:
        print_fn(f"Cannot start: {exc}")
        return
    _run_exercise(service, active, input_fn, print_fn)


def _pick_level_test(service: DrillService, level: Level, section: str, input_fn: InputFn, print_fn: PrintFn) -> str:
    content = service.content.levels.levels.get(level)
    templates = getattr(content, section) if content is not None else ()
    if len(templates) <= 1:
        return templates[0].id if templates else ""
    for idx, template in enumerate(templates, start=1):
        print_fn(f"{idx}) {template.title}")
    index = _choose_index(_menu_choice(input_fn, "Choose test: "), len(templates))
    return templates[index if index is not None else 0].id


def _intro_quiz_flow(service: DrillService, input_fn: InputFn, print_fn: PrintFn) -> None:
    questions = service.intro_quiz()
    if not questions:
        print_fn("No entry quiz available.")
        return
    print_fn("\n=== Entry Quiz ===")
    answers = _ask_choice_questions(questions, input_fn, print_fn)
    if answers is None:
        print_fn("Quiz abandoned.")
        return
    outcome = service.submit_intro_quiz(answers)
    print_fn(f"Score: {outcome.percent}% (pass mark {service.levels.pass_percent}%)")
    if outcome.passed:
        print_fn("Entry quiz passed. Easy level unlocked.")
    else:
        print_fn("Not passed yet. Try again.")


def _ask_choice_questions(
    questions: Sequence[ChoiceQuestion], input_fn: InputFn, print_fn: PrintFn
) -> list[object] | None:
    answers: list[object] = []
    for i, question in enumerate(questions, start=1):
        print_fn(f"\n{i}. {question.prompt}")
        _print_options(question.options, print_fn)
        given = input_fn("Option: ").strip()
        if given.lower() in BACK_COMMANDS | FLOW_EXIT_COMMANDS:
            return None
        answers.append(_option_index(given, len(question.options)))
    return answers


def _categories_flow(service: DrillService, input_fn: InputFn, print_fn: PrintFn) -> None:
    configs = list(service.categories.configs.values())
    print_fn("\n=== Grammar Categories ===")
    if not configs:
        print_fn("No categories available.")
        return
    for idx, config in enumerate(configs, start=1):
        print_fn(f"{idx}) {config.title}")
    print_fn("b) Back")
    print_fn("q) Quit")
    choice = _menu_choice(input_fn, "Choose category: ")
    if choice in MENU_BACK_COMMANDS:
        return
    index = _choose_index(choice, len(configs))
    if index is None:
        print_fn("Invalid choice.")
        return
    _category_flow(service, service.category_session(configs[index].id), input_fn, print_fn)


def _category_flow(service: DrillService, session: CategorySession, input_fn: InputFn, print_fn: PrintFn) -> None:
    """Walk a category from its intro pages to the optional question bank."""
    config = session.config
    print_fn(f"\n=== {config.title} ===")
    if session.stage is Stage.OPTIONAL and input_fn("r) Retry from start  Enter) Continue: ").strip().lower() == "r":
        session.reset()

    while session.stage is Stage.INTRO:
        page = session.intro_page()
        if page is None:
            session.skip_intro()
            break
        print_fn(f"\n{page}")
        choice = input_fn("Enter) Next  s) Skip  b) Back: ").strip().lower()
        if choice in MENU_BACK_COMMANDS:
            return
        if choice == "s":
            session.skip_intro()
        else:
            session.next_page()

    if session.stage is Stage.MC_QUIZ:
        answers = _ask_choice_questions(config.mc_quiz, input_fn, print_fn)
        if answers is None:
            return
        result = session.submit_mc(answers)
        service.record_category_result(config.id, "mcq", result)
        print_fn(f"Multiple choice: {result.correct} / {result.total}")
        for index in result.wrong:
            question = config.mc_quiz[index]
            in_range = 0 <= question.answer_index < len(question.options)
            correct = question.options[question.answer_index] if in_range else ""
            print_fn(f"- {index + 1}: {correct}")

    if session.stage is Stage.SHORT_QUIZ:
        answers_short = _ask_short_questions(config.short_questions, input_fn, print_fn)
        if answers_short is None:
            return
        result = session.submit_short(answers_short)
        service.record_category_result(config.id, "short", result)
        print_fn(f"Short answers: {result.correct} / {result.total}")
        _print_short_misses(config.short_questions, result.wrong, print_fn)

    while session.stage is Stage.OPTIONAL and config.optional_bank:
        choice = input_fn("m) More practice questions  b) Back: ").strip().lower()
        if choice != "m":
            return
        batch = session.next_optional_batch()
        answers_extra = _ask_short_questions(batch, input_fn, print_fn)
        if answers_extra is None:
            return
        extra = session.submit_optional(answers_extra)
        print_fn(f"Extra questions: {extra.correct} / {extra.total}")
        _print_short_misses(batch, extra.wrong, print_fn)


def _ask_short_questions(
    questions: Sequence[ShortQuestion], input_fn: InputFn, print_fn: PrintFn
) -> list[object] | None:
    answers: list[object] = []
    for i, question in enumerate(questions, start=1):
        print_fn(f"\n{i}. {question.prompt}")
        given = input_fn("Answer: ")
        if given.strip().lower() in BACK_COMMANDS | FLOW_EXIT_COMMANDS:
            return None
        answers.append(given)
    return answers


def _print_short_misses(questions: Sequence[ShortQuestion], wrong: Sequence[int], print_fn: PrintFn) -> None:
    for index in wrong:
        accepted = questions[index].accepted
        print_fn(f"- {index + 1}: {accepted[0] if accepted else '?'}")


def _progress_flow(service: DrillService, print_fn: PrintFn) -> None:
    """Print headline accuracy, per-kind totals and the recent history chart."""
    summary = service.progress_summary()
    print_fn("\n=== Progress ===")
    if summary.total_questions:
        print_fn(
            f"Score: {summary.total_correct} / {summary.total_questions} "
            f"({summary.accuracy_percent}%) across {summary.attempt_count} test(s)"
        )
    else:
        print_fn("Score: — (0%)")

    rows = service.summary_by_kind()
    if rows:
        kind_width = max(len("Kind"), max(len(row.kind) for row in rows))
        header = f"{'Kind':<{kind_width}} {'Attempts':>8} {'Correct':>8} {'Total':>6}"
        print_fn(header)
        print_fn("-" * len(header))
        for row in rows:
            print_fn(f"{row.kind:<{kind_width}} {row.attempts:>8} {row.correct:>8} {row.questions:>6}")

    if summary.recent_series:
        print_fn("\nRecent attempts:")
        for point in summary.recent_series:
            bar = "#" * max(1, point.percent // 5)
            marker = {"good": "+", "low": "!"}.get(point.band, " ")
            print_fn(f"{marker} {point.kind:<14} {point.score:>3}/{point.total:<3} {point.percent:>3}% {bar}")


def _admin_flow(service: DrillService, input_fn: InputFn, print_fn: PrintFn) -> None:
    """Export or import progress."""
    while True:
        print_fn("\n=== Admin ===")
        print_fn("1) Export progress")
        print_fn("2) Import progress")
        print_fn("3) Reload content")
        print_fn("b) Back")
        print_fn("q) Quit")
        choice = _menu_choice(input_fn, "Choose admin option: ")
        if choice in MENU_BACK_COMMANDS:
            return
        if choice == "1":
            _export_flow(service, input_fn, print_fn)
        elif choice == "2":
            _import_flow(service, input_fn, print_fn)
        elif choice == "3":
            try:
                service.reload_content()
            except ContentLoadError as exc:
                print_fn(f"Reload failed: {exc}")
            else:
                print_fn("Content reloaded.")
        else:
            print_fn("Invalid choice.")


def _export_flow(service: DrillService, input_fn: InputFn, print_fn: PrintFn) -> None:
    path_text = input_fn("Export file path: ").strip()
    if not path_text:
        print_fn("File path is required.")
        return
    try:
        summary = service.export_progress(path_text)
    except OSError as exc:
        print_fn(f"Export failed: {exc}")
        return
    print_fn(f"Exported {summary.attempt_rows} attempt(s) to {path_text}")


def _import_flow(service: DrillService, input_fn: InputFn, print_fn: PrintFn) -> None:
    path_text = input_fn("Import file path: ").strip()
    if not path_text:
        print_fn("File path is required.")
        return
    try:
        summary = service.import_progress(path_text)
    except (OSError, ValueError) as exc:
        print_fn(f"Import failed: {exc}")
        return
    print_fn(f"Imported {summary.attempt_rows} attempt(s).")


def main_entry() -> None:
    """Console script entrypoint."""
    raise SystemExit(run())


if __name__ == "__main__":  # pragma: no cover
    main_entry()
