#!/usr/bin/env python3
"""Admission Test Prep: main entry point and menu system."""

import logging
import sys
from typing import Optional

import config
from config import ExamConfig
from database import Database
from exam_runner import ExamRunner
from mock_sessions import LIVE, MockSessionError, MockSessionService
from models import Plan, Student
from practice import PracticeBank, PracticeError
from progress import ProgressTracker
from question_generator import QuestionGenerationError, QuestionGenerator
import display

logger = logging.getLogger(__name__)


def check_api_key() -> bool:
    """Verify the Anthropic API key is configured."""
    if not config.ANTHROPIC_API_KEY:
        display.show_error(
            "ANTHROPIC_API_KEY is not set.\n"
            "  1. Copy .env.example to .env\n"
            "  2. Add your Anthropic API key\n"
            "  3. Run the app again\n"
        )
        return False
    return True


def make_bank(db: Database) -> PracticeBank:
    generator = QuestionGenerator() if config.ANTHROPIC_API_KEY else None
    return PracticeBank(
        db, generator,
        on_status=lambda msg, level="info": display.show_info(msg),
    )


def select_or_create_profile(db: Database) -> Optional[Student]:
    """List existing profiles or create a new one."""
    students = db.list_students()

    if not students:
        display.show_info("No profiles found. Let's create one!")
        return create_new_profile(db)

    options = [f"{s.name} ({s.plan.title()} plan)" for s in students]
    options.append("Create new profile")

    choice = display.show_menu("Select Profile", options)

    if choice == len(options):
        return create_new_profile(db)
    return students[choice - 1]


def create_new_profile(db: Database) -> Student:
    display.console.print()
    name = display.prompt_text("Your name")
    if not name:
        display.show_error("Name cannot be empty.")
        return create_new_profile(db)
    email = display.prompt_text("Email (optional)")

    student = db.create_student(name, email, Plan.EXPLORER.value)
    display.show_success(f"Profile created for {name}!")
    return student


def select_exam() -> ExamConfig:
    exams = [e for e in config.EXAMS.values() if e.is_live]
    choice = display.show_menu("Select Exam", [e.name for e in exams])
    return exams[choice - 1]


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------

def start_practice(db: Database, student: Student, exam: ExamConfig) -> None:
    bank = make_bank(db)
    subjects = exam.section_names()
    choice = display.show_menu("Select Subject", subjects + ["Back to main menu"])
    if choice > len(subjects):
        return
    subject = subjects[choice - 1]

    remaining = bank.remaining_today(student, subject)
    if remaining is not None:
        display.show_info(f"Explorer plan: {remaining} question(s) left today for {subject}.")

    topics = bank.list_topics(exam, subject)
    topic = config.ALL_TOPICS
    if topics:
        display.show_topics(topics)
        names = [name for name, _ in topics]
        t_choice = display.show_menu("Select Topic", ["All topics"] + names)
        if t_choice > 1:
            topic = names[t_choice - 2]

    d_choice = display.show_menu("Difficulty", [d.title() for d in config.DIFFICULTIES])
    difficulty = config.DIFFICULTIES[d_choice - 1]

    count = display.prompt_int(
        "Number of questions",
        config.PRACTICE_MIN_QUESTIONS,
        config.PRACTICE_MAX_QUESTIONS,
        default=config.PRACTICE_DEFAULT_QUESTIONS,
    )
    time_limit = display.prompt_int(
        "Time limit in minutes", 5, 180, default=config.PRACTICE_DEFAULT_MINUTES,
    )

    try:
        test = bank.create_practice_test(
            student, exam, subject, topic, difficulty, count, time_limit
        )
    except PracticeError as e:
        display.show_error(str(e))
        display.press_enter_to_continue()
        return

    ExamRunner(db, student, bank).run_interactive(test.id)


def start_full_simulation(db: Database, student: Student, exam: ExamConfig) -> None:
    display.show_info(
        f"{exam.name}: {exam.total_questions} questions, {exam.duration_minutes} minutes, "
        f"{len(exam.sections)} timed sections."
    )
    bank = make_bank(db)
    try:
        test = bank.create_full_simulation(student, exam)
    except PracticeError as e:
        display.show_error(str(e))
        display.press_enter_to_continue()
        return
    ExamRunner(db, student, bank).run_interactive(test.id)


def mock_sessions_menu(db: Database, student: Student, exam: ExamConfig) -> None:
    service = MockSessionService(db)
    views = service.list_sessions(exam.id, student)
    if not views:
        display.show_info(f"No mock sessions scheduled for {exam.name}.")
        display.press_enter_to_continue()
        return

    display.show_mock_sessions(views)
    options = [v.session.title or f"Session {v.session.id}" for v in views]
    options.append("Back to main menu")
    choice = display.show_menu("Select Session", options)
    if choice == len(options):
        return
    view = views[choice - 1]

    try:
        if not view.is_registered:
            if not display.confirm("You are not registered. Register now?"):
                return
            service.register(student, view.session.id)
            display.show_success("Registered!")
            if view.status != LIVE:
                display.press_enter_to_continue()
                return
        test = service.start_test(student, view.session.id)
    except MockSessionError as e:
        display.show_error(str(e))
        display.press_enter_to_continue()
        return

    ExamRunner(db, student).run_interactive(test.id)


def resume_test(db: Database, student: Student, exam: ExamConfig) -> None:
    tests = ProgressTracker(db, student, exam).in_progress_tests()
    if not tests:
        display.show_info("No unfinished tests.")
        display.press_enter_to_continue()
        return
    options = [f"{t.subject} ({t.test_type}, started {(t.started_at or '?')[:16]})" for t in tests]
    options.append("Back to main menu")
    choice = display.show_menu("Resume Test", options)
    if choice == len(options):
        return
    ExamRunner(db, student).run_interactive(tests[choice - 1].id)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

def generate_questions(db: Database, exam: ExamConfig) -> None:
    if not check_api_key():
        return
    bank = make_bank(db)
    subjects = exam.section_names()
    choice = display.show_menu("Generate for Subject", subjects + ["All subjects"])
    targets = subjects if choice > len(subjects) else [subjects[choice - 1]]
    count = display.prompt_int(
        "Questions per subject", 1, 30, default=config.QUESTIONS_PER_BATCH,
    )
    for subject in targets:
        try:
            bank.generate_into_bank(exam, subject, count, difficulty="mixed")
        except (QuestionGenerationError, PracticeError) as e:
            display.show_error(f"{subject}: {e}")


def settings_menu(db: Database, student: Student, exam: ExamConfig):
    """Settings submenu. Returns the (possibly changed) student and exam."""
    while True:
        options = [
            f"Switch exam (currently {exam.name})",
            f"Plan: {student.plan.title()}",
            f"Timer display for practice: {'ON' if config.TIMER_ENABLED else 'OFF'}",
            "Generate questions into the bank",
            "Reset progress (caution!)",
            "Back to main menu",
        ]

        choice = display.show_menu("Settings", options)

        if choice == 1:
            exam = select_exam()
            display.show_success(f"Now preparing for {exam.name}")

        elif choice == 2:
            student.plan = Plan.PRO.value if student.is_explorer else Plan.EXPLORER.value
            db.update_student(student)
            display.show_success(f"Plan is now {student.plan.title()}")

        elif choice == 3:
            config.TIMER_ENABLED = not config.TIMER_ENABLED
            state = "ON" if config.TIMER_ENABLED else "OFF"
            display.show_success(f"Timer display is now {state}")

        elif choice == 4:
            generate_questions(db, exam)
            display.press_enter_to_continue()

        elif choice == 5:
            if display.confirm("This will delete ALL progress for this profile. Are you sure?"):
                if display.confirm("This CANNOT be undone. Really delete?"):
                    db.reset_user_progress(student.id)
                    display.show_success("Progress has been reset.")

        elif choice == 6:
            break

    return student, exam


def main_menu_loop(db: Database, student: Student, exam: ExamConfig) -> None:
    """Main menu loop."""
    while True:
        display.clear_screen()
        display.show_banner(exam)
        display.show_info(f"Student: {student.name} | {student.plan.title()} plan")
        display.console.print()

        options = [
            "Practice Test",
            "Full Simulation",
            "Mock Sessions",
            "Resume Unfinished Test",
            "Test History & Review",
            "View Progress",
            "Bookmarked Questions",
            "Switch Profile",
            "Settings",
            "Exit",
        ]

        choice = display.show_menu("Main Menu", options)

        try:
            if choice == 1:
                start_practice(db, student, exam)

            elif choice == 2:
                start_full_simulation(db, student, exam)

            elif choice == 3:
                mock_sessions_menu(db, student, exam)

            elif choice == 4:
                resume_test(db, student, exam)

            elif choice == 5:
                ProgressTracker(db, student, exam).show_history()

            elif choice == 6:
                ProgressTracker(db, student, exam).show_dashboard()
                display.press_enter_to_continue()

            elif choice == 7:
                ProgressTracker(db, student, exam).show_bookmarks()

            elif choice == 8:
                new_student = select_or_create_profile(db)
                if new_student:
                    student = new_student

            elif choice == 9:
                student, exam = settings_menu(db, student, exam)

            elif choice == 10:
                display.show_info("Goodbye! Good luck with your exam!")
                break

        except KeyboardInterrupt:
            display.console.print("\n")
            display.show_info("Returning to main menu...")
            continue
        except Exception as e:
            logger.exception("Unhandled error in menu action")
            display.show_error(f"An error occurred: {e}")
            display.press_enter_to_continue()


def main() -> None:
    """Entry point."""
    config.setup_logging()
    display.clear_screen()
    display.show_banner()

    has_key = check_api_key()
    if not has_key:
        display.show_warning("Running without API key. You can only use questions already in the bank.")
        display.press_enter_to_continue()

    db_url = config.SUPABASE_DB_URL
    if not db_url:
        display.show_error("SUPABASE_DB_URL not configured. Set it in .env or environment.")
        sys.exit(1)
    db = Database(db_url)
    db.initialize()

    try:
        exam = config.get_exam(config.ACTIVE_EXAM)
    except ValueError as e:
        display.show_warning(f"{e}; falling back to {config.CENT_S.name}.")
        exam = config.CENT_S

    try:
        student = select_or_create_profile(db)
        if not student:
            display.show_error("No profile selected. Exiting.")
            sys.exit(1)

        main_menu_loop(db, student, exam)

    except KeyboardInterrupt:
        display.console.print("\n")
        display.show_info("Goodbye!")
    finally:
        db.close()


if __name__ == "__main__":
    main()
