"""Test session orchestration: persists every exam transition and drives the terminal loop."""

import logging
import time
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

import config
import display
import scoring
from exam_state import (
    SECTION_EXPIRED,
    TIME_UP,
    ExamSession,
    ExamStateError,
)
from models import (
    ProctoringViolation,
    Question,
    Section,
    Student,
    SubmitReason,
    TestResult,
    TestStatus,
    ViolationSeverity,
)
from practice import PracticeBank
from proctoring import ProctoringMonitor, ViolationOutcome

logger = logging.getLogger(__name__)


class ExamRunnerError(Exception):
    """Base class for failures loading or running a test."""


class TestNotFoundError(ExamRunnerError):
    pass


class TestAlreadyCompletedError(ExamRunnerError):
    pass


# ---------------------------------------------------------------------------
# Terminal commands
# ---------------------------------------------------------------------------

COMMANDS = {
    "n": "next", "next": "next", "": "next",
    "p": "previous", "prev": "previous",
    "m": "mark", "mark": "mark",
    "l": "lock", "lock": "lock",
    "k": "skip_section", "skip": "skip_section",
    "v": "bookmark", "save": "bookmark",
    "o": "sections", "sections": "sections",
    "s": "submit", "submit": "submit",
    "q": "pause", "quit": "pause",
    "h": "help", "help": "help", "?": "help",
}


def parse_command(raw: str) -> Tuple[str, Optional[int]]:
    """Turn one line of input into (action, argument).

    Letters A-E answer the current question; "g 12" (or just "12") jumps to
    question 12. Argument indices are 0-based.
    """
    text = raw.strip().lower()
    if len(text) == 1 and text.upper() in config.OPTION_LETTERS:
        return "answer", config.OPTION_LETTERS.index(text.upper())

    parts = text.split()
    if parts and parts[0] in ("g", "go", "goto") and len(parts) == 2:
        text = parts[1]
    if text.isdigit():
        return "goto", int(text) - 1

    action = COMMANDS.get(text)
    if action is None:
        return "unknown", None
    return action, None


class ExamRunner:
    def __init__(
        self,
        db,
        student: Student,
        bank: Optional[PracticeBank] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.db = db
        self.student = student
        self.bank = bank or PracticeBank(db)
        self._clock = clock
        self.session: Optional[ExamSession] = None
        self.monitor: Optional[ProctoringMonitor] = None
        self._finalized = False
        self._notices: List[str] = []

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self, test_id: int, now: Optional[datetime] = None) -> ExamSession:
        test = self.db.get_test(test_id)
        if test is None:
            raise TestNotFoundError(f"Test {test_id} not found.")
        if test.status == TestStatus.COMPLETED.value:
            raise TestAlreadyCompletedError("This test has already been completed.")

        exam = config.get_exam(test.exam_type)
        questions = self.db.get_questions_for_test(test_id)
        self.session = ExamSession(
            test, questions, exam,
            clock=self._clock,
            now=now,
            on_section_warning=self._on_section_warning,
        )
        self.monitor = ProctoringMonitor(
            test.id,
            self.student.id,
            enabled=test.is_mock and exam.proctored,
            recorder=self._record_violation,
            on_disqualify=self._on_disqualify,
            initial_count=test.violation_count,
        )
        self._finalized = False
        self._notices = []
        logger.info(
            "Loaded test %s (%s, %d questions, stage %d)",
            test.id, test.test_type, len(questions), test.current_stage,
        )
        return self.session

    def _require_session(self) -> ExamSession:
        if self.session is None:
            raise ExamRunnerError("No test loaded.")
        return self.session

    # ------------------------------------------------------------------
    # Answering and navigation
    # ------------------------------------------------------------------

    def answer(self, option_index: int) -> Question:
        session = self._require_session()
        question = session.select_answer(option_index)
        self.db.update_question_answer(question.id, question.user_answer, question.answered_at)
        self.bank.record_response(self.student, session.test, question)
        return question

    def toggle_mark(self) -> bool:
        session = self._require_session()
        flag = session.toggle_mark()
        self.db.update_question_mark(session.current_question.id, flag)
        return flag

    def _leaving(self, move: Callable[[], object]):
        """Run a move away from the current question and persist its time."""
        session = self._require_session()
        left = session.current_question
        result = move()
        if left is not None and left.id is not None:
            self.db.update_question_time(left.id, left.time_spent_seconds)
        return result

    def navigate(self, index: int) -> Question:
        return self._leaving(lambda: self.session.navigate(index))

    def next_question(self) -> Question:
        return self._leaving(self.session.next_question)

    def previous_question(self) -> Question:
        return self._leaving(self.session.previous_question)

    def complete_section(self) -> Optional[Section]:
        opened = self._leaving(self.session.complete_section)
        self.db.set_test_stage(self.session.test.id, self.session.test.current_stage)
        return opened

    def skip_section(self) -> Optional[Section]:
        opened = self._leaving(self.session.skip_section)
        self.db.set_test_stage(self.session.test.id, self.session.test.current_stage)
        return opened

    # ------------------------------------------------------------------
    # Clock and proctoring
    # ------------------------------------------------------------------

    def poll(self) -> List[str]:
        """Advance the clocks and persist whatever the clocks decided."""
        session = self._require_session()
        stage = session.test.current_stage
        events = session.tick()
        if session.test.current_stage != stage:
            self.db.set_test_stage(session.test.id, session.test.current_stage)
        if session.is_submitted:
            self._finalize(session.result)
        return events

    def _on_section_warning(self, section: Section, remaining: int) -> None:
        self._notices.append(
            f"Only {remaining // 60} minutes left in {section.name}."
        )

    def drain_notices(self) -> List[str]:
        notices, self._notices = self._notices, []
        return notices

    def handle_event(self, event: Dict) -> Optional[ViolationOutcome]:
        self._require_session()
        return self.monitor.handle_event(event)

    def report_violation(
        self, violation_type: str, severity: str, description: str
    ) -> Optional[ViolationOutcome]:
        self._require_session()
        return self.monitor.log_violation(violation_type, severity, description)

    def _record_violation(self, violation: ProctoringViolation, count: int) -> None:
        self.db.save_violation(violation)
        self.session.test.violation_count = count
        self.db.set_violation_count(self.session.test.id, count)

    def _on_disqualify(self, reason: str) -> None:
        result = self.session.disqualify(reason)
        self._finalize(result)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(self, reason: SubmitReason = SubmitReason.MANUAL) -> TestResult:
        session = self._require_session()
        result = session.submit(reason)
        self._finalize(result)
        return result

    def _finalize(self, result: TestResult) -> None:
        if self._finalized:
            return
        self._finalized = True
        session = self.session
        test = session.test

        self.db.update_test(test)
        for q in session.questions:
            if q.id is not None:
                self.db.update_question_time(q.id, q.time_spent_seconds)

        for (subject, topic), stats in result.topic_breakdown.items():
            existing = self.db.get_topic_performance(
                self.student.id, test.exam_type, subject, topic
            )
            perf = scoring.merge_topic_performance(
                existing, self.student.id, test.exam_type, subject, topic,
                stats["correct"], stats["total"],
            )
            self.db.upsert_topic_performance(perf)
        logger.info("Test %s results saved (%s)", test.id, result.reason)

    # ------------------------------------------------------------------
    # Bookmarks
    # ------------------------------------------------------------------

    def bookmark(self, notes: str = "") -> bool:
        """Save the current question. Returns False when it was already saved."""
        session = self._require_session()
        question = session.current_question
        if question is None or question.id is None:
            return False
        if self.db.is_bookmarked(self.student.id, question.id):
            return False
        self.db.save_bookmark(self.student.id, question.id, notes)
        return True

    # ------------------------------------------------------------------
    # Interactive terminal loop
    # ------------------------------------------------------------------

    def run_interactive(self, test_id: int) -> Optional[TestResult]:
        """Sit a test in the terminal. Returns the result, or None if paused."""
        try:
            session = self.load(test_id)
        except (ExamRunnerError, ValueError) as e:
            display.show_error(str(e))
            return None

        display.show_test_intro(session, proctored=self.monitor.enabled)
        if not display.confirm("Ready to begin?"):
            return None

        while not session.is_submitted:
            events = self.poll()
            if self._report_events(events):
                break
            for notice in self.drain_notices():
                display.show_warning(notice)

            display.show_exam_question(session)
            shown = (session.current_index, session.current_section_index)
            try:
                raw = display.get_exam_command()
            except KeyboardInterrupt:
                if not self.monitor.enabled:
                    display.show_info("Test paused. Resume it later from the main menu.")
                    return None
                self._interrupted()
                continue

            # Input may have taken a while; drop it if the screen it answered is gone
            if self._report_events(self.poll()) or session.is_submitted:
                break
            if (session.current_index, session.current_section_index) != shown:
                display.show_warning("Your last input was discarded because the section closed.")
                continue
            if not self._dispatch(raw):
                display.show_info("Test paused. Resume it later from the main menu.")
                return None

        result = session.result
        display.show_test_result(session.test, result, session.exam)
        display.press_enter_to_continue()
        return result

    def _report_events(self, events: List[str]) -> bool:
        if SECTION_EXPIRED in events and not self.session.is_submitted:
            display.show_warning("Section time is over. Moving to the next section.")
            section = self.session.current_section
            if section:
                display.show_section_intro(section, self.session.current_section_index, len(self.session.sections))
        if TIME_UP in events:
            display.show_warning("Time's up! Your test has been submitted.")
            return True
        return False

    def _interrupted(self) -> None:
        outcome = self.report_violation(
            "interrupt", ViolationSeverity.WARNING.value, "Attempted to leave the test"
        )
        if outcome is None:
            return
        if outcome.disqualified:
            display.show_error(f"Disqualified: {outcome.message}")
        else:
            display.show_violation(outcome)

    def _dispatch(self, raw: str) -> bool:
        """Apply one command. Returns False when the student pauses."""
        action, arg = parse_command(raw)
        session = self.session
        try:
            if action == "answer":
                self.answer(arg)
                section = session.current_section
                at_end = (
                    session.current_index == len(session.questions) - 1
                    or (session.is_mock and section and session.current_index == section.end_index)
                )
                if not at_end:
                    self.next_question()
            elif action == "next":
                self.next_question()
            elif action == "previous":
                self.previous_question()
            elif action == "goto":
                self.navigate(arg)
            elif action == "mark":
                flag = self.toggle_mark()
                display.show_info("Marked for review." if flag else "Mark removed.")
            elif action in ("lock", "skip_section"):
                self._lock_section(action == "skip_section")
            elif action == "bookmark":
                if self.bookmark():
                    display.show_success("Question saved to bookmarks.")
                else:
                    display.show_info("Already saved.")
            elif action == "sections":
                display.show_section_list(session)
            elif action == "submit":
                self._confirm_submit()
            elif action == "pause":
                if session.is_mock and self.monitor.enabled:
                    display.show_warning("Proctored tests keep running while paused.")
                return False
            elif action == "help":
                display.show_exam_help(session.is_mock)
            else:
                display.show_warning("Unknown command. Type h for help.")
        except (ExamStateError, ValueError) as e:
            display.show_warning(str(e))
        return True

    def _lock_section(self, skip: bool) -> None:
        session = self.session
        if not session.is_mock:
            display.show_warning("Sections are only locked in mock exams.")
            return
        section = session.current_section
        verb = "Skip" if skip else "Lock"
        if not display.confirm(f"{verb} '{section.name}'? You cannot return to it."):
            return
        opened = self.skip_section() if skip else self.complete_section()
        if opened is not None:
            display.show_section_intro(opened, session.current_section_index, len(session.sections))
        else:
            display.show_info("All sections completed. Submit to finish.")
            self._confirm_submit()

    def _confirm_submit(self) -> None:
        warnings = self.session.submission_warnings()
        display.show_submission_warnings(warnings)
        if display.confirm("Submit your test now?"):
            self.submit(SubmitReason.MANUAL)
