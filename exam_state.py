"""Timed, multi-section exam state machine.

A mock exam is split into official sections. Only the current section is
reachable; locking it (by completing or skipping it, or when its timer runs
out) opens the next one and there is no way back. The whole test also runs
against a global deadline derived from its start time. The session ends in
exactly one way: manual submission, time up, or disqualification.
"""

import logging
import re
import time
from datetime import datetime
from typing import Callable, Dict, List, Optional

import config
from config import ExamConfig
from models import (
    ProctoringStatus,
    Question,
    Section,
    SectionState,
    SubmitReason,
    Test,
    TestResult,
    TestStatus,
)
from timer import Timer
import scoring

logger = logging.getLogger(__name__)

# Events reported by tick()
SECTION_WARNING = "section_warning"
SECTION_EXPIRED = "section_expired"
TIME_UP = "time_up"


class ExamStateError(Exception):
    """Base class for invalid exam-session transitions."""


class ExamClosedError(ExamStateError):
    """Raised when acting on a session that has already been submitted."""


class NavigationError(ExamStateError):
    """Raised for navigation outside the reachable questions."""


class SectionLockedError(NavigationError):
    """Raised when returning to a completed section."""


class SectionNotOpenError(NavigationError):
    """Raised when jumping ahead into a section that has not started."""


# ---------------------------------------------------------------------------
# Section layout
# ---------------------------------------------------------------------------

def resolve_section_name(exam: ExamConfig, name: Optional[str]) -> Optional[str]:
    """Map a free-form section name to an official section of the exam."""
    if not name:
        return None
    official = exam.section_names()
    if name in official:
        return name
    for pattern, target in config.SECTION_ALIASES.get(exam.id, ()):
        if re.search(pattern, name, re.IGNORECASE):
            return target
    return None


def build_mock_sections(exam: ExamConfig, questions: List[Question]) -> List[Section]:
    """Lay out official sections over an ordered question list.

    When every question names a recognisable section, sizes follow the
    questions actually present. Otherwise the configured counts are used,
    clamped to the questions available.
    """
    resolved = [resolve_section_name(exam, q.subject) for q in questions]
    counts: Dict[str, int] = {}
    if questions and all(resolved):
        for name in resolved:
            counts[name] = counts.get(name, 0) + 1
    else:
        counts = {s.name: s.question_count for s in exam.sections}

    sections: List[Section] = []
    start = 0
    for exam_section in exam.sections:
        count = min(counts.get(exam_section.name, 0), len(questions) - start)
        if count <= 0:
            continue
        sections.append(Section(
            name=exam_section.name,
            start_index=start,
            end_index=start + count - 1,
            question_count=count,
            duration_minutes=exam_section.duration_minutes,
        ))
        start += count
    return sections


def build_topic_sections(questions: List[Question]) -> List[Section]:
    """Practice tests: one untimed section per run of questions sharing a topic."""
    sections: List[Section] = []
    for idx, q in enumerate(questions):
        topic = q.topic or "General"
        if sections and sections[-1].name == topic:
            sections[-1].end_index = idx
            sections[-1].question_count += 1
        else:
            sections.append(Section(name=topic, start_index=idx, end_index=idx, question_count=1))
    return sections


def parse_timestamp(value: Optional[str]) -> datetime:
    if not value:
        return datetime.now()
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    # Compare naive local times throughout
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

class ExamSession:
    def __init__(
        self,
        test: Test,
        questions: List[Question],
        exam: ExamConfig,
        clock: Callable[[], float] = time.monotonic,
        now: Optional[datetime] = None,
        on_section_warning: Optional[Callable[[Section, int], None]] = None,
    ):
        self.test = test
        self.questions = sorted(questions, key=lambda q: q.question_number)
        self.exam = exam
        self.is_mock = test.is_mock
        self._clock = clock
        self._on_section_warning = on_section_warning

        if self.is_mock:
            self.sections = build_mock_sections(exam, self.questions)
        else:
            self.sections = build_topic_sections(self.questions)

        self.current_index = 0
        self.current_section_index = 0
        self.completed_sections: List[int] = []
        self.result: Optional[TestResult] = None
        self._pending_events: List[str] = []

        # Global deadline from the persisted start time
        now = now or datetime.now()
        limit_seconds = test.time_limit_minutes * 60
        elapsed = (now - parse_timestamp(test.started_at)).total_seconds()
        remaining = min(limit_seconds, int(limit_seconds - elapsed))
        self.global_timer = Timer(max(0, remaining), clock=clock)
        self.global_timer.start()

        self.section_timer: Optional[Timer] = None
        if self.is_mock and self.sections:
            stage = max(1, min(test.current_stage or 1, len(self.sections)))
            self.current_section_index = stage - 1
            self.completed_sections = list(range(stage - 1))
            self.current_index = self.sections[stage - 1].start_index
            self.section_timer = Timer(
                self.sections[stage - 1].duration_minutes * 60,
                clock=clock,
                on_warning=self._section_warning,
                warning_seconds=config.SECTION_WARNING_SECONDS,
            )
            self.section_timer.start()

        self._question_started = clock()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def is_submitted(self) -> bool:
        return self.result is not None

    @property
    def current_question(self) -> Optional[Question]:
        if 0 <= self.current_index < len(self.questions):
            return self.questions[self.current_index]
        return None

    @property
    def current_section(self) -> Optional[Section]:
        if 0 <= self.current_section_index < len(self.sections):
            return self.sections[self.current_section_index]
        return None

    @property
    def all_sections_completed(self) -> bool:
        return bool(self.sections) and len(self.completed_sections) == len(self.sections)

    def section_state(self, index: int) -> SectionState:
        if index in self.completed_sections:
            return SectionState.COMPLETED
        if index == self.current_section_index and not self.is_submitted:
            return SectionState.IN_PROGRESS
        return SectionState.NOT_STARTED

    def section_of(self, question_index: int) -> int:
        for i, section in enumerate(self.sections):
            if section.contains(question_index):
                return i
        return -1

    def global_remaining(self) -> int:
        return self.global_timer.get_remaining()

    def section_remaining(self) -> Optional[int]:
        return self.section_timer.get_remaining() if self.section_timer else None

    def display_remaining(self) -> int:
        """The countdown shown to the candidate: section time for mocks."""
        if self.section_timer is not None:
            return self.section_timer.get_remaining()
        return self.global_remaining()

    @property
    def answered_count(self) -> int:
        return sum(1 for q in self.questions if q.user_answer is not None)

    @property
    def marked_count(self) -> int:
        return sum(1 for q in self.questions if q.is_marked)

    def submission_warnings(self) -> Dict[str, int]:
        return {
            "unanswered": len(self.questions) - self.answered_count,
            "marked": self.marked_count,
        }

    def _ensure_open(self) -> None:
        if self.is_submitted:
            raise ExamClosedError("This test has already been submitted.")

    # ------------------------------------------------------------------
    # Answering
    # ------------------------------------------------------------------

    def select_answer(self, option_index: int) -> Question:
        self._ensure_open()
        question = self.current_question
        if question is None:
            raise NavigationError("No question selected.")
        if not 0 <= option_index < len(question.options):
            raise ValueError(
                f"Option {option_index} is out of range for a question with "
                f"{len(question.options)} options."
            )
        question.user_answer = option_index
        question.answered_at = datetime.now().isoformat()
        return question

    def toggle_mark(self) -> bool:
        self._ensure_open()
        question = self.current_question
        if question is None:
            raise NavigationError("No question selected.")
        question.is_marked = not question.is_marked
        return question.is_marked

    def record_question_time(self) -> Optional[Question]:
        """Add the time since the current question was shown to its total."""
        question = self.current_question
        now = self._clock()
        if question is not None:
            question.time_spent_seconds += max(0.0, now - self._question_started)
        self._question_started = now
        return question

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def navigate(self, new_index: int) -> Question:
        self._ensure_open()
        if not 0 <= new_index < len(self.questions):
            raise NavigationError(f"Question {new_index + 1} does not exist.")

        if self.is_mock and self.sections:
            target = self.section_of(new_index)
            if target < self.current_section_index and target in self.completed_sections:
                raise SectionLockedError("You cannot return to a completed section.")
            if target > self.current_section_index:
                raise SectionNotOpenError("Please complete or skip the current section first.")

        self.record_question_time()
        self.current_index = new_index
        return self.questions[new_index]

    def next_question(self) -> Question:
        section = self.current_section
        if self.is_mock and section and self.current_index == section.end_index:
            raise NavigationError("End of section reached. Lock the section to proceed.")
        return self.navigate(self.current_index + 1)

    def previous_question(self) -> Question:
        section = self.current_section
        if self.is_mock and section and self.current_index == section.start_index:
            raise NavigationError("Already at the first question of this section.")
        return self.navigate(self.current_index - 1)

    # ------------------------------------------------------------------
    # Sections
    # ------------------------------------------------------------------

    def complete_section(self) -> Optional[Section]:
        """Lock the current section and open the next.

        Returns the newly opened section, or None when the last section has
        been locked and only final submission remains.
        """
        self._ensure_open()
        if not self.is_mock:
            raise ExamStateError("Sections are only locked in mock exams.")
        if self.current_section is None or self.current_section_index in self.completed_sections:
            return None

        self.record_question_time()
        locked = self.current_section
        self.completed_sections.append(self.current_section_index)
        logger.info("Test %s: section '%s' locked", self.test.id, locked.name)

        if self.current_section_index >= len(self.sections) - 1:
            if self.section_timer:
                self.section_timer.stop()
            return None

        self.current_section_index += 1
        next_section = self.sections[self.current_section_index]
        self.current_index = next_section.start_index
        self.test.current_stage = self.current_section_index + 1
        if self.section_timer:
            self.section_timer.reset(next_section.duration_minutes * 60)
        self._question_started = self._clock()
        return next_section

    def skip_section(self) -> Optional[Section]:
        """Leave the current section unfinished; it locks exactly as if completed."""
        return self.complete_section()

    # ------------------------------------------------------------------
    # Clock
    # ------------------------------------------------------------------

    def _section_warning(self, remaining: int) -> None:
        self._pending_events.append(SECTION_WARNING)
        if self._on_section_warning and self.current_section:
            self._on_section_warning(self.current_section, remaining)

    def tick(self) -> List[str]:
        """Advance the clocks, applying any time-driven transitions."""
        if self.is_submitted:
            return []
        events: List[str] = []

        if self.global_timer.is_time_up():
            logger.info("Test %s: time limit reached, auto-submitting", self.test.id)
            self.submit(SubmitReason.TIME_UP)
            return [TIME_UP]

        if self.section_timer is not None and not self.all_sections_completed:
            self.section_timer.poll()
            events.extend(self._pending_events)
            self._pending_events = []
            if self.section_timer.is_time_up():
                events.append(SECTION_EXPIRED)
                logger.info(
                    "Test %s: section '%s' timed out",
                    self.test.id, self.current_section.name if self.current_section else "?",
                )
                if self.complete_section() is None:
                    self.submit(SubmitReason.TIME_UP)
                    events.append(TIME_UP)
        return events

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def disqualify(self, reason: str = "") -> TestResult:
        logger.warning("Test %s: disqualified (%s)", self.test.id, reason or "proctoring")
        return self.submit(SubmitReason.DISQUALIFIED)

    def submit(self, reason: SubmitReason = SubmitReason.MANUAL) -> TestResult:
        """Score and close the session. Later calls return the first result."""
        if self.result is not None:
            return self.result

        reason = SubmitReason(reason)
        self.record_question_time()
        self.global_timer.stop()
        if self.section_timer:
            self.section_timer.stop()

        rules = self.exam.scoring
        final, correct, wrong, skipped = scoring.calculate_score(self.questions, rules)
        percentage = scoring.score_percentage(final, len(self.questions), rules)
        time_taken = max(0, self.test.time_limit_minutes * 60 - self.global_timer.get_remaining())

        if reason == SubmitReason.DISQUALIFIED:
            proctoring_status = ProctoringStatus.DISQUALIFIED.value
        elif self.is_mock:
            proctoring_status = ProctoringStatus.PASSED.value
        else:
            proctoring_status = ProctoringStatus.NOT_REQUIRED.value

        self.test.status = TestStatus.COMPLETED.value
        self.test.score = percentage
        self.test.correct_answers = correct
        self.test.wrong_answers = wrong
        self.test.skipped_answers = skipped
        self.test.time_taken_seconds = time_taken
        self.test.completed_at = datetime.now().isoformat()
        self.test.proctoring_status = proctoring_status

        self.result = TestResult(
            test_id=self.test.id,
            reason=reason.value,
            final_score=final,
            score_percentage=percentage,
            correct=correct,
            wrong=wrong,
            skipped=skipped,
            time_taken_seconds=time_taken,
            proctoring_status=proctoring_status,
            section_results=scoring.score_sections(self.questions, self.sections, rules),
            topic_breakdown=scoring.compute_topic_breakdown(self.questions, self.test.subject),
        )
        logger.info(
            "Test %s submitted (%s): %s%% [%d correct, %d wrong, %d skipped]",
            self.test.id, reason.value, percentage, correct, wrong, skipped,
        )
        return self.result
