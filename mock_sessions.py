"""Scheduled mock sessions: listing, registration and launching an attempt."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

import config
from exam_state import parse_timestamp, resolve_section_name
from models import (
    MockSession,
    Question,
    SessionQuestion,
    Student,
    Test,
    TestStatus,
    TestType,
)

logger = logging.getLogger(__name__)

LIVE = "live"
PAST = "past"
UPCOMING = "upcoming"


class MockSessionError(Exception):
    """Base class for mock-session failures shown to the candidate."""


class UpgradeRequiredError(MockSessionError):
    """Raised when a free-plan student tries to register for a session."""


class SessionNotFoundError(MockSessionError):
    pass


class RegistrationRequiredError(MockSessionError):
    pass


class AttemptLimitError(MockSessionError):
    pass


class SessionNotOpenError(MockSessionError):
    """Raised when starting a session before its start time."""


class UnsupportedExamError(MockSessionError):
    pass


class NoSessionQuestionsError(MockSessionError):
    pass


@dataclass
class MockSessionView:
    session: MockSession
    status: str
    is_registered: bool


def classify_session(session: MockSession, now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    start = parse_timestamp(session.start_time)
    end = parse_timestamp(session.end_time)
    if start < now < end:
        return LIVE
    if now > end:
        return PAST
    return UPCOMING


# ---------------------------------------------------------------------------
# Section ordering
# ---------------------------------------------------------------------------

def section_order(exam_type: str, name: Optional[str]) -> int:
    """Official position of a section name, or -1 when it matches none."""
    try:
        exam = config.get_exam(exam_type)
    except ValueError:
        return -1
    resolved = resolve_section_name(exam, name)
    if resolved is None:
        return -1
    return exam.section_names().index(resolved)


def order_session_questions(
    exam_type: str, questions: List[SessionQuestion]
) -> List[SessionQuestion]:
    """Sort by official section; unrecognised sections go last, by name."""
    def key(q: SessionQuestion):
        idx = section_order(exam_type, q.section_name)
        if idx >= 0:
            return (0, idx, "")
        return (1, 0, q.section_name or "")

    return sorted(questions, key=key)


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class MockSessionService:
    def __init__(self, db):
        self.db = db

    def list_sessions(
        self, exam_type: str, student: Student, now: Optional[datetime] = None
    ) -> List[MockSessionView]:
        now = now or datetime.now()
        registered = set(self.db.list_registered_session_ids(student.id))
        return [
            MockSessionView(
                session=s,
                status=classify_session(s, now),
                is_registered=s.id in registered,
            )
            for s in self.db.list_mock_sessions(exam_type, active_only=True)
        ]

    def register(self, student: Student, session_id: int) -> MockSession:
        if student.is_explorer:
            raise UpgradeRequiredError(
                "Mock session registration is available on the Pro plan."
            )
        session = self.db.get_mock_session(session_id)
        if session is None:
            raise SessionNotFoundError(f"Mock session {session_id} not found.")
        if self.db.get_registration(student.id, session_id) is None:
            self.db.create_registration(student.id, session_id)
            logger.info("Student %s registered for session %s", student.id, session_id)
        return session

    def start_test(
        self, student: Student, session_id: int, now: Optional[datetime] = None
    ) -> Test:
        """Return the test to sit for a session, resuming an unfinished attempt."""
        now = now or datetime.now()
        session = self.db.get_mock_session(session_id)
        if session is None:
            raise SessionNotFoundError(f"Mock session {session_id} not found.")
        if self.db.get_registration(student.id, session_id) is None:
            raise RegistrationRequiredError("Please register for this session first.")

        attempts = self.db.get_tests_for_session(student.id, session_id)
        for test in attempts:
            if test.status == TestStatus.IN_PROGRESS.value:
                logger.info("Resuming test %s for session %s", test.id, session_id)
                return test

        completed = [t for t in attempts if t.status == TestStatus.COMPLETED.value]
        limit = session.attempts_per_person or 1
        if len(completed) >= limit:
            raise AttemptLimitError(
                f"You have used all {limit} attempt(s) for this session."
            )

        if now < parse_timestamp(session.start_time):
            raise SessionNotOpenError(
                f"This session opens at {session.start_time}."
            )
        if session.exam_type in config.SKILLS_FLOW_EXAMS:
            raise UnsupportedExamError(
                f"{session.exam_type} sessions use the skills flow, which is not available here."
            )

        exam = config.get_exam(session.exam_type)
        source = self.db.get_session_questions(session_id)
        if not source:
            raise NoSessionQuestionsError("This session has no questions yet.")
        source = order_session_questions(session.exam_type, source)

        test = self.db.create_test(Test(
            user_id=student.id,
            session_id=session_id,
            subject=config.SESSION_MOCK_SUBJECT,
            difficulty="mixed",
            total_questions=len(source),
            time_limit_minutes=exam.duration_minutes,
            started_at=now.isoformat(),
            status=TestStatus.IN_PROGRESS.value,
            test_type=TestType.MOCK.value,
            exam_type=session.exam_type,
            current_stage=1,
        ))

        questions = [
            Question(
                test_id=test.id,
                question_number=i,
                question_text=sq.question_text,
                options=list(sq.options),
                correct_index=sq.correct_index,
                topic=sq.topic,
                subject=sq.section_name,
                difficulty="mixed",
                explanation=sq.explanation,
            )
            for i, sq in enumerate(source, start=1)
        ]
        self.db.save_questions(questions)
        logger.info(
            "Started test %s for session %s (%d questions)",
            test.id, session_id, len(questions),
        )
        return test
