import copy
from datetime import datetime
from typing import Dict, List, Optional

import pytest

import config
from models import (
    MockSession,
    PracticeQuestion,
    ProctoringViolation,
    Question,
    SavedQuestion,
    SessionQuestion,
    SessionRegistration,
    Student,
    Test,
    TopicPerformance,
)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeDatabase:
    """In-memory stand-in for database.Database with the same method names."""

    def __init__(self):
        self.students: Dict[int, Student] = {}
        self.practice: Dict[int, PracticeQuestion] = {}
        self.responses: Dict[tuple, Dict] = {}
        self.tests: Dict[int, Test] = {}
        self.questions: Dict[int, Question] = {}
        self.sessions: Dict[int, MockSession] = {}
        self.registrations: List[SessionRegistration] = []
        self.session_questions: List[SessionQuestion] = []
        self.violations: List[ProctoringViolation] = []
        self.performance: Dict[tuple, TopicPerformance] = {}
        self.bookmarks: List[SavedQuestion] = []
        self.stage_updates: List[tuple] = []
        self._next = 0

    def _id(self) -> int:
        self._next += 1
        return self._next

    # Students
    def create_student(self, name: str, email: str = "", plan: str = "explorer") -> Student:
        student = Student(id=self._id(), name=name, email=email, plan=plan)
        self.students[student.id] = student
        return student

    def get_student(self, student_id: int) -> Optional[Student]:
        return self.students.get(student_id)

    def list_students(self) -> List[Student]:
        return list(self.students.values())

    def update_student(self, student: Student) -> None:
        self.students[student.id] = student

    # Practice bank
    def save_practice_questions(self, questions: List[PracticeQuestion]) -> List[PracticeQuestion]:
        for q in questions:
            q.id = self._id()
            self.practice[q.id] = q
        return questions

    def get_practice_questions(
        self, exam_type, subject, difficulty=None, topic=None, exclude_ids=None, limit=None,
    ) -> List[PracticeQuestion]:
        excluded = set(exclude_ids or [])
        found = [
            q for q in sorted(self.practice.values(), key=lambda q: q.id)
            if q.exam_type == exam_type and q.subject == subject
            and (not difficulty or q.difficulty == difficulty)
            and (not topic or q.topic == topic)
            and q.id not in excluded
        ]
        return found[:limit] if limit is not None else found

    def count_practice_topics(self, exam_type, subject):
        counts: Dict[str, int] = {}
        for q in self.practice.values():
            if q.exam_type == exam_type and q.subject == subject and q.topic:
                counts[q.topic] = counts.get(q.topic, 0) + 1
        return sorted(counts.items(), key=lambda t: (-t[1], t[0]))

    def get_practice_stems(self, exam_type, subject) -> List[str]:
        return [
            q.question_text for q in self.practice.values()
            if q.exam_type == exam_type and q.subject == subject
        ]

    def get_solved_practice_ids(self, user_id) -> List[int]:
        return [qid for (uid, qid) in self.responses if uid == user_id]

    def upsert_practice_response(self, user_id, question_id, exam_type, subject, topic, is_correct):
        self.responses[(user_id, question_id)] = {
            "exam_type": exam_type, "subject": subject, "topic": topic, "is_correct": is_correct,
        }

    def count_responses_today(self, user_id, subject) -> int:
        return sum(
            1 for (uid, _), r in self.responses.items()
            if uid == user_id and r["subject"] == subject
        )

    # Tests
    def create_test(self, test: Test) -> Test:
        test.id = self._id()
        self.tests[test.id] = test
        return test

    def get_test(self, test_id) -> Optional[Test]:
        test = self.tests.get(test_id)
        return copy.deepcopy(test) if test else None

    def update_test(self, test: Test) -> None:
        self.tests[test.id] = copy.deepcopy(test)

    def set_test_stage(self, test_id, stage) -> None:
        self.tests[test_id].current_stage = stage
        self.stage_updates.append((test_id, stage))

    def set_violation_count(self, test_id, count) -> None:
        self.tests[test_id].violation_count = count

    def get_tests_for_user(self, user_id, exam_type=None, status=None, limit=20) -> List[Test]:
        found = [
            copy.deepcopy(t) for t in self.tests.values()
            if t.user_id == user_id
            and (exam_type is None or t.exam_type == exam_type)
            and (status is None or t.status == status)
        ]
        found.sort(key=lambda t: t.started_at or "", reverse=True)
        return found[:limit]

    def get_tests_for_session(self, user_id, session_id) -> List[Test]:
        return [
            copy.deepcopy(t) for t in self.tests.values()
            if t.user_id == user_id and t.session_id == session_id
        ]

    # Questions
    def save_questions(self, questions: List[Question]) -> List[Question]:
        for q in questions:
            q.id = self._id()
            self.questions[q.id] = copy.deepcopy(q)
        return questions

    def get_questions_for_test(self, test_id) -> List[Question]:
        found = [copy.deepcopy(q) for q in self.questions.values() if q.test_id == test_id]
        return sorted(found, key=lambda q: q.question_number)

    def get_question(self, question_id) -> Optional[Question]:
        q = self.questions.get(question_id)
        return copy.deepcopy(q) if q else None

    def update_question_answer(self, question_id, user_answer, answered_at=None) -> None:
        self.questions[question_id].user_answer = user_answer
        self.questions[question_id].answered_at = answered_at

    def update_question_mark(self, question_id, is_marked) -> None:
        self.questions[question_id].is_marked = is_marked

    def update_question_time(self, question_id, seconds) -> None:
        self.questions[question_id].time_spent_seconds = seconds

    # Mock sessions
    def create_mock_session(self, session: MockSession) -> MockSession:
        session.id = self._id()
        self.sessions[session.id] = session
        return session

    def get_mock_session(self, session_id) -> Optional[MockSession]:
        return self.sessions.get(session_id)

    def list_mock_sessions(self, exam_type, active_only=True) -> List[MockSession]:
        return [
            s for s in self.sessions.values()
            if s.exam_type == exam_type and (s.is_active or not active_only)
        ]

    def create_registration(self, user_id, session_id) -> SessionRegistration:
        reg = SessionRegistration(id=self._id(), user_id=user_id, session_id=session_id)
        self.registrations.append(reg)
        return reg

    def get_registration(self, user_id, session_id) -> Optional[SessionRegistration]:
        for reg in self.registrations:
            if reg.user_id == user_id and reg.session_id == session_id:
                return reg
        return None

    def list_registered_session_ids(self, user_id) -> List[int]:
        return [r.session_id for r in self.registrations if r.user_id == user_id]

    def save_session_questions(self, questions: List[SessionQuestion]) -> List[SessionQuestion]:
        for q in questions:
            q.id = self._id()
            self.session_questions.append(q)
        return questions

    def get_session_questions(self, session_id) -> List[SessionQuestion]:
        found = [q for q in self.session_questions if q.session_id == session_id]
        return sorted(found, key=lambda q: (q.section_name, q.id))

    # Proctoring
    def save_violation(self, violation: ProctoringViolation) -> ProctoringViolation:
        violation.id = self._id()
        self.violations.append(violation)
        return violation

    def get_violations(self, test_id) -> List[ProctoringViolation]:
        return [v for v in self.violations if v.test_id == test_id]

    # Topic performance
    def get_topic_performance(self, user_id, exam_type, subject, topic) -> Optional[TopicPerformance]:
        perf = self.performance.get((user_id, exam_type, subject, topic))
        return copy.deepcopy(perf) if perf else None

    def upsert_topic_performance(self, perf: TopicPerformance) -> None:
        self.performance[(perf.user_id, perf.exam_type, perf.subject, perf.topic)] = copy.deepcopy(perf)

    def list_topic_performance(self, user_id, exam_type=None) -> List[TopicPerformance]:
        return [
            p for p in self.performance.values()
            if p.user_id == user_id and (exam_type is None or p.exam_type == exam_type)
        ]

    # Bookmarks
    def is_bookmarked(self, user_id, question_id) -> bool:
        return any(b.user_id == user_id and b.question_id == question_id for b in self.bookmarks)

    def save_bookmark(self, user_id, question_id, notes="") -> SavedQuestion:
        saved = SavedQuestion(id=self._id(), user_id=user_id, question_id=question_id, notes=notes)
        self.bookmarks.append(saved)
        return saved

    def list_bookmarks(self, user_id):
        return [(b, self.get_question(b.question_id)) for b in self.bookmarks if b.user_id == user_id]

    def delete_bookmark(self, user_id, saved_id) -> None:
        self.bookmarks = [
            b for b in self.bookmarks if not (b.user_id == user_id and b.id == saved_id)
        ]


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def make_question(number: int, correct: int = 0, answer: Optional[int] = None, **kwargs) -> Question:
    return Question(
        id=number,
        test_id=1,
        question_number=number,
        question_text=f"Question {number}?",
        options=["a", "b", "c", "d", "e"],
        correct_index=correct,
        user_answer=answer,
        **kwargs,
    )


def seed_bank(db: FakeDatabase, exam_id: str, subject: str, count: int, topic: str = "Algebra",
              difficulty: str = "medium") -> List[PracticeQuestion]:
    questions = [
        PracticeQuestion(
            exam_type=exam_id,
            subject=subject,
            topic=topic,
            difficulty=difficulty,
            question_text=f"{subject} {topic} question {i}",
            options=["1", "2", "3", "4", "5"],
            correct_index=i % 5,
            explanation="Because.",
        )
        for i in range(count)
    ]
    return db.save_practice_questions(questions)


def cent_s_mock_questions() -> List[Question]:
    """A full CENT-S paper laid out in official section order."""
    questions = []
    number = 1
    for section in config.CENT_S.sections:
        for _ in range(section.question_count):
            questions.append(make_question(number, subject=section.name, topic=section.name))
            number += 1
    return questions


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def db():
    return FakeDatabase()


@pytest.fixture
def explorer(db):
    return db.create_student("Ada", "ada@example.com", "explorer")


@pytest.fixture
def pro(db):
    return db.create_student("Grace", "grace@example.com", "pro")


@pytest.fixture
def now():
    return datetime(2026, 3, 1, 10, 0, 0)
