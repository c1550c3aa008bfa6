from datetime import timedelta

import pytest

import config
from mock_sessions import (
    LIVE,
    PAST,
    UPCOMING,
    AttemptLimitError,
    MockSessionService,
    NoSessionQuestionsError,
    RegistrationRequiredError,
    SessionNotFoundError,
    SessionNotOpenError,
    UnsupportedExamError,
    UpgradeRequiredError,
    classify_session,
    order_session_questions,
)
from models import MockSession, SessionQuestion


def add_session(db, now, exam_type="imat-prep", starts=-1, hours=3, attempts=1):
    return db.create_mock_session(MockSession(
        exam_type=exam_type,
        title="Spring Mock",
        start_time=(now + timedelta(hours=starts)).isoformat(),
        end_time=(now + timedelta(hours=starts + hours)).isoformat(),
        attempts_per_person=attempts,
    ))


def add_questions(db, session_id, sections):
    db.save_session_questions([
        SessionQuestion(
            session_id=session_id,
            section_name=name,
            question_text=f"{name} question {i}",
            options=["a", "b", "c", "d", "e"],
            correct_index=0,
            topic=name,
        )
        for name in sections
        for i in range(2)
    ])


@pytest.fixture
def service(db):
    return MockSessionService(db)


def test_classify_session(now):
    session = MockSession(
        start_time=(now - timedelta(hours=1)).isoformat(),
        end_time=(now + timedelta(hours=1)).isoformat(),
    )
    assert classify_session(session, now) == LIVE
    assert classify_session(session, now + timedelta(hours=2)) == PAST
    assert classify_session(session, now - timedelta(hours=2)) == UPCOMING


def test_order_session_questions_uses_official_sections():
    questions = [
        SessionQuestion(id=1, section_name="Chemistry"),
        SessionQuestion(id=2, section_name="Zoology"),
        SessionQuestion(id=3, section_name="Maths"),
        SessionQuestion(id=4, section_name="Biology"),
        SessionQuestion(id=5, section_name="Logic"),
        SessionQuestion(id=6, section_name="Anatomy"),
    ]
    ordered = order_session_questions("imat-prep", questions)
    assert [q.id for q in ordered] == [5, 4, 1, 3, 6, 2]


def test_list_sessions_reports_status_and_registration(db, service, pro, now):
    live = add_session(db, now)
    upcoming = add_session(db, now, starts=24)
    db.create_registration(pro.id, live.id)

    views = {v.session.id: v for v in service.list_sessions("imat-prep", pro, now)}
    assert views[live.id].status == LIVE
    assert views[live.id].is_registered
    assert views[upcoming.id].status == UPCOMING
    assert not views[upcoming.id].is_registered


def test_explorer_cannot_register(db, service, explorer, now):
    session = add_session(db, now)
    with pytest.raises(UpgradeRequiredError):
        service.register(explorer, session.id)


def test_register_is_idempotent(db, service, pro, now):
    session = add_session(db, now)
    service.register(pro, session.id)
    service.register(pro, session.id)
    assert len(db.registrations) == 1


def test_register_unknown_session(service, pro):
    with pytest.raises(SessionNotFoundError):
        service.register(pro, 404)


def test_start_requires_registration(db, service, pro, now):
    session = add_session(db, now)
    with pytest.raises(RegistrationRequiredError):
        service.start_test(pro, session.id, now)


def test_start_creates_ordered_mock_test(db, service, pro, now):
    session = add_session(db, now)
    add_questions(db, session.id, ["Physics & Mathematics", "Biology", "Logical Reasoning"])
    service.register(pro, session.id)

    test = service.start_test(pro, session.id, now)
    assert test.is_mock
    assert test.session_id == session.id
    assert test.subject == config.SESSION_MOCK_SUBJECT
    assert test.time_limit_minutes == config.IMAT.duration_minutes
    assert test.total_questions == 6

    questions = db.get_questions_for_test(test.id)
    assert [q.question_number for q in questions] == list(range(1, 7))
    assert [q.subject for q in questions] == [
        "Logical Reasoning", "Logical Reasoning",
        "Biology", "Biology",
        "Physics & Mathematics", "Physics & Mathematics",
    ]


def test_start_resumes_unfinished_attempt(db, service, pro, now):
    session = add_session(db, now)
    add_questions(db, session.id, ["Biology"])
    service.register(pro, session.id)

    first = service.start_test(pro, session.id, now)
    again = service.start_test(pro, session.id, now + timedelta(minutes=5))
    assert again.id == first.id
    assert len(db.tests) == 1


def test_attempt_limit(db, service, pro, now):
    session = add_session(db, now)
    add_questions(db, session.id, ["Biology"])
    service.register(pro, session.id)

    test = service.start_test(pro, session.id, now)
    db.tests[test.id].status = "completed"
    with pytest.raises(AttemptLimitError):
        service.start_test(pro, session.id, now)


def test_cannot_start_before_session_opens(db, service, pro, now):
    session = add_session(db, now, starts=2)
    add_questions(db, session.id, ["Biology"])
    service.register(pro, session.id)
    with pytest.raises(SessionNotOpenError):
        service.start_test(pro, session.id, now)


def test_skills_flow_exams_are_not_started(db, service, pro, now):
    session = add_session(db, now, exam_type="ielts-academic")
    service.register(pro, session.id)
    with pytest.raises(UnsupportedExamError):
        service.start_test(pro, session.id, now)


def test_session_without_questions(db, service, pro, now):
    session = add_session(db, now)
    service.register(pro, session.id)
    with pytest.raises(NoSessionQuestionsError):
        service.start_test(pro, session.id, now)
