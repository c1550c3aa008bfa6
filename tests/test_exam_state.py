from datetime import timedelta

import pytest

import config
from conftest import cent_s_mock_questions, make_question
from exam_state import (
    SECTION_EXPIRED,
    SECTION_WARNING,
    TIME_UP,
    ExamClosedError,
    ExamSession,
    ExamStateError,
    NavigationError,
    SectionLockedError,
    SectionNotOpenError,
    build_mock_sections,
    resolve_section_name,
)
from models import SectionState, SubmitReason, Test


def mock_test(now, **kwargs) -> Test:
    fields = dict(
        id=1, user_id=1, subject=config.FULL_SIMULATION_SUBJECT, test_type="mock",
        exam_type=config.CENT_S.id, total_questions=55,
        time_limit_minutes=config.CENT_S.duration_minutes, started_at=now.isoformat(),
    )
    fields.update(kwargs)
    return Test(**fields)


@pytest.fixture
def session(clock, now):
    return ExamSession(mock_test(now), cent_s_mock_questions(), config.CENT_S, clock=clock, now=now)


# ---------------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------------

def test_mock_sections_follow_official_order(session):
    assert [s.name for s in session.sections] == config.CENT_S.section_names()
    assert [s.question_count for s in session.sections] == [15, 15, 10, 10, 5]
    assert session.sections[1].start_index == 15
    assert session.sections[-1].end_index == 54


def test_mock_sections_fall_back_to_configured_counts():
    questions = [make_question(i) for i in range(1, 21)]
    sections = build_mock_sections(config.CENT_S, questions)
    assert [(s.name, s.question_count) for s in sections] == [
        ("Mathematics", 15),
        ("Reasoning on texts and data", 5),
    ]


def test_mock_without_questions_has_no_current_section(clock, now):
    empty = ExamSession(mock_test(now, total_questions=0), [], config.CENT_S, clock=clock, now=now)
    assert empty.sections == []
    assert empty.current_section is None
    assert empty.section_timer is None
    assert empty.complete_section() is None


def test_resolve_section_name_uses_aliases():
    assert resolve_section_name(config.IMAT, "Maths") == "Physics & Mathematics"
    assert resolve_section_name(config.CENT_S, "Logic") == "Reasoning on texts and data"
    assert resolve_section_name(config.CENT_S, "Biology") == "Biology"
    assert resolve_section_name(config.CENT_S, "History") is None


def test_session_starts_in_first_section(session):
    assert session.current_index == 0
    assert session.section_state(0) == SectionState.IN_PROGRESS
    assert session.section_state(1) == SectionState.NOT_STARTED
    assert session.display_remaining() == 30 * 60
    assert session.global_remaining() == 110 * 60


# ---------------------------------------------------------------------------
# Navigation
# ---------------------------------------------------------------------------

def test_cannot_jump_into_unopened_section(session):
    with pytest.raises(SectionNotOpenError):
        session.navigate(20)


def test_next_stops_at_section_end(session):
    session.navigate(14)
    with pytest.raises(NavigationError):
        session.next_question()


def test_previous_stops_at_section_start(session):
    with pytest.raises(NavigationError):
        session.previous_question()


def test_completed_section_is_locked(session):
    opened = session.complete_section()
    assert opened.name == "Reasoning on texts and data"
    assert session.current_index == 15
    assert session.test.current_stage == 2
    assert session.section_state(0) == SectionState.COMPLETED
    with pytest.raises(SectionLockedError):
        session.navigate(3)


def test_skip_locks_like_complete(session):
    session.skip_section()
    assert session.completed_sections == [0]
    assert session.current_section_index == 1


def test_locking_last_section_leaves_submission(session):
    for _ in range(4):
        assert session.complete_section() is not None
    assert session.complete_section() is None
    assert session.all_sections_completed
    assert not session.is_submitted


def test_out_of_range_question_is_rejected(session):
    with pytest.raises(NavigationError):
        session.navigate(99)


def test_practice_navigation_is_free(clock, now):
    questions = [
        make_question(1, topic="Algebra"),
        make_question(2, topic="Algebra"),
        make_question(3, topic="Geometry"),
    ]
    test = mock_test(now, test_type="practice", subject="Mathematics", time_limit_minutes=30)
    session = ExamSession(test, questions, config.CENT_S, clock=clock, now=now)

    assert [s.name for s in session.sections] == ["Algebra", "Geometry"]
    session.navigate(2)
    session.navigate(0)
    assert session.current_index == 0
    with pytest.raises(ExamStateError):
        session.complete_section()


# ---------------------------------------------------------------------------
# Answering
# ---------------------------------------------------------------------------

def test_select_answer_and_mark(session):
    q = session.select_answer(2)
    assert q.user_answer == 2
    assert q.answered_at is not None
    assert session.toggle_mark() is True
    assert session.submission_warnings() == {"unanswered": 54, "marked": 1}


def test_select_answer_out_of_range(session):
    with pytest.raises(ValueError):
        session.select_answer(5)


def test_time_on_question_accumulates(session, clock):
    clock.advance(12)
    session.next_question()
    clock.advance(3)
    session.previous_question()
    clock.advance(4)
    session.next_question()
    assert session.questions[0].time_spent_seconds == 16
    assert session.questions[1].time_spent_seconds == 3


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------

def test_section_warning_then_expiry(clock, now):
    warned = []
    session = ExamSession(
        mock_test(now), cent_s_mock_questions(), config.CENT_S, clock=clock, now=now,
        on_section_warning=lambda section, remaining: warned.append((section.name, remaining)),
    )
    clock.advance(26 * 60)
    assert session.tick() == [SECTION_WARNING]
    assert warned == [("Mathematics", 240)]

    clock.advance(4 * 60)
    assert session.tick() == [SECTION_EXPIRED]
    assert session.current_section_index == 1
    assert session.completed_sections == [0]
    assert session.display_remaining() == 30 * 60


def test_last_section_expiry_submits(session, clock):
    for _ in range(4):
        session.complete_section()
    clock.advance(10 * 60)
    events = session.tick()
    assert events == [SECTION_EXPIRED, TIME_UP]
    assert session.result.reason == "time_up"


def test_global_deadline_submits(session, clock):
    clock.advance(110 * 60)
    assert session.tick() == [TIME_UP]
    assert session.is_submitted
    assert session.test.status == "completed"
    assert session.tick() == []


def test_resume_restores_stage_and_deadline(clock, now):
    test = mock_test(now - timedelta(minutes=100), current_stage=3)
    session = ExamSession(test, cent_s_mock_questions(), config.CENT_S, clock=clock, now=now)
    assert session.current_section_index == 2
    assert session.completed_sections == [0, 1]
    assert session.current_index == 30
    assert session.global_remaining() == 10 * 60


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------

def test_submit_scores_and_closes(session):
    session.select_answer(0)          # correct
    session.next_question()
    session.select_answer(1)          # wrong
    result = session.submit()

    assert (result.correct, result.wrong, result.skipped) == (1, 1, 53)
    assert result.final_score == 0.75
    assert result.score_percentage == 1
    assert result.proctoring_status == "passed"
    assert len(result.section_results) == 5
    assert session.test.score == 1
    assert session.test.completed_at is not None

    with pytest.raises(ExamClosedError):
        session.select_answer(0)


def test_submit_is_idempotent(session):
    first = session.submit(SubmitReason.MANUAL)
    second = session.submit(SubmitReason.TIME_UP)
    assert second is first
    assert first.reason == "manual"


def test_disqualify_marks_test(session):
    result = session.disqualify("Maximum violations exceeded")
    assert result.reason == "disqualified"
    assert session.test.proctoring_status == "disqualified"
