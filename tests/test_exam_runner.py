from datetime import datetime

import pytest

import config
import display
from conftest import cent_s_mock_questions
from exam_runner import (
    ExamRunner,
    TestAlreadyCompletedError,
    TestNotFoundError,
    parse_command,
)
from exam_state import TIME_UP
from models import Question, Test


def add_practice_test(db, student, now, time_limit=30):
    test = db.create_test(Test(
        user_id=student.id, subject="Mathematics", test_type="practice",
        exam_type=config.CENT_S.id, total_questions=3, time_limit_minutes=time_limit,
        started_at=now.isoformat(),
    ))
    db.save_questions([
        Question(
            test_id=test.id, question_number=i + 1, question_text=f"Q{i + 1}",
            options=["a", "b", "c", "d", "e"], correct_index=0, subject="Mathematics",
            topic=topic, practice_question_id=100 + i,
        )
        for i, topic in enumerate(["Algebra", "Algebra", "Geometry"])
    ])
    return test


def add_mock_test(db, student, now, violation_count=0):
    test = db.create_test(Test(
        user_id=student.id, subject=config.FULL_SIMULATION_SUBJECT, test_type="mock",
        exam_type=config.CENT_S.id, total_questions=55,
        time_limit_minutes=config.CENT_S.duration_minutes, started_at=now.isoformat(),
        violation_count=violation_count,
    ))
    questions = cent_s_mock_questions()
    for q in questions:
        q.test_id = test.id
    db.save_questions(questions)
    return test


@pytest.mark.parametrize("raw, expected", [
    ("a", ("answer", 0)),
    ("E", ("answer", 4)),
    ("g 12", ("goto", 11)),
    ("7", ("goto", 6)),
    ("", ("next", None)),
    ("p", ("previous", None)),
    ("S", ("submit", None)),
    ("skip", ("skip_section", None)),
    ("?", ("help", None)),
    ("x", ("unknown", None)),
])
def test_parse_command(raw, expected):
    assert parse_command(raw) == expected


def test_load_rejects_missing_and_completed_tests(db, pro, now, clock):
    runner = ExamRunner(db, pro, clock=clock)
    with pytest.raises(TestNotFoundError):
        runner.load(999, now=now)

    test = add_practice_test(db, pro, now)
    db.tests[test.id].status = "completed"
    with pytest.raises(TestAlreadyCompletedError):
        runner.load(test.id, now=now)


def test_answers_marks_and_time_are_persisted(db, pro, now, clock):
    test = add_practice_test(db, pro, now)
    runner = ExamRunner(db, pro, clock=clock)
    session = runner.load(test.id, now=now)
    first = session.current_question

    runner.answer(0)
    assert db.questions[first.id].user_answer == 0
    assert db.responses[(pro.id, 100)]["is_correct"] is True

    assert runner.toggle_mark() is True
    assert db.questions[first.id].is_marked

    clock.advance(7)
    runner.next_question()
    assert db.questions[first.id].time_spent_seconds == 7


def test_practice_tests_are_not_proctored(db, pro, now, clock):
    test = add_practice_test(db, pro, now)
    runner = ExamRunner(db, pro, clock=clock)
    runner.load(test.id, now=now)
    assert not runner.monitor.enabled
    assert runner.handle_event({"type": "blur"}) is None
    assert db.violations == []


def test_submit_saves_result_and_topic_performance(db, pro, now, clock):
    test = add_practice_test(db, pro, now)
    runner = ExamRunner(db, pro, clock=clock)
    runner.load(test.id, now=now)

    runner.answer(0)
    runner.next_question()
    runner.answer(2)
    result = runner.submit()

    saved = db.tests[test.id]
    assert saved.status == "completed"
    assert saved.score == result.score_percentage
    assert (saved.correct_answers, saved.wrong_answers, saved.skipped_answers) == (1, 1, 1)

    algebra = db.performance[(pro.id, config.CENT_S.id, "Mathematics", "Algebra")]
    geometry = db.performance[(pro.id, config.CENT_S.id, "Mathematics", "Geometry")]
    assert (algebra.correct_answers, algebra.total_questions) == (1, 2)
    assert (geometry.correct_answers, geometry.total_questions) == (0, 1)

    # Submitting again changes nothing
    runner.submit()
    assert db.performance[(pro.id, config.CENT_S.id, "Mathematics", "Algebra")].total_questions == 2


def test_topic_performance_accumulates_across_tests(db, pro, now, clock):
    for _ in range(2):
        test = add_practice_test(db, pro, now)
        runner = ExamRunner(db, pro, clock=clock)
        runner.load(test.id, now=now)
        runner.answer(0)
        runner.submit()

    algebra = db.performance[(pro.id, config.CENT_S.id, "Mathematics", "Algebra")]
    assert (algebra.correct_answers, algebra.total_questions) == (2, 4)
    assert algebra.accuracy_percentage == 50.0


def test_poll_finalizes_when_time_runs_out(db, pro, now, clock):
    test = add_practice_test(db, pro, now, time_limit=5)
    runner = ExamRunner(db, pro, clock=clock)
    runner.load(test.id, now=now)

    clock.advance(5 * 60)
    assert runner.poll() == [TIME_UP]
    assert db.tests[test.id].status == "completed"
    assert runner.session.result.reason == "time_up"


def test_section_lock_persists_stage(db, pro, now, clock):
    test = add_mock_test(db, pro, now)
    runner = ExamRunner(db, pro, clock=clock)
    runner.load(test.id, now=now)

    opened = runner.complete_section()
    assert opened.name == "Reasoning on texts and data"
    assert db.tests[test.id].current_stage == 2

    runner.skip_section()
    assert db.stage_updates == [(test.id, 2), (test.id, 3)]


def test_resumed_mock_opens_saved_section(db, pro, now, clock):
    test = add_mock_test(db, pro, now)
    db.tests[test.id].current_stage = 4
    runner = ExamRunner(db, pro, clock=clock)
    session = runner.load(test.id, now=now)
    assert session.current_section.name == "Chemistry"


def test_violations_disqualify_mock(db, pro, now, clock):
    test = add_mock_test(db, pro, now)
    runner = ExamRunner(db, pro, clock=clock)
    runner.load(test.id, now=now)
    assert runner.monitor.enabled

    runner.handle_event({"type": "blur"})
    runner.handle_event({"type": "visibilitychange", "hidden": True})
    assert db.tests[test.id].violation_count == 2
    assert not runner.session.is_submitted

    outcome = runner.handle_event({"type": "blur"})
    assert outcome.disqualified
    assert runner.session.is_submitted
    saved = db.tests[test.id]
    assert saved.status == "completed"
    assert saved.proctoring_status == "disqualified"
    assert saved.violation_count == 3
    assert [v.violation_type for v in db.get_violations(test.id)] == [
        "window_blur", "tab_switch", "window_blur",
    ]


def test_violation_count_survives_reload(db, pro, now, clock):
    test = add_mock_test(db, pro, now, violation_count=2)
    runner = ExamRunner(db, pro, clock=clock)
    runner.load(test.id, now=now)
    outcome = runner.report_violation("interrupt", "warning", "Attempted to leave the test")
    assert outcome.disqualified
    assert db.tests[test.id].proctoring_status == "disqualified"


def test_bookmark_current_question(db, pro, now, clock):
    test = add_practice_test(db, pro, now)
    runner = ExamRunner(db, pro, clock=clock)
    runner.load(test.id, now=now)

    assert runner.bookmark("tricky") is True
    assert runner.bookmark() is False
    (saved, question), = db.list_bookmarks(pro.id)
    assert saved.notes == "tricky"
    assert question.question_text == "Q1"


def test_section_warning_becomes_notice(db, pro, now, clock):
    test = add_mock_test(db, pro, now)
    runner = ExamRunner(db, pro, clock=clock)
    runner.load(test.id, now=now)

    clock.advance(26 * 60)
    runner.poll()
    notices = runner.drain_notices()
    assert notices == ["Only 4 minutes left in Mathematics."]
    assert runner.drain_notices() == []


def scripted_terminal(monkeypatch, clock, script):
    """Feed exam commands in order; each entry is (seconds to think, raw input)."""
    steps = iter(script)

    def get_exam_command():
        delay, raw = next(steps)
        clock.advance(delay)
        return raw

    monkeypatch.setattr(display, "get_exam_command", get_exam_command)
    monkeypatch.setattr(display, "confirm", lambda prompt: True)
    monkeypatch.setattr(display, "press_enter_to_continue", lambda: None)
    monkeypatch.setattr(display, "clear_screen", lambda: None)


def test_terminal_answer_is_saved_on_the_question_shown(db, pro, clock, monkeypatch):
    test = add_mock_test(db, pro, datetime.now())
    scripted_terminal(monkeypatch, clock, [(10, "a"), (0, "s")])

    runner = ExamRunner(db, pro, clock=clock)
    result = runner.run_interactive(test.id)

    assert result is not None
    answers = {q.question_number: q.user_answer for q in db.questions.values() if q.test_id == test.id}
    assert answers[1] == 0
    assert answers[2] is None


def test_input_typed_as_section_expires_is_discarded(db, pro, clock, monkeypatch):
    test = add_mock_test(db, pro, datetime.now())
    # Mathematics runs 30 minutes; the first answer arrives after it closed
    scripted_terminal(monkeypatch, clock, [(31 * 60, "a"), (0, "s")])

    runner = ExamRunner(db, pro, clock=clock)
    result = runner.run_interactive(test.id)

    assert result is not None
    assert runner.session.current_section_index == 1
    answered = [q.question_number for q in db.questions.values()
                if q.test_id == test.id and q.user_answer is not None]
    assert answered == []
    assert db.tests[test.id].status == "completed"
