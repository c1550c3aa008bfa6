import pytest

from config import CENT_S, IMAT, ScoringRules
from conftest import make_question
from models import Section, TopicPerformance
import scoring


def test_calculate_score_applies_marking_scheme():
    questions = [
        make_question(1, correct=0, answer=0),
        make_question(2, correct=1, answer=1),
        make_question(3, correct=2, answer=0),
        make_question(4, correct=3),
    ]
    final, correct, wrong, skipped = scoring.calculate_score(questions, IMAT.scoring)
    assert (correct, wrong, skipped) == (2, 1, 1)
    assert final == pytest.approx(2 * 1.5 - 0.4)


def test_percentage_of_maximum_possible():
    # 40 correct, 10 wrong, 5 skipped on CENT-S
    assert scoring.score_percentage(40 - 10 * 0.25, 55, CENT_S.scoring) == 68


def test_percentage_rounds_half_up():
    rules = ScoringRules(correct=1, incorrect=0, skipped=0)
    assert scoring.score_percentage(1, 8, rules) == 13  # 12.5


def test_percentage_can_be_negative():
    questions = [make_question(i, correct=0, answer=1) for i in range(1, 5)]
    final, _, _, _ = scoring.calculate_score(questions, CENT_S.scoring)
    assert final == -1.0
    assert scoring.score_percentage(final, 4, CENT_S.scoring) == -25


def test_percentage_of_empty_test_is_zero():
    assert scoring.score_percentage(0, 0, CENT_S.scoring) == 0


def test_question_outcome():
    assert scoring.question_outcome(make_question(1, correct=2, answer=2)) == scoring.CORRECT
    assert scoring.question_outcome(make_question(1, correct=2, answer=0)) == scoring.WRONG
    assert scoring.question_outcome(make_question(1, correct=2)) == scoring.SKIPPED


def test_score_sections():
    questions = [
        make_question(1, correct=0, answer=0, time_spent_seconds=10),
        make_question(2, correct=0, answer=1, time_spent_seconds=5),
        make_question(3, correct=0),
    ]
    sections = [
        Section(name="First", start_index=0, end_index=1, question_count=2),
        Section(name="Second", start_index=2, end_index=2, question_count=1),
    ]
    results = scoring.score_sections(questions, sections, CENT_S.scoring)
    assert [r.section_name for r in results] == ["First", "Second"]
    assert results[0].score == 0.75
    assert (results[0].correct_count, results[0].wrong_count) == (1, 1)
    assert results[0].time_used_seconds == 15
    assert results[1].skipped_count == 1


def test_topic_breakdown_groups_by_subject_and_topic():
    questions = [
        make_question(1, correct=0, answer=0, subject="Biology", topic="Genetics"),
        make_question(2, correct=0, answer=1, subject="Biology", topic="Genetics"),
        make_question(3, correct=0, answer=0, subject="Chemistry", topic=None),
        make_question(4, correct=0, answer=0),
    ]
    breakdown = scoring.compute_topic_breakdown(questions, "Mathematics")
    assert breakdown[("Biology", "Genetics")] == {"correct": 1, "total": 2, "accuracy": 50.0}
    assert breakdown[("Chemistry", "Chemistry")]["accuracy"] == 100.0
    assert ("Mathematics", "Mathematics") in breakdown


def test_merge_topic_performance_accumulates():
    perf = scoring.merge_topic_performance(None, 7, "cent-s-prep", "Biology", "Cells", 3, 4)
    assert (perf.total_questions, perf.correct_answers) == (4, 3)
    assert perf.accuracy_percentage == 75.0

    merged = scoring.merge_topic_performance(perf, 7, "cent-s-prep", "Biology", "Cells", 1, 4)
    assert isinstance(merged, TopicPerformance)
    assert (merged.total_questions, merged.correct_answers) == (8, 4)
    assert merged.accuracy_percentage == 50.0
    assert merged.last_attempted_at is not None


def test_format_time():
    assert scoring.format_time(3725) == "62:05"
    assert scoring.format_time(-4) == "00:00"
