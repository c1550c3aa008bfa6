import pytest

import config


@pytest.mark.parametrize("exam", list(config.EXAMS.values()), ids=lambda e: e.id)
def test_every_section_has_a_syllabus(exam):
    assert set(exam.syllabus) == set(exam.section_names())


@pytest.mark.parametrize("exam", [config.CENT_S, config.IMAT], ids=lambda e: e.id)
def test_section_totals_match_exam(exam):
    assert sum(s.question_count for s in exam.sections) == exam.total_questions
    assert sum(s.duration_minutes for s in exam.sections) <= exam.duration_minutes


def test_marking_schemes():
    assert config.CENT_S.scoring == config.ScoringRules(correct=1, incorrect=-0.25, skipped=0)
    assert config.IMAT.scoring == config.ScoringRules(correct=1.5, incorrect=-0.4, skipped=0)


def test_get_exam():
    assert config.get_exam("imat-prep") is config.IMAT
    with pytest.raises(ValueError):
        config.get_exam("gre")


def test_aliases_point_at_official_sections():
    for exam_id, aliases in config.SECTION_ALIASES.items():
        names = config.get_exam(exam_id).section_names()
        for _, target in aliases:
            assert target in names
