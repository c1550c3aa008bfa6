"""Scoring engine: marking-scheme totals, percentages, section and topic breakdowns."""

import math
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from config import ScoringRules
from models import Question, Section, SectionResult, TopicPerformance

CORRECT = "correct"
WRONG = "wrong"
SKIPPED = "skipped"


def question_outcome(question: Question) -> str:
    if question.user_answer is None:
        return SKIPPED
    if question.user_answer == question.correct_index:
        return CORRECT
    return WRONG


def calculate_score(
    questions: List[Question], rules: ScoringRules
) -> Tuple[float, int, int, int]:
    """Apply the exam's marking scheme.

    Returns: (final_score, correct_count, wrong_count, skipped_count)
    """
    correct = wrong = skipped = 0
    final = 0.0
    for q in questions:
        outcome = question_outcome(q)
        if outcome == SKIPPED:
            skipped += 1
            final += rules.skipped
        elif outcome == CORRECT:
            correct += 1
            final += rules.correct
        else:
            wrong += 1
            final += rules.incorrect
    return final, correct, wrong, skipped


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def score_percentage(final_score: float, total_questions: int, rules: ScoringRules) -> int:
    """Score as a percentage of the maximum possible score.

    Penalties can push this below zero; the value is not clamped.
    """
    max_possible = total_questions * rules.correct
    if max_possible <= 0:
        return 0
    return _round_half_up(final_score / max_possible * 100)


def score_sections(
    questions: List[Question],
    sections: List[Section],
    rules: ScoringRules,
) -> List[SectionResult]:
    results = []
    for section in sections:
        chunk = questions[section.start_index:section.end_index + 1]
        final, correct, wrong, skipped = calculate_score(chunk, rules)
        results.append(SectionResult(
            section_name=section.name,
            score=final,
            total_questions=len(chunk),
            correct_count=correct,
            wrong_count=wrong,
            skipped_count=skipped,
            time_used_seconds=sum(q.time_spent_seconds for q in chunk),
        ))
    return results


def compute_topic_breakdown(
    questions: List[Question],
    default_subject: str,
) -> Dict[Tuple[str, str], Dict]:
    """Per (subject, topic) accuracy.

    Returns: {
        ("Biology", "Genetics"): {"correct": 3, "total": 4, "accuracy": 75.0},
        ...
    }
    """
    groups: Dict[Tuple[str, str], Dict] = {}
    for q in questions:
        subject = q.subject or default_subject
        topic = q.topic or subject
        key = (subject, topic)
        if key not in groups:
            groups[key] = {"correct": 0, "total": 0, "accuracy": 0.0}
        groups[key]["total"] += 1
        if question_outcome(q) == CORRECT:
            groups[key]["correct"] += 1

    for stats in groups.values():
        stats["accuracy"] = stats["correct"] / stats["total"] * 100
    return groups


def merge_topic_performance(
    existing: Optional[TopicPerformance],
    user_id: int,
    exam_type: str,
    subject: str,
    topic: str,
    correct: int,
    total: int,
) -> TopicPerformance:
    """Fold one test's results for a topic into the running totals."""
    perf = existing or TopicPerformance(
        user_id=user_id, exam_type=exam_type, subject=subject, topic=topic,
    )
    perf.total_questions += total
    perf.correct_answers += correct
    if perf.total_questions > 0:
        perf.accuracy_percentage = perf.correct_answers / perf.total_questions * 100
    perf.last_attempted_at = datetime.now().isoformat()
    return perf


def format_time(seconds: int) -> str:
    seconds = max(0, int(seconds))
    return f"{seconds // 60:02d}:{seconds % 60:02d}"
