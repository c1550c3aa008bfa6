"""Test history, results review, topic performance and recommendations."""

from typing import Dict, List, Optional, Tuple

import config
import display
import scoring
from config import ExamConfig
from models import (
    ProctoringViolation,
    Question,
    Student,
    Test,
    TestStatus,
    TopicPerformance,
)


class ProgressTracker:
    def __init__(self, db, student: Student, exam: ExamConfig):
        self.db = db
        self.student = student
        self.exam = exam

    # ------------------------------------------------------------------
    # Data
    # ------------------------------------------------------------------

    def completed_tests(self, limit: int = 20) -> List[Test]:
        return self.db.get_tests_for_user(
            self.student.id, exam_type=self.exam.id,
            status=TestStatus.COMPLETED.value, limit=limit,
        )

    def in_progress_tests(self) -> List[Test]:
        return self.db.get_tests_for_user(
            self.student.id, exam_type=self.exam.id,
            status=TestStatus.IN_PROGRESS.value,
        )

    def load_review(
        self, test_id: int
    ) -> Tuple[Optional[Test], List[Question], List[ProctoringViolation]]:
        """A completed test of this student with its questions and violations."""
        test = self.db.get_test(test_id)
        if test is None or test.user_id != self.student.id:
            return None, [], []
        return (
            test,
            self.db.get_questions_for_test(test_id),
            self.db.get_violations(test_id),
        )

    def get_recommendations(
        self,
        stats: Dict,
        tests: List[Test],
        performance: List[TopicPerformance],
    ) -> List[str]:
        """Generate rule-based study recommendations."""
        recs = []

        if stats["total_questions"] == 0:
            recs.append("Take your first practice test to see where you stand!")
            return recs

        if stats["mock_tests"] == 0:
            recs.append("Try a full simulation to experience real exam timing.")

        weak_topics = []
        needs_work_topics = []
        for p in performance:
            if p.total_questions < config.MIN_QUESTIONS_FOR_RATING:
                continue
            if p.accuracy_percentage < config.WEAK_ACCURACY:
                weak_topics.append(p.topic)
            elif p.accuracy_percentage < config.STRONG_ACCURACY:
                needs_work_topics.append(p.topic)

        if weak_topics:
            recs.append(f"Focus on: {', '.join(weak_topics)} - practise these topics first.")
        if needs_work_topics:
            recs.append(f"Keep practising: {', '.join(needs_work_topics)} - you're getting closer!")

        # Mock score trend, newest first
        mocks = [t for t in tests if t.is_mock and t.score is not None]
        if len(mocks) >= 2:
            recent = mocks[0].score
            previous = mocks[1].score
            if recent > previous:
                recs.append(f"Your mock scores are trending up! (+{recent - previous}%)")
            elif recent < previous:
                recs.append("Mock scores dipped. Review your mistakes before the next simulation.")

        strong_topics = [
            p.topic for p in performance
            if p.total_questions >= config.MIN_QUESTIONS_FOR_STRONG
            and p.accuracy_percentage >= config.STRONG_ACCURACY
        ]
        if strong_topics:
            recs.append(f"Great mastery in: {', '.join(strong_topics)}!")

        if not recs:
            recs.append("Keep practising regularly - consistency is key!")

        return recs

    # ------------------------------------------------------------------
    # Terminal views
    # ------------------------------------------------------------------

    def show_dashboard(self) -> None:
        stats = self.db.get_user_stats(self.student.id, exam_type=self.exam.id)
        tests = self.completed_tests()
        performance = self.db.list_topic_performance(self.student.id, self.exam.id)

        display.show_progress_dashboard(self.student, self.exam, stats, tests, performance)

        recommendations = self.get_recommendations(stats, tests, performance)
        if recommendations:
            display.console.print()
            display.console.print("  [bold]Recommendations:[/bold]")
            for rec in recommendations:
                display.console.print(f"  - {rec}")
            display.console.print()

    def show_history(self) -> None:
        tests = self.completed_tests()
        if not tests:
            display.show_info("No completed tests yet.")
            display.press_enter_to_continue()
            return

        display.show_history(tests)
        options = [
            f"{t.started_at[:10] if t.started_at else '?'}  {t.subject} ({t.score}%)"
            for t in tests
        ]
        options.append("Back to main menu")
        choice = display.show_menu("Review a test", options)
        if choice == len(options):
            return
        self.review_test(tests[choice - 1].id)

    def review_test(self, test_id: int, mistakes_only: bool = False) -> None:
        test, questions, violations = self.load_review(test_id)
        if test is None:
            display.show_error(f"Test {test_id} not found.")
            return

        rules = config.get_exam(test.exam_type).scoring
        final, _, _, _ = scoring.calculate_score(questions, rules)
        display.show_review_summary(test, final, violations)

        if not mistakes_only:
            mistakes_only = display.confirm("Show only questions you missed?")
        shown = [
            q for q in questions
            if not mistakes_only or scoring.question_outcome(q) != scoring.CORRECT
        ]
        for i, q in enumerate(shown, 1):
            display.show_review_question(i, len(shown), q)
            display.press_enter_to_continue()

    def show_bookmarks(self) -> None:
        items = self.db.list_bookmarks(self.student.id)
        if not items:
            display.show_info("No saved questions yet.")
            display.press_enter_to_continue()
            return
        for i, (_, question) in enumerate(items, 1):
            display.show_review_question(i, len(items), question)
            if display.confirm("Remove from bookmarks?"):
                self.db.delete_bookmark(self.student.id, items[i - 1][0].id)
