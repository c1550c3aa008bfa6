"""Practice question bank: topic listing, practice tests and full simulations."""

import logging
import random
from datetime import datetime
from typing import Callable, List, Optional, Tuple

import config
from config import ExamConfig
from models import (
    PracticeQuestion,
    Question,
    Student,
    Test,
    TestStatus,
    TestType,
)
from question_generator import QuestionGenerationError, QuestionGenerator

logger = logging.getLogger(__name__)


class PracticeError(Exception):
    """Base class for practice-test failures shown to the student."""


class DailyLimitError(PracticeError):
    pass


class InsufficientQuestionsError(PracticeError):
    pass


# Default no-op status callback
def _noop_status(msg: str, level: str = "info") -> None:
    pass


def _is_any(value: Optional[str]) -> bool:
    return not value or value in ("mixed", "all")


class PracticeBank:
    def __init__(
        self,
        db,
        generator: Optional[QuestionGenerator] = None,
        on_status: Optional[Callable[[str, str], None]] = None,
        rng: Optional[random.Random] = None,
    ):
        self.db = db
        self.generator = generator
        self._on_status = on_status or _noop_status
        self._rng = rng or random.Random()

    # ------------------------------------------------------------------
    # Bank queries
    # ------------------------------------------------------------------

    def list_topics(self, exam: ExamConfig, subject: str) -> List[Tuple[str, int]]:
        """Topics present in the bank for a subject, most populated first."""
        topics = self.db.count_practice_topics(exam.id, subject)
        return sorted(topics, key=lambda t: -t[1])

    def remaining_today(self, student: Student, subject: str) -> Optional[int]:
        """Questions left today on the free plan, or None when unlimited."""
        if not student.is_explorer:
            return None
        used = self.db.count_responses_today(student.id, subject)
        return max(0, config.DAILY_FREE_LIMIT - used)

    def _check_daily_limit(self, student: Student, subject: str, count: int = 1) -> None:
        """Explorers may not start a test larger than what is left of today's allowance."""
        remaining = self.remaining_today(student, subject)
        if remaining is None:
            return
        if remaining <= 0:
            raise DailyLimitError(
                f"You have reached your {config.DAILY_FREE_LIMIT}-question daily limit "
                f"for {subject}. Upgrade to Pro for unlimited practice."
            )
        if count > remaining:
            raise DailyLimitError(
                f"Only {remaining} question(s) left today for {subject}. "
                f"Choose {remaining} or fewer, or upgrade to Pro for unlimited practice."
            )

    def _unseen(
        self,
        student: Student,
        exam: ExamConfig,
        subject: str,
        difficulty: Optional[str] = None,
        topic: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[PracticeQuestion]:
        solved = self.db.get_solved_practice_ids(student.id)
        return self.db.get_practice_questions(
            exam.id,
            subject,
            difficulty=None if _is_any(difficulty) else difficulty,
            topic=None if _is_any(topic) else topic,
            exclude_ids=solved,
            limit=limit,
        )

    # ------------------------------------------------------------------
    # Test creation
    # ------------------------------------------------------------------

    def create_practice_test(
        self,
        student: Student,
        exam: ExamConfig,
        subject: str,
        topic: str = config.ALL_TOPICS,
        difficulty: str = "medium",
        count: int = config.PRACTICE_DEFAULT_QUESTIONS,
        time_limit: int = config.PRACTICE_DEFAULT_MINUTES,
    ) -> Test:
        if not config.PRACTICE_MIN_QUESTIONS <= count <= config.PRACTICE_MAX_QUESTIONS:
            raise ValueError(
                f"Question count must be between {config.PRACTICE_MIN_QUESTIONS} "
                f"and {config.PRACTICE_MAX_QUESTIONS}."
            )
        self._check_daily_limit(student, subject, count)

        pool = self._unseen(student, exam, subject, difficulty, topic)
        if len(pool) < count and self.generator is not None:
            needed = max(count - len(pool), config.QUESTIONS_PER_BATCH)
            self._on_status(f"Generating {needed} more {subject} questions...", "info")
            try:
                self.generate_into_bank(
                    exam, subject, needed,
                    difficulty=difficulty,
                    topic=None if _is_any(topic) else topic,
                )
            except QuestionGenerationError as e:
                self._on_status(f"Could not generate new questions: {e}", "warning")
            pool = self._unseen(student, exam, subject, difficulty, topic)

        if len(pool) < count:
            raise InsufficientQuestionsError(
                f"Insufficient questions in the bank. Need {count}, found {len(pool)}."
            )

        fallback_topic = subject if _is_any(topic) else topic
        self._rng.shuffle(pool)
        chosen = pool[:count]
        # Group by the persisted topic label so each topic forms one contiguous block
        chosen.sort(key=lambda q: q.topic or fallback_topic)

        test = Test(
            user_id=student.id,
            subject=subject,
            topic=None if _is_any(topic) else topic,
            difficulty="mixed" if _is_any(difficulty) else difficulty,
            total_questions=len(chosen),
            time_limit_minutes=time_limit,
            started_at=datetime.now().isoformat(),
            status=TestStatus.IN_PROGRESS.value,
            test_type=TestType.PRACTICE.value,
            exam_type=exam.id,
        )
        return self._persist(test, chosen, lambda pq: (pq.subject, pq.topic or fallback_topic))

    def create_full_simulation(self, student: Student, exam: ExamConfig) -> Test:
        """Assemble a full-length exam from the bank, section by section."""
        self._check_daily_limit(student, config.FULL_SIMULATION_SUBJECT)

        chosen: List[PracticeQuestion] = []
        for section in exam.sections:
            found = self._unseen(student, exam, section.name, limit=section.question_count)
            if len(found) < section.question_count:
                raise InsufficientQuestionsError(
                    f"Insufficient questions for section: {section.name}. "
                    f"Need {section.question_count}, found {len(found)}."
                )
            chosen.extend(found)

        test = Test(
            user_id=student.id,
            subject=config.FULL_SIMULATION_SUBJECT,
            difficulty="mixed",
            total_questions=len(chosen),
            time_limit_minutes=exam.duration_minutes,
            started_at=datetime.now().isoformat(),
            status=TestStatus.IN_PROGRESS.value,
            test_type=TestType.MOCK.value,
            exam_type=exam.id,
        )
        return self._persist(test, chosen, lambda pq: (pq.subject, pq.topic or pq.subject))

    def _persist(self, test: Test, chosen: List[PracticeQuestion], labels) -> Test:
        test = self.db.create_test(test)
        questions = []
        for i, pq in enumerate(chosen, start=1):
            subject, topic = labels(pq)
            questions.append(Question(
                test_id=test.id,
                question_number=i,
                question_text=pq.question_text,
                options=list(pq.options),
                correct_index=pq.correct_index,
                topic=topic,
                subject=subject,
                difficulty=pq.difficulty,
                explanation=pq.explanation,
                practice_question_id=pq.id,
            ))
        self.db.save_questions(questions)
        logger.info(
            "Created %s test %s: %s, %d questions",
            test.test_type, test.id, test.subject, len(questions),
        )
        return test

    # ------------------------------------------------------------------
    # Responses
    # ------------------------------------------------------------------

    def record_response(self, student: Student, test: Test, question: Question) -> None:
        """Remember that a bank question has been answered, keeping the latest result."""
        if question.practice_question_id is None or question.user_answer is None:
            return
        self.db.upsert_practice_response(
            student.id,
            question.practice_question_id,
            test.exam_type,
            test.subject,
            question.topic,
            question.user_answer == question.correct_index,
        )

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def generate_into_bank(
        self,
        exam: ExamConfig,
        subject: str,
        count: int = config.QUESTIONS_PER_BATCH,
        difficulty: str = "medium",
        topic: Optional[str] = None,
    ) -> List[PracticeQuestion]:
        """Generate questions and add the ones not already in the bank."""
        if self.generator is None:
            raise PracticeError("Question generation is not configured (missing API key).")

        new_questions = self.generator.generate_questions(
            exam, subject, count=count, difficulty=difficulty, topic=topic,
        )
        existing = {self._normalize(s) for s in self.db.get_practice_stems(exam.id, subject)}
        unique = []
        for q in new_questions:
            stem = self._normalize(q.question_text)
            if stem in existing:
                continue
            existing.add(stem)
            unique.append(q)

        if unique:
            self.db.save_practice_questions(unique)
        self._on_status(f"{subject}: {len(unique)} new questions added", "success")
        return unique

    @staticmethod
    def _normalize(text: str) -> str:
        return " ".join(text.split()).lower()
