import json
import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple

import psycopg2
import psycopg2.extras

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

logger = logging.getLogger(__name__)

SCHEMA_STATEMENTS = [
    """CREATE TABLE IF NOT EXISTS users (
        id SERIAL PRIMARY KEY,
        name TEXT NOT NULL,
        email TEXT NOT NULL DEFAULT '',
        plan TEXT NOT NULL DEFAULT 'explorer',
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",
    """CREATE TABLE IF NOT EXISTS practice_questions (
        id SERIAL PRIMARY KEY,
        exam_type TEXT NOT NULL,
        subject TEXT NOT NULL,
        topic TEXT,
        difficulty TEXT NOT NULL DEFAULT 'medium',
        question_text TEXT NOT NULL,
        options TEXT NOT NULL,
        correct_index INTEGER NOT NULL,
        explanation TEXT DEFAULT '',
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",
    """CREATE TABLE IF NOT EXISTS user_practice_responses (
        id SERIAL PRIMARY KEY,
        user_id INTEGER NOT NULL REFERENCES users(id),
        question_id INTEGER NOT NULL REFERENCES practice_questions(id),
        exam_type TEXT NOT NULL,
        subject TEXT NOT NULL,
        topic TEXT,
        is_correct BOOLEAN NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        UNIQUE (user_id, question_id)
    )""",
    """CREATE TABLE IF NOT EXISTS mock_sessions (
        id SERIAL PRIMARY KEY,
        exam_type TEXT NOT NULL,
        title TEXT NOT NULL DEFAULT '',
        start_time TIMESTAMP NOT NULL,
        end_time TIMESTAMP NOT NULL,
        is_active BOOLEAN NOT NULL DEFAULT TRUE,
        attempts_per_person INTEGER DEFAULT 1
    )""",
    """CREATE TABLE IF NOT EXISTS session_registrations (
        id SERIAL PRIMARY KEY,
        user_id INTEGER NOT NULL REFERENCES users(id),
        session_id INTEGER NOT NULL REFERENCES mock_sessions(id),
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        UNIQUE (user_id, session_id)
    )""",
    """CREATE TABLE IF NOT EXISTS session_questions (
        id SERIAL PRIMARY KEY,
        session_id INTEGER NOT NULL REFERENCES mock_sessions(id),
        section_name TEXT NOT NULL,
        question_text TEXT NOT NULL,
        options TEXT NOT NULL,
        correct_index INTEGER NOT NULL,
        explanation TEXT DEFAULT '',
        topic TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",
    """CREATE TABLE IF NOT EXISTS tests (
        id SERIAL PRIMARY KEY,
        user_id INTEGER NOT NULL REFERENCES users(id),
        session_id INTEGER REFERENCES mock_sessions(id),
        subject TEXT NOT NULL,
        topic TEXT,
        difficulty TEXT NOT NULL DEFAULT 'medium',
        total_questions INTEGER NOT NULL,
        time_limit_minutes INTEGER NOT NULL,
        started_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        status TEXT NOT NULL DEFAULT 'in_progress',
        test_type TEXT NOT NULL DEFAULT 'practice',
        exam_type TEXT NOT NULL,
        current_stage INTEGER NOT NULL DEFAULT 1,
        score INTEGER,
        correct_answers INTEGER DEFAULT 0,
        wrong_answers INTEGER DEFAULT 0,
        skipped_answers INTEGER DEFAULT 0,
        time_taken_seconds INTEGER,
        completed_at TIMESTAMP,
        proctoring_status TEXT NOT NULL DEFAULT 'not_required',
        violation_count INTEGER NOT NULL DEFAULT 0
    )""",
    """CREATE TABLE IF NOT EXISTS questions (
        id SERIAL PRIMARY KEY,
        test_id INTEGER NOT NULL REFERENCES tests(id),
        question_number INTEGER NOT NULL,
        question_text TEXT NOT NULL,
        options TEXT NOT NULL,
        correct_index INTEGER NOT NULL,
        user_answer INTEGER,
        is_marked BOOLEAN NOT NULL DEFAULT FALSE,
        topic TEXT,
        subject TEXT,
        difficulty TEXT DEFAULT 'medium',
        explanation TEXT DEFAULT '',
        time_spent_seconds REAL DEFAULT 0,
        answered_at TIMESTAMP,
        practice_question_id INTEGER REFERENCES practice_questions(id)
    )""",
    """CREATE TABLE IF NOT EXISTS proctoring_violations (
        id SERIAL PRIMARY KEY,
        test_id INTEGER NOT NULL REFERENCES tests(id),
        user_id INTEGER NOT NULL REFERENCES users(id),
        violation_type TEXT NOT NULL,
        severity TEXT NOT NULL,
        description TEXT DEFAULT '',
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",
    """CREATE TABLE IF NOT EXISTS topic_performance (
        id SERIAL PRIMARY KEY,
        user_id INTEGER NOT NULL REFERENCES users(id),
        exam_type TEXT NOT NULL,
        subject TEXT NOT NULL,
        topic TEXT NOT NULL,
        total_questions INTEGER DEFAULT 0,
        correct_answers INTEGER DEFAULT 0,
        accuracy_percentage REAL DEFAULT 0,
        last_attempted_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        UNIQUE (user_id, exam_type, subject, topic)
    )""",
    """CREATE TABLE IF NOT EXISTS saved_questions (
        id SERIAL PRIMARY KEY,
        user_id INTEGER NOT NULL REFERENCES users(id),
        question_id INTEGER NOT NULL REFERENCES questions(id),
        notes TEXT DEFAULT '',
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        UNIQUE (user_id, question_id)
    )""",
]


def _str_or_none(value) -> Optional[str]:
    return str(value) if value is not None else None


def _load_options(value) -> List[str]:
    if isinstance(value, str):
        return json.loads(value)
    return list(value or [])


class Database:
    def __init__(self, db_url: str):
        self.db_url = db_url
        self.conn = psycopg2.connect(db_url)
        self.conn.autocommit = False

    def initialize(self) -> None:
        cur = self.conn.cursor()
        for stmt in SCHEMA_STATEMENTS:
            cur.execute(stmt)
        self.conn.commit()
        cur.close()
        logger.debug("Schema ready (%d tables)", len(SCHEMA_STATEMENTS))

    def close(self) -> None:
        self.conn.close()

    def _cursor(self):
        """Return a RealDictCursor for dict-like row access."""
        return self.conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------
    def create_student(self, name: str, email: str = "", plan: str = "explorer") -> Student:
        cur = self._cursor()
        cur.execute(
            "INSERT INTO users (name, email, plan) VALUES (%s, %s, %s) RETURNING id",
            (name, email, plan),
        )
        row = cur.fetchone()
        self.conn.commit()
        cur.close()
        return Student(
            id=row["id"],
            name=name,
            email=email,
            plan=plan,
            created_at=datetime.now().isoformat(),
        )

    def get_student(self, student_id: int) -> Optional[Student]:
        cur = self._cursor()
        cur.execute("SELECT * FROM users WHERE id = %s", (student_id,))
        row = cur.fetchone()
        cur.close()
        if not row:
            return None
        return self._row_to_student(row)

    def list_students(self) -> List[Student]:
        cur = self._cursor()
        cur.execute("SELECT * FROM users ORDER BY name")
        rows = cur.fetchall()
        cur.close()
        return [self._row_to_student(r) for r in rows]

    def update_student(self, student: Student) -> None:
        cur = self.conn.cursor()
        cur.execute(
            "UPDATE users SET name=%s, email=%s, plan=%s WHERE id=%s",
            (student.name, student.email, student.plan, student.id),
        )
        self.conn.commit()
        cur.close()

    def _row_to_student(self, row: dict) -> Student:
        return Student(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            plan=row["plan"],
            created_at=_str_or_none(row["created_at"]),
        )

    # ------------------------------------------------------------------
    # Practice bank
    # ------------------------------------------------------------------
    def save_practice_questions(self, questions: List[PracticeQuestion]) -> List[PracticeQuestion]:
        cur = self._cursor()
        for q in questions:
            cur.execute(
                """INSERT INTO practice_questions
                   (exam_type, subject, topic, difficulty, question_text,
                    options, correct_index, explanation)
                   VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                   RETURNING id""",
                (
                    q.exam_type, q.subject, q.topic, q.difficulty,
                    q.question_text, json.dumps(q.options), q.correct_index,
                    q.explanation,
                ),
            )
            q.id = cur.fetchone()["id"]
        self.conn.commit()
        cur.close()
        return questions

    def get_practice_questions(
        self,
        exam_type: str,
        subject: str,
        difficulty: Optional[str] = None,
        topic: Optional[str] = None,
        exclude_ids: Optional[List[int]] = None,
        limit: Optional[int] = None,
    ) -> List[PracticeQuestion]:
        clauses = ["exam_type = %s", "subject = %s"]
        params: list = [exam_type, subject]
        if difficulty:
            clauses.append("difficulty = %s")
            params.append(difficulty)
        if topic:
            clauses.append("topic = %s")
            params.append(topic)
        if exclude_ids:
            clauses.append("NOT (id = ANY(%s))")
            params.append(list(exclude_ids))
        sql = f"SELECT * FROM practice_questions WHERE {' AND '.join(clauses)} ORDER BY id"
        if limit is not None:
            sql += " LIMIT %s"
            params.append(limit)

        cur = self._cursor()
        cur.execute(sql, tuple(params))
        rows = cur.fetchall()
        cur.close()
        return [self._row_to_practice_question(r) for r in rows]

    def count_practice_topics(self, exam_type: str, subject: str) -> List[Tuple[str, int]]:
        cur = self._cursor()
        cur.execute(
            """SELECT topic, COUNT(*) AS cnt FROM practice_questions
               WHERE exam_type = %s AND subject = %s AND topic IS NOT NULL
               GROUP BY topic
               ORDER BY cnt DESC, topic""",
            (exam_type, subject),
        )
        rows = cur.fetchall()
        cur.close()
        return [(r["topic"], r["cnt"]) for r in rows]

    def get_practice_stems(self, exam_type: str, subject: str) -> List[str]:
        """Return question texts in the bank for deduplication."""
        cur = self._cursor()
        cur.execute(
            "SELECT question_text FROM practice_questions WHERE exam_type = %s AND subject = %s",
            (exam_type, subject),
        )
        rows = cur.fetchall()
        cur.close()
        return [r["question_text"] for r in rows]

    def get_solved_practice_ids(self, user_id: int) -> List[int]:
        cur = self._cursor()
        cur.execute(
            "SELECT question_id FROM user_practice_responses WHERE user_id = %s",
            (user_id,),
        )
        rows = cur.fetchall()
        cur.close()
        return [r["question_id"] for r in rows]

    def upsert_practice_response(
        self,
        user_id: int,
        question_id: int,
        exam_type: str,
        subject: str,
        topic: Optional[str],
        is_correct: bool,
    ) -> None:
        cur = self.conn.cursor()
        cur.execute(
            """INSERT INTO user_practice_responses
               (user_id, question_id, exam_type, subject, topic, is_correct, created_at)
               VALUES (%s, %s, %s, %s, %s, %s, %s)
               ON CONFLICT(user_id, question_id) DO UPDATE SET
                 is_correct = EXCLUDED.is_correct,
                 created_at = EXCLUDED.created_at""",
            (user_id, question_id, exam_type, subject, topic, is_correct,
             datetime.now().isoformat()),
        )
        self.conn.commit()
        cur.close()

    def count_responses_today(self, user_id: int, subject: str) -> int:
        cur = self._cursor()
        cur.execute(
            """SELECT COUNT(*) AS cnt FROM user_practice_responses
               WHERE user_id = %s AND subject = %s AND created_at >= CURRENT_DATE""",
            (user_id, subject),
        )
        row = cur.fetchone()
        cur.close()
        return int(row["cnt"]) if row else 0

    def _row_to_practice_question(self, row: dict) -> PracticeQuestion:
        return PracticeQuestion(
            id=row["id"],
            exam_type=row["exam_type"],
            subject=row["subject"],
            topic=row["topic"],
            difficulty=row["difficulty"],
            question_text=row["question_text"],
            options=_load_options(row["options"]),
            correct_index=row["correct_index"],
            explanation=row["explanation"] or "",
            created_at=_str_or_none(row["created_at"]),
        )

    # ------------------------------------------------------------------
    # Tests
    # ------------------------------------------------------------------
    def create_test(self, test: Test) -> Test:
        cur = self._cursor()
        cur.execute(
            """INSERT INTO tests
               (user_id, session_id, subject, topic, difficulty, total_questions,
                time_limit_minutes, started_at, status, test_type, exam_type,
                current_stage, proctoring_status)
               VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
               RETURNING id""",
            (
                test.user_id, test.session_id, test.subject, test.topic,
                test.difficulty, test.total_questions, test.time_limit_minutes,
                test.started_at or datetime.now().isoformat(),
                test.status, test.test_type, test.exam_type,
                test.current_stage, test.proctoring_status,
            ),
        )
        row = cur.fetchone()
        self.conn.commit()
        test.id = row["id"]
        cur.close()
        return test

    def get_test(self, test_id: int) -> Optional[Test]:
        cur = self._cursor()
        cur.execute("SELECT * FROM tests WHERE id = %s", (test_id,))
        row = cur.fetchone()
        cur.close()
        if not row:
            return None
        return self._row_to_test(row)

    def update_test(self, test: Test) -> None:
        cur = self.conn.cursor()
        cur.execute(
            """UPDATE tests SET
               status=%s, current_stage=%s, score=%s,
               correct_answers=%s, wrong_answers=%s, skipped_answers=%s,
               time_taken_seconds=%s, completed_at=%s,
               proctoring_status=%s, violation_count=%s
               WHERE id=%s""",
            (
                test.status, test.current_stage, test.score,
                test.correct_answers, test.wrong_answers, test.skipped_answers,
                test.time_taken_seconds, test.completed_at,
                test.proctoring_status, test.violation_count,
                test.id,
            ),
        )
        self.conn.commit()
        cur.close()

    def set_test_stage(self, test_id: int, stage: int) -> None:
        cur = self.conn.cursor()
        cur.execute("UPDATE tests SET current_stage = %s WHERE id = %s", (stage, test_id))
        self.conn.commit()
        cur.close()

    def set_violation_count(self, test_id: int, count: int) -> None:
        cur = self.conn.cursor()
        cur.execute("UPDATE tests SET violation_count = %s WHERE id = %s", (count, test_id))
        self.conn.commit()
        cur.close()

    def get_tests_for_user(
        self,
        user_id: int,
        exam_type: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 20,
    ) -> List[Test]:
        clauses = ["user_id = %s"]
        params: list = [user_id]
        if exam_type:
            clauses.append("exam_type = %s")
            params.append(exam_type)
        if status:
            clauses.append("status = %s")
            params.append(status)
        params.append(limit)

        cur = self._cursor()
        cur.execute(
            f"""SELECT * FROM tests WHERE {' AND '.join(clauses)}
                ORDER BY started_at DESC LIMIT %s""",
            tuple(params),
        )
        rows = cur.fetchall()
        cur.close()
        return [self._row_to_test(r) for r in rows]

    def get_tests_for_session(self, user_id: int, session_id: int) -> List[Test]:
        cur = self._cursor()
        cur.execute(
            "SELECT * FROM tests WHERE user_id = %s AND session_id = %s ORDER BY started_at",
            (user_id, session_id),
        )
        rows = cur.fetchall()
        cur.close()
        return [self._row_to_test(r) for r in rows]

    def _row_to_test(self, row: dict) -> Test:
        return Test(
            id=row["id"],
            user_id=row["user_id"],
            session_id=row["session_id"],
            subject=row["subject"],
            topic=row["topic"],
            difficulty=row["difficulty"],
            total_questions=row["total_questions"],
            time_limit_minutes=row["time_limit_minutes"],
            started_at=_str_or_none(row["started_at"]),
            status=row["status"],
            test_type=row["test_type"],
            exam_type=row["exam_type"],
            current_stage=row["current_stage"] or 1,
            score=row["score"],
            correct_answers=row["correct_answers"] or 0,
            wrong_answers=row["wrong_answers"] or 0,
            skipped_answers=row["skipped_answers"] or 0,
            time_taken_seconds=row["time_taken_seconds"],
            completed_at=_str_or_none(row["completed_at"]),
            proctoring_status=row["proctoring_status"],
            violation_count=row["violation_count"] or 0,
        )

    # ------------------------------------------------------------------
    # Test questions
    # ------------------------------------------------------------------
    def save_questions(self, questions: List[Question]) -> List[Question]:
        cur = self._cursor()
        for q in questions:
            cur.execute(
                """INSERT INTO questions
                   (test_id, question_number, question_text, options, correct_index,
                    topic, subject, difficulty, explanation, practice_question_id)
                   VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                   RETURNING id""",
                (
                    q.test_id, q.question_number, q.question_text,
                    json.dumps(q.options), q.correct_index, q.topic, q.subject,
                    q.difficulty, q.explanation, q.practice_question_id,
                ),
            )
            q.id = cur.fetchone()["id"]
        self.conn.commit()
        cur.close()
        return questions

    def get_questions_for_test(self, test_id: int) -> List[Question]:
        cur = self._cursor()
        cur.execute(
            "SELECT * FROM questions WHERE test_id = %s ORDER BY question_number",
            (test_id,),
        )
        rows = cur.fetchall()
        cur.close()
        return [self._row_to_question(r) for r in rows]

    def get_question(self, question_id: int) -> Optional[Question]:
        cur = self._cursor()
        cur.execute("SELECT * FROM questions WHERE id = %s", (question_id,))
        row = cur.fetchone()
        cur.close()
        if not row:
            return None
        return self._row_to_question(row)

    def update_question_answer(
        self, question_id: int, user_answer: Optional[int], answered_at: Optional[str]
    ) -> None:
        cur = self.conn.cursor()
        cur.execute(
            "UPDATE questions SET user_answer = %s, answered_at = %s WHERE id = %s",
            (user_answer, answered_at, question_id),
        )
        self.conn.commit()
        cur.close()

    def update_question_mark(self, question_id: int, is_marked: bool) -> None:
        cur = self.conn.cursor()
        cur.execute(
            "UPDATE questions SET is_marked = %s WHERE id = %s",
            (is_marked, question_id),
        )
        self.conn.commit()
        cur.close()

    def update_question_time(self, question_id: int, seconds: float) -> None:
        cur = self.conn.cursor()
        cur.execute(
            "UPDATE questions SET time_spent_seconds = %s WHERE id = %s",
            (seconds, question_id),
        )
        self.conn.commit()
        cur.close()

    def _row_to_question(self, row: dict) -> Question:
        return Question(
            id=row["id"],
            test_id=row["test_id"],
            question_number=row["question_number"],
            question_text=row["question_text"],
            options=_load_options(row["options"]),
            correct_index=row["correct_index"],
            user_answer=row["user_answer"],
            is_marked=bool(row["is_marked"]),
            topic=row["topic"],
            subject=row["subject"],
            difficulty=row["difficulty"] or "medium",
            explanation=row["explanation"] or "",
            time_spent_seconds=row["time_spent_seconds"] or 0.0,
            answered_at=_str_or_none(row["answered_at"]),
            practice_question_id=row["practice_question_id"],
        )

    # ------------------------------------------------------------------
    # Mock sessions
    # ------------------------------------------------------------------
    def create_mock_session(self, session: MockSession) -> MockSession:
        cur = self._cursor()
        cur.execute(
            """INSERT INTO mock_sessions
               (exam_type, title, start_time, end_time, is_active, attempts_per_person)
               VALUES (%s, %s, %s, %s, %s, %s)
               RETURNING id""",
            (
                session.exam_type, session.title, session.start_time,
                session.end_time, session.is_active, session.attempts_per_person,
            ),
        )
        session.id = cur.fetchone()["id"]
        self.conn.commit()
        cur.close()
        return session

    def get_mock_session(self, session_id: int) -> Optional[MockSession]:
        cur = self._cursor()
        cur.execute("SELECT * FROM mock_sessions WHERE id = %s", (session_id,))
        row = cur.fetchone()
        cur.close()
        if not row:
            return None
        return self._row_to_mock_session(row)

    def list_mock_sessions(self, exam_type: str, active_only: bool = True) -> List[MockSession]:
        cur = self._cursor()
        if active_only:
            cur.execute(
                """SELECT * FROM mock_sessions
                   WHERE exam_type = %s AND is_active = TRUE
                   ORDER BY start_time""",
                (exam_type,),
            )
        else:
            cur.execute(
                "SELECT * FROM mock_sessions WHERE exam_type = %s ORDER BY start_time",
                (exam_type,),
            )
        rows = cur.fetchall()
        cur.close()
        return [self._row_to_mock_session(r) for r in rows]

    def _row_to_mock_session(self, row: dict) -> MockSession:
        return MockSession(
            id=row["id"],
            exam_type=row["exam_type"],
            title=row["title"],
            start_time=_str_or_none(row["start_time"]),
            end_time=_str_or_none(row["end_time"]),
            is_active=bool(row["is_active"]),
            attempts_per_person=row["attempts_per_person"] or 1,
        )

    def create_registration(self, user_id: int, session_id: int) -> SessionRegistration:
        cur = self._cursor()
        cur.execute(
            """INSERT INTO session_registrations (user_id, session_id)
               VALUES (%s, %s)
               ON CONFLICT(user_id, session_id) DO UPDATE SET user_id = EXCLUDED.user_id
               RETURNING id""",
            (user_id, session_id),
        )
        row = cur.fetchone()
        self.conn.commit()
        cur.close()
        return SessionRegistration(
            id=row["id"], user_id=user_id, session_id=session_id,
            created_at=datetime.now().isoformat(),
        )

    def get_registration(self, user_id: int, session_id: int) -> Optional[SessionRegistration]:
        cur = self._cursor()
        cur.execute(
            "SELECT * FROM session_registrations WHERE user_id = %s AND session_id = %s",
            (user_id, session_id),
        )
        row = cur.fetchone()
        cur.close()
        if not row:
            return None
        return SessionRegistration(
            id=row["id"],
            user_id=row["user_id"],
            session_id=row["session_id"],
            created_at=_str_or_none(row["created_at"]),
        )

    def list_registered_session_ids(self, user_id: int) -> List[int]:
        cur = self._cursor()
        cur.execute(
            "SELECT session_id FROM session_registrations WHERE user_id = %s",
            (user_id,),
        )
        rows = cur.fetchall()
        cur.close()
        return [r["session_id"] for r in rows]

    def save_session_questions(self, questions: List[SessionQuestion]) -> List[SessionQuestion]:
        cur = self._cursor()
        for q in questions:
            cur.execute(
                """INSERT INTO session_questions
                   (session_id, section_name, question_text, options,
                    correct_index, explanation, topic)
                   VALUES (%s, %s, %s, %s, %s, %s, %s)
                   RETURNING id""",
                (
                    q.session_id, q.section_name, q.question_text,
                    json.dumps(q.options), q.correct_index, q.explanation, q.topic,
                ),
            )
            q.id = cur.fetchone()["id"]
        self.conn.commit()
        cur.close()
        return questions

    def get_session_questions(self, session_id: int) -> List[SessionQuestion]:
        cur = self._cursor()
        cur.execute(
            """SELECT * FROM session_questions WHERE session_id = %s
               ORDER BY section_name, created_at, id""",
            (session_id,),
        )
        rows = cur.fetchall()
        cur.close()
        return [
            SessionQuestion(
                id=r["id"],
                session_id=r["session_id"],
                section_name=r["section_name"],
                question_text=r["question_text"],
                options=_load_options(r["options"]),
                correct_index=r["correct_index"],
                explanation=r["explanation"] or "",
                topic=r["topic"],
                created_at=_str_or_none(r["created_at"]),
            )
            for r in rows
        ]

    # ------------------------------------------------------------------
    # Proctoring
    # ------------------------------------------------------------------
    def save_violation(self, violation: ProctoringViolation) -> ProctoringViolation:
        cur = self._cursor()
        cur.execute(
            """INSERT INTO proctoring_violations
               (test_id, user_id, violation_type, severity, description)
               VALUES (%s, %s, %s, %s, %s)
               RETURNING id""",
            (
                violation.test_id, violation.user_id, violation.violation_type,
                violation.severity, violation.description,
            ),
        )
        violation.id = cur.fetchone()["id"]
        self.conn.commit()
        cur.close()
        return violation

    def get_violations(self, test_id: int) -> List[ProctoringViolation]:
        cur = self._cursor()
        cur.execute(
            "SELECT * FROM proctoring_violations WHERE test_id = %s ORDER BY created_at, id",
            (test_id,),
        )
        rows = cur.fetchall()
        cur.close()
        return [
            ProctoringViolation(
                id=r["id"],
                test_id=r["test_id"],
                user_id=r["user_id"],
                violation_type=r["violation_type"],
                severity=r["severity"],
                description=r["description"] or "",
                created_at=_str_or_none(r["created_at"]),
            )
            for r in rows
        ]

    # ------------------------------------------------------------------
    # Topic performance
    # ------------------------------------------------------------------
    def get_topic_performance(
        self, user_id: int, exam_type: str, subject: str, topic: str
    ) -> Optional[TopicPerformance]:
        cur = self._cursor()
        cur.execute(
            """SELECT * FROM topic_performance
               WHERE user_id = %s AND exam_type = %s AND subject = %s AND topic = %s""",
            (user_id, exam_type, subject, topic),
        )
        row = cur.fetchone()
        cur.close()
        if not row:
            return None
        return self._row_to_performance(row)

    def upsert_topic_performance(self, perf: TopicPerformance) -> None:
        cur = self.conn.cursor()
        cur.execute(
            """INSERT INTO topic_performance
               (user_id, exam_type, subject, topic, total_questions,
                correct_answers, accuracy_percentage, last_attempted_at)
               VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
               ON CONFLICT(user_id, exam_type, subject, topic) DO UPDATE SET
                 total_questions = EXCLUDED.total_questions,
                 correct_answers = EXCLUDED.correct_answers,
                 accuracy_percentage = EXCLUDED.accuracy_percentage,
                 last_attempted_at = EXCLUDED.last_attempted_at""",
            (
                perf.user_id, perf.exam_type, perf.subject, perf.topic,
                perf.total_questions, perf.correct_answers,
                perf.accuracy_percentage,
                perf.last_attempted_at or datetime.now().isoformat(),
            ),
        )
        self.conn.commit()
        cur.close()

    def list_topic_performance(
        self, user_id: int, exam_type: Optional[str] = None
    ) -> List[TopicPerformance]:
        cur = self._cursor()
        if exam_type:
            cur.execute(
                """SELECT * FROM topic_performance
                   WHERE user_id = %s AND exam_type = %s
                   ORDER BY subject, topic""",
                (user_id, exam_type),
            )
        else:
            cur.execute(
                "SELECT * FROM topic_performance WHERE user_id = %s ORDER BY subject, topic",
                (user_id,),
            )
        rows = cur.fetchall()
        cur.close()
        return [self._row_to_performance(r) for r in rows]

    def _row_to_performance(self, row: dict) -> TopicPerformance:
        return TopicPerformance(
            id=row["id"],
            user_id=row["user_id"],
            exam_type=row["exam_type"],
            subject=row["subject"],
            topic=row["topic"],
            total_questions=row["total_questions"] or 0,
            correct_answers=row["correct_answers"] or 0,
            accuracy_percentage=row["accuracy_percentage"] or 0.0,
            last_attempted_at=_str_or_none(row["last_attempted_at"]),
        )

    # ------------------------------------------------------------------
    # Bookmarks
    # ------------------------------------------------------------------
    def is_bookmarked(self, user_id: int, question_id: int) -> bool:
        cur = self._cursor()
        cur.execute(
            "SELECT 1 FROM saved_questions WHERE user_id = %s AND question_id = %s",
            (user_id, question_id),
        )
        row = cur.fetchone()
        cur.close()
        return row is not None

    def save_bookmark(self, user_id: int, question_id: int, notes: str = "") -> SavedQuestion:
        cur = self._cursor()
        cur.execute(
            """INSERT INTO saved_questions (user_id, question_id, notes)
               VALUES (%s, %s, %s)
               RETURNING id""",
            (user_id, question_id, notes),
        )
        row = cur.fetchone()
        self.conn.commit()
        cur.close()
        return SavedQuestion(
            id=row["id"], user_id=user_id, question_id=question_id, notes=notes,
            created_at=datetime.now().isoformat(),
        )

    def list_bookmarks(self, user_id: int) -> List[Tuple[SavedQuestion, Question]]:
        cur = self._cursor()
        cur.execute(
            """SELECT s.id AS saved_id, s.notes AS saved_notes,
                      s.created_at AS saved_at, q.*
               FROM saved_questions s
               JOIN questions q ON s.question_id = q.id
               WHERE s.user_id = %s
               ORDER BY s.created_at DESC""",
            (user_id,),
        )
        rows = cur.fetchall()
        cur.close()
        results = []
        for r in rows:
            saved = SavedQuestion(
                id=r["saved_id"],
                user_id=user_id,
                question_id=r["id"],
                notes=r["saved_notes"] or "",
                created_at=_str_or_none(r["saved_at"]),
            )
            results.append((saved, self._row_to_question(r)))
        return results

    def delete_bookmark(self, user_id: int, saved_id: int) -> None:
        cur = self.conn.cursor()
        cur.execute(
            "DELETE FROM saved_questions WHERE id = %s AND user_id = %s",
            (saved_id, user_id),
        )
        self.conn.commit()
        cur.close()

    # ------------------------------------------------------------------
    # Statistics helpers
    # ------------------------------------------------------------------
    def get_user_stats(self, user_id: int, exam_type: Optional[str] = None) -> Dict:
        cur = self._cursor()
        exam_clause = " AND exam_type = %s" if exam_type else ""
        params = (user_id, exam_type) if exam_type else (user_id,)

        cur.execute(
            f"""SELECT
                  COUNT(*) FILTER (WHERE test_type = 'practice') AS practice_tests,
                  COUNT(*) FILTER (WHERE test_type = 'mock') AS mock_tests,
                  COUNT(*) FILTER (WHERE proctoring_status = 'disqualified') AS disqualified,
                  COALESCE(SUM(correct_answers + wrong_answers + skipped_answers), 0) AS total_questions,
                  COALESCE(SUM(correct_answers), 0) AS total_correct
                FROM tests
                WHERE user_id = %s AND status = 'completed'{exam_clause}""",
            params,
        )
        row = cur.fetchone()
        cur.close()
        return {
            "practice_tests": row["practice_tests"],
            "mock_tests": row["mock_tests"],
            "disqualified": row["disqualified"],
            "total_questions": int(row["total_questions"]),
            "total_correct": int(row["total_correct"]),
        }

    # ------------------------------------------------------------------
    # Reset helper (used by settings page)
    # ------------------------------------------------------------------
    def reset_user_progress(self, user_id: int) -> None:
        """Delete all test history and analytics for a user."""
        cur = self.conn.cursor()
        cur.execute("DELETE FROM saved_questions WHERE user_id = %s", (user_id,))
        cur.execute("DELETE FROM proctoring_violations WHERE user_id = %s", (user_id,))
        cur.execute(
            "DELETE FROM questions WHERE test_id IN (SELECT id FROM tests WHERE user_id = %s)",
            (user_id,),
        )
        cur.execute("DELETE FROM tests WHERE user_id = %s", (user_id,))
        cur.execute("DELETE FROM topic_performance WHERE user_id = %s", (user_id,))
        cur.execute("DELETE FROM user_practice_responses WHERE user_id = %s", (user_id,))
        self.conn.commit()
        cur.close()
