from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class TestStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class TestType(str, Enum):
    PRACTICE = "practice"
    MOCK = "mock"


class SubmitReason(str, Enum):
    MANUAL = "manual"
    TIME_UP = "time_up"
    DISQUALIFIED = "disqualified"


class ProctoringStatus(str, Enum):
    NOT_REQUIRED = "not_required"
    PASSED = "passed"
    FAILED = "failed"
    DISQUALIFIED = "disqualified"


class ViolationSeverity(str, Enum):
    WARNING = "warning"
    CRITICAL = "critical"
    TERMINAL = "terminal"


class SectionState(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class Plan(str, Enum):
    EXPLORER = "explorer"
    PRO = "pro"


@dataclass
class Student:
    id: Optional[int] = None
    name: str = ""
    email: str = ""
    plan: str = "explorer"
    created_at: Optional[str] = None

    @property
    def is_explorer(self) -> bool:
        return self.plan == Plan.EXPLORER.value


@dataclass
class PracticeQuestion:
    """A question in the shared practice bank."""
    id: Optional[int] = None
    exam_type: str = ""
    subject: str = ""
    topic: Optional[str] = None
    difficulty: str = "medium"
    question_text: str = ""
    options: List[str] = field(default_factory=list)
    correct_index: int = 0
    explanation: str = ""
    created_at: Optional[str] = None


@dataclass
class Test:
    id: Optional[int] = None
    user_id: Optional[int] = None
    session_id: Optional[int] = None   # set for scheduled mock sessions
    subject: str = ""
    topic: Optional[str] = None
    difficulty: str = "medium"
    total_questions: int = 0
    time_limit_minutes: int = 0
    started_at: Optional[str] = None
    status: str = "in_progress"
    test_type: str = "practice"
    exam_type: str = ""
    current_stage: int = 1             # 1-based section index for mock tests
    score: Optional[int] = None        # percentage of the maximum possible score
    correct_answers: int = 0
    wrong_answers: int = 0
    skipped_answers: int = 0
    time_taken_seconds: Optional[int] = None
    completed_at: Optional[str] = None
    proctoring_status: str = "not_required"
    violation_count: int = 0

    @property
    def is_mock(self) -> bool:
        return self.test_type == TestType.MOCK.value


@dataclass
class Question:
    """A question as delivered inside one test."""
    id: Optional[int] = None
    test_id: Optional[int] = None
    question_number: int = 0
    question_text: str = ""
    options: List[str] = field(default_factory=list)
    correct_index: int = 0
    user_answer: Optional[int] = None  # None = skipped
    is_marked: bool = False
    topic: Optional[str] = None
    subject: Optional[str] = None
    difficulty: str = "medium"
    explanation: str = ""
    time_spent_seconds: float = 0.0
    answered_at: Optional[str] = None
    practice_question_id: Optional[int] = None


@dataclass
class MockSession:
    id: Optional[int] = None
    exam_type: str = ""
    title: str = ""
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    is_active: bool = True
    attempts_per_person: int = 1


@dataclass
class SessionQuestion:
    """A question pre-fed into a scheduled mock session."""
    id: Optional[int] = None
    session_id: Optional[int] = None
    section_name: str = ""
    question_text: str = ""
    options: List[str] = field(default_factory=list)
    correct_index: int = 0
    explanation: str = ""
    topic: Optional[str] = None
    created_at: Optional[str] = None


@dataclass
class SessionRegistration:
    id: Optional[int] = None
    user_id: Optional[int] = None
    session_id: Optional[int] = None
    created_at: Optional[str] = None


@dataclass
class ProctoringViolation:
    id: Optional[int] = None
    test_id: Optional[int] = None
    user_id: Optional[int] = None
    violation_type: str = ""
    severity: str = "warning"
    description: str = ""
    created_at: Optional[str] = None


@dataclass
class TopicPerformance:
    id: Optional[int] = None
    user_id: Optional[int] = None
    exam_type: str = ""
    subject: str = ""
    topic: str = ""
    total_questions: int = 0
    correct_answers: int = 0
    accuracy_percentage: float = 0.0
    last_attempted_at: Optional[str] = None


@dataclass
class SavedQuestion:
    id: Optional[int] = None
    user_id: Optional[int] = None
    question_id: Optional[int] = None
    notes: str = ""
    created_at: Optional[str] = None


@dataclass
class Section:
    """A contiguous run of questions within a test."""
    name: str = ""
    start_index: int = 0
    end_index: int = 0
    question_count: int = 0
    duration_minutes: int = 0

    def contains(self, index: int) -> bool:
        return self.start_index <= index <= self.end_index


@dataclass
class SectionResult:
    """Scores for a single section within a test."""
    section_name: str = ""
    score: float = 0.0
    total_questions: int = 0
    correct_count: int = 0
    wrong_count: int = 0
    skipped_count: int = 0
    time_used_seconds: float = 0.0


@dataclass
class TestResult:
    test_id: Optional[int] = None
    reason: str = "manual"
    final_score: float = 0.0
    score_percentage: int = 0
    correct: int = 0
    wrong: int = 0
    skipped: int = 0
    time_taken_seconds: int = 0
    proctoring_status: str = "not_required"
    section_results: List[SectionResult] = field(default_factory=list)
    topic_breakdown: Dict[tuple, Dict] = field(default_factory=dict)
