"""Data classes for the exam-prep domain model."""
from dataclasses import dataclass, field
from typing import Optional, Union

from exam_prep.errors import InvalidInputError

SUBJECTS = ("physics", "chemistry", "botany", "zoology", "biology")
DIFFICULTIES = ("easy", "medium", "hard")
MODES = ("practice", "assessment", "legacy")
LETTERS = ("A", "B", "C", "D")
MAX_LEVEL = 4


def normalize_subject(subject: str) -> str:
    """Map any casing of a subject name onto its canonical key."""
    key = str(subject or "").strip().lower()
    if key not in SUBJECTS:
        raise InvalidInputError(f"Unknown subject: {subject!r}")
    return key


@dataclass(frozen=True)
class Letter:
    value: str  # "A".."D"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Index:
    value: int  # 0..3

    def __str__(self) -> str:
        return str(self.value)


Answer = Union[Letter, Index]


@dataclass
class Question:
    id: Optional[int]
    subject: str
    topic: str
    question_text: str
    options: list
    correct_option: Answer
    explanation: str = ""
    difficulty: str = "medium"
    image_url: str = ""
    time_allocation: int = 60
    stage: int = 1
    level: int = 1


@dataclass
class SubjectProgress:
    stage: int = 1
    level: int = 1


@dataclass
class TopicProgress:
    best_score: int = 0
    completed: bool = False
    attempt_count: int = 0
    last_attempt_at: Optional[str] = None


@dataclass
class Student:
    id: int
    name: str
    username: str
    institution: str = "Default Institution"
    subjects: dict = field(default_factory=dict)  # subject -> SubjectProgress
    topics: dict = field(default_factory=dict)  # (subject, topic) -> TopicProgress
    n_points: int = 0


@dataclass
class QuestionOutcome:
    question_id: object
    selected_value: object
    correct_value: object
    is_correct: bool
    time_spent: float = 0
    explanation: str = ""
    question_text: str = ""
    not_found: bool = False


@dataclass
class TestAttempt:
    id: Optional[int]
    attempt_key: str
    student_id: int
    subject: str
    mode: str
    outcomes: list
    topic: Optional[str] = None
    stage: Optional[int] = None
    level: Optional[int] = None
    total_time: float = 0
    score: Optional[int] = None
    max_score: Optional[int] = None
    score_percentage: Optional[int] = None
    passed: bool = False
    created_at: Optional[str] = None
    telemetry: Optional[dict] = None
