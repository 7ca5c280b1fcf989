"""Tests for data model classes."""
import pytest

from exam_prep.errors import InvalidInputError
from exam_prep.models import (
    Index, Letter, Question, Student, SubjectProgress, TestAttempt, TopicProgress, normalize_subject,
)


def test_normalize_subject_single_casing():
    assert normalize_subject("Physics") == "physics"
    assert normalize_subject("  ZOOLOGY ") == "zoology"
    assert normalize_subject("biology") == "biology"


def test_normalize_subject_rejects_unknown():
    with pytest.raises(InvalidInputError):
        normalize_subject("maths")
    with pytest.raises(InvalidInputError):
        normalize_subject(None)


def test_answer_variants_render():
    assert str(Letter("C")) == "C"
    assert str(Index(2)) == "2"
    assert Letter("A") != Index(0)


def test_question_defaults():
    q = Question(id=1, subject="physics", topic="t", question_text="?", options=["a", "b"],
                 correct_option=Index(1))
    assert q.difficulty == "medium"
    assert q.time_allocation == 60
    assert q.explanation == ""
    assert (q.stage, q.level) == (1, 1)


def test_progress_defaults():
    assert SubjectProgress() == SubjectProgress(stage=1, level=1)
    tp = TopicProgress()
    assert tp.best_score == 0
    assert tp.completed is False
    assert tp.attempt_count == 0
    assert tp.last_attempt_at is None


def test_student_defaults():
    s = Student(id=1, name="Asha", username="asha")
    assert s.institution == "Default Institution"
    assert s.subjects == {}
    assert s.topics == {}
    assert s.n_points == 0


def test_test_attempt_defaults():
    a = TestAttempt(id=None, attempt_key="k", student_id=1, subject="physics", mode="practice", outcomes=[])
    assert a.passed is False
    assert a.telemetry is None
