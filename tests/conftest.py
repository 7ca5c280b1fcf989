import pytest

from exam_prep.db import init_db
from exam_prep.questions import add_question
from exam_prep.students import add_student


@pytest.fixture
def tmp_db(tmp_path):
    """Provide a temporary SQLite database path for tests."""
    db_path = str(tmp_path / "test_exam_prep.db")
    return db_path


@pytest.fixture
def db(tmp_db):
    """An initialized, empty database."""
    init_db(tmp_db)
    return tmp_db


@pytest.fixture
def student_id(db):
    return add_student(db, "Asha", "asha")


def make_question(db_path, correct_option=0, **overrides):
    data = {
        "subject": "physics",
        "topic": "kinematics",
        "question_text": "Which option is right?",
        "options": ["w", "x", "y", "z"],
        "correct_option": correct_option,
        "explanation": "Because.",
    }
    data.update(overrides)
    return add_question(db_path, data)
