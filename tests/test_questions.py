# tests/test_questions.py
import pytest

from exam_prep.errors import InvalidInputError, NotFoundError
from exam_prep.models import Index, Letter
from exam_prep.questions import (
    add_question, build_question, delete_question, get_question, get_questions_by_ids,
    get_test_questions, list_questions, list_topics, update_question,
)
from conftest import make_question


def test_add_and_get_question(db):
    qid = make_question(db, correct_option="C")
    q = get_question(db, qid)
    assert q.subject == "physics"
    assert q.options == ["w", "x", "y", "z"]
    assert q.correct_option == Letter("C")


def test_index_correct_option_preserved(db):
    q = get_question(db, make_question(db, correct_option=2))
    assert q.correct_option == Index(2)


def test_get_missing_question(db):
    assert get_question(db, 999) is None
    assert get_question(db, "not-an-id") is None


def test_correct_option_must_index_options():
    with pytest.raises(InvalidInputError):
        build_question({"subject": "physics", "question_text": "?", "options": ["a", "b"], "correct_option": "C"})
    with pytest.raises(InvalidInputError):
        build_question({"subject": "physics", "question_text": "?", "options": ["a", "b"], "correct_option": 5})


def test_options_count_bounds():
    base = {"subject": "physics", "question_text": "?", "correct_option": 0}
    with pytest.raises(InvalidInputError):
        build_question({**base, "options": ["only"]})
    with pytest.raises(InvalidInputError):
        build_question({**base, "options": ["a", "b", "c", "d", "e"]})


def test_missing_fields_listed():
    with pytest.raises(InvalidInputError, match="question_text"):
        build_question({"subject": "physics", "options": ["a", "b"], "correct_option": 0})


def test_moderate_becomes_medium():
    q = build_question({"subject": "Physics", "question_text": "?", "options": ["a", "b"],
                        "correct_option": 0, "difficulty": "moderate"})
    assert q.difficulty == "medium"
    assert q.subject == "physics"


def test_text_is_nfc_normalized():
    q = build_question({"subject": "physics", "question_text": "cafe\u0301", "options": ["a", "b"],
                        "correct_option": 0})
    assert q.question_text == "caf\u00e9"


def test_invalid_level_rejected():
    with pytest.raises(InvalidInputError):
        build_question({"subject": "physics", "question_text": "?", "options": ["a", "b"],
                        "correct_option": 0, "level": 5})


def test_list_questions_filters(db):
    make_question(db, topic="optics")
    make_question(db, subject="chemistry", topic="bonding")
    make_question(db, topic="optics", stage=2, level=3)
    assert len(list_questions(db)) == 3
    assert len(list_questions(db, subject="physics")) == 2
    assert len(list_questions(db, subject="physics", stage=2, level=3)) == 1
    assert [q.topic for q in list_questions(db, subject="chemistry")] == ["bonding"]


def test_get_questions_by_ids_skips_missing(db):
    a = make_question(db)
    found = get_questions_by_ids(db, [a, 12345])
    assert list(found) == [a]
    assert get_questions_by_ids(db, []) == {}


def test_update_question(db):
    qid = make_question(db, correct_option=0)
    updated = update_question(db, qid, {"correct_option": "D", "explanation": "new"})
    assert updated.id == qid
    stored = get_question(db, qid)
    assert stored.correct_option == Letter("D")
    assert stored.explanation == "new"
    assert stored.question_text == "Which option is right?"


def test_update_question_validates(db):
    qid = make_question(db)
    with pytest.raises(InvalidInputError):
        update_question(db, qid, {"options": ["a", "b"], "correct_option": 3})


def test_update_missing_question(db):
    with pytest.raises(NotFoundError):
        update_question(db, 42, {"explanation": "x"})


def test_delete_question(db):
    qid = make_question(db)
    delete_question(db, qid)
    assert get_question(db, qid) is None
    with pytest.raises(NotFoundError):
        delete_question(db, qid)


def test_test_questions_hide_answer_key(db):
    for _ in range(5):
        make_question(db)
    questions = get_test_questions(db, "Physics", topic="kinematics", count=3)
    assert len(questions) == 3
    assert all("correct_option" not in q and "explanation" not in q for q in questions)


def test_test_questions_by_stage_level(db):
    make_question(db, stage=1, level=1)
    make_question(db, stage=1, level=2)
    questions = get_test_questions(db, "physics", stage=1, level=2)
    assert len(questions) == 1


def test_list_topics(db):
    make_question(db, topic="optics")
    make_question(db, topic="kinematics")
    make_question(db, topic="optics")
    make_question(db, topic="")
    assert list_topics(db, "physics") == ["kinematics", "optics"]


def test_add_question_returns_id(db):
    qid = add_question(db, {"subject": "botany", "question_text": "?", "options": ["a", "b"],
                            "correct_option": "B", "time_allocation": "90"})
    assert get_question(db, qid).time_allocation == 90
