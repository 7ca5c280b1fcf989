# tests/test_integration.py
"""End-to-end test of the core workflow."""
from exam_prep.config import GradingConfig
from exam_prep.dashboard import get_leaderboard, get_student_stats
from exam_prep.db import init_db
from exam_prep.engine import grade_submission
from exam_prep.history import latest_by_level, list_attempts
from exam_prep.progression import get_progress
from exam_prep.questions import list_questions
from exam_prep.seed import seed_all
from exam_prep.students import add_student, get_student

CONFIG = GradingConfig()


def _correct_answers(questions):
    return [{"question_id": q.id, "selected_value": str(q.correct_option), "time_spent": 20} for q in questions]


def test_full_grading_workflow(tmp_db):
    """Seed, take each kind of test, and check progress, history and ranking agree."""
    init_db(tmp_db)
    seed_all(tmp_db)
    asha = add_student(tmp_db, "Asha", "asha")
    add_student(tmp_db, "Bilal", "bilal")

    # Legacy test at the student's current level, all correct
    level_one = list_questions(tmp_db, subject="physics", stage=1, level=1)
    result = grade_submission(tmp_db, asha, {
        "subject": "physics", "mode": "legacy", "answers": _correct_answers(level_one),
        "total_time": 60, "attempt_key": "legacy-1",
    }, config=CONFIG)
    assert result["passed"] is True
    assert result["score"] == 4 * len(level_one)
    assert result["progression_applied"] is True
    assert get_progress(tmp_db, asha, "physics").level == 2

    # Retried submission replays without moving the student again
    again = grade_submission(tmp_db, asha, {
        "subject": "physics", "mode": "legacy", "answers": _correct_answers(level_one),
        "total_time": 60, "attempt_key": "legacy-1",
    }, config=CONFIG)
    assert again["duplicate"] is True
    assert get_progress(tmp_db, asha, "physics").level == 2

    # Practice updates topic progress only
    atomic = list_questions(tmp_db, subject="chemistry", topic="atomic-structure")
    result = grade_submission(tmp_db, asha, {
        "subject": "chemistry", "mode": "practice", "topic": "atomic-structure",
        "answers": _correct_answers(atomic), "total_time": 40,
    }, config=CONFIG)
    assert result["topic_progress"]["completed"] is True
    assert result["progression_applied"] is False
    assert get_progress(tmp_db, asha, "chemistry").level == 1

    # Assessment with one wrong answer out of two fails and keeps the level
    physiology = list_questions(tmp_db, subject="zoology", topic="human-physiology")
    answers = _correct_answers(physiology)
    answers[0]["selected_value"] = "D"
    result = grade_submission(tmp_db, asha, {
        "subject": "zoology", "mode": "assessment", "topic": "human-physiology",
        "answers": answers, "total_time": 50,
    }, config=CONFIG)
    assert result["score_percentage"] == 50
    assert result["passed"] is False
    assert get_progress(tmp_db, asha, "zoology").level == 1

    # History, stats, and leaderboard
    assert len(list_attempts(tmp_db, asha)) == 3
    latest = latest_by_level(tmp_db, asha)
    assert latest["physics"]["1-1"]["passed"] is True
    assert latest["physics"]["1-1"]["avg_time_per_question"] == 20

    stats = get_student_stats(tmp_db, asha)
    assert stats["tests_taken"] == 3
    assert stats["tests_passed"] == 2
    assert stats["topics_completed"] == 1

    board = get_leaderboard(tmp_db)
    assert board[0]["name"] == "Asha"
    assert board[0]["n_points"] == 25
    assert board[1]["n_points"] == 0

    student = get_student(tmp_db, asha)
    assert student.subjects["physics"].level == 2
    assert ("zoology", "human-physiology") in student.topics
