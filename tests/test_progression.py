# tests/test_progression.py
import threading

import pytest

import exam_prep.progression as progression
from exam_prep.db import get_connection
from exam_prep.errors import ConflictError, InvalidInputError, NotFoundError
from exam_prep.models import SubjectProgress
from exam_prep.progression import apply_progression, get_progress, next_state


def _set_state(db, student_id, subject, stage, level):
    get_progress(db, student_id, subject)
    conn = get_connection(db)
    conn.execute(
        "UPDATE subject_progress SET stage = ?, level = ? WHERE student_id = ? AND subject = ?",
        (stage, level, student_id, subject),
    )
    conn.commit()
    conn.close()


def test_next_state_within_stage():
    assert next_state(1, 2, True) == (1, 3)


def test_next_state_rolls_over_stage():
    assert next_state(1, 4, True) == (2, 1)
    assert next_state(7, 4, True) == (8, 1)


def test_next_state_fail_is_noop():
    for level in range(1, 5):
        assert next_state(3, level, False) == (3, level)


def test_next_state_rejects_bad_state():
    for stage, level in ((0, 1), (1, 0), (1, 5)):
        with pytest.raises(InvalidInputError):
            next_state(stage, level, True)


def test_missing_subject_initialized(db, student_id):
    assert get_progress(db, student_id, "Chemistry") == SubjectProgress(stage=1, level=1)
    result = apply_progression(db, student_id, "chemistry", True, "k1")
    assert (result["stage"], result["level"]) == (1, 2)


def test_pass_at_level_four_rolls_over(db, student_id):
    _set_state(db, student_id, "physics", 1, 4)
    result = apply_progression(db, student_id, "physics", True, "k1")
    assert result["applied"] is True
    assert (result["previous_stage"], result["previous_level"]) == (1, 4)
    assert get_progress(db, student_id, "physics") == SubjectProgress(stage=2, level=1)


def test_fail_never_mutates(db, student_id):
    _set_state(db, student_id, "physics", 2, 3)
    result = apply_progression(db, student_id, "physics", False, "k1")
    assert result["applied"] is False
    assert get_progress(db, student_id, "physics") == SubjectProgress(stage=2, level=3)


def test_only_target_subject_changes(db, student_id):
    apply_progression(db, student_id, "physics", True, "k1")
    assert get_progress(db, student_id, "zoology") == SubjectProgress(stage=1, level=1)


def test_duplicate_attempt_key_applied_once(db, student_id):
    first = apply_progression(db, student_id, "physics", True, "same-key")
    second = apply_progression(db, student_id, "physics", True, "same-key")
    assert first["applied"] is True
    assert second["applied"] is False
    assert second["duplicate"] is True
    assert get_progress(db, student_id, "physics") == SubjectProgress(stage=1, level=2)


def test_unknown_student(db):
    with pytest.raises(NotFoundError):
        apply_progression(db, 404, "physics", True, "k1")


def test_stale_read_retries(db, student_id, monkeypatch):
    """A transition that lands between our read and write forces a re-read."""
    _set_state(db, student_id, "physics", 1, 2)
    real_get_progress = progression.get_progress
    calls = []

    def racing_get_progress(db_path, sid, subject):
        state = real_get_progress(db_path, sid, subject)
        if not calls:
            calls.append(1)
            apply_progression(db_path, sid, subject, True, "other-attempt")
        return state

    monkeypatch.setattr(progression, "get_progress", racing_get_progress)
    result = apply_progression(db, student_id, "physics", True, "my-attempt")
    monkeypatch.undo()
    assert (result["stage"], result["level"]) == (1, 4)
    assert get_progress(db, student_id, "physics") == SubjectProgress(stage=1, level=4)


def test_conflict_after_max_retries(db, student_id, monkeypatch):
    _set_state(db, student_id, "physics", 1, 3)
    monkeypatch.setattr(progression, "get_progress", lambda *a: SubjectProgress(stage=1, level=1))
    with pytest.raises(ConflictError):
        apply_progression(db, student_id, "physics", True, "k1", max_retries=3)
    monkeypatch.undo()
    assert get_progress(db, student_id, "physics") == SubjectProgress(stage=1, level=3)
    conn = get_connection(db)
    assert conn.execute("SELECT COUNT(*) FROM progression_log").fetchone()[0] == 0
    conn.close()


def test_concurrent_passes_both_apply(db, student_id):
    """Two simultaneous passes starting at level 2 end at level 4."""
    _set_state(db, student_id, "physics", 1, 2)
    barrier = threading.Barrier(2)
    errors = []

    def submit(key):
        barrier.wait()
        try:
            apply_progression(db, student_id, "physics", True, key, max_retries=10)
        except Exception as e:  # surfaced below
            errors.append(e)

    threads = [threading.Thread(target=submit, args=(k,)) for k in ("t1", "t2")]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert errors == []
    assert get_progress(db, student_id, "physics") == SubjectProgress(stage=1, level=4)
