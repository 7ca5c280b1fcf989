"""Stage/level progression state machine.

Each student holds a (stage, level) pair per subject. A passed attempt moves
level up by one; passing at level 4 rolls over to the next stage at level 1.
Failed attempts never change anything.

The persisted record is the only source of the current state. Updates are
conditional on the (stage, level) that was read, and every applied
transition is logged under its attempt key in the same transaction, so a
retried or duplicated submission cannot advance a student twice.
"""
import logging
import sqlite3
from datetime import datetime

from exam_prep.db import get_connection
from exam_prep.errors import ConflictError, InvalidInputError, NotFoundError, PersistenceError
from exam_prep.models import MAX_LEVEL, SubjectProgress, normalize_subject

logger = logging.getLogger(__name__)


def next_state(stage: int, level: int, passed: bool) -> tuple[int, int]:
    """Return the (stage, level) that follows the given state."""
    if stage < 1 or not 1 <= level <= MAX_LEVEL:
        raise InvalidInputError(f"Invalid progression state: stage={stage}, level={level}")
    if not passed:
        return stage, level
    if level < MAX_LEVEL:
        return stage, level + 1
    return stage + 1, 1


def get_progress(db_path: str, student_id: int, subject: str) -> SubjectProgress:
    """Read a student's persisted state for a subject, starting it at (1, 1) if absent."""
    subject = normalize_subject(subject)
    conn = get_connection(db_path)
    try:
        if conn.execute("SELECT 1 FROM students WHERE id = ?", (student_id,)).fetchone() is None:
            raise NotFoundError(f"Student {student_id} not found")
        conn.execute(
            "INSERT OR IGNORE INTO subject_progress (student_id, subject, stage, level) VALUES (?, ?, 1, 1)",
            (student_id, subject),
        )
        conn.commit()
        row = conn.execute(
            "SELECT stage, level FROM subject_progress WHERE student_id = ? AND subject = ?",
            (student_id, subject),
        ).fetchone()
    except sqlite3.Error as e:
        raise PersistenceError(f"Could not read progress for student {student_id}: {e}") from e
    finally:
        conn.close()
    return SubjectProgress(stage=row["stage"], level=row["level"])


def apply_progression(
    db_path: str,
    student_id: int,
    subject: str,
    passed: bool,
    attempt_key: str,
    max_retries: int = 5,
) -> dict:
    """Apply the result of one graded attempt to the student's subject state.

    Returns a dict with the resulting stage/level, the previous stage/level,
    `applied` (the state moved) and `duplicate` (this attempt key had
    already been applied).

    Raises:
        NotFoundError: the student does not exist.
        ConflictError: every conditional update lost a race.
        PersistenceError: the database failed.
    """
    subject = normalize_subject(subject)
    if not passed:
        current = get_progress(db_path, student_id, subject)
        return _result(current.stage, current.level, current, applied=False)

    for attempt in range(1, max_retries + 1):
        current = get_progress(db_path, student_id, subject)
        stage, level = next_state(current.stage, current.level, passed)
        conn = get_connection(db_path)
        try:
            try:
                conn.execute(
                    """INSERT INTO progression_log (attempt_key, student_id, subject,
                    from_stage, from_level, to_stage, to_level, applied_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                    (attempt_key, student_id, subject, current.stage, current.level,
                     stage, level, datetime.now().isoformat()),
                )
            except sqlite3.IntegrityError:
                conn.rollback()
                logger.info("Attempt %s already applied to student %s; skipping", attempt_key, student_id)
                return _result(current.stage, current.level, current, applied=False, duplicate=True)
            cur = conn.execute(
                """UPDATE subject_progress SET stage = ?, level = ?
                WHERE student_id = ? AND subject = ? AND stage = ? AND level = ?""",
                (stage, level, student_id, subject, current.stage, current.level),
            )
            if cur.rowcount == 1:
                conn.commit()
                return _result(stage, level, current, applied=True)
            conn.rollback()
        except sqlite3.Error as e:
            conn.rollback()
            raise PersistenceError(f"Could not update progress for student {student_id}: {e}") from e
        finally:
            conn.close()
        logger.info(
            "Progress for student %s/%s changed concurrently (try %d/%d); retrying",
            student_id, subject, attempt, max_retries,
        )
    raise ConflictError(
        f"Progress for student {student_id}/{subject} kept changing; gave up after {max_retries} tries"
    )


def _result(stage: int, level: int, previous: SubjectProgress, applied: bool, duplicate: bool = False) -> dict:
    return {
        "stage": stage,
        "level": level,
        "previous_stage": previous.stage,
        "previous_level": previous.level,
        "applied": applied,
        "duplicate": duplicate,
    }


def get_applied_progression(db_path: str, attempt_key: str) -> dict | None:
    """The transition logged for an attempt key, or None if it was never applied."""
    conn = get_connection(db_path)
    try:
        row = conn.execute(
            "SELECT * FROM progression_log WHERE attempt_key = ?", (attempt_key,)
        ).fetchone()
    except sqlite3.Error as e:
        raise PersistenceError(f"Could not read progression log for {attempt_key}: {e}") from e
    finally:
        conn.close()
    if row is None:
        return None
    return {
        "stage": row["to_stage"],
        "level": row["to_level"],
        "previous_stage": row["from_stage"],
        "previous_level": row["from_level"],
        "applied": True,
        "duplicate": True,
    }
