"""Append-only test attempt log and history views."""
import json
import sqlite3
from dataclasses import asdict

from exam_prep.db import get_connection
from exam_prep.errors import DuplicateAttemptError, PersistenceError
from exam_prep.models import TestAttempt, normalize_subject
from exam_prep.scoring import score_from_outcomes


def insert_attempt(db_path: str, attempt: TestAttempt) -> int:
    """Append an attempt to the log. Attempts are never updated afterwards."""
    conn = get_connection(db_path)
    try:
        cur = conn.execute(
            """INSERT INTO test_attempts (attempt_key, student_id, subject, mode, topic, stage, level,
            outcomes, total_time, score, max_score, score_percentage, passed, telemetry, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                attempt.attempt_key, attempt.student_id, attempt.subject, attempt.mode,
                attempt.topic, attempt.stage, attempt.level,
                json.dumps([asdict(o) for o in attempt.outcomes], ensure_ascii=False),
                attempt.total_time, attempt.score, attempt.max_score, attempt.score_percentage,
                int(attempt.passed),
                json.dumps(attempt.telemetry) if attempt.telemetry is not None else None,
                attempt.created_at,
            ),
        )
        conn.commit()
    except sqlite3.IntegrityError as e:
        if "attempt_key" in str(e):
            raise DuplicateAttemptError(attempt.attempt_key) from e
        raise PersistenceError(f"Could not store attempt {attempt.attempt_key}: {e}") from e
    except sqlite3.Error as e:
        raise PersistenceError(f"Could not store attempt {attempt.attempt_key}: {e}") from e
    finally:
        conn.close()
    return cur.lastrowid


def _row_to_attempt(row) -> TestAttempt:
    outcomes = json.loads(row["outcomes"])
    percentage = row["score_percentage"]
    if not percentage:
        percentage = score_from_outcomes(outcomes, row["score"], row["max_score"])
    return TestAttempt(
        id=row["id"],
        attempt_key=row["attempt_key"],
        student_id=row["student_id"],
        subject=row["subject"],
        mode=row["mode"],
        topic=row["topic"],
        stage=row["stage"],
        level=row["level"],
        outcomes=outcomes,
        total_time=row["total_time"],
        score=row["score"],
        max_score=row["max_score"],
        score_percentage=percentage,
        passed=bool(row["passed"]),
        created_at=row["created_at"],
        telemetry=json.loads(row["telemetry"]) if row["telemetry"] else None,
    )


def get_attempt_by_key(db_path: str, attempt_key: str) -> TestAttempt | None:
    conn = get_connection(db_path)
    row = conn.execute("SELECT * FROM test_attempts WHERE attempt_key = ?", (attempt_key,)).fetchone()
    conn.close()
    return _row_to_attempt(row) if row else None


def list_attempts(
    db_path: str,
    student_id: int,
    subject: str | None = None,
    stage: int | None = None,
    level: int | None = None,
    topic: str | None = None,
) -> list[TestAttempt]:
    """A student's attempts, newest first."""
    clauses, params = ["student_id = ?"], [student_id]
    if subject:
        clauses.append("subject = ?")
        params.append(normalize_subject(subject))
    for column, value in (("stage", stage), ("level", level), ("topic", topic)):
        if value is not None:
            clauses.append(f"{column} = ?")
            params.append(value)
    conn = get_connection(db_path)
    rows = conn.execute(
        f"SELECT * FROM test_attempts WHERE {' AND '.join(clauses)} ORDER BY created_at DESC, id DESC",
        params,
    ).fetchall()
    conn.close()
    return [_row_to_attempt(r) for r in rows]


def latest_by_level(db_path: str, student_id: int) -> dict:
    """Most recent stage-level attempt per subject, keyed "stage-level"."""
    summary = {}
    for attempt in list_attempts(db_path, student_id):
        if attempt.stage is None or attempt.level is None:
            continue
        key = f"{attempt.stage}-{attempt.level}"
        per_subject = summary.setdefault(attempt.subject, {})
        if key in per_subject:
            continue
        total = len(attempt.outcomes)
        per_subject[key] = {
            "subject_name": attempt.subject.capitalize(),
            "stage": attempt.stage,
            "level": attempt.level,
            "date": attempt.created_at,
            "score": attempt.score_percentage,
            "passed": attempt.passed,
            "correct_count": sum(1 for o in attempt.outcomes if o.get("is_correct")),
            "total_questions": total,
            "total_time": attempt.total_time,
            "avg_time_per_question": round(attempt.total_time / total) if total else 0,
        }
    return summary
