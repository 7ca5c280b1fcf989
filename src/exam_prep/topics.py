"""Per-topic best score and attempt tracking."""
import logging
import sqlite3

from exam_prep.db import get_connection
from exam_prep.errors import ConflictError, NotFoundError, PersistenceError
from exam_prep.models import TopicProgress, normalize_subject

logger = logging.getLogger(__name__)


def merge_topic_progress(
    existing: TopicProgress | None,
    score_percentage: int,
    timestamp: str,
    completion_threshold: float = 70,
) -> TopicProgress:
    existing = existing or TopicProgress()
    return TopicProgress(
        best_score=max(existing.best_score, score_percentage),
        completed=existing.completed or score_percentage >= completion_threshold,
        attempt_count=existing.attempt_count + 1,
        last_attempt_at=timestamp,
    )


def _read(conn, student_id, subject, topic) -> TopicProgress | None:
    row = conn.execute(
        "SELECT * FROM topic_progress WHERE student_id = ? AND subject = ? AND topic = ?",
        (student_id, subject, topic),
    ).fetchone()
    if row is None:
        return None
    return TopicProgress(
        best_score=row["best_score"],
        completed=bool(row["completed"]),
        attempt_count=row["attempt_count"],
        last_attempt_at=row["last_attempt_at"],
    )


def record_topic_attempt(
    db_path: str,
    student_id: int,
    subject: str,
    topic: str,
    score_percentage: int,
    timestamp: str,
    completion_threshold: float = 70,
    max_retries: int = 5,
) -> TopicProgress:
    """Fold one attempt's score into the stored topic record and return the new record."""
    subject = normalize_subject(subject)
    for _ in range(max_retries):
        conn = get_connection(db_path)
        try:
            if conn.execute("SELECT 1 FROM students WHERE id = ?", (student_id,)).fetchone() is None:
                raise NotFoundError(f"Student {student_id} not found")
            existing = _read(conn, student_id, subject, topic)
            merged = merge_topic_progress(existing, score_percentage, timestamp, completion_threshold)
            values = (merged.best_score, int(merged.completed), merged.attempt_count, merged.last_attempt_at)
            if existing is None:
                cur = conn.execute(
                    """INSERT OR IGNORE INTO topic_progress
                    (best_score, completed, attempt_count, last_attempt_at, student_id, subject, topic)
                    VALUES (?, ?, ?, ?, ?, ?, ?)""",
                    values + (student_id, subject, topic),
                )
            else:
                cur = conn.execute(
                    """UPDATE topic_progress SET best_score = ?, completed = ?, attempt_count = ?,
                    last_attempt_at = ?
                    WHERE student_id = ? AND subject = ? AND topic = ? AND attempt_count = ?""",
                    values + (student_id, subject, topic, existing.attempt_count),
                )
            if cur.rowcount == 1:
                conn.commit()
                return merged
            conn.rollback()
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not record topic progress: {e}") from e
        finally:
            conn.close()
        logger.info("Topic record %s/%s for student %s changed concurrently; retrying", subject, topic, student_id)
    raise ConflictError(f"Topic record {subject}/{topic} for student {student_id} kept changing")


def get_topic_progress(db_path: str, student_id: int, subject: str | None = None) -> dict:
    """Map of (subject, topic) -> TopicProgress for a student."""
    sql = "SELECT * FROM topic_progress WHERE student_id = ?"
    params = [student_id]
    if subject:
        sql += " AND subject = ?"
        params.append(normalize_subject(subject))
    conn = get_connection(db_path)
    rows = conn.execute(sql + " ORDER BY subject, topic", params).fetchall()
    conn.close()
    return {
        (r["subject"], r["topic"]): TopicProgress(
            best_score=r["best_score"],
            completed=bool(r["completed"]),
            attempt_count=r["attempt_count"],
            last_attempt_at=r["last_attempt_at"],
        )
        for r in rows
    }
