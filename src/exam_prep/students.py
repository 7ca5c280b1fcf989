"""Student records and their progression maps."""
import sqlite3
from datetime import datetime

from exam_prep.db import get_connection
from exam_prep.errors import InvalidInputError, NotFoundError
from exam_prep.models import Student, SubjectProgress, TopicProgress


def add_student(db_path: str, name: str, username: str, institution: str = "Default Institution") -> int:
    """Create a student. Usernames are unique; credentials live with the auth layer."""
    if not name or not username:
        raise InvalidInputError("name and username are required")
    conn = get_connection(db_path)
    try:
        cur = conn.execute(
            "INSERT INTO students (name, username, institution, created_at) VALUES (?, ?, ?, ?)",
            (name.strip(), username.strip(), institution or "Default Institution", datetime.now().isoformat()),
        )
        conn.commit()
    except sqlite3.IntegrityError as e:
        raise InvalidInputError(f"Username already exists: {username}") from e
    finally:
        conn.close()
    return cur.lastrowid


def student_exists(db_path: str, student_id: int) -> bool:
    conn = get_connection(db_path)
    row = conn.execute("SELECT 1 FROM students WHERE id = ?", (student_id,)).fetchone()
    conn.close()
    return row is not None


def get_student(db_path: str, student_id: int) -> Student:
    conn = get_connection(db_path)
    row = conn.execute("SELECT * FROM students WHERE id = ?", (student_id,)).fetchone()
    if row is None:
        conn.close()
        raise NotFoundError(f"Student {student_id} not found")
    subjects = conn.execute(
        "SELECT subject, stage, level FROM subject_progress WHERE student_id = ?", (student_id,)
    ).fetchall()
    topics = conn.execute(
        "SELECT * FROM topic_progress WHERE student_id = ?", (student_id,)
    ).fetchall()
    conn.close()
    return Student(
        id=row["id"],
        name=row["name"],
        username=row["username"],
        institution=row["institution"],
        n_points=row["n_points"],
        subjects={s["subject"]: SubjectProgress(stage=s["stage"], level=s["level"]) for s in subjects},
        topics={
            (t["subject"], t["topic"]): TopicProgress(
                best_score=t["best_score"],
                completed=bool(t["completed"]),
                attempt_count=t["attempt_count"],
                last_attempt_at=t["last_attempt_at"],
            )
            for t in topics
        },
    )


def find_student_by_username(db_path: str, username: str) -> Student:
    conn = get_connection(db_path)
    row = conn.execute("SELECT id FROM students WHERE username = ?", (username,)).fetchone()
    conn.close()
    if row is None:
        raise NotFoundError(f"Student {username!r} not found")
    return get_student(db_path, row["id"])


def list_students(db_path: str) -> list[dict]:
    conn = get_connection(db_path)
    rows = conn.execute("SELECT * FROM students ORDER BY name").fetchall()
    conn.close()
    return [dict(r) for r in rows]


def update_student(db_path: str, student_id: int, name: str | None = None, institution: str | None = None) -> None:
    conn = get_connection(db_path)
    cur = conn.execute(
        "UPDATE students SET name = COALESCE(?, name), institution = COALESCE(?, institution) WHERE id = ?",
        (name, institution, student_id),
    )
    conn.commit()
    conn.close()
    if cur.rowcount == 0:
        raise NotFoundError(f"Student {student_id} not found")


def delete_student(db_path: str, student_id: int) -> None:
    """Delete a student along with their attempts and progress."""
    conn = get_connection(db_path)
    cur = conn.execute("DELETE FROM students WHERE id = ?", (student_id,))
    conn.commit()
    conn.close()
    if cur.rowcount == 0:
        raise NotFoundError(f"Student {student_id} not found")
