"""Leaderboard points and per-student statistics."""
from exam_prep.db import get_connection
from exam_prep.models import MAX_LEVEL


def levels_cleared(subjects: dict) -> int:
    """Levels cleared across subjects; `subjects` maps subject -> (stage, level)."""
    return sum((stage - 1) * MAX_LEVEL + (level - 1) for stage, level in subjects.values())


def get_progress_label(stage: int, level: int) -> str:
    return f"Stage {stage} · Level {level}"


def _subject_states(conn) -> dict:
    states = {}
    for row in conn.execute("SELECT student_id, subject, stage, level FROM subject_progress"):
        states.setdefault(row["student_id"], {})[row["subject"]] = (row["stage"], row["level"])
    return states


def get_leaderboard(db_path: str, points_per_level: int = 25, limit: int | None = None) -> list[dict]:
    """Students ranked by points derived from their progression state."""
    conn = get_connection(db_path)
    students = conn.execute("SELECT id, name, username, institution FROM students").fetchall()
    states = _subject_states(conn)
    conn.close()
    board = []
    for s in students:
        subjects = states.get(s["id"], {})
        cleared = levels_cleared(subjects)
        board.append({
            "student_id": s["id"],
            "name": s["name"],
            "username": s["username"],
            "institution": s["institution"],
            "subjects": {k: {"stage": v[0], "level": v[1]} for k, v in subjects.items()},
            "levels_cleared": cleared,
            "n_points": cleared * points_per_level,
        })
    board.sort(key=lambda b: (-b["n_points"], b["name"]))
    return board[:limit] if limit else board


def refresh_points(db_path: str, points_per_level: int = 25) -> int:
    """Store the derived point total on each student; returns how many changed."""
    board = get_leaderboard(db_path, points_per_level)
    conn = get_connection(db_path)
    updated = 0
    for entry in board:
        cur = conn.execute(
            "UPDATE students SET n_points = ? WHERE id = ? AND n_points != ?",
            (entry["n_points"], entry["student_id"], entry["n_points"]),
        )
        updated += cur.rowcount
    conn.commit()
    conn.close()
    return updated


def get_student_stats(db_path: str, student_id: int) -> dict:
    conn = get_connection(db_path)
    row = conn.execute(
        """SELECT COUNT(*) as tests, SUM(passed) as passed, AVG(score_percentage) as avg,
        SUM(total_time) as time FROM test_attempts WHERE student_id = ?""",
        (student_id,),
    ).fetchone()
    topics = conn.execute(
        "SELECT COUNT(*) as t, SUM(completed) as c FROM topic_progress WHERE student_id = ?",
        (student_id,),
    ).fetchone()
    conn.close()
    return {
        "tests_taken": row["tests"],
        "tests_passed": row["passed"] or 0,
        "avg_score": round(row["avg"], 1) if row["avg"] is not None else 0.0,
        "total_time": row["time"] or 0,
        "topics_attempted": topics["t"],
        "topics_completed": topics["c"] or 0,
    }
