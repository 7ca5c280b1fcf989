"""Seed the database with the bundled sample question bank."""
from pathlib import Path

from exam_prep.db import get_connection
from exam_prep.importer import import_file

CONTENT_DIR = Path(__file__).parent / "content"


def is_seeded(db_path: str) -> bool:
    """Check whether the question bank has any questions yet."""
    conn = get_connection(db_path)
    count = conn.execute("SELECT COUNT(*) FROM questions").fetchone()[0]
    conn.close()
    return count > 0


def seed_questions(db_path: str) -> dict:
    """Insert the sample questions from questions.json."""
    return import_file(db_path, str(CONTENT_DIR / "questions.json"))


def seed_all(db_path: str) -> None:
    """Seed everything, but only once."""
    if is_seeded(db_path):
        return
    seed_questions(db_path)
