"""Database initialization and connection management."""
import sqlite3
from pathlib import Path

DEFAULT_DB_PATH = str(Path.home() / ".exam_prep" / "exam_prep.db")

SCHEMA = """
CREATE TABLE IF NOT EXISTS questions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    subject TEXT NOT NULL,
    topic TEXT NOT NULL DEFAULT '',
    question_text TEXT NOT NULL,
    options TEXT NOT NULL,
    correct_option TEXT NOT NULL,
    explanation TEXT DEFAULT '',
    difficulty TEXT DEFAULT 'medium',
    image_url TEXT DEFAULT '',
    time_allocation INTEGER DEFAULT 60,
    stage INTEGER DEFAULT 1,
    level INTEGER DEFAULT 1,
    created_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_questions_subject
    ON questions (subject, stage, level, topic);

CREATE TABLE IF NOT EXISTS students (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    username TEXT NOT NULL UNIQUE,
    institution TEXT DEFAULT 'Default Institution',
    n_points INTEGER DEFAULT 0,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS subject_progress (
    student_id INTEGER NOT NULL REFERENCES students(id) ON DELETE CASCADE,
    subject TEXT NOT NULL,
    stage INTEGER NOT NULL DEFAULT 1,
    level INTEGER NOT NULL DEFAULT 1 CHECK (level BETWEEN 1 AND 4),
    PRIMARY KEY (student_id, subject)
);

CREATE TABLE IF NOT EXISTS topic_progress (
    student_id INTEGER NOT NULL REFERENCES students(id) ON DELETE CASCADE,
    subject TEXT NOT NULL,
    topic TEXT NOT NULL,
    best_score INTEGER NOT NULL DEFAULT 0,
    completed INTEGER NOT NULL DEFAULT 0,
    attempt_count INTEGER NOT NULL DEFAULT 0,
    last_attempt_at TEXT,
    PRIMARY KEY (student_id, subject, topic)
);

CREATE TABLE IF NOT EXISTS test_attempts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    attempt_key TEXT NOT NULL UNIQUE,
    student_id INTEGER NOT NULL REFERENCES students(id) ON DELETE CASCADE,
    subject TEXT NOT NULL,
    mode TEXT NOT NULL,
    topic TEXT,
    stage INTEGER,
    level INTEGER,
    outcomes TEXT NOT NULL,
    total_time REAL DEFAULT 0,
    score INTEGER,
    max_score INTEGER,
    score_percentage INTEGER,
    passed INTEGER NOT NULL DEFAULT 0,
    telemetry TEXT,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS progression_log (
    attempt_key TEXT PRIMARY KEY,
    student_id INTEGER NOT NULL REFERENCES students(id) ON DELETE CASCADE,
    subject TEXT NOT NULL,
    from_stage INTEGER NOT NULL,
    from_level INTEGER NOT NULL,
    to_stage INTEGER NOT NULL,
    to_level INTEGER NOT NULL,
    applied_at TEXT
);

CREATE TABLE IF NOT EXISTS user_settings (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    key TEXT NOT NULL UNIQUE,
    value TEXT
);
"""


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Return a SQLite connection with row factory and foreign keys enabled."""
    conn = sqlite3.connect(db_path, timeout=10.0)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_db(db_path: str = DEFAULT_DB_PATH) -> None:
    """Initialize the database, creating all tables if they don't exist."""
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = get_connection(db_path)
    conn.executescript(SCHEMA)
    conn.commit()
    conn.close()
