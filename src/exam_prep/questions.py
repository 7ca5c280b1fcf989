"""Question bank: validation, CRUD, and test selection."""
import json
import unicodedata
from datetime import datetime

from exam_prep.db import get_connection
from exam_prep.errors import InvalidInputError, NotFoundError
from exam_prep.grader import parse_answer, to_index
from exam_prep.models import DIFFICULTIES, MAX_LEVEL, Question, normalize_subject

REQUIRED_FIELDS = ("subject", "question_text", "options", "correct_option")


def _nfc(text) -> str:
    return unicodedata.normalize("NFC", str(text)) if text else ""


def build_question(data: dict, default_time_allocation: int = 60) -> Question:
    """Validate a raw question dict and return a Question (id taken from data, if any)."""
    missing = [f for f in REQUIRED_FIELDS if data.get(f) in (None, "", [])]
    if missing:
        raise InvalidInputError(f"Missing required fields: {', '.join(missing)}")

    options = data["options"]
    if not isinstance(options, (list, tuple)) or not 2 <= len(options) <= 4:
        raise InvalidInputError("options must be a list of 2 to 4 strings")
    options = [_nfc(o) for o in options]

    correct = parse_answer(data["correct_option"])
    if correct is None or to_index(correct) >= len(options):
        raise InvalidInputError(
            f"correct_option {data['correct_option']!r} does not index into {len(options)} options"
        )

    difficulty = str(data.get("difficulty") or "medium").strip().lower()
    if difficulty == "moderate":
        difficulty = "medium"
    if difficulty not in DIFFICULTIES:
        raise InvalidInputError(f"Unknown difficulty: {difficulty!r}")

    try:
        time_allocation = int(data.get("time_allocation") or default_time_allocation)
        stage = int(data.get("stage") or 1)
        level = int(data.get("level") or 1)
    except (TypeError, ValueError) as e:
        raise InvalidInputError(f"Non-numeric field in question: {e}") from e
    if stage < 1 or not 1 <= level <= MAX_LEVEL:
        raise InvalidInputError(f"Invalid stage/level: {stage}/{level}")

    return Question(
        id=data.get("id"),
        subject=normalize_subject(data["subject"]),
        topic=_nfc(data.get("topic")),
        question_text=_nfc(data["question_text"]),
        options=options,
        correct_option=correct,
        explanation=_nfc(data.get("explanation")),
        difficulty=difficulty,
        image_url=data.get("image_url") or "",
        time_allocation=time_allocation,
        stage=stage,
        level=level,
    )


def row_to_question(row) -> Question:
    return Question(
        id=row["id"],
        subject=row["subject"],
        topic=row["topic"],
        question_text=row["question_text"],
        options=json.loads(row["options"]),
        correct_option=parse_answer(row["correct_option"]),
        explanation=row["explanation"] or "",
        difficulty=row["difficulty"],
        image_url=row["image_url"] or "",
        time_allocation=row["time_allocation"],
        stage=row["stage"],
        level=row["level"],
    )


def _question_values(q: Question) -> tuple:
    return (
        q.subject, q.topic, q.question_text, json.dumps(q.options, ensure_ascii=False),
        str(q.correct_option), q.explanation, q.difficulty, q.image_url,
        q.time_allocation, q.stage, q.level,
    )


def add_question(db_path: str, data: dict) -> int:
    question = build_question(data)
    conn = get_connection(db_path)
    cur = conn.execute(
        """INSERT INTO questions (subject, topic, question_text, options, correct_option,
        explanation, difficulty, image_url, time_allocation, stage, level, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        _question_values(question) + (datetime.now().isoformat(),),
    )
    conn.commit()
    conn.close()
    return cur.lastrowid


def get_question(db_path: str, question_id) -> Question | None:
    conn = get_connection(db_path)
    row = conn.execute("SELECT * FROM questions WHERE id = ?", (question_id,)).fetchone()
    conn.close()
    return row_to_question(row) if row else None


def get_questions_by_ids(db_path: str, question_ids: list) -> dict:
    """Fetch several questions at once; ids with no row are simply absent."""
    if not question_ids:
        return {}
    conn = get_connection(db_path)
    rows = conn.execute(
        f"SELECT * FROM questions WHERE id IN ({','.join('?' * len(question_ids))})",
        list(question_ids),
    ).fetchall()
    conn.close()
    return {row["id"]: row_to_question(row) for row in rows}


def list_questions(
    db_path: str,
    subject: str | None = None,
    topic: str | None = None,
    stage: int | None = None,
    level: int | None = None,
    difficulty: str | None = None,
) -> list[Question]:
    clauses, params = [], []
    if subject:
        clauses.append("subject = ?")
        params.append(normalize_subject(subject))
    for column, value in (("topic", topic), ("stage", stage), ("level", level), ("difficulty", difficulty)):
        if value is not None:
            clauses.append(f"{column} = ?")
            params.append(value)
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    conn = get_connection(db_path)
    rows = conn.execute(f"SELECT * FROM questions {where} ORDER BY id", params).fetchall()
    conn.close()
    return [row_to_question(r) for r in rows]


def update_question(db_path: str, question_id: int, changes: dict) -> Question:
    current = get_question(db_path, question_id)
    if current is None:
        raise NotFoundError(f"Question {question_id} not found")
    merged = {**vars(current), "correct_option": str(current.correct_option), **changes}
    question = build_question(merged)
    conn = get_connection(db_path)
    conn.execute(
        """UPDATE questions SET subject=?, topic=?, question_text=?, options=?, correct_option=?,
        explanation=?, difficulty=?, image_url=?, time_allocation=?, stage=?, level=?
        WHERE id=?""",
        _question_values(question) + (question_id,),
    )
    conn.commit()
    conn.close()
    question.id = question_id
    return question


def delete_question(db_path: str, question_id: int) -> None:
    """Delete a question. Past attempts keep their own text snapshot."""
    conn = get_connection(db_path)
    cur = conn.execute("DELETE FROM questions WHERE id = ?", (question_id,))
    conn.commit()
    conn.close()
    if cur.rowcount == 0:
        raise NotFoundError(f"Question {question_id} not found")


def get_test_questions(
    db_path: str,
    subject: str,
    topic: str | None = None,
    stage: int | None = None,
    level: int | None = None,
    count: int | None = None,
) -> list[dict]:
    """Questions to present for a test, without the answer key."""
    clauses, params = ["subject = ?"], [normalize_subject(subject)]
    if topic is not None:
        clauses.append("topic = ?")
        params.append(topic)
    if stage is not None and level is not None:
        clauses.append("stage = ? AND level = ?")
        params.extend([stage, level])
    sql = f"SELECT * FROM questions WHERE {' AND '.join(clauses)} ORDER BY RANDOM()"
    if count:
        sql += " LIMIT ?"
        params.append(count)
    conn = get_connection(db_path)
    rows = conn.execute(sql, params).fetchall()
    conn.close()
    return [
        {
            "id": r["id"],
            "question_text": r["question_text"],
            "options": json.loads(r["options"]),
            "difficulty": r["difficulty"],
            "image_url": r["image_url"] or "",
            "time_allocation": r["time_allocation"],
        }
        for r in rows
    ]


def list_topics(db_path: str, subject: str) -> list[str]:
    conn = get_connection(db_path)
    rows = conn.execute(
        "SELECT DISTINCT topic FROM questions WHERE subject = ? AND topic != '' ORDER BY topic",
        (normalize_subject(subject),),
    ).fetchall()
    conn.close()
    return [r["topic"] for r in rows]
