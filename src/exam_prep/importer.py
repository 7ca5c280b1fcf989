"""Bulk question import from JSON, YAML, or CSV files."""
import csv
import json
import logging
from pathlib import Path

import yaml

from exam_prep.errors import InvalidInputError
from exam_prep.questions import add_question

logger = logging.getLogger(__name__)

# Field names used by older exports of the question bank
KEY_ALIASES = {
    "questionText": "question_text",
    "correctOption": "correct_option",
    "timeAllocation": "time_allocation",
    "imageUrl": "image_url",
    "topicNumber": "topic",
}

CSV_OPTION_COLUMNS = ("option_a", "option_b", "option_c", "option_d")


def normalize_keys(row: dict) -> dict:
    return {KEY_ALIASES.get(k, k): v for k, v in row.items()}


def _csv_row(row: dict) -> dict:
    row = {k: v for k, v in row.items() if v not in (None, "")}
    if "options" in row:
        row["options"] = [o.strip() for o in row["options"].split("|")]
    else:
        row["options"] = [row.pop(c) for c in CSV_OPTION_COLUMNS if c in row]
    for c in CSV_OPTION_COLUMNS:
        row.pop(c, None)
    return row


def read_question_rows(file_path: str) -> list[dict]:
    path = Path(file_path)
    suffix = path.suffix.lower()

    if suffix == ".json":
        data = json.loads(path.read_text(encoding="utf-8"))
    elif suffix in (".yaml", ".yml"):
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    elif suffix == ".csv":
        with open(path, newline="", encoding="utf-8") as f:
            data = [_csv_row(r) for r in csv.DictReader(f)]
    else:
        raise InvalidInputError(f"Unsupported question file type: {suffix or path.name}")

    if isinstance(data, dict):
        data = data.get("questions")
    if not isinstance(data, list) or not data:
        raise InvalidInputError("Valid questions array must be provided")
    return [normalize_keys(r) if isinstance(r, dict) else r for r in data]


def import_questions(db_path: str, rows: list) -> dict:
    """Save every valid row; report the index and reason for each row that fails."""
    imported, failed = [], []
    for i, row in enumerate(rows):
        try:
            if not isinstance(row, dict):
                raise InvalidInputError("question must be a mapping")
            imported.append(add_question(db_path, normalize_keys(row)))
        except InvalidInputError as e:
            logger.warning("Question at index %d rejected: %s", i, e)
            failed.append({"index": i, "error": str(e)})
    return {"imported": len(imported), "ids": imported, "failed": failed}


def import_file(db_path: str, file_path: str) -> dict:
    """Import a question file into the bank."""
    result = import_questions(db_path, read_question_rows(file_path))
    result["filename"] = Path(file_path).name
    return result
