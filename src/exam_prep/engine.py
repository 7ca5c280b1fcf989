"""Test submission: grade, score, log, then update progression and topic records.

Scoring always completes in memory before anything is written. Failures
after that point (missing student, lost races, database errors) are
reported in the result under `errors` and never change the score.
"""
import logging
import sqlite3
import uuid
from datetime import datetime

from exam_prep.config import GradingConfig, load_config
from exam_prep.errors import (
    ConflictError, DuplicateAttemptError, InvalidInputError, NotFoundError, PersistenceError,
)
from exam_prep.grader import grade_answer
from exam_prep.history import get_attempt_by_key, insert_attempt
from exam_prep.models import MODES, QuestionOutcome, TestAttempt, normalize_subject
from exam_prep.progression import apply_progression, get_applied_progression, get_progress
from exam_prep.questions import get_questions_by_ids
from exam_prep.scoring import SCORING_MODES, aggregate_scores
from exam_prep.students import student_exists
from exam_prep.topics import record_topic_attempt

logger = logging.getLogger(__name__)

PROGRESSION_MODES = ("assessment", "legacy")
TOPIC_MODES = ("practice", "assessment")


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_submission(submission: dict) -> dict:
    """Check a raw submission and return it with defaults filled in."""
    if not isinstance(submission, dict):
        raise InvalidInputError("Submission must be a mapping")
    answers = submission.get("answers")
    if not isinstance(answers, list) or not answers:
        raise InvalidInputError("Valid non-empty answers list must be provided")

    mode = submission.get("mode", "assessment")
    if mode not in MODES:
        raise InvalidInputError(f"Unknown mode: {mode!r}")
    scoring_mode = submission.get("scoring_mode") or ("negative-marking" if mode == "legacy" else "percentage")
    if scoring_mode not in SCORING_MODES:
        raise InvalidInputError(f"Unknown scoring mode: {scoring_mode!r}")
    topic = submission.get("topic")
    if mode in TOPIC_MODES and not topic:
        raise InvalidInputError(f"A topic is required for {mode} tests")

    total_time = submission.get("total_time", 0)
    if not _is_number(total_time) or total_time < 0:
        raise InvalidInputError(f"total_time must be a non-negative number, got {total_time!r}")

    cleaned = []
    for i, answer in enumerate(answers):
        if not isinstance(answer, dict) or answer.get("question_id") in (None, ""):
            raise InvalidInputError(f"Answer at index {i} has no question_id")
        time_spent = answer.get("time_spent", 0)
        if not _is_number(time_spent):
            raise InvalidInputError(f"Answer at index {i} has non-numeric time_spent")
        cleaned.append({
            "question_id": answer["question_id"],
            "selected_value": answer.get("selected_value"),
            "time_spent": time_spent,
        })

    telemetry = submission.get("telemetry")
    if telemetry is not None and not isinstance(telemetry, dict):
        raise InvalidInputError("telemetry must be a mapping")

    return {
        "subject": normalize_subject(submission.get("subject")),
        "mode": mode,
        "topic": topic,
        "scoring_mode": scoring_mode,
        "total_time": total_time,
        "answers": cleaned,
        "attempt_key": submission.get("attempt_key") or uuid.uuid4().hex,
        "telemetry": telemetry,
    }


def _lookup_id(question_id):
    if isinstance(question_id, int) and not isinstance(question_id, bool):
        return question_id
    if isinstance(question_id, str) and question_id.strip().isdecimal():
        return int(question_id)
    return None


def _outcome_flag(outcome: dict):
    """True/False for graded questions, None for unanswered ones."""
    if outcome.get("not_found"):
        return False
    if outcome.get("selected_value") in (None, ""):
        return None
    return bool(outcome.get("is_correct"))


def _per_question(outcome: dict) -> dict:
    result = {
        "question_id": outcome["question_id"],
        "selected_value": outcome["selected_value"],
        "correct_value": outcome["correct_value"],
        "is_correct": outcome["is_correct"],
        "explanation": outcome.get("explanation", ""),
    }
    if outcome.get("not_found"):
        result["not_found"] = True
        result["message"] = "Question not found"
    return result


def _replay(attempt: TestAttempt, progression: dict | None = None, errors: list | None = None) -> dict:
    """Rebuild the result of an attempt that is already in the log."""
    flags = [_outcome_flag(o) for o in attempt.outcomes]
    return {
        "attempt_key": attempt.attempt_key,
        "correct_count": sum(1 for f in flags if f is True),
        "incorrect_count": sum(1 for f in flags if f is False),
        "unanswered_count": sum(1 for f in flags if f is None),
        "score": attempt.score,
        "max_score": attempt.max_score,
        "score_percentage": attempt.score_percentage,
        "passed": attempt.passed,
        "per_question_results": [_per_question(o) for o in attempt.outcomes],
        "persisted": True,
        "progression_applied": bool(progression and progression["applied"]),
        "progression": progression,
        "topic_progress": None,
        "duplicate": True,
        "errors": errors or [],
    }


def _replay_stored(db_path: str, attempt: TestAttempt, config: GradingConfig) -> dict:
    """Replay a stored attempt, finishing its progression if an earlier run did not."""
    if attempt.mode not in PROGRESSION_MODES or not attempt.passed:
        return _replay(attempt)
    errors = []
    progression = None
    try:
        progression = get_applied_progression(db_path, attempt.attempt_key)
        if progression is None:
            logger.info("Attempt %s was stored without its progression; applying it now", attempt.attempt_key)
            progression = apply_progression(
                db_path, attempt.student_id, attempt.subject, True, attempt.attempt_key,
                max_retries=config.max_retries,
            )
            if progression["duplicate"]:
                progression = get_applied_progression(db_path, attempt.attempt_key)
    except (NotFoundError, ConflictError, PersistenceError) as e:
        logger.error("Progression not applied for attempt %s: %s", attempt.attempt_key, e)
        errors.append(f"Progression not applied: {e}")
    return _replay(attempt, progression, errors)


def grade_submission(db_path: str, student_id: int, submission: dict, config: GradingConfig | None = None) -> dict:
    """Grade a submitted test for a student and apply its side effects.

    Returns the score summary, per-question results, and flags telling the
    caller whether the attempt was stored (`persisted`) and whether the
    student's stage/level moved (`progression_applied`). Anything that went
    wrong after scoring is listed in `errors`.

    Raises:
        InvalidInputError: the submission is malformed; nothing is written.
        PersistenceError: the stored test data could not be read.
    """
    sub = validate_submission(submission)

    try:
        config = config or load_config(db_path)
        existing = get_attempt_by_key(db_path, sub["attempt_key"])
        if existing is not None:
            logger.info("Attempt %s was already submitted; returning stored result", sub["attempt_key"])
            return _replay_stored(db_path, existing, config)
        bank = get_questions_by_ids(
            db_path, [i for i in (_lookup_id(a["question_id"]) for a in sub["answers"]) if i is not None]
        )
    except sqlite3.Error as e:
        raise PersistenceError(f"Could not read stored test data: {e}") from e

    outcomes = []
    for answer in sub["answers"]:
        question = bank.get(_lookup_id(answer["question_id"]))
        if question is None:
            logger.warning("Question %s not found while grading", answer["question_id"])
        graded = grade_answer(question, answer["selected_value"])
        outcomes.append(QuestionOutcome(
            question_id=answer["question_id"],
            selected_value=answer["selected_value"],
            correct_value=graded["correct_value"],
            is_correct=graded["is_correct"],
            time_spent=answer["time_spent"],
            explanation=graded["explanation"],
            question_text=question.question_text if question else "",
            not_found=graded["not_found"],
        ))

    summary = aggregate_scores(
        [_outcome_flag(vars(o)) for o in outcomes],
        scoring_mode=sub["scoring_mode"],
        pass_threshold=config.pass_threshold,
        correct_marks=config.correct_marks,
        incorrect_marks=config.incorrect_marks,
    )
    summary.pop("total_questions")

    result = {
        "attempt_key": sub["attempt_key"],
        **summary,
        "per_question_results": [_per_question(vars(o)) for o in outcomes],
        "persisted": False,
        "progression_applied": False,
        "progression": None,
        "topic_progress": None,
        "duplicate": False,
        "errors": [],
    }

    try:
        known_student = student_exists(db_path, student_id)
    except sqlite3.Error as e:
        logger.error("Could not look up student %s", student_id, exc_info=True)
        result["errors"].append(f"Student lookup failed: {e}")
        return result
    if not known_student:
        result["errors"].append(f"Student {student_id} not found; progress not recorded")
        return result

    stage = level = None
    if sub["mode"] == "legacy":
        try:
            current = get_progress(db_path, student_id, sub["subject"])
            stage, level = current.stage, current.level
        except (NotFoundError, PersistenceError) as e:
            result["errors"].append(str(e))
            return result

    created_at = datetime.now().isoformat()
    attempt = TestAttempt(
        id=None,
        attempt_key=sub["attempt_key"],
        student_id=student_id,
        subject=sub["subject"],
        mode=sub["mode"],
        topic=sub["topic"],
        stage=stage,
        level=level,
        outcomes=outcomes,
        total_time=sub["total_time"],
        score=summary["score"],
        max_score=summary["max_score"],
        score_percentage=summary["score_percentage"],
        passed=summary["passed"],
        created_at=created_at,
        telemetry=sub["telemetry"],
    )
    try:
        insert_attempt(db_path, attempt)
    except DuplicateAttemptError:
        logger.info("Attempt %s was stored concurrently; returning stored result", sub["attempt_key"])
        return _replay_stored(db_path, get_attempt_by_key(db_path, sub["attempt_key"]), config)
    except PersistenceError as e:
        logger.error("Could not store attempt %s", sub["attempt_key"], exc_info=True)
        result["errors"].append(str(e))
        return result
    result["persisted"] = True

    if sub["mode"] in PROGRESSION_MODES:
        try:
            progression = apply_progression(
                db_path, student_id, sub["subject"], summary["passed"], sub["attempt_key"],
                max_retries=config.max_retries,
            )
            result["progression"] = progression
            result["progression_applied"] = progression["applied"]
        except (NotFoundError, ConflictError, PersistenceError) as e:
            logger.error("Progression not applied for attempt %s: %s", sub["attempt_key"], e)
            result["errors"].append(f"Progression not applied: {e}")

    if sub["mode"] in TOPIC_MODES:
        try:
            topic_record = record_topic_attempt(
                db_path, student_id, sub["subject"], sub["topic"], summary["score_percentage"],
                created_at, completion_threshold=config.completion_threshold,
                max_retries=config.max_retries,
            )
            result["topic_progress"] = vars(topic_record)
        except (NotFoundError, ConflictError, PersistenceError) as e:
            logger.error("Topic progress not recorded for attempt %s: %s", sub["attempt_key"], e)
            result["errors"].append(f"Topic progress not recorded: {e}")

    return result
