"""Score aggregation for graded tests."""
import math

from exam_prep.errors import InvalidInputError

SCORING_MODES = ("percentage", "negative-marking")


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def aggregate_scores(
    results: list,
    scoring_mode: str = "percentage",
    pass_threshold: float = 70,
    correct_marks: int = 4,
    incorrect_marks: int = -1,
) -> dict:
    """Turn per-question results into counts, a percentage and a pass flag.

    Args:
        results: Ordered list with True (correct), False (incorrect) or
            None (unanswered) per presented question.
        scoring_mode: "percentage" counts correct answers only;
            "negative-marking" awards correct_marks per correct answer and
            incorrect_marks per incorrect one, normalized against the
            maximum possible score.
        pass_threshold: Minimum percentage for `passed`.

    Returns:
        Dict with correct/incorrect/unanswered counts, raw score, max score,
        score_percentage and passed. An empty list gives the zero state.
    """
    if scoring_mode not in SCORING_MODES:
        raise InvalidInputError(f"Unknown scoring mode: {scoring_mode!r}")

    correct = sum(1 for r in results if r is True)
    incorrect = sum(1 for r in results if r is False)
    unanswered = len(results) - correct - incorrect
    total = len(results)

    if scoring_mode == "negative-marking":
        score = correct * correct_marks + incorrect * incorrect_marks
        max_score = total * correct_marks
    else:
        score = correct
        max_score = total

    percentage = round_half_up(100 * score / max_score) if max_score else 0
    return {
        "correct_count": correct,
        "incorrect_count": incorrect,
        "unanswered_count": unanswered,
        "total_questions": total,
        "score": score,
        "max_score": max_score,
        "score_percentage": percentage,
        "passed": total > 0 and percentage >= pass_threshold,
    }


def score_from_outcomes(outcomes: list, score: int | None = None, max_score: int | None = None) -> int:
    """Percentage for a stored attempt.

    Uses the stored raw score when there is one, so negative-marked attempts
    keep their marking; otherwise counts correct outcomes.
    """
    if score is not None and max_score:
        return round_half_up(100 * score / max_score)
    if not outcomes:
        return 0
    correct = sum(1 for o in outcomes if o.get("is_correct"))
    return round_half_up(100 * correct / len(outcomes))
