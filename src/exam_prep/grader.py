"""Answer grading: letter/index normalization and per-question correctness."""
from typing import Optional

from exam_prep.models import LETTERS, Answer, Index, Letter, Question


def parse_answer(raw) -> Optional[Answer]:
    """Parse a stored or submitted answer into a Letter or an Index.

    Letters are accepted in either case, indices as ints or digit strings.
    Anything outside A-D / 0-3 returns None; this never raises.
    """
    if isinstance(raw, (Letter, Index)):
        return raw
    if isinstance(raw, bool) or raw is None:
        return None
    if isinstance(raw, int):
        return Index(raw) if 0 <= raw < len(LETTERS) else None
    if isinstance(raw, str):
        text = raw.strip()
        if text.upper() in LETTERS:
            return Letter(text.upper())
        if text.isdigit() and int(text) < len(LETTERS):
            return Index(int(text))
    return None


def to_index(answer: Answer) -> int:
    """Single normalization point: A=0, B=1, C=2, D=3."""
    if isinstance(answer, Letter):
        return LETTERS.index(answer.value)
    return answer.value


def render_like(answer: Answer, template: Optional[Answer]):
    """Render `answer` in the representation of `template` (letter or index)."""
    if isinstance(template, Letter):
        return LETTERS[to_index(answer)]
    if isinstance(template, Index):
        return to_index(answer)
    return str(answer) if isinstance(answer, Letter) else answer.value


def grade_answer(question: Optional[Question], selected) -> dict:
    """Grade one submitted value against a question.

    A missing question is incorrect and flagged `not_found`. A value that is
    not a valid letter or index is incorrect; None means unanswered.
    """
    if question is None:
        return {
            "is_correct": False,
            "selected_value": selected,
            "correct_value": None,
            "explanation": "",
            "not_found": True,
            "answered": selected is not None,
        }
    parsed = parse_answer(selected)
    correct = question.correct_option
    is_correct = parsed is not None and to_index(parsed) == to_index(correct)
    return {
        "is_correct": is_correct,
        "selected_value": selected,
        "correct_value": render_like(correct, parsed),
        "explanation": question.explanation or "",
        "not_found": False,
        "answered": selected is not None and selected != "",
    }
