"""
Exam Portal - Scoring
Band-score table, half-band rounding and exact answer comparison
"""
from decimal import ROUND_HALF_UP, Decimal

from exam_portal.schemas.exam import AnswerPayload, QuestionSpec
from exam_portal.services.errors import ValidationError


# Percentage lower bound -> band, evaluated top-down, first match wins.
# Policy constant shared with the reporting side; do not tune.
BAND_THRESHOLDS: tuple[tuple[float, float], ...] = (
    (90, 9.0),
    (85, 8.5),
    (80, 8.0),
    (75, 7.5),
    (70, 7.0),
    (65, 6.5),
    (60, 6.0),
    (55, 5.5),
    (50, 5.0),
    (45, 4.5),
    (40, 4.0),
    (35, 3.5),
    (30, 3.0),
    (25, 2.5),
    (20, 2.0),
)
MIN_BAND = 1.0
MAX_BAND = 9.0


def band_from_percentage(percentage: float) -> float:
    """Map a percentage of correct answers to a band score."""
    for lower_bound, band in BAND_THRESHOLDS:
        if percentage >= lower_bound:
            return band
    return MIN_BAND


def round_to_half(value: float) -> float:
    """Round to the nearest 0.5, halves going up (6.25 -> 6.5, 6.75 -> 7.0)."""
    doubled = Decimal(str(value)) * 2
    return float(doubled.quantize(Decimal("1"), rounding=ROUND_HALF_UP) / 2)


def answers_match(answer: AnswerPayload, correct: AnswerPayload | None) -> bool:
    """
    Exact comparison of a candidate answer against the key.
    
    No normalisation: case, whitespace and element order all count.
    Multi-blank answers get no partial credit.
    """
    if correct is None or answer.kind != correct.kind:
        return False
    
    if answer.kind == "text":
        return answer.value == correct.value
    if answer.kind == "choice":
        return answer.option_id == correct.option_id
    if answer.kind == "multi_choice":
        return list(answer.values) == list(correct.values)
    return answer.fields == correct.fields


def validate_answer(question: QuestionSpec, answer: AnswerPayload) -> None:
    """
    Check that an answer payload fits the question's declared type.
    
    Raises:
        ValidationError: If the payload kind is not accepted for the question type
    """
    kinds = question.answer_kinds
    if not kinds:
        raise ValidationError(f"Unknown question type '{question.question_type}'")
    
    if answer.kind not in kinds:
        raise ValidationError(
            f"Answer of kind '{answer.kind}' is not valid for "
            f"'{question.question_type}' questions (expected one of: {', '.join(sorted(kinds))})"
        )
    
    if answer.kind == "multi_choice" and not answer.values:
        raise ValidationError("Answer must contain at least one value")
