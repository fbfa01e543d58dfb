"""
Exam Portal - Scoring Tests
"""
import pytest

from exam_portal.schemas.exam import (
    ChoiceAnswer,
    Module,
    MultiChoiceAnswer,
    QuestionSpec,
    StructuredAnswer,
    TextAnswer,
)
from exam_portal.services.errors import ValidationError
from exam_portal.services.scoring import (
    BAND_THRESHOLDS,
    answers_match,
    band_from_percentage,
    round_to_half,
    validate_answer,
)


@pytest.mark.parametrize(
    "percentage,band",
    [
        (100, 9.0),
        (90, 9.0),
        (89.99, 8.5),
        (85, 8.5),
        (80, 8.0),
        (75, 7.5),
        (70, 7.0),
        (69.9, 6.5),
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
        (19.99, 1.0),
        (0, 1.0),
    ],
)
def test_band_table(percentage, band):
    assert band_from_percentage(percentage) == band


def test_band_table_is_monotonic_and_total():
    previous = None
    for step in range(0, 1001):
        percentage = step / 10
        band = band_from_percentage(percentage)
        assert 1.0 <= band <= 9.0
        if previous is not None:
            assert band >= previous
        previous = band


def test_band_thresholds_descend():
    bounds = [bound for bound, _ in BAND_THRESHOLDS]
    assert bounds == sorted(bounds, reverse=True)


@pytest.mark.parametrize(
    "value,expected",
    [
        (7.25, 7.5),   # mean of 7.0 and 7.5
        (7.0, 7.0),    # mean of 6.0, 7.0, 8.0
        (6.25, 6.5),
        (6.75, 7.0),
        (6.1, 6.0),
        (6.74, 6.5),
        (8.875, 9.0),
    ],
)
def test_round_to_half_goes_up_on_ties(value, expected):
    assert round_to_half(value) == expected


class TestAnswersMatch:
    def test_text_is_exact(self):
        assert answers_match(TextAnswer(value="river"), TextAnswer(value="river"))
        assert not answers_match(TextAnswer(value="River"), TextAnswer(value="river"))
        assert not answers_match(TextAnswer(value="river "), TextAnswer(value="river"))

    def test_choice(self):
        assert answers_match(ChoiceAnswer(option_id="B"), ChoiceAnswer(option_id="B"))
        assert not answers_match(ChoiceAnswer(option_id="A"), ChoiceAnswer(option_id="B"))

    def test_multi_choice_is_element_wise(self):
        key = MultiChoiceAnswer(values=["A", "C"])
        assert answers_match(MultiChoiceAnswer(values=["A", "C"]), key)
        assert not answers_match(MultiChoiceAnswer(values=["C", "A"]), key)
        assert not answers_match(MultiChoiceAnswer(values=["A"]), key)

    def test_no_partial_credit_for_blanks(self):
        key = MultiChoiceAnswer(values=["library", "tuesday", "7"])
        assert not answers_match(MultiChoiceAnswer(values=["library", "tuesday", "8"]), key)

    def test_structured(self):
        key = StructuredAnswer(fields={"1": "C", "2": "A"})
        assert answers_match(StructuredAnswer(fields={"2": "A", "1": "C"}), key)
        assert not answers_match(StructuredAnswer(fields={"1": "C", "2": "B"}), key)

    def test_kind_mismatch_never_matches(self):
        assert not answers_match(TextAnswer(value="B"), ChoiceAnswer(option_id="B"))

    def test_missing_key_never_matches(self):
        assert not answers_match(TextAnswer(value="anything"), None)


class TestValidateAnswer:
    def _question(self, question_type: str, module: Module = Module.LISTENING) -> QuestionSpec:
        return QuestionSpec(id="q", module=module, question_type=question_type)

    def test_accepts_matching_kind(self):
        validate_answer(self._question("multiple-choice-single"), ChoiceAnswer(option_id="A"))
        validate_answer(self._question("sentence-completion"), TextAnswer(value="river"))
        validate_answer(self._question("task-2-essay", Module.WRITING), TextAnswer(value="Essay..."))
        validate_answer(
            self._question("part-2-cue-card", Module.SPEAKING),
            StructuredAnswer(fields={"audio_file": "recordings/abc.webm"}),
        )

    def test_rejects_wrong_kind(self):
        with pytest.raises(ValidationError):
            validate_answer(self._question("sentence-completion"), ChoiceAnswer(option_id="A"))
        with pytest.raises(ValidationError):
            validate_answer(self._question("task-2-essay", Module.WRITING), ChoiceAnswer(option_id="A"))

    def test_rejects_unknown_question_type(self):
        with pytest.raises(ValidationError):
            validate_answer(self._question("crossword"), TextAnswer(value="x"))

    def test_rejects_empty_multi_choice(self):
        with pytest.raises(ValidationError):
            validate_answer(self._question("multiple-choice-multiple"), MultiChoiceAnswer(values=[]))
