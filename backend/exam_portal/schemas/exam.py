"""
Exam Portal - Exam Schemas
Read-only exam definitions and question bank entries consumed by the submission engine
"""
import uuid
from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class Module(str, Enum):
    """The four exam skill areas."""
    LISTENING = "listening"
    READING = "reading"
    WRITING = "writing"
    SPEAKING = "speaking"


MODULES: tuple[Module, ...] = (Module.LISTENING, Module.READING, Module.WRITING, Module.SPEAKING)
OBJECTIVE_MODULES = frozenset({Module.LISTENING, Module.READING})
SUBJECTIVE_MODULES = frozenset({Module.WRITING, Module.SPEAKING})


# ============================================================================
# Answer payloads
# ============================================================================

class TextAnswer(BaseModel):
    """Free text: completion blanks, short answers, essays."""
    kind: Literal["text"] = "text"
    value: str


class ChoiceAnswer(BaseModel):
    """A single selected option."""
    kind: Literal["choice"] = "choice"
    option_id: str


class MultiChoiceAnswer(BaseModel):
    """Several options or blanks, compared element-wise."""
    kind: Literal["multi_choice"] = "multi_choice"
    values: list[str]


class StructuredAnswer(BaseModel):
    """Keyed answers such as matching pairs or an audio reference."""
    kind: Literal["structured"] = "structured"
    fields: dict[str, str | int | float | bool | list[str] | None]


AnswerPayload = Annotated[
    Union[TextAnswer, ChoiceAnswer, MultiChoiceAnswer, StructuredAnswer],
    Field(discriminator="kind"),
]

AnswerKind = Literal["text", "choice", "multi_choice", "structured"]


# Question type -> payload kinds a candidate may submit for it
QUESTION_TYPE_ANSWER_KINDS: dict[str, frozenset[str]] = {
    # Listening
    "multiple-choice-single": frozenset({"choice"}),
    "multiple-choice-multiple": frozenset({"multi_choice"}),
    "matching": frozenset({"structured", "multi_choice"}),
    "plan-map-diagram-labeling": frozenset({"structured", "multi_choice"}),
    "form-note-table-flowchart-summary-completion": frozenset({"text", "multi_choice"}),
    "sentence-completion": frozenset({"text", "multi_choice"}),
    # Reading
    "multiple-choice": frozenset({"choice", "multi_choice"}),
    "identifying-information": frozenset({"choice"}),
    "identifying-writers-views": frozenset({"choice"}),
    "matching-headings": frozenset({"structured", "multi_choice"}),
    "matching-features": frozenset({"structured", "multi_choice"}),
    "matching-sentence-endings": frozenset({"structured", "multi_choice"}),
    "summary-note-table-flowchart-completion": frozenset({"text", "multi_choice"}),
    "diagram-label-completion": frozenset({"text", "multi_choice"}),
    "short-answer-questions": frozenset({"text", "multi_choice"}),
    # Writing
    "task-1-academic": frozenset({"text"}),
    "task-1-general": frozenset({"text"}),
    "task-2-essay": frozenset({"text"}),
    # Speaking
    "warm-up": frozenset({"text", "structured"}),
    "part-1": frozenset({"text", "structured"}),
    "part-2-cue-card": frozenset({"text", "structured"}),
    "part-3-discussion": frozenset({"text", "structured"}),
}


# ============================================================================
# Exam definition
# ============================================================================

class ModuleSettings(BaseModel):
    """Per-module exam settings."""
    enabled: bool = True
    duration_minutes: int = Field(default=0, ge=0)


class ExamStatistics(BaseModel):
    """Running aggregates maintained from submission events."""
    total_attempts: int = 0
    average_score: float = 0.0
    pass_rate: float = 0.0
    average_completion_time: float = 0.0  # seconds


class ExamDefinition(BaseModel):
    """An exam as seen by the submission engine."""
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    title: str
    exam_type: str = "academic"
    modules: dict[Module, ModuleSettings]
    question_ids: list[str] = []
    is_free: bool = True
    price: float = 0.0
    is_active: bool = True

    @property
    def enabled_modules(self) -> list[Module]:
        return [m for m in MODULES if m in self.modules and self.modules[m].enabled]

    @property
    def total_duration_minutes(self) -> int:
        return sum(self.modules[m].duration_minutes for m in self.enabled_modules)


class QuestionSpec(BaseModel):
    """A question bank entry: what is needed to validate and grade an answer."""
    id: str
    module: Module
    question_type: str
    correct_answer: AnswerPayload | None = None
    points: float = 1.0

    @property
    def answer_kinds(self) -> frozenset[str]:
        return QUESTION_TYPE_ANSWER_KINDS.get(self.question_type, frozenset())


QuestionBank = dict[str, QuestionSpec]


# ============================================================================
# API responses
# ============================================================================

class ExamSummary(BaseModel):
    """Exam listing entry."""
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    title: str
    exam_type: str
    is_free: bool
    price: float
    total_duration_minutes: int
    enabled_modules: list[Module]


class ExamDetail(ExamSummary):
    """Exam with module settings and statistics."""
    modules: dict[Module, ModuleSettings]
    total_questions: int
    statistics: ExamStatistics
    created_at: datetime | None = None


class ExamStartResponse(BaseModel):
    """Response when an attempt is started."""
    submission_id: uuid.UUID
    ticket_id: str
    started_at: datetime
    ends_at: datetime | None = None
    duration_minutes: int
