"""
Exam Portal - Submission Schemas
The submission aggregate (one exam attempt) and the API request/response bodies around it
"""
from datetime import datetime, timedelta
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from exam_portal.schemas.exam import MODULES, AnswerPayload, Module


class SubmissionStatus(str, Enum):
    """Submission-level status. Only ever advances forward."""
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    GRADED = "graded"
    CANCELLED = "cancelled"


class ModuleProgress(str, Enum):
    """Per-module progress."""
    NOT_STARTED = "not-started"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


class GradingMethod(str, Enum):
    AUTO = "auto"
    MANUAL = "manual"
    HYBRID = "hybrid"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# ============================================================================
# Aggregate parts
# ============================================================================

class ModuleTiming(BaseModel):
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration: float | None = None  # seconds


class AnswerEntry(BaseModel):
    """One recorded response. Graded fields stay None until scoring runs."""
    question_id: str
    answer: AnswerPayload
    is_correct: bool | None = None
    score: float | None = None
    time_spent: float = 0  # seconds
    answered_at: datetime | None = None


class ObjectiveScore(BaseModel):
    """Listening / reading result."""
    raw_score: int = 0
    band_score: float | None = None
    total_questions: int = 0
    correct_answers: int = 0
    percentage: float = 0.0


class WritingScore(BaseModel):
    task1_score: float | None = Field(default=None, ge=0, le=9)
    task2_score: float | None = Field(default=None, ge=0, le=9)
    overall_score: float | None = Field(default=None, ge=0, le=9)
    task1_feedback: str | None = None
    task2_feedback: str | None = None


class SpeakingScore(BaseModel):
    overall_score: float | None = Field(default=None, ge=0, le=9)
    detailed_feedback: str | None = None


class OverallScore(BaseModel):
    band_score: float | None = None
    total_score: float | None = None
    max_possible_score: float | None = None


class Scores(BaseModel):
    listening: ObjectiveScore | None = None
    reading: ObjectiveScore | None = None
    writing: WritingScore | None = None
    speaking: SpeakingScore | None = None
    overall: OverallScore = Field(default_factory=OverallScore)


class SuspiciousActivity(BaseModel):
    type: str
    description: str = ""
    timestamp: datetime
    severity: Severity = Severity.LOW


class Integrity(BaseModel):
    full_screen_violations: int = 0
    tab_switch_violations: int = 0
    copy_paste_violations: int = 0
    right_click_violations: int = 0
    suspicious_activity: list[SuspiciousActivity] = []
    flagged_for_review: bool = False
    review_reason: str | None = None


class QualityCheck(BaseModel):
    performed: bool = False
    performed_by: str | None = None
    performed_at: datetime | None = None
    notes: str | None = None


class Grading(BaseModel):
    graded_by: str | None = None
    grading_method: GradingMethod = GradingMethod.AUTO
    grading_notes: str | None = None
    grading_time: float = 0  # minutes
    quality_check: QualityCheck = Field(default_factory=QualityCheck)


class Feedback(BaseModel):
    general: str | None = None
    listening: str | None = None
    reading: str | None = None
    writing: str | None = None
    speaking: str | None = None
    improvement_suggestions: list[str] = []
    study_recommendations: list[str] = []


def _module_map(factory):
    return lambda: {m: factory() for m in MODULES}


class SubmissionAnalytics(BaseModel):
    """Time spent per module and per answered question."""
    total_time_spent: float = 0  # seconds
    average_time_per_question: float = 0
    time_distribution: dict[Module, float] = {}


class SubmissionState(BaseModel):
    """
    One candidate's attempt at one exam.

    This is the aggregate mutated by SubmissionLifecycle; the database row
    in models.submission is only its persisted form.
    """
    id: str
    user_id: str
    exam_id: str
    ticket_id: str

    status: SubmissionStatus = SubmissionStatus.IN_PROGRESS
    progress: dict[Module, ModuleProgress] = Field(
        default_factory=_module_map(lambda: ModuleProgress.NOT_STARTED)
    )
    module_timing: dict[Module, ModuleTiming] = Field(default_factory=_module_map(ModuleTiming))
    answers: dict[Module, list[AnswerEntry]] = Field(default_factory=_module_map(list))
    scores: Scores = Field(default_factory=Scores)
    integrity: Integrity = Field(default_factory=Integrity)
    grading: Grading = Field(default_factory=Grading)
    feedback: Feedback = Field(default_factory=Feedback)

    started_at: datetime | None = None
    ends_at: datetime | None = None
    completed_at: datetime | None = None
    submitted_at: datetime | None = None
    graded_at: datetime | None = None
    cancelled_at: datetime | None = None

    # Overall band last reported to exam statistics; None until counted
    counted_band_score: float | None = None

    @property
    def all_modules_completed(self) -> bool:
        return all(self.progress.get(m) == ModuleProgress.COMPLETED for m in MODULES)

    @property
    def completion_percentage(self) -> float:
        done = sum(1 for m in MODULES if self.progress.get(m) == ModuleProgress.COMPLETED)
        return done / len(MODULES) * 100

    @property
    def total_time_spent(self) -> float:
        return sum(t.duration or 0 for t in self.module_timing.values())

    @property
    def analytics(self) -> SubmissionAnalytics:
        answered = [entry for entries in self.answers.values() for entry in entries]
        total = self.total_time_spent
        return SubmissionAnalytics(
            total_time_spent=total,
            average_time_per_question=total / len(answered) if answered else 0,
            time_distribution={m: self.module_timing[m].duration or 0 for m in MODULES if m in self.module_timing},
        )

    def is_expired(self, now: datetime, grace_seconds: int = 0) -> bool:
        """Whether the attempt's wall-clock window has closed."""
        if self.ends_at is None:
            return False
        return now > self.ends_at + timedelta(seconds=grace_seconds)


# ============================================================================
# Requests
# ============================================================================

class ModuleRequest(BaseModel):
    module: Module


class SaveAnswerRequest(BaseModel):
    module: Module
    question_id: str = Field(..., min_length=1)
    answer: AnswerPayload
    time_spent: float = Field(default=0, ge=0)


class ViolationRequest(BaseModel):
    type: str = Field(..., min_length=1, max_length=50)
    description: str = ""
    # Unknown values are recorded as low rather than rejected
    severity: str = Severity.LOW.value


class ManualScoresUpdate(BaseModel):
    """Admin-supplied subjective scores."""
    writing: WritingScore | None = None
    speaking: SpeakingScore | None = None


class FeedbackUpdate(BaseModel):
    """Partial feedback; only fields that are set get merged."""
    general: str | None = None
    listening: str | None = None
    reading: str | None = None
    writing: str | None = None
    speaking: str | None = None
    improvement_suggestions: list[str] | None = None
    study_recommendations: list[str] | None = None


class GradeRequest(BaseModel):
    scores: ManualScoresUpdate
    feedback: FeedbackUpdate = Field(default_factory=FeedbackUpdate)
    grading_notes: str | None = None


class ManualScoreRequest(BaseModel):
    module: Module
    writing: WritingScore | None = None
    speaking: SpeakingScore | None = None


class FlagRequest(BaseModel):
    reason: str = Field(..., min_length=1)


class QualityCheckRequest(BaseModel):
    notes: str | None = None


# ============================================================================
# Responses
# ============================================================================

class SubmissionResponse(BaseModel):
    """Full submission view."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    exam_id: str
    ticket_id: str
    status: SubmissionStatus
    progress: dict[Module, ModuleProgress]
    module_timing: dict[Module, ModuleTiming]
    answers: dict[Module, list[AnswerEntry]]
    scores: Scores
    integrity: Integrity
    grading: Grading
    feedback: Feedback
    started_at: datetime | None = None
    ends_at: datetime | None = None
    completed_at: datetime | None = None
    submitted_at: datetime | None = None
    graded_at: datetime | None = None
    cancelled_at: datetime | None = None
    completion_percentage: float
    total_time_spent: float
    analytics: SubmissionAnalytics


class SubmissionSummary(BaseModel):
    """Submission listing entry."""
    id: str
    exam_id: str
    exam_title: str | None = None
    ticket_id: str
    status: SubmissionStatus
    progress: dict[Module, ModuleProgress]
    overall_band_score: float | None = None
    flagged_for_review: bool = False
    started_at: datetime | None = None
    completed_at: datetime | None = None


class SubmissionPage(BaseModel):
    submissions: list[SubmissionSummary]
    total: int
    total_pages: int
    current_page: int


class AnswerReview(BaseModel):
    """One answer alongside the correct answer, for the result page."""
    question_id: str
    user_answer: AnswerPayload
    correct_answer: AnswerPayload | None = None
    is_correct: bool | None = None
    score: float | None = None
    time_spent: float = 0


class SubmissionResult(BaseModel):
    submission: SubmissionResponse
    review: dict[Module, list[AnswerReview]]
    feedback: Feedback


class StatusStatistics(BaseModel):
    status: SubmissionStatus
    count: int
    average_band_score: float | None = None
    average_time: float | None = None  # seconds


class ModuleStatistics(BaseModel):
    """Average module bands for one exam."""
    exam_id: str
    exam_title: str | None = None
    submissions: int
    average_listening: float | None = None
    average_reading: float | None = None
    average_writing: float | None = None
    average_speaking: float | None = None


class SubmissionStatistics(BaseModel):
    status_stats: list[StatusStatistics]
    module_stats: list[ModuleStatistics]


class UserStats(BaseModel):
    total_graded: int = 0
    average_band_score: float | None = None
    best_band_score: float | None = None
    average_time: float | None = None  # seconds


def submission_response(state: SubmissionState) -> SubmissionResponse:
    """Build the API view of a submission, including derived fields."""
    return SubmissionResponse(
        **state.model_dump(),
        completion_percentage=state.completion_percentage,
        total_time_spent=state.total_time_spent,
        analytics=state.analytics,
    )

