"""
Exam Portal - Submission Lifecycle Engine
State machine for one exam attempt: module progress, timing, answers,
auto/manual scoring, band aggregation and integrity tracking.

The engine is pure: it mutates an in-memory SubmissionState and records
SubmissionEvents. Loading and saving is SubmissionService's job.
"""
import logging
from collections.abc import Callable
from datetime import datetime, timezone

from exam_portal.schemas.exam import (
    MODULES,
    OBJECTIVE_MODULES,
    SUBJECTIVE_MODULES,
    AnswerPayload,
    Module,
    QuestionBank,
)
from exam_portal.schemas.submission import (
    AnswerEntry,
    FeedbackUpdate,
    Grading,
    GradingMethod,
    ManualScoresUpdate,
    ModuleProgress,
    ModuleTiming,
    ObjectiveScore,
    OverallScore,
    QualityCheck,
    Severity,
    SpeakingScore,
    SubmissionState,
    SubmissionStatus,
    SuspiciousActivity,
    WritingScore,
)
from exam_portal.services.errors import (
    IncompleteExamError,
    InvalidStateError,
    NotFoundError,
    SubmissionError,
    ValidationError,
)
from exam_portal.services.events import SubmissionEvent, SubmissionEventType
from exam_portal.services.scoring import MAX_BAND, answers_match, band_from_percentage, round_to_half

__all__ = [
    "SubmissionLifecycle",
    "SubmissionError",
    "NotFoundError",
    "InvalidStateError",
    "IncompleteExamError",
    "ValidationError",
    "VIOLATION_COUNTERS",
    "utcnow",
]

logger = logging.getLogger(__name__)


# Client-reported violation type -> Integrity counter
VIOLATION_COUNTERS = {
    "fullScreen": "full_screen_violations",
    "tabSwitch": "tab_switch_violations",
    "copyPaste": "copy_paste_violations",
    "rightClick": "right_click_violations",
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SubmissionLifecycle:
    """
    Applies lifecycle operations to one submission.

    Status only moves forward: in-progress -> completed -> graded, with
    cancelled as a terminal exit from in-progress. Out-of-order calls raise
    typed errors and leave the submission untouched.

    Usage:
        lifecycle = SubmissionLifecycle(state)
        lifecycle.start_module("listening")
        lifecycle.record_answer("listening", "q1", TextAnswer(value="river"))
        lifecycle.complete_module("listening")
        for event in lifecycle.events:
            ...
    """

    def __init__(
        self,
        submission: SubmissionState,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.submission = submission
        self.clock = clock
        self.events: list[SubmissionEvent] = []

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _emit(self, event_type: SubmissionEventType, **payload) -> None:
        self.events.append(SubmissionEvent(
            type=event_type,
            submission_id=self.submission.id,
            exam_id=self.submission.exam_id,
            user_id=self.submission.user_id,
            occurred_at=self.clock(),
            payload=payload,
        ))

    def _require_status(self, action: str, *allowed: SubmissionStatus) -> None:
        if self.submission.status not in allowed:
            raise InvalidStateError(
                f"Cannot {action}: submission is {self.submission.status.value}"
            )

    def _report_band(self, event_type: SubmissionEventType, **payload) -> None:
        """Emit a scoring event carrying the band last counted by exam statistics."""
        band = self.submission.scores.overall.band_score
        self._emit(
            event_type,
            band_score=band,
            previous_band_score=self.submission.counted_band_score,
            completion_time=self.submission.total_time_spent,
            **payload,
        )
        if band is not None:
            self.submission.counted_band_score = band

    @staticmethod
    def _module(module: Module | str) -> Module:
        try:
            return Module(module)
        except ValueError:
            raise NotFoundError(f"Unknown module '{module}'") from None

    # ------------------------------------------------------------------
    # Progress and answers
    # ------------------------------------------------------------------

    def start_module(self, module: Module | str) -> None:
        """Mark a module in progress and stamp its start time once."""
        m = self._module(module)
        self._require_status(f"start {m.value}", SubmissionStatus.IN_PROGRESS)

        progress = self.submission.progress.get(m, ModuleProgress.NOT_STARTED)
        if progress == ModuleProgress.COMPLETED:
            raise InvalidStateError(f"Module {m.value} is already completed")

        timing = self.submission.module_timing.setdefault(m, ModuleTiming())
        if progress == ModuleProgress.IN_PROGRESS and timing.started_at is not None:
            return

        self.submission.progress[m] = ModuleProgress.IN_PROGRESS
        if timing.started_at is None:
            timing.started_at = self.clock()
        self._emit(SubmissionEventType.MODULE_STARTED, module=m.value)

    def record_answer(
        self,
        module: Module | str,
        question_id: str,
        answer: AnswerPayload,
        time_spent: float = 0,
    ) -> AnswerEntry:
        """
        Store a response, replacing any earlier one for the same question.

        The answer is not graded here; see score_objective_module.
        """
        m = self._module(module)
        if not question_id:
            raise NotFoundError("Question ID is required")
        self._require_status("record an answer", SubmissionStatus.IN_PROGRESS)

        entry = AnswerEntry(
            question_id=question_id,
            answer=answer,
            time_spent=time_spent or 0,
            answered_at=self.clock(),
        )

        entries = self.submission.answers.setdefault(m, [])
        for index, existing in enumerate(entries):
            if existing.question_id == question_id:
                entries[index] = entry
                return entry

        entries.append(entry)
        return entry

    def complete_module(self, module: Module | str) -> None:
        """
        Mark a module completed and derive its duration.

        Completing the last module is what moves the submission to completed.
        Repeating the call on a completed module changes nothing.
        """
        m = self._module(module)
        self._require_status(
            f"complete {m.value}",
            SubmissionStatus.IN_PROGRESS,
            SubmissionStatus.COMPLETED,
        )

        if self.submission.progress.get(m) == ModuleProgress.COMPLETED:
            return

        now = self.clock()
        timing = self.submission.module_timing.setdefault(m, ModuleTiming())
        timing.completed_at = now
        # Missing start time: timing is telemetry, not worth failing over
        if timing.started_at is not None:
            timing.duration = max((now - timing.started_at).total_seconds(), 0.0)
        else:
            timing.duration = 0.0

        self.submission.progress[m] = ModuleProgress.COMPLETED
        self._emit(SubmissionEventType.MODULE_COMPLETED, module=m.value, duration=timing.duration)

        if self.submission.all_modules_completed:
            self.submission.status = SubmissionStatus.COMPLETED
            self.submission.completed_at = now
            self._emit(SubmissionEventType.SUBMISSION_COMPLETED)
            logger.info(f"Submission {self.submission.id} completed all modules")

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def score_objective_module(self, module: Module | str, question_bank: QuestionBank) -> ObjectiveScore:
        """
        Auto-grade listening or reading against the question bank.

        Every recorded answer counts as one question; correctness is exact
        equality with the key.
        """
        m = self._module(module)
        if m not in OBJECTIVE_MODULES:
            raise ValidationError(f"Module {m.value} cannot be auto-graded")

        entries = self.submission.answers.get(m, [])
        questions = []
        for entry in entries:
            question = question_bank.get(entry.question_id)
            if question is None:
                raise NotFoundError(f"Question {entry.question_id} not found")
            questions.append(question)

        correct_answers = 0
        for entry, question in zip(entries, questions):
            entry.is_correct = answers_match(entry.answer, question.correct_answer)
            entry.score = question.points if entry.is_correct else 0
            if entry.is_correct:
                correct_answers += 1

        total_questions = len(entries)
        percentage = correct_answers * 100 / total_questions if total_questions else 0.0

        score = ObjectiveScore(
            raw_score=correct_answers,
            band_score=band_from_percentage(percentage),
            total_questions=total_questions,
            correct_answers=correct_answers,
            percentage=percentage,
        )
        setattr(self.submission.scores, m.value, score)
        return score

    def record_manual_score(
        self,
        module: Module | str,
        score: WritingScore | SpeakingScore,
    ) -> None:
        """Write examiner scores for writing or speaking once the candidate is done."""
        m = self._module(module)
        if m not in SUBJECTIVE_MODULES:
            raise ValidationError(f"Module {m.value} is auto-graded")
        self._require_status(
            "record manual scores",
            SubmissionStatus.COMPLETED,
            SubmissionStatus.GRADED,
        )

        expected = WritingScore if m == Module.WRITING else SpeakingScore
        if not isinstance(score, expected):
            raise ValidationError(f"Expected {expected.__name__} for {m.value}")

        setattr(self.submission.scores, m.value, score.model_copy())

    def compute_overall_score(self) -> OverallScore:
        """
        Average whichever module scores are present, rounded to the nearest half band.

        Zero counts as unset. With nothing present the overall score is left alone.
        """
        scores = self.submission.scores
        candidates = [
            scores.listening.band_score if scores.listening else None,
            scores.reading.band_score if scores.reading else None,
            scores.writing.overall_score if scores.writing else None,
            scores.speaking.overall_score if scores.speaking else None,
        ]
        collected = [value for value in candidates if value]

        if not collected:
            return scores.overall

        total = sum(collected)
        scores.overall = OverallScore(
            band_score=round_to_half(total / len(collected)),
            total_score=total,
            max_possible_score=MAX_BAND * len(collected),
        )
        return scores.overall

    def rescore(self) -> OverallScore:
        """
        Recompute the overall band after a score correction.

        Once the attempt is submitted, a changed band is reported as
        score_revised so exam statistics follow it.
        """
        overall = self.compute_overall_score()
        if (
            self.submission.submitted_at is not None
            and overall.band_score is not None
            and overall.band_score != self.submission.counted_band_score
        ):
            self._report_band(SubmissionEventType.SCORE_REVISED)
        return overall

    # ------------------------------------------------------------------
    # Submit and grade
    # ------------------------------------------------------------------

    def finalize(self, question_bank: QuestionBank) -> None:
        """
        Submit the attempt: auto-grade objective modules and aggregate.

        Raises:
            IncompleteExamError: If any module is not completed
            InvalidStateError: If the submission was graded or cancelled
        """
        self._require_status(
            "submit",
            SubmissionStatus.IN_PROGRESS,
            SubmissionStatus.COMPLETED,
        )
        if self.submission.submitted_at is not None:
            raise InvalidStateError("Submission has already been submitted")
        if not self.submission.all_modules_completed:
            pending = [
                m.value for m in MODULES
                if self.submission.progress.get(m) != ModuleProgress.COMPLETED
            ]
            raise IncompleteExamError(
                f"All modules must be completed before submission (pending: {', '.join(pending)})"
            )

        for m in (Module.LISTENING, Module.READING):
            if self.submission.answers.get(m):
                self.score_objective_module(m, question_bank)

        self.compute_overall_score()

        now = self.clock()
        self.submission.status = SubmissionStatus.COMPLETED
        if self.submission.completed_at is None:
            self.submission.completed_at = now
        self.submission.submitted_at = now

        self._report_band(SubmissionEventType.SUBMISSION_FINALIZED)

    def grade(
        self,
        grader_id: str,
        scores: ManualScoresUpdate | None = None,
        feedback: FeedbackUpdate | None = None,
        notes: str | None = None,
    ) -> None:
        """Apply an examiner's manual grading and move the submission to graded."""
        self._require_status("grade", SubmissionStatus.COMPLETED)

        current = self.submission.scores
        if scores is not None:
            if scores.writing is not None:
                base = current.writing or WritingScore()
                current.writing = base.model_copy(update=scores.writing.model_dump(exclude_unset=True))
            if scores.speaking is not None:
                base = current.speaking or SpeakingScore()
                current.speaking = base.model_copy(update=scores.speaking.model_dump(exclude_unset=True))

        if feedback is not None:
            self.submission.feedback = self.submission.feedback.model_copy(
                update=feedback.model_dump(exclude_none=True)
            )

        previous = self.submission.grading
        self.submission.grading = Grading(
            graded_by=grader_id,
            grading_method=GradingMethod.MANUAL,
            grading_notes=notes or previous.grading_notes,
            grading_time=previous.grading_time,
            quality_check=previous.quality_check,
        )

        overall = self.compute_overall_score()
        self.submission.status = SubmissionStatus.GRADED
        self.submission.graded_at = self.clock()

        self._report_band(SubmissionEventType.SUBMISSION_GRADED, graded_by=grader_id)
        logger.info(f"Submission {self.submission.id} graded by {grader_id}: band {overall.band_score}")

    def record_quality_check(self, reviewer_id: str, notes: str | None = None) -> None:
        """Record a second-examiner check on a graded submission."""
        self._require_status("record a quality check", SubmissionStatus.GRADED)
        self.submission.grading.quality_check = QualityCheck(
            performed=True,
            performed_by=reviewer_id,
            performed_at=self.clock(),
            notes=notes,
        )

    def cancel(self) -> None:
        """Abandon an attempt. The record is kept."""
        self._require_status("cancel", SubmissionStatus.IN_PROGRESS)
        self.submission.status = SubmissionStatus.CANCELLED
        self.submission.cancelled_at = self.clock()
        self._emit(SubmissionEventType.SUBMISSION_CANCELLED)

    # ------------------------------------------------------------------
    # Integrity
    # ------------------------------------------------------------------

    def record_violation(
        self,
        violation_type: str,
        description: str = "",
        severity: Severity | str = Severity.LOW,
    ) -> SuspiciousActivity:
        """
        Log a proctoring event and bump its counter.

        Unknown violation types are still logged, just not counted. Unknown
        severities are recorded as low.
        """
        self._require_status(
            "record a violation",
            SubmissionStatus.IN_PROGRESS,
            SubmissionStatus.COMPLETED,
        )
        try:
            severity = Severity(severity)
        except ValueError:
            logger.warning(
                f"Unknown severity '{severity}' on submission {self.submission.id}, recorded as low"
            )
            severity = Severity.LOW

        activity = SuspiciousActivity(
            type=violation_type,
            description=description,
            timestamp=self.clock(),
            severity=severity,
        )
        integrity = self.submission.integrity
        integrity.suspicious_activity.append(activity)

        counter = VIOLATION_COUNTERS.get(violation_type)
        if counter:
            setattr(integrity, counter, getattr(integrity, counter) + 1)
        else:
            logger.info(
                f"Uncounted violation type '{violation_type}' on submission {self.submission.id}"
            )

        self._emit(
            SubmissionEventType.VIOLATION_RECORDED,
            violation_type=violation_type,
            severity=severity.value,
        )
        return activity

    def flag_for_review(self, reason: str) -> None:
        """Flag for manual review. Allowed in any status; does not change it."""
        integrity = self.submission.integrity
        if integrity.flagged_for_review and integrity.review_reason == reason:
            return

        integrity.flagged_for_review = True
        integrity.review_reason = reason
        self._emit(SubmissionEventType.SUBMISSION_FLAGGED, reason=reason)
