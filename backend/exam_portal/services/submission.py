"""
Exam Portal - Submission Service
Load-mutate-save orchestration of the submission lifecycle against the database
"""
import logging
import math
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from exam_portal.core.config import settings
from exam_portal.models.exam import Exam, Question
from exam_portal.models.submission import Submission
from exam_portal.schemas.exam import OBJECTIVE_MODULES, ExamDefinition, Module, QuestionBank
from exam_portal.schemas.submission import (
    AnswerEntry,
    AnswerReview,
    FeedbackUpdate,
    ManualScoreRequest,
    ManualScoresUpdate,
    ModuleStatistics,
    SaveAnswerRequest,
    StatusStatistics,
    SubmissionPage,
    SubmissionResult,
    SubmissionState,
    SubmissionStatistics,
    SubmissionStatus,
    SubmissionSummary,
    SuspiciousActivity,
    UserStats,
    ViolationRequest,
    submission_response,
)
from exam_portal.services.errors import InvalidStateError, NotFoundError, ValidationError
from exam_portal.services.events import SubmissionEvent
from exam_portal.services.exam_stats import SCORING_EVENTS, ExamStatisticsCollector
from exam_portal.services.lifecycle import SubmissionLifecycle, utcnow
from exam_portal.services.scoring import validate_answer

logger = logging.getLogger(__name__)


def _parse_id(value: uuid.UUID | str, kind: str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise NotFoundError(f"{kind} not found") from None


def _new_ticket_id() -> str:
    return f"TKT-{uuid.uuid4().hex[:10].upper()}"


def _average(values) -> float | None:
    present = [v for v in values if v is not None]
    return sum(present) / len(present) if present else None


class ExamCatalog:
    """Read access to exam definitions and the question bank."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_exam_row(self, exam_id: uuid.UUID | str) -> Exam:
        exam = await self.db.get(Exam, _parse_id(exam_id, "Exam"))
        if not exam:
            raise NotFoundError("Exam not found")
        return exam

    async def get_exam(self, exam_id: uuid.UUID | str) -> ExamDefinition:
        exam = await self.get_exam_row(exam_id)
        return exam.to_definition()

    async def list_active(self) -> list[Exam]:
        result = await self.db.execute(
            select(Exam)
            .where(Exam.is_active.is_(True))
            .order_by(Exam.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_questions(self, question_ids: list[str]) -> QuestionBank:
        """Look up questions by id. Unknown or malformed ids are simply absent."""
        ids = []
        for question_id in question_ids:
            try:
                ids.append(uuid.UUID(str(question_id)))
            except ValueError:
                continue
        if not ids:
            return {}

        result = await self.db.execute(select(Question).where(Question.id.in_(ids)))
        return {str(q.id): q.to_spec() for q in result.scalars().all()}


class SubmissionRepository:
    """Persistence for submissions: one row per attempt."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_row(
        self,
        submission_id: uuid.UUID | str,
        user_id: uuid.UUID | str | None = None,
    ) -> Submission:
        """
        Fetch a submission row.

        With user_id, submissions owned by other users are reported as missing.
        """
        query = select(Submission).where(Submission.id == _parse_id(submission_id, "Submission"))
        if user_id is not None:
            query = query.where(Submission.user_id == _parse_id(user_id, "Submission"))

        result = await self.db.execute(query)
        row = result.scalar_one_or_none()
        if not row:
            raise NotFoundError("Submission not found")
        return row

    async def load(
        self,
        submission_id: uuid.UUID | str,
        user_id: uuid.UUID | str | None = None,
    ) -> tuple[Submission, SubmissionState]:
        row = await self.get_row(submission_id, user_id)
        return row, row.to_state()

    async def save(self, row: Submission, state: SubmissionState) -> None:
        row.apply_state(state)
        self.db.add(row)
        await self.db.flush()

    async def find_open_attempt(self, user_id: uuid.UUID, exam_id: uuid.UUID) -> Submission | None:
        """An in-progress or completed attempt by this user at this exam."""
        result = await self.db.execute(
            select(Submission)
            .where(
                Submission.user_id == user_id,
                Submission.exam_id == exam_id,
                Submission.status.in_([
                    SubmissionStatus.IN_PROGRESS.value,
                    SubmissionStatus.COMPLETED.value,
                ]),
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def search(
        self,
        user_id: uuid.UUID | None = None,
        exam_id: uuid.UUID | None = None,
        status: SubmissionStatus | None = None,
        flagged: bool | None = None,
        page: int = 1,
        limit: int | None = None,
    ) -> tuple[list[Submission], int]:
        """Filtered, newest-first page of submissions plus the total match count."""
        filters = []
        if user_id is not None:
            filters.append(Submission.user_id == user_id)
        if exam_id is not None:
            filters.append(Submission.exam_id == exam_id)
        if status is not None:
            filters.append(Submission.status == status.value)
        if flagged is not None:
            filters.append(Submission.flagged_for_review.is_(flagged))

        total = (await self.db.execute(
            select(func.count(Submission.id)).where(*filters)
        )).scalar() or 0

        query = select(Submission).where(*filters).order_by(Submission.started_at.desc())
        if limit is not None:
            query = query.limit(limit).offset((page - 1) * limit)

        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    @staticmethod
    def _started_between(start_date: datetime | None, end_date: datetime | None) -> list:
        filters = []
        if start_date is not None:
            filters.append(Submission.started_at >= start_date)
        if end_date is not None:
            filters.append(Submission.started_at <= end_date)
        return filters

    async def status_statistics(
        self,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> list[StatusStatistics]:
        result = await self.db.execute(
            select(
                Submission.status,
                func.count(Submission.id),
                func.avg(Submission.overall_band_score),
                func.avg(Submission.total_time_spent),
            )
            .where(*self._started_between(start_date, end_date))
            .group_by(Submission.status)
        )
        return [
            StatusStatistics(status=status, count=count, average_band_score=average, average_time=time)
            for status, count, average, time in result.all()
        ]

    async def module_statistics(
        self,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> list[ModuleStatistics]:
        """Per exam: submission count and the average band of each module."""
        result = await self.db.execute(
            select(Submission)
            .where(*self._started_between(start_date, end_date))
            .order_by(Submission.started_at)
        )
        by_exam: dict[uuid.UUID, list[Submission]] = {}
        for row in result.scalars().all():
            by_exam.setdefault(row.exam_id, []).append(row)

        stats = []
        for exam_id, rows in by_exam.items():
            scores = [row.to_state().scores for row in rows]
            stats.append(ModuleStatistics(
                exam_id=str(exam_id),
                exam_title=rows[0].exam.title if rows[0].exam else None,
                submissions=len(rows),
                average_listening=_average(s.listening.band_score for s in scores if s.listening),
                average_reading=_average(s.reading.band_score for s in scores if s.reading),
                average_writing=_average(s.writing.overall_score for s in scores if s.writing),
                average_speaking=_average(s.speaking.overall_score for s in scores if s.speaking),
            ))
        return stats

    async def user_stats(self, user_id: uuid.UUID) -> UserStats:
        result = await self.db.execute(
            select(
                func.count(Submission.id),
                func.avg(Submission.overall_band_score),
                func.max(Submission.overall_band_score),
                func.avg(Submission.total_time_spent),
            ).where(
                Submission.user_id == user_id,
                Submission.status == SubmissionStatus.GRADED.value,
            )
        )
        count, average, best, time = result.one()
        return UserStats(
            total_graded=count or 0,
            average_band_score=average,
            best_band_score=best,
            average_time=time,
        )


class SubmissionService:
    """
    Runs each lifecycle operation as one load-mutate-save cycle.

    Candidate operations take the caller's user_id and only see that user's
    submissions; admin operations address any submission by id.
    """

    def __init__(
        self,
        db: AsyncSession,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.clock = clock
        self.exams = ExamCatalog(db)
        self.submissions = SubmissionRepository(db)
        self.stats_collector = ExamStatisticsCollector()

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    async def _open(
        self,
        submission_id: uuid.UUID | str,
        user_id: uuid.UUID | str | None = None,
        check_expiry: bool = False,
    ) -> tuple[Submission, SubmissionLifecycle]:
        row, state = await self.submissions.load(submission_id, user_id)

        if (
            check_expiry
            and state.status == SubmissionStatus.IN_PROGRESS
            and state.is_expired(self.clock(), settings.EXAM_GRACE_PERIOD_SECONDS)
        ):
            raise InvalidStateError("Exam time has expired")

        return row, SubmissionLifecycle(state, clock=self.clock)

    async def _save(self, row: Submission, lifecycle: SubmissionLifecycle) -> SubmissionState:
        await self.submissions.save(row, lifecycle.submission)
        await self._publish(lifecycle.events)
        return lifecycle.submission

    async def _publish(self, events: list[SubmissionEvent]) -> None:
        for event in events:
            logger.info(f"[Submission {event.submission_id}] {event.type.value} {event.payload}")

        scored = [e for e in events if e.type in SCORING_EVENTS]
        if not scored:
            return

        exam = await self.exams.get_exam_row(scored[0].exam_id)
        updated = self.stats_collector.apply(exam.get_statistics(), scored)
        exam.statistics = updated.model_dump()
        await self.db.flush()

    # ------------------------------------------------------------------
    # Candidate operations
    # ------------------------------------------------------------------

    async def start_exam(self, user_id: uuid.UUID, exam_id: uuid.UUID | str) -> SubmissionState:
        """
        Open a new attempt with every module not started.

        Raises:
            NotFoundError: If the exam does not exist
            InvalidStateError: If the exam is inactive or the user already has an open attempt
        """
        exam = await self.exams.get_exam_row(exam_id)
        if not exam.is_active:
            raise InvalidStateError("Exam is not available")

        existing = await self.submissions.find_open_attempt(user_id, exam.id)
        if existing:
            raise InvalidStateError(f"You have already attempted this exam (submission {existing.id})")

        definition = exam.to_definition()
        now = self.clock()
        duration = definition.total_duration_minutes

        state = SubmissionState(
            id=str(uuid.uuid4()),
            user_id=str(user_id),
            exam_id=str(exam.id),
            ticket_id=_new_ticket_id(),
            started_at=now,
            ends_at=now + timedelta(minutes=duration) if duration else None,
        )
        row = Submission(
            id=uuid.UUID(state.id),
            user_id=user_id,
            exam_id=exam.id,
            ticket_id=state.ticket_id,
        )
        await self.submissions.save(row, state)

        logger.info(f"User {user_id} started exam {exam.id} as {state.ticket_id}")
        return state

    async def start_module(self, submission_id, user_id, module: Module) -> SubmissionState:
        row, lifecycle = await self._open(submission_id, user_id, check_expiry=True)
        lifecycle.start_module(module)
        return await self._save(row, lifecycle)

    async def save_answer(self, submission_id, user_id, request: SaveAnswerRequest) -> AnswerEntry:
        """
        Record (or overwrite) the answer to one question.

        Raises:
            NotFoundError: If the question is not part of this exam's module
            ValidationError: If the payload does not fit the question type
        """
        row, lifecycle = await self._open(submission_id, user_id, check_expiry=True)

        exam = await self.exams.get_exam(row.exam_id)
        if request.question_id not in exam.question_ids:
            raise NotFoundError(f"Question {request.question_id} is not part of this exam")

        question = (await self.exams.get_questions([request.question_id])).get(request.question_id)
        if question is None:
            raise NotFoundError(f"Question {request.question_id} not found")
        if question.module != request.module:
            raise NotFoundError(
                f"Question {request.question_id} does not belong to the {request.module.value} module"
            )
        validate_answer(question, request.answer)

        entry = lifecycle.record_answer(
            request.module,
            request.question_id,
            request.answer,
            time_spent=request.time_spent,
        )
        await self._save(row, lifecycle)
        return entry

    async def complete_module(self, submission_id, user_id, module: Module) -> SubmissionState:
        row, lifecycle = await self._open(submission_id, user_id)
        lifecycle.complete_module(module)
        return await self._save(row, lifecycle)

    async def submit(self, submission_id, user_id) -> SubmissionState:
        """Finalize the attempt, auto-grading listening and reading."""
        row, lifecycle = await self._open(submission_id, user_id)

        answered = [
            entry.question_id
            for module in OBJECTIVE_MODULES
            for entry in lifecycle.submission.answers.get(module, [])
        ]
        question_bank = await self.exams.get_questions(answered)

        lifecycle.finalize(question_bank)
        state = await self._save(row, lifecycle)
        logger.info(f"Submission {state.id} submitted with overall band {state.scores.overall.band_score}")
        return state

    async def record_violation(self, submission_id, user_id, request: ViolationRequest) -> SuspiciousActivity:
        row, lifecycle = await self._open(submission_id, user_id)
        activity = lifecycle.record_violation(request.type, request.description, request.severity)
        await self._save(row, lifecycle)
        return activity

    async def cancel(self, submission_id, user_id) -> SubmissionState:
        row, lifecycle = await self._open(submission_id, user_id)
        lifecycle.cancel()
        return await self._save(row, lifecycle)

    # ------------------------------------------------------------------
    # Admin operations
    # ------------------------------------------------------------------

    async def grade(
        self,
        submission_id,
        grader_id: uuid.UUID | str,
        scores: ManualScoresUpdate,
        feedback: FeedbackUpdate | None = None,
        notes: str | None = None,
    ) -> SubmissionState:
        row, lifecycle = await self._open(submission_id)
        lifecycle.grade(str(grader_id), scores, feedback, notes)
        return await self._save(row, lifecycle)

    async def record_manual_score(self, submission_id, request: ManualScoreRequest) -> SubmissionState:
        score = request.writing if request.module == Module.WRITING else request.speaking
        if score is None:
            raise ValidationError(f"No {request.module.value} score supplied")

        row, lifecycle = await self._open(submission_id)
        lifecycle.record_manual_score(request.module, score)
        lifecycle.rescore()
        return await self._save(row, lifecycle)

    async def flag(self, submission_id, reason: str) -> SubmissionState:
        row, lifecycle = await self._open(submission_id)
        lifecycle.flag_for_review(reason)
        return await self._save(row, lifecycle)

    async def record_quality_check(
        self,
        submission_id,
        reviewer_id: uuid.UUID | str,
        notes: str | None = None,
    ) -> SubmissionState:
        row, lifecycle = await self._open(submission_id)
        lifecycle.record_quality_check(str(reviewer_id), notes)
        return await self._save(row, lifecycle)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, submission_id, user_id=None) -> SubmissionState:
        _, state = await self.submissions.load(submission_id, user_id)
        return state

    async def list_page(
        self,
        user_id: uuid.UUID | None = None,
        exam_id: uuid.UUID | None = None,
        status: SubmissionStatus | None = None,
        page: int = 1,
        limit: int | None = None,
    ) -> SubmissionPage:
        limit = min(limit or settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE)
        rows, total = await self.submissions.search(
            user_id=user_id,
            exam_id=exam_id,
            status=status,
            page=page,
            limit=limit,
        )
        return SubmissionPage(
            submissions=[self._summary(row) for row in rows],
            total=total,
            total_pages=math.ceil(total / limit) if total else 0,
            current_page=page,
        )

    async def list_flagged(self) -> list[SubmissionSummary]:
        rows, _ = await self.submissions.search(flagged=True)
        return [self._summary(row) for row in rows]

    async def result_review(self, submission_id, user_id=None) -> SubmissionResult:
        """
        Detailed result: every answer next to its key.

        Only available once the attempt is completed or graded.
        """
        row, state = await self.submissions.load(submission_id, user_id)
        if state.status not in (SubmissionStatus.COMPLETED, SubmissionStatus.GRADED):
            raise NotFoundError("Submission result not found")

        question_ids = [entry.question_id for entries in state.answers.values() for entry in entries]
        question_bank = await self.exams.get_questions(question_ids)

        review = {}
        for module, entries in state.answers.items():
            items = []
            for entry in entries:
                question = question_bank.get(entry.question_id)
                items.append(AnswerReview(
                    question_id=entry.question_id,
                    user_answer=entry.answer,
                    correct_answer=question.correct_answer if question else None,
                    is_correct=entry.is_correct,
                    score=entry.score,
                    time_spent=entry.time_spent,
                ))
            review[module] = items

        return SubmissionResult(
            submission=submission_response(state),
            review=review,
            feedback=state.feedback,
        )

    async def statistics(
        self,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> SubmissionStatistics:
        """Status and per-exam module statistics, optionally limited to attempts started in a window."""
        return SubmissionStatistics(
            status_stats=await self.submissions.status_statistics(start_date, end_date),
            module_stats=await self.submissions.module_statistics(start_date, end_date),
        )

    async def user_stats(self, user_id: uuid.UUID) -> UserStats:
        return await self.submissions.user_stats(user_id)

    @staticmethod
    def _summary(row: Submission) -> SubmissionSummary:
        state = row.to_state()
        return SubmissionSummary(
            id=state.id,
            exam_id=state.exam_id,
            exam_title=row.exam.title if row.exam else None,
            ticket_id=state.ticket_id,
            status=state.status,
            progress=state.progress,
            overall_band_score=state.scores.overall.band_score,
            flagged_for_review=state.integrity.flagged_for_review,
            started_at=state.started_at,
            completed_at=state.completed_at,
        )
