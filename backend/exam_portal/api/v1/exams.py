"""
Exam Portal - Exam API
Browse active exams and start an attempt
"""
import uuid

from fastapi import APIRouter, status

from exam_portal.api.deps import CurrentUser, DbSession, Submissions
from exam_portal.models.exam import Exam
from exam_portal.schemas.exam import ExamDetail, ExamStartResponse, ExamSummary
from exam_portal.services.submission import ExamCatalog

router = APIRouter(prefix="/exams", tags=["Exams"])


def _summary(exam: Exam) -> ExamSummary:
    definition = exam.to_definition()
    return ExamSummary(
        id=exam.id,
        title=exam.title,
        exam_type=exam.exam_type,
        is_free=exam.is_free,
        price=exam.price,
        total_duration_minutes=definition.total_duration_minutes,
        enabled_modules=definition.enabled_modules,
    )


@router.get("", response_model=list[ExamSummary])
async def list_exams(db: DbSession):
    """List exams open for attempts."""
    exams = await ExamCatalog(db).list_active()
    return [_summary(exam) for exam in exams]


@router.get("/{exam_id}", response_model=ExamDetail)
async def get_exam(exam_id: uuid.UUID, db: DbSession):
    """Get one exam's module settings and statistics."""
    exam = await ExamCatalog(db).get_exam_row(exam_id)
    definition = exam.to_definition()
    return ExamDetail(
        **_summary(exam).model_dump(),
        modules=definition.modules,
        total_questions=len(definition.question_ids),
        statistics=exam.get_statistics(),
        created_at=exam.created_at,
    )


@router.post("/{exam_id}/start", response_model=ExamStartResponse, status_code=status.HTTP_201_CREATED)
async def start_exam(
    exam_id: uuid.UUID,
    current_user: CurrentUser,
    service: Submissions,
):
    """
    Start an attempt at an exam.
    
    Creates a submission with every module not started and a deadline
    derived from the enabled modules' durations.
    """
    state = await service.start_exam(current_user.id, exam_id)
    duration = 0
    if state.ends_at and state.started_at:
        duration = int((state.ends_at - state.started_at).total_seconds() // 60)
    return ExamStartResponse(
        submission_id=state.id,
        ticket_id=state.ticket_id,
        started_at=state.started_at,
        ends_at=state.ends_at,
        duration_minutes=duration,
    )
