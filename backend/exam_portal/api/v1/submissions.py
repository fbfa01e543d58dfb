"""
Exam Portal - Submission API
Candidate endpoints for taking an exam and admin endpoints for grading and review
"""
import uuid
from datetime import datetime

from fastapi import APIRouter, Query

from exam_portal.api.deps import AdminUser, CurrentUser, GraderUser, Submissions
from exam_portal.schemas.submission import (
    AnswerEntry,
    FlagRequest,
    GradeRequest,
    ManualScoreRequest,
    ModuleRequest,
    QualityCheckRequest,
    SaveAnswerRequest,
    SubmissionPage,
    SubmissionResponse,
    SubmissionResult,
    SubmissionStatistics,
    SubmissionStatus,
    SubmissionSummary,
    SuspiciousActivity,
    UserStats,
    ViolationRequest,
    submission_response,
)

router = APIRouter(prefix="/submissions", tags=["Submissions"])


# ============================================================================
# Candidate: listings
# ============================================================================

@router.get("", response_model=SubmissionPage)
async def list_my_submissions(
    current_user: CurrentUser,
    service: Submissions,
    status: SubmissionStatus | None = None,
    exam_id: uuid.UUID | None = None,
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1),
):
    """Get the current user's submissions, newest first."""
    return await service.list_page(
        user_id=current_user.id,
        exam_id=exam_id,
        status=status,
        page=page,
        limit=limit,
    )


@router.get("/stats", response_model=UserStats)
async def get_my_stats(current_user: CurrentUser, service: Submissions):
    """Graded attempt count, average and best overall band for the current user."""
    return await service.user_stats(current_user.id)


# ============================================================================
# Admin
# ============================================================================

@router.get("/admin/all", response_model=SubmissionPage)
async def list_all_submissions(
    admin: AdminUser,
    service: Submissions,
    status: SubmissionStatus | None = None,
    user_id: uuid.UUID | None = None,
    exam_id: uuid.UUID | None = None,
    page: int = Query(default=1, ge=1),
    limit: int | None = Query(default=None, ge=1),
):
    """Get all submissions (admin only)."""
    return await service.list_page(
        user_id=user_id,
        exam_id=exam_id,
        status=status,
        page=page,
        limit=limit,
    )


@router.get("/admin/flagged", response_model=list[SubmissionSummary])
async def list_flagged_submissions(admin: AdminUser, service: Submissions):
    """Get submissions flagged for review (admin only)."""
    return await service.list_flagged()


@router.get("/admin/statistics", response_model=SubmissionStatistics)
async def get_submission_statistics(
    admin: AdminUser,
    service: Submissions,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
):
    """
    Submission statistics (admin only).

    Per status: count, average overall band and average time spent.
    Per exam: average band of each module. Dates bound the attempt start time.
    """
    return await service.statistics(start_date, end_date)


@router.get("/admin/{submission_id}", response_model=SubmissionResponse)
async def get_submission_admin(submission_id: uuid.UUID, grader: GraderUser, service: Submissions):
    """Get any submission (examiners and admins)."""
    state = await service.get(submission_id)
    return submission_response(state)


@router.post("/admin/{submission_id}/grade", response_model=SubmissionResponse)
async def grade_submission(
    submission_id: uuid.UUID,
    request: GradeRequest,
    grader: GraderUser,
    service: Submissions,
):
    """
    Grade a completed submission (examiners and admins).

    Merges writing/speaking scores and feedback, recomputes the overall
    band and moves the submission to graded.
    """
    state = await service.grade(
        submission_id,
        grader.id,
        request.scores,
        request.feedback,
        request.grading_notes,
    )
    return submission_response(state)


@router.post("/admin/{submission_id}/manual-score", response_model=SubmissionResponse)
async def record_manual_score(
    submission_id: uuid.UUID,
    request: ManualScoreRequest,
    grader: GraderUser,
    service: Submissions,
):
    """Record a writing or speaking score without changing status (examiners and admins)."""
    state = await service.record_manual_score(submission_id, request)
    return submission_response(state)


@router.post("/admin/{submission_id}/flag", response_model=SubmissionResponse)
async def flag_submission(
    submission_id: uuid.UUID,
    request: FlagRequest,
    admin: AdminUser,
    service: Submissions,
):
    """Flag a submission for review (admin only)."""
    state = await service.flag(submission_id, request.reason)
    return submission_response(state)


@router.post("/admin/{submission_id}/quality-check", response_model=SubmissionResponse)
async def quality_check_submission(
    submission_id: uuid.UUID,
    request: QualityCheckRequest,
    grader: GraderUser,
    service: Submissions,
):
    """Record a quality check on a graded submission (examiners and admins)."""
    state = await service.record_quality_check(submission_id, grader.id, request.notes)
    return submission_response(state)


# ============================================================================
# Candidate: one submission
# ============================================================================

@router.get("/{submission_id}", response_model=SubmissionResponse)
async def get_submission(submission_id: uuid.UUID, current_user: CurrentUser, service: Submissions):
    """Get one of the current user's submissions."""
    state = await service.get(submission_id, current_user.id)
    return submission_response(state)


@router.get("/{submission_id}/result", response_model=SubmissionResult)
async def get_submission_result(submission_id: uuid.UUID, current_user: CurrentUser, service: Submissions):
    """Get the detailed result of a completed or graded submission."""
    return await service.result_review(submission_id, current_user.id)


@router.post("/{submission_id}/start-module", response_model=SubmissionResponse)
async def start_module(
    submission_id: uuid.UUID,
    request: ModuleRequest,
    current_user: CurrentUser,
    service: Submissions,
):
    """Mark a module as started."""
    state = await service.start_module(submission_id, current_user.id, request.module)
    return submission_response(state)


@router.post("/{submission_id}/save-answer", response_model=AnswerEntry)
async def save_answer(
    submission_id: uuid.UUID,
    request: SaveAnswerRequest,
    current_user: CurrentUser,
    service: Submissions,
):
    """Save (or overwrite) the answer to a question."""
    return await service.save_answer(submission_id, current_user.id, request)


@router.post("/{submission_id}/complete-module", response_model=SubmissionResponse)
async def complete_module(
    submission_id: uuid.UUID,
    request: ModuleRequest,
    current_user: CurrentUser,
    service: Submissions,
):
    """Mark a module as completed."""
    state = await service.complete_module(submission_id, current_user.id, request.module)
    return submission_response(state)


@router.post("/{submission_id}/submit", response_model=SubmissionResponse)
async def submit_exam(submission_id: uuid.UUID, current_user: CurrentUser, service: Submissions):
    """Submit the entire exam. Every module must be completed first."""
    state = await service.submit(submission_id, current_user.id)
    return submission_response(state)


@router.post("/{submission_id}/violations", response_model=SuspiciousActivity)
async def record_violation(
    submission_id: uuid.UUID,
    request: ViolationRequest,
    current_user: CurrentUser,
    service: Submissions,
):
    """Report a proctoring violation (tab switch, full-screen exit, ...)."""
    return await service.record_violation(submission_id, current_user.id, request)


@router.post("/{submission_id}/cancel", response_model=SubmissionResponse)
async def cancel_submission(submission_id: uuid.UUID, current_user: CurrentUser, service: Submissions):
    """Abandon an in-progress attempt."""
    state = await service.cancel(submission_id, current_user.id)
    return submission_response(state)
