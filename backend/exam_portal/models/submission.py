"""
Exam Portal - Submission Model
Persisted form of one exam attempt
"""
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from exam_portal.core.database import Base, JSONDocument
from exam_portal.schemas.submission import SubmissionState

if TYPE_CHECKING:
    from exam_portal.models.exam import Exam
    from exam_portal.models.user import User


# Whole-document columns mirrored from SubmissionState
DOCUMENT_FIELDS = ("progress", "module_timing", "answers", "scores", "integrity", "grading", "feedback")
TIMESTAMP_FIELDS = ("started_at", "ends_at", "completed_at", "submitted_at", "graded_at", "cancelled_at")


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Submission(Base):
    """
    One candidate's attempt at one exam.
    
    The nested parts of the attempt live in JSON columns; status, flag,
    overall band and time spent are also kept as plain columns for filtering
    and stats.
    """
    
    __tablename__ = "submissions"
    
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True
    )
    exam_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("exams.id", ondelete="CASCADE"),
        index=True
    )
    ticket_id: Mapped[str] = mapped_column(String(20), index=True)
    
    status: Mapped[str] = mapped_column(String(20), default="in-progress", index=True)
    flagged_for_review: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    overall_band_score: Mapped[float | None] = mapped_column(Float, nullable=True, index=True)
    counted_band_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    total_time_spent: Mapped[float] = mapped_column(Float, default=0.0)  # seconds
    
    # Documents
    progress: Mapped[dict] = mapped_column(JSONDocument, default=dict)
    module_timing: Mapped[dict] = mapped_column(JSONDocument, default=dict)
    answers: Mapped[dict] = mapped_column(JSONDocument, default=dict)
    scores: Mapped[dict] = mapped_column(JSONDocument, default=dict)
    integrity: Mapped[dict] = mapped_column(JSONDocument, default=dict)
    grading: Mapped[dict] = mapped_column(JSONDocument, default=dict)
    feedback: Mapped[dict] = mapped_column(JSONDocument, default=dict)
    
    # Timing
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    ends_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    graded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    
    # Optimistic concurrency: concurrent writers to one submission fail with StaleDataError
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now()
    )
    
    # Relationships
    exam: Mapped["Exam"] = relationship("Exam", lazy="selectin")
    user: Mapped["User"] = relationship("User")
    
    __mapper_args__ = {"version_id_col": version}
    
    def to_state(self) -> SubmissionState:
        """Load the aggregate from this row."""
        data = {field: value for field in DOCUMENT_FIELDS if (value := getattr(self, field))}
        data.update({field: _as_utc(getattr(self, field)) for field in TIMESTAMP_FIELDS})
        return SubmissionState.model_validate({
            "id": str(self.id),
            "user_id": str(self.user_id),
            "exam_id": str(self.exam_id),
            "ticket_id": self.ticket_id,
            "status": self.status,
            "counted_band_score": self.counted_band_score,
            **data,
        })
    
    def apply_state(self, state: SubmissionState) -> None:
        """Write the aggregate back onto this row."""
        dumped = state.model_dump(mode="json", include=set(DOCUMENT_FIELDS))
        for field in DOCUMENT_FIELDS:
            setattr(self, field, dumped[field])
        for field in TIMESTAMP_FIELDS:
            setattr(self, field, getattr(state, field))
        
        self.status = state.status.value
        self.flagged_for_review = state.integrity.flagged_for_review
        self.overall_band_score = state.scores.overall.band_score
        self.counted_band_score = state.counted_band_score
        self.total_time_spent = state.total_time_spent
    
    def __repr__(self):
        return f"<Submission {self.ticket_id} status={self.status}>"
