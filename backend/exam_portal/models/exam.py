"""
Exam Portal - Exam Models
SQLAlchemy models for exam definitions and the question bank
"""
import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from exam_portal.core.database import Base, JSONDocument
from exam_portal.schemas.exam import ExamDefinition, ExamStatistics, QuestionSpec


class Exam(Base):
    """An exam: which modules run, for how long, and with which questions."""
    
    __tablename__ = "exams"
    
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    title: Mapped[str] = mapped_column(String(255))
    exam_type: Mapped[str] = mapped_column(String(20), default="academic")  # academic, general
    
    # { "listening": { "enabled": true, "duration_minutes": 30 }, ... }
    modules: Mapped[dict] = mapped_column(JSONDocument, default=dict)
    
    # Ordered question IDs (as strings)
    question_ids: Mapped[list] = mapped_column(JSONDocument, default=list)
    
    # Pricing
    is_free: Mapped[bool] = mapped_column(Boolean, default=True)
    price: Mapped[float] = mapped_column(Float, default=0.0)
    
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    
    # { total_attempts, average_score, pass_rate, average_completion_time }
    statistics: Mapped[dict | None] = mapped_column(JSONDocument, nullable=True)
    
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )
    
    __mapper_args__ = {"eager_defaults": True}
    
    def to_definition(self) -> ExamDefinition:
        return ExamDefinition(
            id=self.id,
            title=self.title,
            exam_type=self.exam_type,
            modules=self.modules or {},
            question_ids=[str(q) for q in (self.question_ids or [])],
            is_free=self.is_free,
            price=self.price,
            is_active=self.is_active,
        )
    
    def get_statistics(self) -> ExamStatistics:
        return ExamStatistics.model_validate(self.statistics or {})
    
    def __repr__(self):
        return f"<Exam {self.title!r}>"


class Question(Base):
    """A question bank entry."""
    
    __tablename__ = "questions"
    
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    module: Mapped[str] = mapped_column(String(20), index=True)
    question_type: Mapped[str] = mapped_column(String(60))
    
    # Content shown to the candidate
    title: Mapped[str] = mapped_column(String(255), default="")
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    
    # Tagged answer payload, e.g. {"kind": "choice", "option_id": "B"}; None for writing/speaking
    correct_answer: Mapped[dict | None] = mapped_column(JSONDocument, nullable=True)
    points: Mapped[float] = mapped_column(Float, default=1.0)
    
    def to_spec(self) -> QuestionSpec:
        return QuestionSpec(
            id=str(self.id),
            module=self.module,
            question_type=self.question_type,
            correct_answer=self.correct_answer,
            points=self.points,
        )
    
    def __repr__(self):
        return f"<Question {self.module}/{self.question_type} {self.id}>"
