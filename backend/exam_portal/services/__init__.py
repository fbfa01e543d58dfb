"""Exam Portal - Services initialization."""
from exam_portal.services.errors import (
    SubmissionError,
    NotFoundError,
    InvalidStateError,
    IncompleteExamError,
    ValidationError,
)
from exam_portal.services.lifecycle import SubmissionLifecycle

__all__ = [
    "SubmissionLifecycle",
    "SubmissionError",
    "NotFoundError",
    "InvalidStateError",
    "IncompleteExamError",
    "ValidationError",
]
