"""Exam Portal - Models initialization."""
from exam_portal.models.user import User, UserRole
from exam_portal.models.exam import Exam, Question
from exam_portal.models.submission import Submission


__all__ = [
    # User models
    "User",
    "UserRole",
    # Exam models
    "Exam",
    "Question",
    # Submission models
    "Submission",
]
