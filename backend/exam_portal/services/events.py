"""
Exam Portal - Submission Events
Facts emitted by the submission engine for collaborators outside the submission record
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class SubmissionEventType(str, Enum):
    """Types of submission events."""
    MODULE_STARTED = "module_started"
    MODULE_COMPLETED = "module_completed"
    SUBMISSION_COMPLETED = "submission_completed"
    SUBMISSION_FINALIZED = "submission_finalized"
    SUBMISSION_GRADED = "submission_graded"
    SCORE_REVISED = "score_revised"
    SUBMISSION_CANCELLED = "submission_cancelled"
    VIOLATION_RECORDED = "violation_recorded"
    SUBMISSION_FLAGGED = "submission_flagged"


@dataclass
class SubmissionEvent:
    """Something that happened to one submission."""
    type: SubmissionEventType
    submission_id: str
    exam_id: str
    user_id: str
    occurred_at: datetime
    payload: dict[str, Any] = field(default_factory=dict)
