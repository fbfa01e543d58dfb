"""
Exam Portal - Submission Errors
Typed failures raised by the submission engine and service layer
"""


class SubmissionError(Exception):
    """Base submission error."""
    pass


class NotFoundError(SubmissionError):
    """Submission, module, exam or question reference is invalid."""
    pass


class InvalidStateError(SubmissionError):
    """Operation is not allowed in the submission's current state."""
    pass


class IncompleteExamError(SubmissionError):
    """Submit attempted before every module was completed."""
    pass


class ValidationError(SubmissionError):
    """Answer payload or score does not fit the question or module."""
    pass
