"""
Domain exceptions for the eco-action verification workflow.
The HTTP layer maps these onto the error codes in api/error_utils.py.
"""


class EcoActionError(Exception):
    """Base class for workflow errors that are surfaced to callers."""
    error_code = "SERVER_ERROR"
    status_code = 500


class StudentNotFoundError(EcoActionError):
    error_code = "STUDENT_NOT_FOUND"
    status_code = 404

    def __init__(self, student_id):
        super().__init__(f"Student {student_id} not found")
        self.student_id = student_id


class SubmissionNotFoundError(EcoActionError):
    error_code = "SUBMISSION_NOT_FOUND"
    status_code = 404

    def __init__(self, submission_id):
        super().__init__(f"Submission {submission_id} not found")
        self.submission_id = submission_id


class SubmissionConflictError(EcoActionError):
    """Raised when a review targets a submission that is no longer reviewable."""
    error_code = "REVIEW_CONFLICT"
    status_code = 409

    def __init__(self, submission_id, current_status):
        super().__init__(
            f"Submission {submission_id} is not in a reviewable state (status: {current_status})"
        )
        self.submission_id = submission_id
        self.current_status = current_status


class InvalidReviewError(EcoActionError):
    error_code = "INVALID_REQUEST"
    status_code = 400


class LedgerUnavailableError(EcoActionError):
    """The relational store rejected or failed an award; nothing was incremented."""
    error_code = "DATABASE_ERROR"
    status_code = 503
