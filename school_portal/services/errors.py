"""
Exceptions raised by the service layer.

Routers do not catch these one by one; `main.py` registers a single handler
that turns them into JSON responses with the matching status code.
"""

from fastapi import status


class WorkflowError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(WorkflowError):
    status_code = status.HTTP_404_NOT_FOUND


class InvalidAnswerError(WorkflowError):
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidGradeError(WorkflowError):
    status_code = status.HTTP_400_BAD_REQUEST


class PersistenceError(WorkflowError):
    """Writing to the data store failed; the message is the backend's own"""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class AutoGradingError(Exception):
    """Raised inside the auto-grading procedure; recorded on the submission"""
