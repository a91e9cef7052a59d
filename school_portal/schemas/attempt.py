"""
Schemas for taking an assignment: the attempt view and submitting answers.
"""

from pydantic import BaseModel, Field
from typing import Dict, List, Optional
from datetime import datetime
from school_portal.models.submission import GradingStatus, SubmissionStatus
from school_portal.schemas.assignment import AssignmentDetailResponse
from school_portal.schemas.grade import GradeResponse


class SubmissionResponse(BaseModel):
    id: str
    assignment_id: str
    student_id: str
    status: SubmissionStatus
    attempt_number: int
    started_at: datetime
    submitted_at: Optional[datetime] = None
    time_spent_minutes: Optional[int] = None
    is_late: bool
    is_auto_submitted: bool
    grading_status: GradingStatus
    grading_attempts: int = 0
    grading_error: Optional[str] = None


class AnswerResponse(BaseModel):
    question_id: str
    answer_text: str
    is_correct: Optional[bool] = None
    points_earned: Optional[float] = None


class AttemptResponse(BaseModel):
    state: str = Field(description="not_started, in_progress or submitted")
    assignment: AssignmentDetailResponse
    submission: Optional[SubmissionResponse] = None
    answers: List[AnswerResponse] = []
    deadline: Optional[datetime] = None
    remaining_seconds: Optional[int] = None
    form_visible: bool
    read_only: bool
    can_start_new_attempt: bool


class SubmitRequest(BaseModel):
    # question_id -> answer text; blank answers are not stored
    answers: Dict[str, Optional[str]] = {}


class SubmitResponse(BaseModel):
    submission: SubmissionResponse
    answers: List[AnswerResponse]
    already_submitted: bool = False
    grade: Optional[GradeResponse] = None
