from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from school_portal.models.submission import GradingStatus


class GradeResponse(BaseModel):
    id: str
    submission_id: str
    assignment_id: str
    student_id: str
    points_earned: float
    max_points: float
    percentage: float
    letter_grade: str
    feedback: Optional[str] = None
    auto_graded: bool
    graded_by: Optional[str] = None
    graded_at: datetime


class GradeUpsertRequest(BaseModel):
    points_earned: float = Field(ge=0, description="Between 0 and the assignment's max points")
    feedback: Optional[str] = Field(None, max_length=5000)


class GradingRowResponse(BaseModel):
    submission_id: str
    student_id: str
    student_name: str
    student_email: str
    attempt_number: int
    submitted_at: Optional[datetime] = None
    time_spent_minutes: Optional[int] = None
    is_late: bool
    is_auto_submitted: bool
    grading_status: GradingStatus
    grading_error: Optional[str] = None
    grade: Optional[GradeResponse] = None


class GradingFormQuestion(BaseModel):
    question_id: str
    question_text: str
    question_type: str
    points: float
    options: List[str] = []
    correct_answer: Optional[str] = None
    answer_text: Optional[str] = None
    is_correct: Optional[bool] = None
    points_earned: Optional[float] = None


class GradingFormResponse(BaseModel):
    submission_id: str
    assignment_id: str
    assignment_title: str
    student_id: str
    student_name: str
    attempt_number: int
    submitted_at: Optional[datetime] = None
    time_spent_minutes: Optional[int] = None
    is_late: bool
    grading_status: GradingStatus
    grading_error: Optional[str] = None
    max_points: float
    points_earned: float
    feedback: str
    questions: List[GradingFormQuestion]


class GradebookEntry(BaseModel):
    assignment_id: str
    assignment_title: str
    assignment_type: str
    due_date: Optional[datetime] = None
    grade: Optional[GradeResponse] = None


class GradebookResponse(BaseModel):
    course_id: str
    student_id: str
    entries: List[GradebookEntry]
    total_points_earned: float
    total_max_points: float
    overall_percentage: float
    overall_letter_grade: str
