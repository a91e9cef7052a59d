from pydantic import BaseModel, Field, validator
from typing import List, Optional
from datetime import datetime
from school_portal.models.assignment import AssignmentType, GradingMode, QuestionType
from school_portal.models.submission import SubmissionStatus


class QuestionCreate(BaseModel):
    question_text: str = Field(min_length=1)
    question_type: QuestionType = QuestionType.MCQ
    points: float = Field(1.0, gt=0, description="Points must be positive")
    options: Optional[List[str]] = None
    correct_answer: Optional[str] = None

    @validator('options')
    def strip_options(cls, v):
        if v is None:
            return v
        return [option.strip() for option in v]

    @validator('correct_answer', always=True)
    def validate_mcq(cls, v, values):
        if values.get('question_type') != QuestionType.MCQ:
            return v
        options = [option for option in (values.get('options') or []) if option]
        if len(options) < 2:
            raise ValueError('Multiple choice questions need at least two non-empty options')
        if v is None or v.strip() not in options:
            raise ValueError('Correct answer must be one of the options')
        return v.strip()


class AssignmentCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    assignment_type: AssignmentType = AssignmentType.ASSIGNMENT
    grading_mode: GradingMode = GradingMode.MANUAL
    due_date: Optional[datetime] = None
    time_limit_minutes: Optional[int] = Field(None, gt=0)
    max_points: Optional[float] = Field(None, gt=0)
    allow_resubmission: bool = False
    is_required: bool = False
    is_published: bool = False
    questions: List[QuestionCreate] = []


class AssignmentUpdate(AssignmentCreate):
    # None keeps the current questions, a list replaces them all
    questions: Optional[List[QuestionCreate]] = None


class PublishUpdate(BaseModel):
    is_published: Optional[bool] = Field(None, description="Omit to toggle")


class QuestionResponse(BaseModel):
    id: str
    question_text: str
    question_type: QuestionType
    points: float
    options: List[str] = []
    question_order: int
    # Only sent to teachers and admins
    correct_answer: Optional[str] = None


class AssignmentResponse(BaseModel):
    id: str
    course_id: str
    title: str
    description: Optional[str] = None
    assignment_type: AssignmentType
    grading_mode: GradingMode
    due_date: Optional[datetime] = None
    time_limit_minutes: Optional[int] = None
    max_points: float
    allow_resubmission: bool
    is_required: bool
    is_published: bool
    created_by: str
    created_at: datetime
    question_count: int = 0

    # Annotations for the requesting student
    my_status: Optional[SubmissionStatus] = None
    my_attempt_number: Optional[int] = None
    my_percentage: Optional[float] = None


class AssignmentDetailResponse(AssignmentResponse):
    questions: List[QuestionResponse] = []
