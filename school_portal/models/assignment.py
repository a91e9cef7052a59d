from sqlmodel import SQLModel, Field
from typing import Optional, List
from datetime import datetime, timezone, timedelta
from enum import Enum
import uuid
import json
from sqlalchemy import Column, DateTime

from school_portal.utils.time_utils import ensure_utc


class AssignmentType(str, Enum):
    HOMEWORK = "homework"
    QUIZ = "quiz"
    EXAM = "exam"
    ASSIGNMENT = "assignment"


class GradingMode(str, Enum):
    MANUAL = "manual"
    AUTO = "auto"


class QuestionType(str, Enum):
    MCQ = "mcq"
    SHORT_ANSWER = "short_answer"
    ESSAY = "essay"
    FILE_UPLOAD = "file_upload"


# Question types the auto-grading procedure can score
AUTO_GRADABLE_TYPES = {QuestionType.MCQ}


class Assignment(SQLModel, table=True):
    id: Optional[str] = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    course_id: str = Field(foreign_key="course.id", index=True)
    title: str = Field(index=True)
    description: Optional[str] = Field(default=None)

    assignment_type: AssignmentType = Field(default=AssignmentType.ASSIGNMENT)
    grading_mode: GradingMode = Field(default=GradingMode.MANUAL)

    due_date: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    time_limit_minutes: Optional[int] = Field(default=None)

    # When not set, the total of the question points is used
    max_points: Optional[float] = Field(default=None)

    allow_resubmission: bool = Field(default=False)
    is_required: bool = Field(default=False)
    is_published: bool = Field(default=False, description="Students only see published assignments")

    created_by: str = Field(foreign_key="user.id")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )

    def deadline_for(self, started_at: datetime) -> Optional[datetime]:
        """End of the countdown for an attempt started at `started_at`"""
        if not self.time_limit_minutes:
            return None
        return ensure_utc(started_at) + timedelta(minutes=self.time_limit_minutes)

    def is_late(self, submitted_at: datetime) -> bool:
        if self.due_date is None:
            return False
        return ensure_utc(submitted_at) > ensure_utc(self.due_date)

    def effective_max_points(self, questions: List["AssignmentQuestion"]) -> float:
        if self.max_points is not None:
            return float(self.max_points)
        return float(sum(q.points for q in questions))


class AssignmentQuestion(SQLModel, table=True):
    __tablename__ = "assignment_questions"

    id: Optional[str] = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    assignment_id: str = Field(foreign_key="assignment.id", index=True)

    question_text: str
    question_type: QuestionType = Field(default=QuestionType.MCQ)
    points: float = Field(default=1.0)

    # MCQ options stored as a JSON list, e.g. ["3", "4", "5"]
    options: Optional[str] = Field(default=None)
    correct_answer: Optional[str] = Field(default=None)

    question_order: int = Field(default=0)
    # Insertion sequence within the assignment, breaks question_order ties
    position: int = Field(default=0)

    def get_options(self) -> List[str]:
        if self.options:
            return json.loads(self.options)
        return []

    def set_options(self, options: Optional[List[str]]):
        self.options = json.dumps(options) if options else None

    @property
    def is_auto_gradable(self) -> bool:
        return self.question_type in AUTO_GRADABLE_TYPES


def question_sort_key(question: AssignmentQuestion):
    """Display and grading order: question_order, then insertion order"""
    return (question.question_order, question.position)
