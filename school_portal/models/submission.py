from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime, timezone
from enum import Enum
import uuid
from sqlalchemy import Column, DateTime, Text, UniqueConstraint


class SubmissionStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"


class GradingStatus(str, Enum):
    NOT_REQUIRED = "not_required"  # manual grading mode
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class Submission(SQLModel, table=True):
    """One student's attempt at an assignment"""
    __table_args__ = (
        UniqueConstraint("assignment_id", "student_id", "attempt_number", name="uq_submission_attempt"),
    )

    id: Optional[str] = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    assignment_id: str = Field(foreign_key="assignment.id", index=True)
    student_id: str = Field(foreign_key="user.id", index=True)

    status: SubmissionStatus = Field(default=SubmissionStatus.IN_PROGRESS)
    attempt_number: int = Field(default=1)

    # Timing - Use timezone-aware datetime with TIMESTAMPTZ
    started_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )
    submitted_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    time_spent_minutes: Optional[int] = Field(default=None)

    is_late: bool = Field(default=False)
    is_auto_submitted: bool = Field(default=False)  # True if submitted on timer expiry

    # Auto-grading bookkeeping, visible to the teacher
    grading_status: GradingStatus = Field(default=GradingStatus.NOT_REQUIRED)
    grading_attempts: int = Field(default=0)
    grading_error: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))


class AssignmentAnswer(SQLModel, table=True):
    __tablename__ = "assignment_answers"
    __table_args__ = (
        UniqueConstraint("submission_id", "question_id", name="uq_answer_submission_question"),
    )

    id: Optional[str] = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    submission_id: str = Field(foreign_key="submission.id", index=True)
    question_id: str = Field(foreign_key="assignment_questions.id")
    answer_text: str = Field(sa_column=Column(Text, nullable=False))

    # Populated only by auto-grading
    is_correct: Optional[bool] = Field(default=None)
    points_earned: Optional[float] = Field(default=None)
