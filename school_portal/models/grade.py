from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime, timezone
import uuid
from sqlalchemy import Column, DateTime, Text, UniqueConstraint


def compute_percentage(points_earned: float, max_points: float) -> float:
    """Percentage shown to users, always derived from the stored points"""
    if not max_points:
        return 0.0
    return round(points_earned / max_points * 100, 1)


def letter_grade(percentage: float) -> str:
    if percentage >= 90:
        return "A"
    if percentage >= 80:
        return "B"
    if percentage >= 70:
        return "C"
    if percentage >= 60:
        return "D"
    return "F"


class Grade(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("submission_id", "assignment_id", "student_id", name="uq_grade_submission"),
    )

    id: Optional[str] = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    submission_id: str = Field(foreign_key="submission.id", index=True)
    assignment_id: str = Field(foreign_key="assignment.id", index=True)
    student_id: str = Field(foreign_key="user.id", index=True)

    points_earned: float = Field(default=0.0)
    # Copied from the assignment at grading time, not live-linked
    max_points: float = Field(default=0.0)
    feedback: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))

    auto_graded: bool = Field(default=False)
    graded_by: Optional[str] = Field(default=None, foreign_key="user.id")
    graded_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )

    @property
    def percentage(self) -> float:
        return compute_percentage(self.points_earned, self.max_points)
