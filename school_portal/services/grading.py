"""
Grade persistence and the teacher grading interface.

Every grade write goes through `upsert_grade`, keyed by (submission,
assignment, student), so repeated grading replaces the row instead of adding
another one. Percentages are never stored; they are derived from the row
that is loaded.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from school_portal.models.assignment import Assignment, AssignmentQuestion, question_sort_key
from school_portal.models.grade import Grade
from school_portal.models.submission import AssignmentAnswer, Submission, SubmissionStatus
from school_portal.models.user import User
from school_portal.services.errors import InvalidGradeError, NotFoundError, PersistenceError
from school_portal.utils.time_utils import now_utc

logger = logging.getLogger(__name__)


def load_questions(session: Session, assignment_id: str) -> List[AssignmentQuestion]:
    questions = session.exec(
        select(AssignmentQuestion).where(AssignmentQuestion.assignment_id == assignment_id)
    ).all()
    return sorted(questions, key=question_sort_key)


def load_answers(session: Session, submission_id: str) -> List[AssignmentAnswer]:
    return list(session.exec(
        select(AssignmentAnswer).where(AssignmentAnswer.submission_id == submission_id)
    ).all())


def find_grade(session: Session, submission: Submission) -> Optional[Grade]:
    return session.exec(
        select(Grade).where(
            Grade.submission_id == submission.id,
            Grade.assignment_id == submission.assignment_id,
            Grade.student_id == submission.student_id,
        )
    ).first()


def upsert_grade(
    session: Session,
    submission: Submission,
    points_earned: float,
    max_points: float,
    feedback: Optional[str],
    auto_graded: bool,
    graded_by: Optional[str],
) -> Grade:
    """Insert or replace the grade of a submission. Does not commit."""
    grade = find_grade(session, submission)
    if grade is None:
        grade = Grade(
            submission_id=submission.id,
            assignment_id=submission.assignment_id,
            student_id=submission.student_id,
        )
        session.add(grade)

    grade.points_earned = points_earned
    grade.max_points = max_points
    grade.feedback = feedback
    grade.auto_graded = auto_graded
    grade.graded_by = graded_by
    grade.graded_at = now_utc()
    return grade


@dataclass
class GradingRow:
    submission: Submission
    student: User
    grade: Optional[Grade]


def list_submissions_for_grading(session: Session, assignment: Assignment) -> List[GradingRow]:
    """Every submitted attempt of an assignment with its current grade, newest first"""
    results = session.exec(
        select(Submission, User)
        .join(User, Submission.student_id == User.id)
        .where(
            Submission.assignment_id == assignment.id,
            Submission.status == SubmissionStatus.SUBMITTED,
        )
        .order_by(Submission.submitted_at.desc(), Submission.attempt_number.desc())
    ).all()

    grades: Dict[str, Grade] = {
        grade.submission_id: grade
        for grade in session.exec(select(Grade).where(Grade.assignment_id == assignment.id)).all()
    }
    return [
        GradingRow(submission=submission, student=student, grade=grades.get(submission.id))
        for submission, student in results
    ]


@dataclass
class GradingForm:
    submission: Submission
    student: User
    assignment: Assignment
    questions: List[AssignmentQuestion]
    answers: Dict[str, AssignmentAnswer]
    points_earned: float
    feedback: str
    max_points: float
    grade: Optional[Grade]


def grading_form(session: Session, submission: Submission) -> GradingForm:
    """Prefill from the existing grade, else zero points and empty feedback"""
    assignment = session.get(Assignment, submission.assignment_id)
    student = session.get(User, submission.student_id)
    questions = load_questions(session, assignment.id)
    answers = {answer.question_id: answer for answer in load_answers(session, submission.id)}
    grade = find_grade(session, submission)

    return GradingForm(
        submission=submission,
        student=student,
        assignment=assignment,
        questions=questions,
        answers=answers,
        points_earned=grade.points_earned if grade else 0.0,
        feedback=(grade.feedback or "") if grade else "",
        max_points=assignment.effective_max_points(questions),
        grade=grade,
    )


def save_teacher_grade(
    session: Session,
    submission: Submission,
    points_earned: float,
    feedback: Optional[str],
    teacher: User,
) -> Grade:
    if submission.status != SubmissionStatus.SUBMITTED:
        raise InvalidGradeError("Only submitted attempts can be graded")

    assignment = session.get(Assignment, submission.assignment_id)
    max_points = assignment.effective_max_points(load_questions(session, assignment.id))
    if points_earned < 0 or points_earned > max_points:
        raise InvalidGradeError(f"points_earned must be between 0 and {max_points:g}")

    grade = upsert_grade(
        session,
        submission,
        points_earned=points_earned,
        max_points=max_points,
        feedback=feedback or None,
        auto_graded=False,
        graded_by=teacher.id,
    )
    try:
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        raise PersistenceError(str(exc))
    session.refresh(grade)

    logger.info(
        "Submission %s graded %s/%s by %s",
        submission.id, grade.points_earned, grade.max_points, teacher.id
    )
    return grade


def latest_grade_for_student(session: Session, assignment_id: str, student_id: str) -> Optional[Grade]:
    """Grade of the most recent graded attempt"""
    result = session.exec(
        select(Grade, Submission)
        .join(Submission, Grade.submission_id == Submission.id)
        .where(Grade.assignment_id == assignment_id, Grade.student_id == student_id)
        .order_by(Submission.attempt_number.desc())
    ).first()
    if result is None:
        return None
    grade, _ = result
    return grade


def get_submission_or_404(session: Session, submission_id: str) -> Submission:
    submission = session.get(Submission, submission_id)
    if not submission:
        raise NotFoundError("Submission not found")
    return submission
