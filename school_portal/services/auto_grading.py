"""
Auto-grading procedure for submissions of auto-graded assignments.

`calculate_submission_grade` scores multiple-choice answers against the
question's correct answer and upserts the grade. It always recomputes from
the stored answers, so running it twice for the same submission yields the
same grade. Free-text answers are left unmarked for the teacher.

`run_auto_grading` wraps the procedure with retries and records the outcome
on the submission (`grading_status`, `grading_attempts`, `grading_error`).
"""

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from school_portal.core.config import settings
from school_portal.models.assignment import Assignment, AssignmentQuestion
from school_portal.models.grade import Grade
from school_portal.models.submission import GradingStatus, Submission, SubmissionStatus
from school_portal.services.errors import AutoGradingError
from school_portal.services.grading import load_answers, load_questions, upsert_grade

logger = logging.getLogger(__name__)


def normalize_choice(value: Optional[str]) -> str:
    return (value or "").strip()


def calculate_submission_grade(session: Session, submission_id: str) -> Grade:
    """Score a submitted attempt and upsert its grade. Does not commit."""
    submission = session.get(Submission, submission_id)
    if submission is None:
        raise AutoGradingError(f"Submission {submission_id} does not exist")
    if submission.status != SubmissionStatus.SUBMITTED:
        raise AutoGradingError(f"Submission {submission_id} has not been submitted")

    assignment = session.get(Assignment, submission.assignment_id)
    questions = load_questions(session, assignment.id)
    questions_by_id = {question.id: question for question in questions}

    total = 0.0
    for answer in load_answers(session, submission.id):
        question: Optional[AssignmentQuestion] = questions_by_id.get(answer.question_id)
        if question is None:
            raise AutoGradingError(
                f"Answer {answer.id} refers to question {answer.question_id} "
                f"which is not part of assignment {assignment.id}"
            )
        if not question.is_auto_gradable:
            answer.is_correct = None
            answer.points_earned = None
            continue
        if not question.correct_answer:
            raise AutoGradingError(f"Question {question.id} has no correct answer")

        answer.is_correct = normalize_choice(answer.answer_text) == normalize_choice(question.correct_answer)
        answer.points_earned = float(question.points) if answer.is_correct else 0.0
        total += answer.points_earned
        session.add(answer)

    return upsert_grade(
        session,
        submission,
        points_earned=total,
        max_points=assignment.effective_max_points(questions),
        feedback=None,
        auto_graded=True,
        graded_by=None,
    )


def _save_status(session: Session, submission: Submission, submission_id: str) -> None:
    """Commit grading bookkeeping; the submission itself is already stored"""
    session.add(submission)
    try:
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("Could not record grading status for submission %s: %s", submission_id, exc)


def run_auto_grading(session: Session, submission: Submission, max_attempts: Optional[int] = None) -> Optional[Grade]:
    """
    Run the auto-grading procedure with retries.

    Returns the grade, or None when every attempt failed. Failures are never
    raised to the caller; they are logged and stored on the submission so the
    teacher can see them and re-trigger grading.
    """
    max_attempts = max_attempts or settings.auto_grade_max_attempts
    submission_id = submission.id

    submission.grading_status = GradingStatus.PENDING
    submission.grading_error = None
    _save_status(session, submission, submission_id)

    last_error = None
    for attempt in range(1, max_attempts + 1):
        try:
            grade = calculate_submission_grade(session, submission_id)
            submission.grading_attempts = (submission.grading_attempts or 0) + 1
            submission.grading_status = GradingStatus.COMPLETED
            submission.grading_error = None
            session.add(submission)
            session.commit()
            session.refresh(grade)
            logger.info(
                "Auto-graded submission %s: %s/%s (attempt %s)",
                submission_id, grade.points_earned, grade.max_points, attempt
            )
            return grade
        except (AutoGradingError, SQLAlchemyError) as exc:
            session.rollback()
            last_error = str(exc)
            logger.warning(
                "Auto-grading attempt %s/%s for submission %s failed: %s",
                attempt, max_attempts, submission_id, last_error
            )
            submission.grading_attempts = (submission.grading_attempts or 0) + 1
            _save_status(session, submission, submission_id)

    submission.grading_status = GradingStatus.FAILED
    submission.grading_error = last_error
    _save_status(session, submission, submission_id)
    logger.error("Auto-grading for submission %s failed after %s attempts", submission_id, max_attempts)
    return None
