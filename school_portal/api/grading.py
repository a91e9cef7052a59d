import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Session
from typing import List

from school_portal.core.cache import Mutation, QueryKey, Resource, query_cache
from school_portal.core.database import get_session
from school_portal.utils.auth import get_current_teacher, get_assignment_for_manager
from school_portal.models.user import User
from school_portal.models.assignment import GradingMode
from school_portal.models.submission import SubmissionStatus
from school_portal.schemas.attempt import SubmitResponse
from school_portal.schemas.grade import (
    GradeResponse, GradeUpsertRequest, GradingFormQuestion, GradingFormResponse, GradingRowResponse
)
from school_portal.services.auto_grading import run_auto_grading
from school_portal.services.grading import (
    get_submission_or_404, grading_form, list_submissions_for_grading, load_answers, save_teacher_grade
)
from school_portal.api.responses import answer_response, grade_response, submission_response

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Grading"])


def _managed_submission(session: Session, submission_id: str, teacher: User):
    submission = get_submission_or_404(session, submission_id)
    get_assignment_for_manager(session, submission.assignment_id, teacher)
    return submission


@router.get("/assignments/{assignment_id}/submissions", response_model=List[GradingRowResponse])
def list_submissions(
    assignment_id: str,
    current_teacher: User = Depends(get_current_teacher),
    session: Session = Depends(get_session)
):
    """Submitted attempts of an assignment with their current grade, newest first"""
    assignment = get_assignment_for_manager(session, assignment_id, current_teacher)

    def load() -> List[GradingRowResponse]:
        return [
            GradingRowResponse(
                submission_id=row.submission.id,
                student_id=row.student.id,
                student_name=row.student.display_name,
                student_email=row.student.email,
                attempt_number=row.submission.attempt_number,
                submitted_at=submission_response(row.submission).submitted_at,
                time_spent_minutes=row.submission.time_spent_minutes,
                is_late=row.submission.is_late,
                is_auto_submitted=row.submission.is_auto_submitted,
                grading_status=row.submission.grading_status,
                grading_error=row.submission.grading_error,
                grade=grade_response(row.grade),
            )
            for row in list_submissions_for_grading(session, assignment)
        ]

    return query_cache.get_or_load(QueryKey(Resource.ASSIGNMENT_GRADING, assignment.id), load)


@router.get("/submissions/{submission_id}/grading-form", response_model=GradingFormResponse)
def get_grading_form(
    submission_id: str,
    current_teacher: User = Depends(get_current_teacher),
    session: Session = Depends(get_session)
):
    """Answers side by side with the questions, prefilled with the existing grade"""
    submission = _managed_submission(session, submission_id, current_teacher)
    form = grading_form(session, submission)

    questions = []
    for question in form.questions:
        answer = form.answers.get(question.id)
        questions.append(GradingFormQuestion(
            question_id=question.id,
            question_text=question.question_text,
            question_type=question.question_type.value,
            points=question.points,
            options=question.get_options(),
            correct_answer=question.correct_answer,
            answer_text=answer.answer_text if answer else None,
            is_correct=answer.is_correct if answer else None,
            points_earned=answer.points_earned if answer else None,
        ))

    submission_data = submission_response(submission)
    return GradingFormResponse(
        submission_id=submission.id,
        assignment_id=form.assignment.id,
        assignment_title=form.assignment.title,
        student_id=form.student.id,
        student_name=form.student.display_name,
        attempt_number=submission.attempt_number,
        submitted_at=submission_data.submitted_at,
        time_spent_minutes=submission.time_spent_minutes,
        is_late=submission.is_late,
        grading_status=submission.grading_status,
        grading_error=submission.grading_error,
        max_points=form.max_points,
        points_earned=form.points_earned,
        feedback=form.feedback,
        questions=questions,
    )


@router.put("/submissions/{submission_id}/grade", response_model=GradeResponse)
def grade_submission(
    submission_id: str,
    grade_data: GradeUpsertRequest,
    current_teacher: User = Depends(get_current_teacher),
    session: Session = Depends(get_session)
):
    """Save points and feedback for a submission, replacing any earlier grade"""
    submission = _managed_submission(session, submission_id, current_teacher)
    grade = save_teacher_grade(
        session,
        submission,
        points_earned=grade_data.points_earned,
        feedback=grade_data.feedback,
        teacher=current_teacher,
    )
    query_cache.invalidate_after(Mutation.UPSERT_GRADE, assignment=submission.assignment_id)
    return grade_response(grade)


@router.post("/submissions/{submission_id}/auto-grade", response_model=SubmitResponse)
def regrade_submission(
    submission_id: str,
    current_teacher: User = Depends(get_current_teacher),
    session: Session = Depends(get_session)
):
    """Run the auto-grading procedure again, e.g. after it failed"""
    submission = _managed_submission(session, submission_id, current_teacher)
    assignment = get_assignment_for_manager(session, submission.assignment_id, current_teacher)

    if assignment.grading_mode != GradingMode.AUTO:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="This assignment is graded manually"
        )
    if submission.status != SubmissionStatus.SUBMITTED:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="The attempt has not been submitted yet"
        )

    logger.info("Auto-grading of submission %s re-triggered by %s", submission.id, current_teacher.id)
    grade = run_auto_grading(session, submission)
    session.refresh(submission)
    query_cache.invalidate_after(Mutation.AUTO_GRADE, assignment=assignment.id)

    return SubmitResponse(
        submission=submission_response(submission),
        answers=[answer_response(answer) for answer in load_answers(session, submission.id)],
        grade=grade_response(grade),
    )
