"""
Builders for response models shared by several routers.
"""

from typing import List, Optional

from school_portal.models.assignment import Assignment, AssignmentQuestion
from school_portal.models.grade import Grade, letter_grade
from school_portal.models.submission import AssignmentAnswer, Submission
from school_portal.models.user import User
from school_portal.schemas.assignment import AssignmentDetailResponse, AssignmentResponse, QuestionResponse
from school_portal.schemas.attempt import AnswerResponse, SubmissionResponse
from school_portal.schemas.auth import UserResponse
from school_portal.schemas.grade import GradeResponse
from school_portal.utils.time_utils import ensure_utc


def user_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        email=user.email,
        name=user.name,
        avatar_url=user.avatar_url,
        role=user.role,
        is_active=user.is_active,
    )


def question_response(question: AssignmentQuestion, include_answer: bool) -> QuestionResponse:
    return QuestionResponse(
        id=question.id,
        question_text=question.question_text,
        question_type=question.question_type,
        points=question.points,
        options=question.get_options(),
        question_order=question.question_order,
        correct_answer=question.correct_answer if include_answer else None,
    )


def assignment_response(assignment: Assignment, questions: List[AssignmentQuestion]) -> AssignmentResponse:
    return AssignmentResponse(
        id=assignment.id,
        course_id=assignment.course_id,
        title=assignment.title,
        description=assignment.description,
        assignment_type=assignment.assignment_type,
        grading_mode=assignment.grading_mode,
        due_date=ensure_utc(assignment.due_date),
        time_limit_minutes=assignment.time_limit_minutes,
        max_points=assignment.effective_max_points(questions),
        allow_resubmission=assignment.allow_resubmission,
        is_required=assignment.is_required,
        is_published=assignment.is_published,
        created_by=assignment.created_by,
        created_at=ensure_utc(assignment.created_at),
        question_count=len(questions),
    )


def assignment_detail_response(assignment: Assignment, questions: List[AssignmentQuestion],
                               include_answers: bool) -> AssignmentDetailResponse:
    base = assignment_response(assignment, questions)
    return AssignmentDetailResponse(
        **base.model_dump(),
        questions=[question_response(q, include_answers) for q in questions],
    )


def submission_response(submission: Submission) -> SubmissionResponse:
    return SubmissionResponse(
        id=submission.id,
        assignment_id=submission.assignment_id,
        student_id=submission.student_id,
        status=submission.status,
        attempt_number=submission.attempt_number,
        started_at=ensure_utc(submission.started_at),
        submitted_at=ensure_utc(submission.submitted_at),
        time_spent_minutes=submission.time_spent_minutes,
        is_late=submission.is_late,
        is_auto_submitted=submission.is_auto_submitted,
        grading_status=submission.grading_status,
        grading_attempts=submission.grading_attempts or 0,
        grading_error=submission.grading_error,
    )


def answer_response(answer: AssignmentAnswer) -> AnswerResponse:
    return AnswerResponse(
        question_id=answer.question_id,
        answer_text=answer.answer_text,
        is_correct=answer.is_correct,
        points_earned=answer.points_earned,
    )


def grade_response(grade: Optional[Grade]) -> Optional[GradeResponse]:
    """Percentage and letter are recomputed from the stored points"""
    if grade is None:
        return None
    percentage = grade.percentage
    return GradeResponse(
        id=grade.id,
        submission_id=grade.submission_id,
        assignment_id=grade.assignment_id,
        student_id=grade.student_id,
        points_earned=grade.points_earned,
        max_points=grade.max_points,
        percentage=percentage,
        letter_grade=letter_grade(percentage),
        feedback=grade.feedback,
        auto_graded=grade.auto_graded,
        graded_by=grade.graded_by,
        graded_at=ensure_utc(grade.graded_at),
    )
