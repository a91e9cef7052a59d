from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Session

from school_portal.core.cache import QueryKey, Resource, query_cache
from school_portal.core.config import settings
from school_portal.core.database import get_session
from school_portal.utils.auth import (
    get_current_user, get_current_student, get_course_or_404, can_manage_course, get_assignment_for_member
)
from school_portal.utils.time_utils import now_utc, seconds_until
from school_portal.models.user import User
from school_portal.models.assignment import Assignment
from school_portal.models.submission import Submission, SubmissionStatus
from school_portal.schemas.attempt import AttemptResponse, SubmitRequest, SubmitResponse
from school_portal.services.grading import find_grade, get_submission_or_404, load_answers
from school_portal.services.submission_workflow import (
    AttemptState, AttemptView, SubmitResult, attempt_deadline, expire_attempt, is_overdue,
    open_attempt, submit_attempt, view_attempt
)
from school_portal.api.responses import (
    answer_response, assignment_detail_response, grade_response, submission_response
)

router = APIRouter(tags=["Attempts"])


def _attempt_response(view: AttemptView) -> AttemptResponse:
    return AttemptResponse(
        state=view.state.value,
        assignment=assignment_detail_response(view.assignment, view.questions, include_answers=False),
        submission=submission_response(view.submission) if view.submission else None,
        answers=[answer_response(answer) for answer in view.answers],
        deadline=view.deadline,
        remaining_seconds=view.remaining_seconds,
        form_visible=view.form_visible,
        read_only=view.read_only,
        can_start_new_attempt=view.can_start_new_attempt,
    )


def _submit_response(result: SubmitResult) -> SubmitResponse:
    return SubmitResponse(
        submission=submission_response(result.submission),
        answers=[answer_response(answer) for answer in result.answers],
        already_submitted=result.already_submitted,
        grade=grade_response(result.grade),
    )


def _own_submission(session: Session, submission_id: str, student: User) -> Submission:
    submission = get_submission_or_404(session, submission_id)
    if submission.student_id != student.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="This attempt belongs to another student"
        )
    return submission


@router.get("/assignments/{assignment_id}/attempt", response_model=AttemptResponse)
def get_attempt(
    assignment_id: str,
    current_student: User = Depends(get_current_student),
    session: Session = Depends(get_session)
):
    """Current state of the student's attempt; overdue attempts are submitted first"""
    assignment = get_assignment_for_member(session, assignment_id, current_student)

    key = QueryKey(Resource.EXISTING_SUBMISSION, assignment.id)
    cached = query_cache.get(key, variant=current_student.id)
    if cached is not None:
        return cached

    response = _attempt_response(view_attempt(session, assignment, current_student))
    # Only the read-only view is stable enough to cache
    if response.state == AttemptState.SUBMITTED.value:
        query_cache.set(key, response, variant=current_student.id)
    return response


@router.post("/assignments/{assignment_id}/attempt", response_model=AttemptResponse)
def start_attempt(
    assignment_id: str,
    current_student: User = Depends(get_current_student),
    session: Session = Depends(get_session)
):
    """Begin an attempt, resume the active one, or start a new one if resubmission is allowed"""
    assignment = get_assignment_for_member(session, assignment_id, current_student)
    return _attempt_response(open_attempt(session, assignment, current_student))


@router.post("/submissions/{submission_id}/submit", response_model=SubmitResponse)
def submit(
    submission_id: str,
    submit_data: SubmitRequest,
    current_student: User = Depends(get_current_student),
    session: Session = Depends(get_session)
):
    """Submit the attempt; submitting twice returns the first submission unchanged"""
    submission = _own_submission(session, submission_id, current_student)
    return _submit_response(submit_attempt(session, submission, submit_data.answers))


@router.post("/submissions/{submission_id}/expire", response_model=SubmitResponse)
def expire(
    submission_id: str,
    submit_data: SubmitRequest,
    current_student: User = Depends(get_current_student),
    session: Session = Depends(get_session)
):
    """Submit the attempt because the client's countdown reached zero"""
    submission = _own_submission(session, submission_id, current_student)
    if submission.status == SubmissionStatus.SUBMITTED:
        return _submit_response(submit_attempt(session, submission, {}))

    assignment = session.get(Assignment, submission.assignment_id)
    deadline = attempt_deadline(assignment, submission)
    if deadline is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="This assignment has no time limit"
        )

    # Client clocks may run up to one tick ahead of the server
    remaining = seconds_until(deadline, now_utc())
    if remaining > settings.countdown_tick_seconds:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Time has not run out yet, {remaining} seconds remaining"
        )

    return _submit_response(expire_attempt(session, submission, answers=submit_data.answers))


@router.get("/submissions/{submission_id}", response_model=SubmitResponse)
def get_submission(
    submission_id: str,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session)
):
    """Get one attempt with its answers and grade (its student or the course's teachers)"""
    submission = get_submission_or_404(session, submission_id)
    assignment = session.get(Assignment, submission.assignment_id)
    if submission.student_id != current_user.id:
        course = get_course_or_404(session, assignment.course_id)
        if not can_manage_course(current_user, course):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Access denied to this submission"
            )

    if is_overdue(assignment, submission, now_utc()):
        return _submit_response(expire_attempt(session, submission))

    return SubmitResponse(
        submission=submission_response(submission),
        answers=[answer_response(answer) for answer in load_answers(session, submission.id)],
        grade=grade_response(find_grade(session, submission)),
    )
