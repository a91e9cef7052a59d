import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Session, select
from typing import List, Optional

from school_portal.core.cache import Mutation, QueryKey, Resource, query_cache
from school_portal.core.database import get_session
from school_portal.utils.auth import (
    get_current_user, get_current_teacher, get_course_or_404, require_course_manager,
    require_course_member, can_manage_course, get_assignment_for_member, get_assignment_for_manager
)
from school_portal.utils.time_utils import now_utc
from school_portal.models.user import User
from school_portal.models.assignment import Assignment, AssignmentQuestion
from school_portal.models.assignment_file import AssignmentFile
from school_portal.models.grade import Grade
from school_portal.models.submission import AssignmentAnswer, Submission, SubmissionStatus
from school_portal.schemas.assignment import (
    AssignmentCreate, AssignmentUpdate, AssignmentResponse, AssignmentDetailResponse,
    PublishUpdate, QuestionCreate
)
from school_portal.services.countdown import timer_registry
from school_portal.services.grading import latest_grade_for_student, load_questions
from school_portal.services.storage import get_storage_service
from school_portal.services.submission_workflow import latest_attempt
from school_portal.api.responses import assignment_response, assignment_detail_response

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Assignments"])


def _replace_questions(session: Session, assignment: Assignment, questions: List[QuestionCreate]):
    """Questions are replaced wholesale; order follows the submitted list"""
    for existing in session.exec(
        select(AssignmentQuestion).where(AssignmentQuestion.assignment_id == assignment.id)
    ).all():
        session.delete(existing)

    for index, question_data in enumerate(questions):
        question = AssignmentQuestion(
            assignment_id=assignment.id,
            question_text=question_data.question_text,
            question_type=question_data.question_type,
            points=question_data.points,
            correct_answer=question_data.correct_answer,
            question_order=index,
            position=index,
        )
        question.set_options(question_data.options)
        session.add(question)


def _apply_fields(assignment: Assignment, data: AssignmentCreate):
    assignment.title = data.title
    assignment.description = data.description
    assignment.assignment_type = data.assignment_type
    assignment.grading_mode = data.grading_mode
    assignment.due_date = data.due_date
    assignment.time_limit_minutes = data.time_limit_minutes
    assignment.max_points = data.max_points
    assignment.allow_resubmission = data.allow_resubmission
    assignment.is_required = data.is_required
    assignment.is_published = data.is_published


def _detail(session: Session, assignment: Assignment) -> AssignmentDetailResponse:
    return assignment_detail_response(assignment, load_questions(session, assignment.id), include_answers=True)


@router.post("/courses/{course_id}/assignments", response_model=AssignmentDetailResponse,
             status_code=status.HTTP_201_CREATED)
def create_assignment(
    course_id: str,
    assignment_data: AssignmentCreate,
    current_teacher: User = Depends(get_current_teacher),
    session: Session = Depends(get_session)
):
    """Create an assignment with its questions"""
    course = get_course_or_404(session, course_id)
    require_course_manager(current_teacher, course)

    assignment = Assignment(course_id=course.id, title=assignment_data.title, created_by=current_teacher.id)
    _apply_fields(assignment, assignment_data)
    session.add(assignment)
    session.flush()
    _replace_questions(session, assignment, assignment_data.questions)
    session.commit()
    session.refresh(assignment)

    logger.info("Assignment %s created in course %s by %s", assignment.id, course.id, current_teacher.id)
    query_cache.invalidate_after(Mutation.SAVE_ASSIGNMENT, course=course.id, assignment=assignment.id)
    return _detail(session, assignment)


@router.get("/courses/{course_id}/assignments", response_model=List[AssignmentResponse])
def list_assignments(
    course_id: str,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session)
):
    """List assignments of a course; students only see published ones, annotated with their progress"""
    course = get_course_or_404(session, course_id)
    require_course_member(session, current_user, course)
    is_manager = can_manage_course(current_user, course)

    def load() -> List[AssignmentResponse]:
        statement = select(Assignment).where(Assignment.course_id == course.id)
        if not is_manager:
            statement = statement.where(Assignment.is_published == True)  # noqa: E712
        assignments = session.exec(statement.order_by(Assignment.created_at.desc())).all()

        responses = []
        for assignment in assignments:
            response = assignment_response(assignment, load_questions(session, assignment.id))
            if not is_manager:
                submission = latest_attempt(session, assignment.id, current_user.id)
                if submission:
                    response.my_status = submission.status
                    response.my_attempt_number = submission.attempt_number
                grade = latest_grade_for_student(session, assignment.id, current_user.id)
                if grade:
                    response.my_percentage = grade.percentage
            responses.append(response)
        return responses

    variant = "manager" if is_manager else current_user.id
    return query_cache.get_or_load(QueryKey(Resource.ASSIGNMENTS, course.id), load, variant=variant)


@router.get("/assignments/{assignment_id}", response_model=AssignmentDetailResponse)
def get_assignment(
    assignment_id: str,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session)
):
    """Get an assignment with its ordered questions; correct answers only for teachers"""
    assignment = get_assignment_for_member(session, assignment_id, current_user)
    include_answers = can_manage_course(current_user, get_course_or_404(session, assignment.course_id))

    def load() -> AssignmentDetailResponse:
        return assignment_detail_response(assignment, load_questions(session, assignment.id), include_answers)

    return query_cache.get_or_load(
        QueryKey(Resource.ASSIGNMENT_DETAILS, assignment.id),
        load,
        variant="manager" if include_answers else "student",
    )


@router.put("/assignments/{assignment_id}", response_model=AssignmentDetailResponse)
def update_assignment(
    assignment_id: str,
    assignment_data: AssignmentUpdate,
    current_teacher: User = Depends(get_current_teacher),
    session: Session = Depends(get_session)
):
    """Update an assignment, replacing its questions when a list is given"""
    assignment = get_assignment_for_manager(session, assignment_id, current_teacher)

    if assignment_data.questions is not None:
        has_submissions = session.exec(
            select(Submission.id).where(Submission.assignment_id == assignment.id)
        ).first()
        if has_submissions:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Questions cannot be replaced once students have started the assignment"
            )

    _apply_fields(assignment, assignment_data)
    assignment.updated_at = now_utc()
    session.add(assignment)
    if assignment_data.questions is not None:
        _replace_questions(session, assignment, assignment_data.questions)
    session.commit()
    session.refresh(assignment)

    query_cache.invalidate_after(Mutation.SAVE_ASSIGNMENT, course=assignment.course_id, assignment=assignment.id)
    return _detail(session, assignment)


@router.patch("/assignments/{assignment_id}/publish", response_model=AssignmentResponse)
def publish_assignment(
    assignment_id: str,
    publish_data: Optional[PublishUpdate] = None,
    current_teacher: User = Depends(get_current_teacher),
    session: Session = Depends(get_session)
):
    """Set or toggle whether students can see the assignment"""
    assignment = get_assignment_for_manager(session, assignment_id, current_teacher)

    if publish_data is None or publish_data.is_published is None:
        assignment.is_published = not assignment.is_published
    else:
        assignment.is_published = publish_data.is_published
    assignment.updated_at = now_utc()
    session.add(assignment)
    session.commit()
    session.refresh(assignment)

    logger.info("Assignment %s published=%s", assignment.id, assignment.is_published)
    query_cache.invalidate_after(Mutation.PUBLISH_ASSIGNMENT, course=assignment.course_id, assignment=assignment.id)
    return assignment_response(assignment, load_questions(session, assignment.id))


@router.delete("/assignments/{assignment_id}")
def delete_assignment(
    assignment_id: str,
    current_teacher: User = Depends(get_current_teacher),
    session: Session = Depends(get_session)
):
    """Delete an assignment together with its submissions, grades and files"""
    assignment = get_assignment_for_manager(session, assignment_id, current_teacher)
    course_id = assignment.course_id

    files = session.exec(select(AssignmentFile).where(AssignmentFile.assignment_id == assignment.id)).all()
    storage = None
    if files:
        try:
            storage = get_storage_service()
        except HTTPException as exc:
            logger.warning(
                "Deleting %s file records of assignment %s without removing stored objects: %s",
                len(files), assignment.id, exc.detail
            )
    for assignment_file in files:
        if storage is not None and not storage.remove(assignment_file.storage_path):
            logger.warning("Storage object %s was not removed", assignment_file.storage_path)
        session.delete(assignment_file)

    for grade in session.exec(select(Grade).where(Grade.assignment_id == assignment.id)).all():
        session.delete(grade)
    session.flush()

    submissions = session.exec(select(Submission).where(Submission.assignment_id == assignment.id)).all()
    for submission in submissions:
        if submission.status == SubmissionStatus.IN_PROGRESS:
            timer_registry.cancel(submission.id)
        for answer in session.exec(
            select(AssignmentAnswer).where(AssignmentAnswer.submission_id == submission.id)
        ).all():
            session.delete(answer)
        session.flush()
        session.delete(submission)
    session.flush()

    for question in session.exec(
        select(AssignmentQuestion).where(AssignmentQuestion.assignment_id == assignment.id)
    ).all():
        session.delete(question)
    session.flush()

    session.delete(assignment)
    session.commit()

    logger.info("Assignment %s deleted by %s", assignment_id, current_teacher.id)
    query_cache.invalidate_after(Mutation.DELETE_ASSIGNMENT, course=course_id, assignment=assignment_id)
    return {"message": "Assignment deleted successfully", "assignment_id": assignment_id}
