from fastapi import APIRouter, Depends
from sqlmodel import Session, select
from typing import Optional

from school_portal.core.cache import QueryKey, Resource, query_cache
from school_portal.core.database import get_session
from school_portal.utils.auth import (
    get_current_student, get_course_or_404, require_course_member, get_assignment_for_member
)
from school_portal.models.user import User
from school_portal.models.assignment import Assignment
from school_portal.models.grade import compute_percentage, letter_grade
from school_portal.schemas.grade import GradeResponse, GradebookEntry, GradebookResponse
from school_portal.services.grading import latest_grade_for_student
from school_portal.api.responses import grade_response
from school_portal.utils.time_utils import ensure_utc

router = APIRouter(tags=["Grades"])


@router.get("/assignments/{assignment_id}/grade/me", response_model=Optional[GradeResponse])
def get_my_grade(
    assignment_id: str,
    current_student: User = Depends(get_current_student),
    session: Session = Depends(get_session)
):
    """Grade of the student's latest graded attempt, or null"""
    assignment = get_assignment_for_member(session, assignment_id, current_student)

    def load() -> Optional[GradeResponse]:
        return grade_response(latest_grade_for_student(session, assignment.id, current_student.id))

    return query_cache.get_or_load(QueryKey(Resource.GRADE, assignment.id), load, variant=current_student.id)


@router.get("/courses/{course_id}/gradebook/me", response_model=GradebookResponse)
def get_my_gradebook(
    course_id: str,
    current_student: User = Depends(get_current_student),
    session: Session = Depends(get_session)
):
    """The student's grades across every published assignment of a course"""
    course = get_course_or_404(session, course_id)
    require_course_member(session, current_student, course)

    assignments = session.exec(
        select(Assignment)
        .where(Assignment.course_id == course.id, Assignment.is_published == True)  # noqa: E712
        .order_by(Assignment.created_at)
    ).all()

    entries = []
    total_earned = 0.0
    total_max = 0.0
    for assignment in assignments:
        grade = latest_grade_for_student(session, assignment.id, current_student.id)
        if grade:
            total_earned += grade.points_earned
            total_max += grade.max_points
        entries.append(GradebookEntry(
            assignment_id=assignment.id,
            assignment_title=assignment.title,
            assignment_type=assignment.assignment_type.value,
            due_date=ensure_utc(assignment.due_date),
            grade=grade_response(grade),
        ))

    overall = compute_percentage(total_earned, total_max)
    return GradebookResponse(
        course_id=course.id,
        student_id=current_student.id,
        entries=entries,
        total_points_earned=total_earned,
        total_max_points=total_max,
        overall_percentage=overall,
        overall_letter_grade=letter_grade(overall),
    )
