from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Session, select
from typing import List

from school_portal.core.database import get_session
from school_portal.utils.auth import get_current_user, get_current_teacher, get_course_or_404, require_course_manager
from school_portal.utils.time_utils import ensure_utc
from school_portal.models.user import User, UserRole
from school_portal.models.course import Course, StudentCourse
from school_portal.schemas.course import CourseCreate, CourseResponse, EnrollStudentsRequest, EnrollStudentsResponse

router = APIRouter(prefix="/courses", tags=["Courses"])


def _enrollment_count(session: Session, course_id: str) -> int:
    return len(session.exec(
        select(StudentCourse.id).where(
            StudentCourse.course_id == course_id,
            StudentCourse.is_active == True  # noqa: E712
        )
    ).all())


def _course_response(session: Session, course: Course) -> CourseResponse:
    return CourseResponse(
        id=course.id,
        name=course.name,
        description=course.description,
        instructor_id=course.instructor_id,
        created_at=ensure_utc(course.created_at),
        enrollment_count=_enrollment_count(session, course.id)
    )


@router.post("/", response_model=CourseResponse, status_code=status.HTTP_201_CREATED)
def create_course(
    course_data: CourseCreate,
    current_teacher: User = Depends(get_current_teacher),
    session: Session = Depends(get_session)
):
    """Create a new course"""
    instructor_id = current_teacher.id
    if course_data.instructor_id and course_data.instructor_id != current_teacher.id:
        # Only admins assign a course to another teacher
        if current_teacher.role != UserRole.ADMIN:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only admins can assign another instructor"
            )
        instructor = session.get(User, course_data.instructor_id)
        if not instructor or instructor.role != UserRole.TEACHER:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Instructor must be an existing teacher"
            )
        instructor_id = instructor.id

    course = Course(
        name=course_data.name,
        description=course_data.description,
        instructor_id=instructor_id
    )
    session.add(course)
    session.commit()
    session.refresh(course)

    return _course_response(session, course)


@router.get("/", response_model=List[CourseResponse])
def list_courses(
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session)
):
    """List courses (admins see all, teachers the ones they teach, students their enrolled courses)"""
    statement = select(Course)

    if current_user.role == UserRole.STUDENT:
        enrolled_course_ids = session.exec(
            select(StudentCourse.course_id).where(
                StudentCourse.student_id == current_user.id,
                StudentCourse.is_active == True  # noqa: E712
            )
        ).all()
        if not enrolled_course_ids:
            return []
        statement = statement.where(Course.id.in_(enrolled_course_ids))
    elif current_user.role == UserRole.TEACHER:
        statement = statement.where(Course.instructor_id == current_user.id)

    courses = session.exec(statement.order_by(Course.created_at.desc())).all()
    return [_course_response(session, course) for course in courses]


@router.post("/{course_id}/students", response_model=EnrollStudentsResponse)
def enroll_students(
    course_id: str,
    enrollment_data: EnrollStudentsRequest,
    current_teacher: User = Depends(get_current_teacher),
    session: Session = Depends(get_session)
):
    """Enroll students in a course"""
    course = get_course_or_404(session, course_id)
    require_course_manager(current_teacher, course)

    enrolled = []
    already_enrolled = []
    for student_id in dict.fromkeys(enrollment_data.student_ids):
        student = session.get(User, student_id)
        if not student or student.role != UserRole.STUDENT:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"User {student_id} is not a student"
            )

        existing = session.exec(
            select(StudentCourse).where(
                StudentCourse.student_id == student_id,
                StudentCourse.course_id == course_id
            )
        ).first()
        if existing and existing.is_active:
            already_enrolled.append(student_id)
            continue
        if existing:
            existing.is_active = True
            session.add(existing)
        else:
            session.add(StudentCourse(student_id=student_id, course_id=course_id))
        enrolled.append(student_id)

    session.commit()

    return EnrollStudentsResponse(
        course_id=course_id,
        enrolled=enrolled,
        already_enrolled=already_enrolled
    )
