from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlmodel import Session, select

from school_portal.core.database import get_session
from school_portal.core.security import decode_access_token
from school_portal.models.user import User, UserRole
from school_portal.models.course import Course, StudentCourse
from school_portal.models.assignment import Assignment

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


def user_from_token(token: str, session: Session) -> User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    user_id = decode_access_token(token)
    if not user_id:
        raise credentials_exception

    user = session.get(User, user_id)
    if not user or not user.is_active:
        raise credentials_exception
    return user


def get_current_user(
    token: str = Depends(oauth2_scheme),
    session: Session = Depends(get_session)
) -> User:
    return user_from_token(token, session)


def get_current_teacher(current_user: User = Depends(get_current_user)) -> User:
    """Teachers and admins"""
    if not current_user.can_author():
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Teacher access required"
        )
    return current_user


def get_current_admin(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role != UserRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return current_user


def get_current_student(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role != UserRole.STUDENT:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Student access required"
        )
    return current_user


def is_enrolled(session: Session, student_id: str, course_id: str) -> bool:
    enrollment = session.exec(
        select(StudentCourse).where(
            StudentCourse.student_id == student_id,
            StudentCourse.course_id == course_id,
            StudentCourse.is_active == True  # noqa: E712
        )
    ).first()
    return enrollment is not None


def can_manage_course(user: User, course: Course) -> bool:
    """Admins manage every course, teachers only the ones they teach"""
    if user.role == UserRole.ADMIN:
        return True
    return user.role == UserRole.TEACHER and course.instructor_id == user.id


def can_view_course(session: Session, user: User, course: Course) -> bool:
    if can_manage_course(user, course):
        return True
    return user.role == UserRole.STUDENT and is_enrolled(session, user.id, course.id)


def get_course_or_404(session: Session, course_id: str) -> Course:
    course = session.get(Course, course_id)
    if not course:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Course not found"
        )
    return course


def require_course_manager(user: User, course: Course) -> None:
    if not can_manage_course(user, course):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied to this course"
        )


def require_course_member(session: Session, user: User, course: Course) -> None:
    if not can_view_course(session, user, course):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied to this course"
        )


def get_assignment_for_member(session: Session, assignment_id: str, user: User) -> Assignment:
    """Assignment visible to `user`; students never see unpublished ones"""
    assignment = session.get(Assignment, assignment_id)
    if not assignment:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Assignment not found"
        )
    course = get_course_or_404(session, assignment.course_id)
    if can_manage_course(user, course):
        return assignment
    if user.role != UserRole.STUDENT or not assignment.is_published:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Assignment not found"
        )
    require_course_member(session, user, course)
    return assignment


def get_assignment_for_manager(session: Session, assignment_id: str, user: User) -> Assignment:
    assignment = session.get(Assignment, assignment_id)
    if not assignment:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Assignment not found"
        )
    require_course_manager(user, get_course_or_404(session, assignment.course_id))
    return assignment
