#!/usr/bin/env python3
"""
Initialize the database with the schema and sample data
"""

from sqlmodel import Session

from school_portal.core.database import engine, create_db_and_tables
from school_portal.core.security import get_password_hash
from school_portal.models import (
    User, UserRole, Course, StudentCourse, Assignment, AssignmentQuestion,
    AssignmentType, GradingMode, QuestionType
)


def init_database():
    """Create tables and seed an admin, a teacher, a course and a few students"""
    print("Creating database tables...")
    create_db_and_tables()
    print("Database tables created successfully!")

    with Session(engine) as session:
        admin = User(
            email="admin@school.com",
            name="Admin",
            hashed_password=get_password_hash("admin123"),
            role=UserRole.ADMIN,
        )
        teacher = User(
            email="teacher@school.com",
            name="Ada Teacher",
            hashed_password=get_password_hash("teacher123"),
            role=UserRole.TEACHER,
        )
        session.add(admin)
        session.add(teacher)
        session.commit()
        session.refresh(teacher)
        print(f"Created admin user: {admin.email}")
        print(f"Created teacher user: {teacher.email}")

        course = Course(
            name="Mathematics 101",
            description="Arithmetic and algebra fundamentals",
            instructor_id=teacher.id
        )
        session.add(course)
        session.commit()
        session.refresh(course)
        print(f"Created sample course: {course.name}")

        students = []
        for i in range(3):
            student = User(
                email=f"student{i+1}@example.com",
                name=f"Student {i+1}",
                hashed_password=get_password_hash("student123"),
                role=UserRole.STUDENT,
            )
            session.add(student)
            students.append(student)
        session.commit()
        for student in students:
            session.refresh(student)
        print(f"Created {len(students)} sample students")

        # Enroll first two students in the course
        for student in students[:2]:
            session.add(StudentCourse(student_id=student.id, course_id=course.id))
        session.commit()
        print("Enrolled 2 students in the sample course")

        quiz = Assignment(
            course_id=course.id,
            title="Arithmetic quiz",
            description="Two quick questions, ten minutes",
            assignment_type=AssignmentType.QUIZ,
            grading_mode=GradingMode.AUTO,
            time_limit_minutes=10,
            is_published=True,
            created_by=teacher.id,
        )
        session.add(quiz)
        session.commit()
        session.refresh(quiz)

        for index, (text, options, answer) in enumerate([
            ("2 + 2 = ?", ["3", "4", "5"], "4"),
            ("3 x 3 = ?", ["6", "9", "12"], "9"),
        ]):
            question = AssignmentQuestion(
                assignment_id=quiz.id,
                question_text=text,
                question_type=QuestionType.MCQ,
                points=1.0,
                correct_answer=answer,
                question_order=index,
                position=index,
            )
            question.set_options(options)
            session.add(question)
        session.commit()
        print(f"Created sample assignment: {quiz.title}")

        print("\nDatabase initialization complete!")
        print("\nLogin credentials:")
        print("Admin: admin@school.com / admin123")
        print("Teacher: teacher@school.com / teacher123")
        print("Students: student1@example.com / student123")
        print("          student2@example.com / student123")
        print("          student3@example.com / student123")


if __name__ == "__main__":
    init_database()
