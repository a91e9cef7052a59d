from .user import User, UserRole
from .course import Course, StudentCourse
from .assignment import Assignment, AssignmentQuestion, AssignmentType, GradingMode, QuestionType
from .submission import Submission, AssignmentAnswer, SubmissionStatus, GradingStatus
from .grade import Grade
from .chat import ChatRoom, ChatMessage
from .assignment_file import AssignmentFile

__all__ = [
    "User",
    "UserRole",
    "Course",
    "StudentCourse",
    "Assignment",
    "AssignmentQuestion",
    "AssignmentType",
    "GradingMode",
    "QuestionType",
    "Submission",
    "AssignmentAnswer",
    "SubmissionStatus",
    "GradingStatus",
    "Grade",
    "ChatRoom",
    "ChatMessage",
    "AssignmentFile",
]
