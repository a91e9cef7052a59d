from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime


class CourseCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    instructor_id: Optional[str] = Field(None, description="Defaults to the creating teacher")


class CourseResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    instructor_id: str
    created_at: datetime
    enrollment_count: int = 0


class EnrollStudentsRequest(BaseModel):
    student_ids: List[str] = Field(min_length=1)


class EnrollStudentsResponse(BaseModel):
    course_id: str
    enrolled: List[str]
    already_enrolled: List[str]
