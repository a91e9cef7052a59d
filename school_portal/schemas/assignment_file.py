from pydantic import BaseModel
from datetime import datetime


class AssignmentFileResponse(BaseModel):
    id: str
    assignment_id: str
    file_name: str
    file_url: str
    file_size: int
    uploaded_by: str
    uploaded_at: datetime
