from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime, timezone
import uuid
from sqlalchemy import Column, DateTime


class AssignmentFile(SQLModel, table=True):
    __tablename__ = "assignment_files"

    id: Optional[str] = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    assignment_id: str = Field(foreign_key="assignment.id", index=True)
    file_name: str
    file_url: str
    storage_path: str
    file_size: int = Field(default=0)
    uploaded_by: str = Field(foreign_key="user.id")
    uploaded_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )
