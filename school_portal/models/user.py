from sqlmodel import SQLModel, Field
from typing import Optional
from enum import Enum
import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, DateTime


class UserRole(str, Enum):
    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"


class User(SQLModel, table=True):
    id: Optional[str] = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)

    # Authentication Fields
    email: str = Field(index=True, unique=True)
    hashed_password: str

    # Profile Information
    name: Optional[str] = Field(default=None)
    avatar_url: Optional[str] = Field(default=None)

    # System Fields
    role: UserRole = Field(default=UserRole.STUDENT)
    is_active: bool = Field(default=True)

    # Metadata - Use timezone-aware datetime with TIMESTAMPTZ
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )

    @property
    def display_name(self) -> str:
        return self.name or self.email.split("@")[0]

    def can_author(self) -> bool:
        """Teachers and admins can author and grade assignments"""
        return self.role in (UserRole.TEACHER, UserRole.ADMIN)
