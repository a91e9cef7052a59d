from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime, timezone
import uuid
from sqlalchemy import Column, DateTime, Text


class ChatRoom(SQLModel, table=True):
    __tablename__ = "chat_rooms"

    id: Optional[str] = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    course_id: str = Field(foreign_key="course.id", index=True)
    name: str = Field(default="General")
    description: Optional[str] = Field(default=None)
    room_type: str = Field(default="class")
    is_active: bool = Field(default=True)
    created_by: Optional[str] = Field(default=None, foreign_key="user.id")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )


class ChatMessage(SQLModel, table=True):
    __tablename__ = "chat_messages"

    id: Optional[str] = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    room_id: str = Field(foreign_key="chat_rooms.id", index=True)
    sender_id: str = Field(foreign_key="user.id")
    message: str = Field(sa_column=Column(Text, nullable=False))
    message_type: str = Field(default="text")
    sent_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True)
    )
