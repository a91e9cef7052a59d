from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class ChatRoomResponse(BaseModel):
    id: str
    course_id: str
    name: str
    description: Optional[str] = None
    room_type: str
    is_active: bool
    created_at: datetime


class ChatMessageCreate(BaseModel):
    message: str = Field(max_length=4000)
    message_type: str = "text"


class ChatMessageResponse(BaseModel):
    id: str
    room_id: str
    sender_id: str
    sender_name: str
    message: str
    message_type: str
    sent_at: datetime
