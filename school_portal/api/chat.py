import asyncio
import logging
from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status
from sqlmodel import Session, select
from typing import List

from school_portal.core.cache import Mutation, QueryKey, Resource, query_cache
from school_portal.core.config import settings
from school_portal.core.database import get_session
from school_portal.core.realtime import chat_topic, realtime_hub
from school_portal.utils.auth import get_current_user, get_course_or_404, require_course_member, user_from_token
from school_portal.utils.time_utils import ensure_utc, now_utc
from school_portal.models.user import User
from school_portal.models.chat import ChatMessage, ChatRoom
from school_portal.schemas.chat import ChatMessageCreate, ChatMessageResponse, ChatRoomResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Chat"])


def _room_response(room: ChatRoom) -> ChatRoomResponse:
    return ChatRoomResponse(
        id=room.id,
        course_id=room.course_id,
        name=room.name,
        description=room.description,
        room_type=room.room_type,
        is_active=room.is_active,
        created_at=ensure_utc(room.created_at),
    )


def _message_response(message: ChatMessage, sender: User) -> ChatMessageResponse:
    return ChatMessageResponse(
        id=message.id,
        room_id=message.room_id,
        sender_id=message.sender_id,
        sender_name=sender.display_name if sender else "Unknown",
        message=message.message,
        message_type=message.message_type,
        sent_at=ensure_utc(message.sent_at),
    )


def _room_for_member(session: Session, room_id: str, user: User) -> ChatRoom:
    room = session.get(ChatRoom, room_id)
    if not room or not room.is_active:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Chat room not found")
    require_course_member(session, user, get_course_or_404(session, room.course_id))
    return room


@router.get("/courses/{course_id}/chat-rooms", response_model=List[ChatRoomResponse])
def list_chat_rooms(
    course_id: str,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session)
):
    """Active rooms of a course; the first visit creates a General room"""
    course = get_course_or_404(session, course_id)
    require_course_member(session, current_user, course)

    def load() -> List[ChatRoomResponse]:
        rooms = session.exec(
            select(ChatRoom)
            .where(ChatRoom.course_id == course.id, ChatRoom.is_active == True)  # noqa: E712
            .order_by(ChatRoom.created_at)
        ).all()
        return [_room_response(room) for room in rooms]

    key = QueryKey(Resource.CHAT_ROOMS, course.id)
    rooms = query_cache.get_or_load(key, load)
    if rooms:
        return rooms

    room = ChatRoom(
        course_id=course.id,
        name="General",
        description=f"General discussion for {course.name}",
        created_by=current_user.id,
    )
    session.add(room)
    session.commit()
    session.refresh(room)
    logger.info("Created default chat room %s for course %s", room.id, course.id)

    query_cache.invalidate_after(Mutation.CREATE_CHAT_ROOM, course=course.id)
    return [_room_response(room)]


@router.get("/chat-rooms/{room_id}/messages", response_model=List[ChatMessageResponse])
def list_messages(
    room_id: str,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session)
):
    """Latest messages of a room, oldest first"""
    room = _room_for_member(session, room_id, current_user)

    def load() -> List[ChatMessageResponse]:
        latest = session.exec(
            select(ChatMessage, User)
            .join(User, ChatMessage.sender_id == User.id)
            .where(ChatMessage.room_id == room.id)
            .order_by(ChatMessage.sent_at.desc())
            .limit(settings.chat_history_limit)
        ).all()
        return [_message_response(message, sender) for message, sender in reversed(latest)]

    return query_cache.get_or_load(QueryKey(Resource.CHAT_MESSAGES, room.id), load)


@router.post("/chat-rooms/{room_id}/messages", response_model=ChatMessageResponse,
             status_code=status.HTTP_201_CREATED)
def send_message(
    room_id: str,
    message_data: ChatMessageCreate,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session)
):
    """Post a message and push it to everyone subscribed to the room"""
    room = _room_for_member(session, room_id, current_user)
    text = message_data.message.strip()
    if not text:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Message cannot be empty")

    message = ChatMessage(
        room_id=room.id,
        sender_id=current_user.id,
        message=text,
        message_type=message_data.message_type,
        sent_at=now_utc(),
    )
    session.add(message)
    session.commit()
    session.refresh(message)

    response = _message_response(message, current_user)
    query_cache.invalidate_after(Mutation.SEND_CHAT_MESSAGE, room=room.id)
    realtime_hub.publish(chat_topic(room.id), "INSERT", response.model_dump(mode="json"))
    return response


@router.websocket("/chat-rooms/{room_id}/ws")
async def chat_stream(
    websocket: WebSocket,
    room_id: str,
    token: str = Query(...),
    session: Session = Depends(get_session)
):
    """Stream new messages of a room; authenticate with ?token=<access token>"""
    try:
        user = user_from_token(token, session)
        room = _room_for_member(session, room_id, user)
    except HTTPException as exc:
        logger.warning("Chat websocket for room %s refused: %s", room_id, exc.detail)
        await websocket.close(code=4001 if exc.status_code == status.HTTP_401_UNAUTHORIZED else 4003)
        return

    await websocket.accept()
    # Subscribed before the greeting, so nothing posted after it is missed
    subscription = realtime_hub.subscribe(chat_topic(room.id))

    async def forward_events():
        async for event in subscription:
            await websocket.send_json({"type": "message", **event.to_dict()})

    async def receive_client():
        while True:
            data = await websocket.receive_json()
            if data.get("type") == "heartbeat":
                await websocket.send_json({"type": "heartbeat_response", "timestamp": now_utc().isoformat()})

    tasks = []
    try:
        await websocket.send_json({
            "type": "connection_established",
            "room_id": room.id,
            "timestamp": now_utc().isoformat(),
        })
        tasks = [asyncio.create_task(forward_events()), asyncio.create_task(receive_client())]
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                logger.error("Chat websocket for room %s failed: %s", room.id, exc)
    finally:
        for task in tasks:
            task.cancel()
        subscription.unsubscribe()
        logger.info("Chat websocket for user %s left room %s", user.id, room.id)
