"""Message persistence for mission chat."""

from datetime import datetime

from pydantic import BaseModel, Field
from supabase import Client

from ..database import MESSAGES_TABLE, get_user_summaries, run_query
from ..logging_config import get_logger
from ..models import UserSummary

logger = get_logger("chat.store")


class MessageResponse(BaseModel):
    id: str
    mission_id: str
    sender_id: str
    receiver_id: str
    content: str
    is_read: bool = False
    created_at: datetime
    sender: UserSummary | None = None


class MessageListResponse(BaseModel):
    messages: list[MessageResponse]
    total: int


class SendMessagePayload(BaseModel):
    """``send_message`` event body, camelCase on the wire."""

    mission_id: str = Field(..., alias="missionId", min_length=1)
    sender_id: str = Field(..., alias="senderId", min_length=1)
    receiver_id: str = Field(..., alias="receiverId", min_length=1)
    content: str = Field(..., min_length=1, max_length=4000)

    model_config = {"populate_by_name": True}


class MarkReadPayload(BaseModel):
    mission_id: str = Field(..., alias="missionId", min_length=1)
    user_id: str = Field(..., alias="userId", min_length=1)

    model_config = {"populate_by_name": True}


async def create_message(
    db: Client,
    mission_id: str,
    sender_id: str,
    receiver_id: str,
    content: str,
) -> dict:
    """Persist an unread message and return it with the sender's summary."""
    data = {
        "mission_id": mission_id,
        "sender_id": sender_id,
        "receiver_id": receiver_id,
        "content": content,
        "is_read": False,
    }
    result = await run_query(db.table(MESSAGES_TABLE).insert(data))
    if not result.data:
        raise RuntimeError("Message insert returned no row")
    message = result.data[0]
    # The row is stored; a missing sender summary must not turn it into a failed send
    try:
        senders = await get_user_summaries(db, [sender_id])
    except Exception as e:
        logger.warning(f"Sender summary lookup failed | message={message['id']} | {type(e).__name__}")
        senders = {}
    message["sender"] = senders.get(sender_id)
    return message


async def list_messages(db: Client, mission_id: str) -> list[dict]:
    """A mission's messages, oldest first."""
    result = await run_query(
        db.table(MESSAGES_TABLE)
        .select("*")
        .eq("mission_id", mission_id)
        .order("created_at")
    )
    return result.data or []


async def mark_messages_read(db: Client, mission_id: str, receiver_id: str) -> int:
    """Flip every unread message addressed to ``receiver_id`` in a mission."""
    result = await run_query(
        db.table(MESSAGES_TABLE)
        .update({"is_read": True})
        .eq("mission_id", mission_id)
        .eq("receiver_id", receiver_id)
        .eq("is_read", False)
    )
    return len(result.data or [])


def to_message_response(message: dict) -> MessageResponse:
    sender = message.get("sender")
    return MessageResponse(
        id=message["id"],
        mission_id=message["mission_id"],
        sender_id=message["sender_id"],
        receiver_id=message["receiver_id"],
        content=message["content"],
        is_read=bool(message.get("is_read")),
        created_at=message["created_at"],
        sender=UserSummary(**sender) if sender else None,
    )
