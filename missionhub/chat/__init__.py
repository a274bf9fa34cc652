"""Mission chat: message store and real-time relay."""

from .relay import Connection, MessagingRelay, RoomRegistry, get_relay, relay
from .store import (
    MarkReadPayload,
    MessageListResponse,
    MessageResponse,
    SendMessagePayload,
    create_message,
    list_messages,
    mark_messages_read,
    to_message_response,
)

__all__ = [
    "Connection",
    "MessagingRelay",
    "RoomRegistry",
    "relay",
    "get_relay",
    "MessageResponse",
    "MessageListResponse",
    "SendMessagePayload",
    "MarkReadPayload",
    "create_message",
    "list_messages",
    "mark_messages_read",
    "to_message_response",
]
