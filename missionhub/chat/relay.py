"""Real-time messaging relay.

Single-process publish/subscribe keyed by mission id ("room"). Membership
lives only in memory and is lost on restart; clients rejoin and reconcile
history from the persisted messages. Delivery is at-most-once.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Protocol

from supabase import Client

from ..logging_config import get_logger
from ..missions.models import party_role
from ..missions.service import get_mission
from .store import (
    MarkReadPayload,
    SendMessagePayload,
    create_message,
    mark_messages_read,
    to_message_response,
)

logger = get_logger("chat.relay")


class Connection(Protocol):
    """A connected chat session."""

    id: str
    user_id: str

    async def send_json(self, data: Any) -> None: ...


def event(name: str, data: Any) -> dict:
    return {"event": name, "data": data}


class RoomRegistry:
    """Per-process room membership: mission id -> connection id -> connection."""

    def __init__(self):
        self._rooms: dict[str, dict[str, Connection]] = {}

    def join(self, mission_id: str, connection: Connection) -> bool:
        """Add a connection to a room. Returns False if it was already a member."""
        room = self._rooms.setdefault(mission_id, {})
        if connection.id in room:
            return False
        room[connection.id] = connection
        return True

    def leave(self, mission_id: str, connection_id: str) -> None:
        room = self._rooms.get(mission_id)
        if room is None:
            return
        room.pop(connection_id, None)
        if not room:
            del self._rooms[mission_id]

    def leave_all(self, connection_id: str) -> list[str]:
        """Remove a connection from every room; returns the rooms it left."""
        left = [mid for mid, room in self._rooms.items() if connection_id in room]
        for mission_id in left:
            self.leave(mission_id, connection_id)
        return left

    def is_member(self, mission_id: str, connection_id: str) -> bool:
        return connection_id in self._rooms.get(mission_id, {})

    def members(self, mission_id: str) -> list[Connection]:
        return list(self._rooms.get(mission_id, {}).values())

    def rooms(self) -> list[str]:
        return list(self._rooms)


class MessagingRelay:
    """Persists chat messages and fans them out to a mission's room.

    Persist-then-broadcast runs under one lock per room, so members see
    messages in the order they were stored.
    """

    def __init__(self, registry: RoomRegistry | None = None):
        self.registry = registry or RoomRegistry()
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    @asynccontextmanager
    async def _room_lock(self, mission_id: str):
        """Hold the room's lock. It is discarded once nobody holds or awaits it."""
        lock = self._locks.setdefault(mission_id, asyncio.Lock())
        self._lock_users[mission_id] = self._lock_users.get(mission_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[mission_id] -= 1
            if not self._lock_users[mission_id]:
                del self._lock_users[mission_id]
                del self._locks[mission_id]

    async def _reply_error(self, connection: Connection, name: str, message: str) -> None:
        try:
            await connection.send_json(event(name, {"error": message}))
        except Exception as e:
            logger.debug(f"Error reply to {connection.id} failed: {type(e).__name__}")

    async def broadcast(self, mission_id: str, name: str, data: Any) -> int:
        """Send an event to every member of a room. Returns deliveries made.

        Members whose socket fails are dropped from the registry.
        """
        delivered = 0
        for member in self.registry.members(mission_id):
            try:
                await member.send_json(event(name, data))
                delivered += 1
            except Exception as e:
                logger.warning(
                    f"Dropping connection {member.id} from mission {mission_id}: {type(e).__name__}"
                )
                self.registry.leave_all(member.id)
        return delivered

    async def join(self, db: Client, connection: Connection, mission_id: str) -> bool:
        """Add a participant's connection to a mission room (idempotent)."""
        try:
            mission = await get_mission(db, mission_id)
        except Exception as e:
            logger.error(f"join_mission lookup failed | mission={mission_id} | {type(e).__name__}")
            await self._reply_error(connection, "error", "Failed to join mission")
            return False
        if not mission:
            await self._reply_error(connection, "error", "Mission not found")
            return False
        if party_role(mission, connection.user_id) is None:
            await self._reply_error(connection, "error", "Not authorized")
            return False

        if self.registry.join(mission_id, connection):
            logger.info(f"User {connection.user_id} joined mission {mission_id} | conn={connection.id}")
        await connection.send_json(event("joined", {"missionId": mission_id}))
        return True

    def leave(self, connection: Connection, mission_id: str) -> None:
        self.registry.leave(mission_id, connection.id)

    def disconnect(self, connection: Connection) -> None:
        left = self.registry.leave_all(connection.id)
        logger.info(f"User {connection.user_id} disconnected | conn={connection.id} | rooms={len(left)}")

    async def send(self, db: Client, connection: Connection, payload: SendMessagePayload) -> dict | None:
        """Persist a message, then publish it to the mission's room.

        On any failure only the sending connection hears about it and
        nothing is broadcast.
        """
        mission_id = payload.mission_id
        if payload.sender_id != connection.user_id:
            await self._reply_error(connection, "message_error", "Sender does not match session")
            return None
        if not self.registry.is_member(mission_id, connection.id):
            await self._reply_error(connection, "message_error", "Join the mission before sending")
            return None

        async with self._room_lock(mission_id):
            try:
                mission = await get_mission(db, mission_id)
                if mission is None or party_role(mission, payload.receiver_id) is None \
                        or payload.receiver_id == payload.sender_id:
                    await self._reply_error(connection, "message_error", "Invalid receiver")
                    return None
                message = await create_message(
                    db, mission_id, payload.sender_id, payload.receiver_id, payload.content
                )
            except Exception as e:
                logger.error(f"Error sending message | mission={mission_id} | {type(e).__name__}: {e}")
                await self._reply_error(connection, "message_error", "Failed to send message")
                return None

            data = to_message_response(message).model_dump(mode="json")
            await self.broadcast(mission_id, "new_message", data)
        return message

    async def mark_read(self, db: Client, connection: Connection, payload: MarkReadPayload) -> int | None:
        """Mark a user's incoming messages in a mission as read and tell the room."""
        if payload.user_id != connection.user_id:
            await self._reply_error(connection, "error", "User does not match session")
            return None
        if not self.registry.is_member(payload.mission_id, connection.id):
            await self._reply_error(connection, "error", "Join the mission before marking messages read")
            return None
        try:
            updated = await mark_messages_read(db, payload.mission_id, payload.user_id)
        except Exception as e:
            logger.error(f"Error marking messages as read | mission={payload.mission_id} | {type(e).__name__}")
            await self._reply_error(connection, "error", "Failed to mark messages as read")
            return None

        await self.broadcast(
            payload.mission_id,
            "messages_read",
            {"missionId": payload.mission_id, "userId": payload.user_id},
        )
        return updated


# One relay per process
relay = MessagingRelay()


def get_relay() -> MessagingRelay:
    """FastAPI dependency for the process-wide relay."""
    return relay
