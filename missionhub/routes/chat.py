"""WebSocket endpoint for mission chat."""

import uuid
from typing import Annotated, Any

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError as PydanticValidationError

from ..auth import authenticate_token
from ..chat import MarkReadPayload, MessagingRelay, SendMessagePayload, get_relay
from ..config import Settings, get_settings
from ..database import Database
from ..errors import NotAuthenticatedError
from ..logging_config import get_logger

logger = get_logger("routes.chat")
router = APIRouter(tags=["chat"])


class SocketConnection:
    """Adapts a Starlette WebSocket to the relay's connection interface."""

    def __init__(self, websocket: WebSocket, user_id: str):
        self.id = uuid.uuid4().hex
        self.user_id = user_id
        self._websocket = websocket

    async def send_json(self, data: Any) -> None:
        await self._websocket.send_json(data)


def _mission_id(data: Any) -> str | None:
    """``join_mission``/``leave_mission`` take a bare id or ``{"missionId": id}``."""
    if isinstance(data, str):
        return data or None
    if isinstance(data, dict):
        value = data.get("missionId") or data.get("mission_id")
        return value if isinstance(value, str) and value else None
    return None


async def _dispatch(
    relay: MessagingRelay, db, connection: SocketConnection, frame: Any
) -> None:
    if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
        await connection.send_json({"event": "error", "data": {"error": "Malformed frame"}})
        return

    name = frame["event"]
    data = frame.get("data")

    if name in ("join_mission", "leave_mission"):
        mission_id = _mission_id(data)
        if not mission_id:
            await connection.send_json({"event": "error", "data": {"error": "missionId is required"}})
        elif name == "join_mission":
            await relay.join(db, connection, mission_id)
        else:
            relay.leave(connection, mission_id)
        return

    if name == "send_message":
        try:
            payload = SendMessagePayload.model_validate(data)
        except PydanticValidationError:
            await connection.send_json({"event": "message_error", "data": {"error": "Invalid message"}})
            return
        await relay.send(db, connection, payload)
        return

    if name == "mark_read":
        try:
            payload = MarkReadPayload.model_validate(data)
        except PydanticValidationError:
            await connection.send_json({"event": "error", "data": {"error": "Invalid mark_read payload"}})
            return
        await relay.mark_read(db, connection, payload)
        return

    await connection.send_json({"event": "error", "data": {"error": f"Unknown event: {name}"}})


@router.websocket("/ws/chat")
async def chat_socket(
    websocket: WebSocket,
    db: Database,
    relay: Annotated[MessagingRelay, Depends(get_relay)],
    settings: Annotated[Settings, Depends(get_settings)],
):
    """Authenticated chat channel. The token travels in the ``token`` query parameter."""
    try:
        auth = authenticate_token(websocket.query_params.get("token"), settings)
    except NotAuthenticatedError as e:
        logger.info(f"WS /ws/chat rejected | {e.message}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    connection = SocketConnection(websocket, auth.user_id)
    logger.info(f"WS /ws/chat connected | user={auth.user_id} | conn={connection.id}")

    try:
        while True:
            try:
                frame = await websocket.receive_json()
            except ValueError:
                await connection.send_json({"event": "error", "data": {"error": "Invalid JSON"}})
                continue
            await _dispatch(relay, db, connection, frame)
    except WebSocketDisconnect:
        pass
    finally:
        relay.disconnect(connection)
