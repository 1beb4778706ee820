"""
WebSocket Server

WebSocket participant channel: the server sends queries (draw requests and
event notifications), the client answers each one by request_id.
"""
import asyncio
import json
import logging
import uuid
from datetime import datetime
from typing import Any, Dict

from fastapi import Query, WebSocket, WebSocketDisconnect

from rolloff.exceptions import DrawRejectedError, ParticipantDisconnectedError
from rolloff.realtime.connection_manager import ConnectionManager, Participant

logger = logging.getLogger(__name__)

# Allowed client message types
ALLOWED_CLIENT_MESSAGES = {"PING", "RESPONSE"}


class WebSocketParticipant(Participant):
    """
    Participant reachable over a WebSocket.

    Each query gets a request_id; the matching RESPONSE resolves it.
    """

    def __init__(self, websocket: WebSocket, user_id: str, name: str, is_authority: bool = False):
        super().__init__(user_id, name, is_authority)
        self.websocket = websocket
        self._pending: Dict[str, asyncio.Future] = {}

    async def query(self, action: str, payload: Dict[str, Any], timeout: float) -> Dict[str, Any]:
        if not self.active:
            raise ParticipantDisconnectedError(self.user_id)

        request_id = uuid.uuid4().hex
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future

        try:
            await self.websocket.send_text(json.dumps({
                "type": "QUERY",
                "request_id": request_id,
                "action": action,
                "payload": payload,
                "timeout": timeout,
            }, sort_keys=True))
            return await asyncio.wait_for(future, timeout=timeout)
        finally:
            self._pending.pop(request_id, None)

    def resolve_response(self, message: Dict[str, Any]) -> bool:
        """
        Complete the query a RESPONSE message answers.

        Returns:
            False if no query with that request_id is waiting
        """
        future = self._pending.get(message.get("request_id"))
        if future is None or future.done():
            return False

        error = message.get("error")
        if error:
            future.set_exception(DrawRejectedError(str(error)))
        else:
            future.set_result(message.get("payload") or {})
        return True

    async def close(self) -> None:
        await super().close()
        for future in self._pending.values():
            if not future.done():
                future.set_exception(ParticipantDisconnectedError(self.user_id))
        self._pending.clear()


async def websocket_endpoint(
    websocket: WebSocket,
    user_id: str,
    name: str = Query(...),
    authority: bool = Query(False)
):
    """
    WebSocket endpoint for rolloff participants.

    URL: /rolloffs/ws/{user_id}?name={display name}&authority={bool}

    Allowed client messages:
    - {"type": "PING"}
    - {"type": "RESPONSE", "request_id": "...", "payload": {...}}
    - {"type": "RESPONSE", "request_id": "...", "error": "reason"}

    Server messages:
    - {"type": "QUERY", "request_id": "...", "action": "...", "payload": {...}, "timeout": s}
    - {"type": "PONG"}
    - {"type": "ERROR", "message": "..."}

    Every QUERY must be answered, event notifications included (an empty
    payload acknowledges them).
    """
    connections: ConnectionManager = websocket.app.state.connections

    await websocket.accept()
    participant = WebSocketParticipant(websocket, user_id, name, is_authority=authority)
    await connections.connect(participant)

    try:
        while True:
            try:
                data = await websocket.receive_text()
            except WebSocketDisconnect:
                break

            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                await websocket.send_text(json.dumps({
                    "type": "ERROR",
                    "message": "Invalid JSON"
                }, sort_keys=True))
                continue

            msg_type = message.get("type") if isinstance(message, dict) else None

            if msg_type not in ALLOWED_CLIENT_MESSAGES:
                await websocket.send_text(json.dumps({
                    "type": "ERROR",
                    "message": f"Invalid message type. Allowed: {sorted(ALLOWED_CLIENT_MESSAGES)}"
                }, sort_keys=True))
                continue

            if msg_type == "PING":
                await websocket.send_text(json.dumps({
                    "type": "PONG",
                    "timestamp": datetime.utcnow().isoformat()
                }, sort_keys=True))

            elif msg_type == "RESPONSE":
                if not participant.resolve_response(message):
                    logger.debug(f"Late or unknown response from {user_id}: {message.get('request_id')}")
    finally:
        # Only drop the registry entry if a reconnect has not replaced it
        if connections.get(user_id) is participant:
            await connections.disconnect(user_id)
        else:
            await participant.close()


__all__ = ["WebSocketParticipant", "websocket_endpoint"]
