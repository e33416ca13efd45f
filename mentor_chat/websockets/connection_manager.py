import logging
import time
import uuid
from typing import Any, Callable, Dict, List, Optional, Set
from fastapi import WebSocket
from fastapi.websockets import WebSocketState

from mentor_chat.websockets.events import encode_frame, event_frame

logger = logging.getLogger(__name__)


class Connection:
    """One live websocket session"""

    def __init__(self, websocket: WebSocket, connection_id: Optional[str] = None, metadata: Optional[Dict[str, Any]] = None):
        self.websocket = websocket
        self.id = connection_id or uuid.uuid4().hex
        self.metadata = metadata or {}

    @property
    def closed(self) -> bool:
        return (
            self.websocket.application_state == WebSocketState.DISCONNECTED
            or self.websocket.client_state == WebSocketState.DISCONNECTED
        )

    async def send_json(self, frame: Dict[str, Any]):
        await self.websocket.send_text(encode_frame(frame))

    async def close(self, code: int = 1000, reason: str = ""):
        if not self.closed:
            await self.websocket.close(code=code, reason=reason)

    def __repr__(self):
        return f"<Connection(id='{self.id}')>"


class ConnectionManager:
    """Owns open connections and their transport-level room subscriptions"""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        # Active connections: {connection_id: connection}
        self.active_connections: Dict[str, Connection] = {}

        # Room subscriptions: {room_id: {connection_id}} and the reverse
        self.room_subscribers: Dict[str, Set[str]] = {}
        self.connection_rooms: Dict[str, Set[str]] = {}

        # Last inbound frame per connection
        self.last_activity: Dict[str, float] = {}

        self._clock = clock

    def add(self, connection: Connection):
        self.active_connections[connection.id] = connection
        self.last_activity[connection.id] = self._clock()

    def get(self, connection_id: str) -> Optional[Connection]:
        return self.active_connections.get(connection_id)

    def remove(self, connection_id: str) -> Optional[Connection]:
        """Forget a connection and every room it was subscribed to"""
        for room_id in list(self.connection_rooms.get(connection_id, ())):
            self.unsubscribe(connection_id, room_id)
        self.last_activity.pop(connection_id, None)
        return self.active_connections.pop(connection_id, None)

    def subscribe(self, connection_id: str, room_id: str):
        if connection_id not in self.active_connections:
            return
        self.room_subscribers.setdefault(room_id, set()).add(connection_id)
        self.connection_rooms.setdefault(connection_id, set()).add(room_id)

    def unsubscribe(self, connection_id: str, room_id: str):
        subscribers = self.room_subscribers.get(room_id)
        if subscribers is not None:
            subscribers.discard(connection_id)
            if not subscribers:
                del self.room_subscribers[room_id]

        rooms = self.connection_rooms.get(connection_id)
        if rooms is not None:
            rooms.discard(room_id)
            if not rooms:
                del self.connection_rooms[connection_id]

    def subscribers_of(self, room_id: str) -> Set[str]:
        return set(self.room_subscribers.get(room_id, ()))

    def rooms_of(self, connection_id: str) -> Set[str]:
        return set(self.connection_rooms.get(connection_id, ()))

    def update_activity(self, connection_id: str):
        if connection_id in self.active_connections:
            self.last_activity[connection_id] = self._clock()

    def stale_connections(self, timeout_seconds: float) -> List[str]:
        """Connections with no inbound frame for longer than the timeout"""
        now = self._clock()
        return [
            connection_id
            for connection_id, last_seen in self.last_activity.items()
            if now - last_seen > timeout_seconds
        ]

    async def send_to_connection(self, connection_id: str, frame: Dict[str, Any]) -> bool:
        """Send a frame to a single connection"""
        connection = self.active_connections.get(connection_id)
        if connection is None:
            return False
        return await self._deliver(connection, frame)

    async def emit_to_room(self, room_id: str, event_type: str, data: Any, exclude_connection: Optional[str] = None) -> int:
        """Send an event to every connection subscribed to a room"""
        frame = event_frame(event_type, data)
        sent_count = 0

        for connection_id in self.subscribers_of(room_id):
            if connection_id == exclude_connection:
                continue
            if await self.send_to_connection(connection_id, frame):
                sent_count += 1

        return sent_count

    async def broadcast(self, event_type: str, data: Any, exclude_connection: Optional[str] = None) -> int:
        """Broadcast an event to all open connections"""
        frame = event_frame(event_type, data)
        sent_count = 0

        for connection_id in list(self.active_connections):
            if connection_id == exclude_connection:
                continue
            if await self.send_to_connection(connection_id, frame):
                sent_count += 1

        return sent_count

    async def close_connection(self, connection_id: str, reason: str = "Disconnected"):
        connection = self.active_connections.get(connection_id)
        if connection is None:
            return
        try:
            await connection.close(code=1000, reason=reason)
        except Exception as e:
            logger.error(f"Error closing connection {connection_id}: {e}")

    async def _deliver(self, connection: Connection, frame: Dict[str, Any]) -> bool:
        try:
            if connection.closed:
                return False
            await connection.send_json(frame)
            return True
        except Exception as e:
            # Transport failure: close it and let its receive loop tear it down
            logger.error(f"Error sending to connection {connection.id}: {e}")
            await self.close_connection(connection.id, "Connection failed")
            return False

    def __len__(self) -> int:
        return len(self.active_connections)
