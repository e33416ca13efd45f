import asyncio
import logging
import time
from typing import Any, Awaitable, Dict, Optional, Set

from mentor_chat.config import settings
from mentor_chat.websockets import events
from mentor_chat.websockets.events import ChatEventError, ErrorCode, InboundFrame
from mentor_chat.websockets.connection_manager import Connection, ConnectionManager
from mentor_chat.websockets.connection_registry import ConnectionRegistry
from mentor_chat.websockets.identity import AnonymousIdentity, Identity
from mentor_chat.websockets.presence_manager import PresenceManager
from mentor_chat.websockets.profile_cache import ProfileCache
from mentor_chat.websockets.rate_limiter import FixedWindowRateLimiter, RateDecision
from mentor_chat.websockets.room_tracker import RoomMembershipTracker
from mentor_chat.websockets.stores import MessageStore, UserStore

logger = logging.getLogger(__name__)


class ChatServer:
    """Routes realtime chat events between connections.

    Owns the connection registry, room membership and rate state for one
    event loop. Each connection's frames are handled strictly in order by its
    receive loop; frames from different connections interleave freely.
    """

    def __init__(
        self,
        user_store: UserStore,
        message_store: MessageStore,
        presence: Optional[PresenceManager] = None,
        rate_limiter: Optional[FixedWindowRateLimiter] = None,
        profile_cache: Optional[ProfileCache] = None,
        store_timeout: Optional[float] = settings.STORE_TIMEOUT_SECONDS,
    ):
        self.message_store = message_store
        self.presence = presence
        self.store_timeout = store_timeout

        self.connections = ConnectionManager()
        self.registry = ConnectionRegistry()
        self.rooms = RoomMembershipTracker()
        self.rate_limiter = rate_limiter or FixedWindowRateLimiter(
            max_messages=settings.RATE_LIMIT_MAX_MESSAGES,
            window_ms=settings.RATE_LIMIT_WINDOW_MS,
        )
        self.profiles = profile_cache or ProfileCache(
            user_store,
            ttl_seconds=settings.PROFILE_CACHE_TTL_SECONDS,
            timeout=store_timeout,
        )

        # Fire-and-forget work (profile pre-fetch, presence mirror)
        self._background: Set[asyncio.Task] = set()

    def get_current_time(self) -> int:
        """Server time in epoch milliseconds"""
        return int(time.time() * 1000)

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self, connection: Connection):
        """Register a new connection and announce it to everyone else"""
        self.connections.add(connection)
        self.registry.register(connection.id)
        logger.info(f"User connected: {connection.id}")

        if self.presence is not None:
            self._spawn(self.presence.set_online(connection.id, connection.id))

        await self.connections.broadcast(events.USER_ONLINE, connection.id, exclude_connection=connection.id)

    async def disconnect(self, connection_id: str):
        """Tear down all state for a connection; safe to call more than once"""
        if not self.registry.is_registered(connection_id) and self.connections.get(connection_id) is None:
            return

        identity = self.registry.resolve(connection_id)
        # While another connection of the same user is open, the user's rooms
        # stay and nobody is told they went offline
        last_connection = self.registry.is_last_connection(connection_id)
        self.registry.remove(connection_id)

        self.rooms.clear(AnonymousIdentity(connection_id))
        self.rate_limiter.forget(AnonymousIdentity(connection_id))
        if last_connection:
            self.rooms.clear(identity)
        self.connections.remove(connection_id)

        if self.presence is not None:
            self._spawn(self.presence.set_offline(identity.key, connection_id))

        if last_connection:
            await self.connections.broadcast(events.USER_OFFLINE, identity.key, exclude_connection=connection_id)
        logger.info(f"User disconnected: {identity.key}")

    async def sweep_idle_connections(self, timeout_seconds: float = settings.WS_CONNECTION_TIMEOUT) -> int:
        """Close and tear down connections that have gone quiet"""
        stale = self.connections.stale_connections(timeout_seconds)
        for connection_id in stale:
            logger.info(f"Closing idle connection {connection_id}")
            await self.connections.close_connection(connection_id, "Connection timeout")
            await self.disconnect(connection_id)
        return len(stale)

    async def shutdown(self):
        for connection_id in list(self.connections.active_connections):
            await self.connections.close_connection(connection_id, "Server shutting down")
            await self.disconnect(connection_id)

        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        self.profiles.close()

    # ------------------------------------------------------------------
    # Inbound frames
    # ------------------------------------------------------------------

    async def handle_frame(self, connection_id: str, raw: str):
        """Decode and process one inbound frame from a connection"""
        self.connections.update_activity(connection_id)
        try:
            frame = events.decode_frame(raw)
        except ChatEventError as e:
            await self.send_error(connection_id, e)
            return
        await self.dispatch(connection_id, frame)

    async def dispatch(self, connection_id: str, frame: InboundFrame):
        try:
            result = await self._route(connection_id, frame)
        except ChatEventError as e:
            await self.send_error(connection_id, e)
            if frame.ack_id is not None:
                await self._ack(connection_id, frame.ack_id, {'success': False, **e.to_payload()})
            return
        except Exception as e:
            logger.exception(f"Error handling {frame.type} from {connection_id}: {e}")
            error = ChatEventError("Failed to process event")
            await self.send_error(connection_id, error)
            if frame.ack_id is not None:
                await self._ack(connection_id, frame.ack_id, {'success': False, **error.to_payload()})
            return

        if frame.ack_id is not None and result is not None:
            await self._ack(connection_id, frame.ack_id, result)

    async def _route(self, connection_id: str, frame: InboundFrame) -> Optional[Dict[str, Any]]:
        message_type = frame.type
        data = frame.data

        if message_type == events.AUTHENTICATE:
            return await self.handle_authenticate(connection_id, data)
        elif message_type == events.JOIN_CHAT:
            return await self.handle_join_chat(connection_id, data)
        elif message_type == events.LEAVE_CHAT:
            return await self.handle_leave_chat(connection_id, data)
        elif message_type in (events.TYPING, events.STOP_TYPING):
            return await self.handle_typing(connection_id, message_type, data)
        elif message_type == events.SEND_MESSAGE:
            return await self.handle_send_message(connection_id, data)
        elif message_type == events.MARK_MESSAGES_READ:
            return await self.handle_mark_messages_read(connection_id, data)
        elif message_type == events.PING_SERVER:
            return await self.handle_ping(connection_id)
        else:
            raise ChatEventError(f"Unknown event type: {message_type}")

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    async def handle_authenticate(self, connection_id: str, data: Any) -> None:
        """Bind the connection to a user id; a missing id is ignored"""
        user_id = data.get('userId') if isinstance(data, dict) else None
        if not user_id:
            return None
        user_id = str(user_id)

        previous = self.registry.resolve(connection_id)
        self.registry.bind(connection_id, user_id)
        identity = self.registry.resolve(connection_id)

        if previous != identity:
            self._move_rooms(connection_id, previous, identity)
        logger.info(f"Connection {connection_id} authenticated as {user_id}")

        self._spawn(self.profiles.get_profile(user_id))
        if self.presence is not None:
            if previous != identity:
                self._spawn(self.presence.set_offline(previous.key, connection_id))
            self._spawn(self.presence.set_online(user_id, connection_id))
        return None

    def _move_rooms(self, connection_id: str, previous: Identity, identity: Identity):
        """Carry the connection's rooms over to the identity it now resolves to"""
        for room_id in self.connections.rooms_of(connection_id):
            self.rooms.join(identity, room_id)

        # Rooms joined while anonymous, or by a user nobody else is still
        # connected as, must not outlive the binding
        if not previous.is_authenticated or not self.registry.connections_of(previous.key):
            self.rooms.clear(previous)

    async def handle_join_chat(self, connection_id: str, data: Any) -> None:
        room_id = self._room_id(data)
        identity = self.registry.resolve(connection_id)
        self.connections.subscribe(connection_id, room_id)
        self.rooms.join(identity, room_id)
        logger.info(f"User {identity.key} joined room {room_id}")
        return None

    async def handle_leave_chat(self, connection_id: str, data: Any) -> None:
        room_id = self._room_id(data)
        identity = self.registry.resolve(connection_id)
        self.connections.unsubscribe(connection_id, room_id)
        self.rooms.leave(identity, room_id)
        logger.info(f"User {identity.key} left room {room_id}")
        return None

    async def handle_typing(self, connection_id: str, event_type: str, data: Any) -> None:
        """Relay a typing indicator to everyone else in the room"""
        chat_id = data.get('chatId') if isinstance(data, dict) else None
        if not chat_id:
            raise ChatEventError("Chat ID is required.", ErrorCode.MISSING_FIELDS)

        await self.connections.emit_to_room(
            chat_id,
            event_type,
            {'chatId': chat_id, 'userName': data.get('userName')},
            exclude_connection=connection_id,
        )
        return None

    async def handle_send_message(self, connection_id: str, data: Any) -> Dict[str, Any]:
        """Persist a chat message and deliver it to the whole room"""
        chat_id = data.get('chatId') if isinstance(data, dict) else None
        content = data.get('content') if isinstance(data, dict) else None
        if not chat_id or not content:
            raise ChatEventError("Chat ID and content are required.", ErrorCode.MISSING_FIELDS)

        identity = self.registry.resolve(connection_id)
        if self.rate_limiter.check_and_record(identity) is RateDecision.LIMITED:
            logger.warning(f"Rate limit exceeded for {identity.key}")
            raise ChatEventError("Rate limit exceeded. Please slow down.", ErrorCode.RATE_LIMIT)

        sender = await self._sender_profile(identity)

        # Broadcast only once the message is stored
        try:
            stored = await self._call_store(
                self.message_store.persist_message(chat_id, identity.key, content)
            )
        except Exception as e:
            logger.error(f"Error persisting message in chat {chat_id} from {identity.key}: {e!r}")
            raise ChatEventError("Failed to send message")

        await self.connections.emit_to_room(chat_id, events.RECEIVE_MESSAGE, {
            '_id': stored.get('_id'),
            'chatId': chat_id,
            'senderId': identity.key,
            'sender': sender,
            'content': content,
            'createdAt': stored.get('createdAt') or events.now_iso(),
            'status': 'sent',
        })

        return {'success': True, 'message': 'Message sent'}

    async def handle_mark_messages_read(self, connection_id: str, data: Any) -> None:
        chat_id = data.get('chatId') if isinstance(data, dict) else None
        if not chat_id:
            raise ChatEventError("Chat ID is required.", ErrorCode.MISSING_FIELDS)

        identity = self.registry.resolve(connection_id)
        try:
            count = await self._call_store(
                self.message_store.mark_messages_read(chat_id, identity.key)
            )
        except Exception as e:
            logger.error(f"Error marking messages read in chat {chat_id} for {identity.key}: {e!r}")
            raise ChatEventError("Failed to mark messages as read")

        await self.emit_messages_read(chat_id, identity.key, count)
        return None

    async def handle_ping(self, connection_id: str) -> Dict[str, Any]:
        """Liveness and clock-skew check; answered only through the ack"""
        return {'serverTime': self.get_current_time()}

    # ------------------------------------------------------------------
    # Outbound helpers
    # ------------------------------------------------------------------

    async def emit_to_room(self, room_id: str, event_type: str, data: Any) -> int:
        """Deliver an event to every connection in a room"""
        return await self.connections.emit_to_room(room_id, event_type, data)

    async def emit_messages_read(self, chat_id: str, user_id: str, count: int) -> int:
        return await self.emit_to_room(chat_id, events.MESSAGES_READ, {
            'chatId': chat_id,
            'userId': user_id,
            'count': count,
        })

    async def send_error(self, connection_id: str, error: ChatEventError):
        await self.connections.send_to_connection(
            connection_id, events.event_frame(events.ERROR, error.to_payload())
        )

    async def _ack(self, connection_id: str, ack_id, data: Dict[str, Any]):
        await self.connections.send_to_connection(connection_id, events.ack_frame(ack_id, data))

    async def _sender_profile(self, identity: Identity) -> Dict[str, Any]:
        profile = None
        if identity.is_authenticated:
            profile = await self.profiles.get_profile(identity.key)
        return profile or {'_id': identity.key, 'name': events.UNKNOWN_USER}

    async def _call_store(self, awaitable: Awaitable):
        return await asyncio.wait_for(awaitable, self.store_timeout)

    def _room_id(self, data: Any) -> str:
        # joinChat / leaveChat send the bare room id; accept {"chatId": ...} too
        room_id = data.get('chatId') if isinstance(data, dict) else data
        if not room_id or not isinstance(room_id, str):
            raise ChatEventError("Chat ID is required.", ErrorCode.MISSING_FIELDS)
        return room_id

    def _spawn(self, coro: Awaitable):
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background_done)

    def _background_done(self, task: asyncio.Task):
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Background task failed: {task.exception()!r}")
