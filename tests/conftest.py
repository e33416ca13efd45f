"""Shared fakes for the realtime chat tests."""

import asyncio
import json
from typing import Any, Dict, List, Optional

import pytest

from mentor_chat.websockets.chat_server import ChatServer
from mentor_chat.websockets.rate_limiter import FixedWindowRateLimiter


class FakeUserStore:
    """In-memory user store that counts lookups"""

    def __init__(self, profiles: Optional[Dict[str, Dict[str, Any]]] = None):
        self.profiles = profiles or {}
        self.calls: List[str] = []
        self.error: Optional[Exception] = None

    async def fetch_user_profile(self, user_id: str):
        self.calls.append(user_id)
        if self.error is not None:
            raise self.error
        return self.profiles.get(user_id)


class FakeMessageStore:
    """In-memory message store"""

    def __init__(self):
        self.messages: List[Dict[str, Any]] = []
        self.chats = {'r1'}
        self.fail_persist = False
        self.persist_delay = 0.0

    async def chat_exists(self, room_id: str) -> bool:
        return room_id in self.chats

    async def persist_message(self, room_id: str, sender_id: str, content: str):
        if self.persist_delay:
            await asyncio.sleep(self.persist_delay)
        if self.fail_persist:
            raise RuntimeError("database unavailable")
        message = {
            '_id': f"m{len(self.messages) + 1}",
            'chatId': room_id,
            'senderId': sender_id,
            'content': content,
            'status': 'sent',
            'createdAt': f"2026-01-01T00:00:{len(self.messages):02d}+00:00",
        }
        self.messages.append(message)
        return dict(message)

    async def mark_messages_read(self, room_id: str, excluding_user_id: str) -> int:
        count = 0
        for message in self.messages:
            if message['chatId'] == room_id and message['senderId'] != excluding_user_id and message['status'] == 'sent':
                message['status'] = 'read'
                count += 1
        return count

    async def list_messages(self, room_id: str, page: int, limit: int):
        in_room = [dict(m) for m in self.messages if m['chatId'] == room_id]
        start = (page - 1) * limit
        return in_room[start:start + limit], len(in_room)

    async def list_unread(self, room_id: str, user_id: str):
        return [
            dict(m) for m in self.messages
            if m['chatId'] == room_id and m['senderId'] != user_id and m['status'] == 'sent'
        ]


class FakeConnection:
    """Stands in for a websocket connection and records what it was sent"""

    def __init__(self, connection_id: str, fail_sends: bool = False):
        self.id = connection_id
        self.sent: List[Dict[str, Any]] = []
        self.closed = False
        self.close_reason: Optional[str] = None
        self.fail_sends = fail_sends
        self.metadata: Dict[str, Any] = {}

    async def send_json(self, frame: Dict[str, Any]):
        if self.fail_sends:
            raise ConnectionResetError("peer went away")
        self.sent.append(frame)

    async def close(self, code: int = 1000, reason: str = ""):
        self.closed = True
        self.close_reason = reason

    def events(self, event_type: str) -> List[Any]:
        return [frame['data'] for frame in self.sent if frame['type'] == event_type]

    def acks(self) -> Dict[Any, Any]:
        return {frame['ack_id']: frame['data'] for frame in self.sent if frame['type'] == 'ack'}


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, amount: float):
        self.now += amount


@pytest.fixture
def user_store():
    return FakeUserStore({
        'u1': {'_id': 'u1', 'name': 'Alice', 'email': 'alice@example.com', 'avatar': None},
        'u2': {'_id': 'u2', 'name': 'Bob', 'email': 'bob@example.com', 'avatar': None},
    })


@pytest.fixture
def message_store():
    return FakeMessageStore()


@pytest.fixture
def fake_clock():
    return FakeClock(0.0)


@pytest.fixture
def rate_clock():
    return FakeClock(1_000_000.0)


@pytest.fixture
def chat_server(user_store, message_store, rate_clock):
    return ChatServer(
        user_store=user_store,
        message_store=message_store,
        rate_limiter=FixedWindowRateLimiter(max_messages=5, window_ms=1000, clock=rate_clock),
        store_timeout=1.0,
    )


@pytest.fixture
def connect(chat_server):
    """Open a fake connection on the chat server"""

    async def _connect(connection_id: str, fail_sends: bool = False) -> FakeConnection:
        connection = FakeConnection(connection_id, fail_sends=fail_sends)
        await chat_server.connect(connection)
        return connection

    return _connect


@pytest.fixture
def send(chat_server):
    """Feed a frame into the chat server as if it came from a connection"""

    async def _send(connection: FakeConnection, event_type: str, data: Any = None, ack_id: Any = None):
        frame: Dict[str, Any] = {'type': event_type, 'data': data}
        if ack_id is not None:
            frame['ack_id'] = ack_id
        await chat_server.handle_frame(connection.id, json.dumps(frame))

    return _send
