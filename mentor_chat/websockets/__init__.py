from .connection_manager import Connection, ConnectionManager
from .connection_registry import ConnectionRegistry
from .room_tracker import RoomMembershipTracker
from .rate_limiter import FixedWindowRateLimiter, RateDecision
from .profile_cache import ProfileCache
from .presence_manager import PresenceManager
from .chat_server import ChatServer

__all__ = [
    "Connection",
    "ConnectionManager",
    "ConnectionRegistry",
    "RoomMembershipTracker",
    "FixedWindowRateLimiter",
    "RateDecision",
    "ProfileCache",
    "PresenceManager",
    "ChatServer"
]
