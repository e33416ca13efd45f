# mentor_chat/models/__init__.py
from .base import BaseModel
from .user import User, UserRole, UserStatus, Avatar
from .chat import Chat
from .message import Message, MessageStatus

__all__ = [
    "BaseModel",
    "User",
    "UserRole",
    "UserStatus",
    "Avatar",
    "Chat",
    "Message",
    "MessageStatus",
]
