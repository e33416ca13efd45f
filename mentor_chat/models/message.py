from pydantic import Field
from enum import Enum
from .base import BaseModel


class MessageStatus(str, Enum):
    SENT = "sent"
    DELIVERED = "delivered"  # modeled, no transition sets it yet
    READ = "read"


class Message(BaseModel):
    """Chat message model for MongoDB"""

    chat_id: str
    sender_id: str
    content: str = Field(..., min_length=1)
    status: MessageStatus = Field(default=MessageStatus.SENT)

    class Settings:
        name = "messages"
        indexes = [
            "chat_id",
            "sender_id",
            "created_at",
            ("chat_id", "created_at"),  # Compound index for chat history
            ("chat_id", "status")  # Compound index for read receipts
        ]

    def to_event_payload(self) -> dict:
        return {
            '_id': str(self.id),
            'chatId': self.chat_id,
            'senderId': self.sender_id,
            'content': self.content,
            'status': self.status.value,
            'createdAt': self.created_at.isoformat(),
        }

    def __repr__(self):
        return f"<Message(id='{self.id}', content='{self.content[:50]}...')>"
