import logging
from typing import Any, Dict, List, Optional, Protocol, Tuple
from beanie import PydanticObjectId
from beanie.operators import In, NE, Set
from bson import ObjectId

from mentor_chat.models.chat import Chat
from mentor_chat.models.message import Message, MessageStatus
from mentor_chat.models.user import User

logger = logging.getLogger(__name__)


class UserStore(Protocol):
    async def fetch_user_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        ...


class MessageStore(Protocol):
    async def chat_exists(self, room_id: str) -> bool:
        ...

    async def persist_message(self, room_id: str, sender_id: str, content: str) -> Dict[str, Any]:
        ...

    async def mark_messages_read(self, room_id: str, excluding_user_id: str) -> int:
        ...

    async def list_messages(self, room_id: str, page: int, limit: int) -> Tuple[List[Dict[str, Any]], int]:
        ...

    async def list_unread(self, room_id: str, user_id: str) -> List[Dict[str, Any]]:
        ...


class BeanieUserStore:
    """Looks users up in the MongoDB users collection"""

    async def fetch_user_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        if not ObjectId.is_valid(user_id):
            return None
        user = await User.get(PydanticObjectId(user_id))
        if user is None:
            return None
        return user.to_profile()


class BeanieMessageStore:
    """Stores chat messages in the MongoDB messages collection"""

    async def chat_exists(self, room_id: str) -> bool:
        if not ObjectId.is_valid(room_id):
            return False
        return await Chat.get(PydanticObjectId(room_id)) is not None

    async def persist_message(self, room_id: str, sender_id: str, content: str) -> Dict[str, Any]:
        message = Message(chat_id=room_id, sender_id=sender_id, content=content)
        await message.insert()
        return message.to_event_payload()

    async def mark_messages_read(self, room_id: str, excluding_user_id: str) -> int:
        result = await Message.find(
            Message.chat_id == room_id,
            NE(Message.sender_id, excluding_user_id),
            Message.status == MessageStatus.SENT,
        ).update(Set({Message.status: MessageStatus.READ}))

        modified = getattr(result, 'modified_count', 0)
        logger.info(f"Marked {modified} messages as read in chat {room_id} for user {excluding_user_id}")
        return modified

    async def list_messages(self, room_id: str, page: int, limit: int) -> Tuple[List[Dict[str, Any]], int]:
        query = Message.find(Message.chat_id == room_id)
        total = await query.count()
        messages = await (
            Message.find(Message.chat_id == room_id)
            .sort(+Message.created_at)
            .skip((page - 1) * limit)
            .limit(limit)
            .to_list()
        )
        return await self._with_senders(messages), total

    async def list_unread(self, room_id: str, user_id: str) -> List[Dict[str, Any]]:
        messages = await Message.find(
            Message.chat_id == room_id,
            NE(Message.sender_id, user_id),
            Message.status == MessageStatus.SENT,
        ).to_list()
        return [message.to_event_payload() for message in messages]

    async def _with_senders(self, messages: List[Message]) -> List[Dict[str, Any]]:
        """Attach sender name/email to each message payload"""
        sender_ids = {msg.sender_id for msg in messages if ObjectId.is_valid(msg.sender_id)}
        senders = []
        if sender_ids:
            senders = await User.find(
                In(User.id, [PydanticObjectId(sid) for sid in sender_ids])
            ).to_list()
        sender_map = {str(sender.id): sender for sender in senders}

        result = []
        for message in messages:
            payload = message.to_event_payload()
            sender = sender_map.get(message.sender_id)
            payload['sender'] = {
                '_id': message.sender_id,
                'name': sender.name if sender else 'Unknown User',
                'email': sender.email if sender else None,
            }
            result.append(payload)
        return result
