import asyncio
import logging
from fastapi import APIRouter, HTTPException, Request, status, Depends, Query
from pydantic import BaseModel

from mentor_chat.security.auth import get_current_user_id
from mentor_chat.security.validation import validate_message
from mentor_chat.websockets import events
from mentor_chat.websockets.chat_server import ChatServer

logger = logging.getLogger(__name__)

router = APIRouter()


class SendMessageRequest(BaseModel):
    content: str


def get_chat_server(request: Request) -> ChatServer:
    """The realtime server installed on the application"""
    chat_server = getattr(request.app.state, "chat_server", None)
    if chat_server is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Realtime server has not been initialized"
        )
    return chat_server


async def _store_call(chat_server: ChatServer, awaitable, action: str):
    try:
        return await asyncio.wait_for(awaitable, chat_server.store_timeout)
    except Exception as e:
        logger.error(f"Message store failed to {action}: {e!r}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Failed to {action}"
        )


@router.get("/{chat_id}/messages")
async def get_messages(
    chat_id: str,
    current_user_id: str = Depends(get_current_user_id),
    chat_server: ChatServer = Depends(get_chat_server),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100)
):
    """Get a page of messages from a chat, oldest first"""
    messages, total = await _store_call(
        chat_server, chat_server.message_store.list_messages(chat_id, page, limit), "load messages"
    )

    return {
        'success': True,
        'results': len(messages),
        'totalMessages': total,
        'totalPages': (total + limit - 1) // limit,
        'currentPage': page,
        'messages': messages
    }


@router.get("/{chat_id}/messages/unread")
async def get_unread_messages(
    chat_id: str,
    current_user_id: str = Depends(get_current_user_id),
    chat_server: ChatServer = Depends(get_chat_server)
):
    """Messages in a chat the caller has not read yet"""
    unread = await _store_call(
        chat_server, chat_server.message_store.list_unread(chat_id, current_user_id), "load unread messages"
    )

    if not unread:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No unread messages found for this chat"
        )

    return {
        'success': True,
        'results': len(unread),
        'unreadMessages': unread
    }


@router.post("/{chat_id}/messages", status_code=status.HTTP_201_CREATED)
async def send_message(
    chat_id: str,
    request: SendMessageRequest,
    current_user_id: str = Depends(get_current_user_id),
    chat_server: ChatServer = Depends(get_chat_server)
):
    """Send a message to a chat and push it to connected room members"""
    validation_result = validate_message(request.content)
    if not validation_result['is_valid']:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=', '.join(validation_result['errors'])
        )

    chat_exists = await _store_call(
        chat_server, chat_server.message_store.chat_exists(chat_id), "look up chat"
    )
    profile = await chat_server.profiles.get_profile(current_user_id)
    if not chat_exists or profile is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Sender or chat not found"
        )

    stored = await _store_call(
        chat_server,
        chat_server.message_store.persist_message(chat_id, current_user_id, validation_result['content']),
        "send message"
    )

    message = {
        **stored,
        'chatId': chat_id,
        'senderId': current_user_id,
        'sender': profile,
        'status': 'sent',
    }

    await chat_server.emit_to_room(chat_id, events.RECEIVE_MESSAGE, message)

    return {
        'success': True,
        'message': message
    }


@router.patch("/{chat_id}/messages/read")
async def mark_messages_read(
    chat_id: str,
    current_user_id: str = Depends(get_current_user_id),
    chat_server: ChatServer = Depends(get_chat_server)
):
    """Mark every message from other participants as read"""
    count = await _store_call(
        chat_server, chat_server.message_store.mark_messages_read(chat_id, current_user_id), "mark messages as read"
    )

    await chat_server.emit_messages_read(chat_id, current_user_id, count)

    return {
        'success': True,
        'message': f"{count} messages marked as read"
    }
