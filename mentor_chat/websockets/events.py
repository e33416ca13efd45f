import json
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Union

# Client -> server
AUTHENTICATE = "authenticate"
JOIN_CHAT = "joinChat"
LEAVE_CHAT = "leaveChat"
TYPING = "typing"
STOP_TYPING = "stopTyping"
SEND_MESSAGE = "sendMessage"
MARK_MESSAGES_READ = "markMessagesRead"
PING_SERVER = "pingServer"

# Server -> client
USER_ONLINE = "userOnline"
USER_OFFLINE = "userOffline"
RECEIVE_MESSAGE = "receiveMessage"
MESSAGES_READ = "messagesRead"
ERROR = "error"
ACK = "ack"

UNKNOWN_USER = "Unknown User"


class ErrorCode(str, Enum):
    MISSING_FIELDS = "MISSING_FIELDS"
    RATE_LIMIT = "RATE_LIMIT"
    GENERIC_ERROR = "GENERIC_ERROR"


class ChatEventError(Exception):
    """Per-event failure reported back to the originating connection only"""

    def __init__(self, message: str, code: ErrorCode = ErrorCode.GENERIC_ERROR):
        super().__init__(message)
        self.message = message
        self.code = code

    def to_payload(self) -> Dict[str, str]:
        return {'message': self.message, 'code': self.code.value}


@dataclass
class InboundFrame:
    type: str
    data: Any = None
    ack_id: Optional[Union[int, str]] = None


def decode_frame(raw: str) -> InboundFrame:
    """Parse a client frame: {"type": ..., "data": ..., "ack_id": ...}"""
    try:
        message_data = json.loads(raw)
    except json.JSONDecodeError:
        raise ChatEventError("Invalid JSON format")

    if not isinstance(message_data, dict) or not isinstance(message_data.get('type'), str):
        raise ChatEventError("Frame must be an object with a string 'type'")

    ack_id = message_data.get('ack_id')
    if ack_id is not None and not isinstance(ack_id, (int, str)):
        ack_id = None

    return InboundFrame(
        type=message_data['type'],
        data=message_data.get('data'),
        ack_id=ack_id,
    )


def event_frame(event_type: str, data: Any) -> Dict[str, Any]:
    return {'type': event_type, 'data': data}


def ack_frame(ack_id: Union[int, str], data: Any) -> Dict[str, Any]:
    return {'type': ACK, 'ack_id': ack_id, 'data': data}


def encode_frame(frame: Dict[str, Any]) -> str:
    return json.dumps(frame, default=str)


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
