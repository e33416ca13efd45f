from typing import Dict, Any, Optional
from mentor_chat.config import settings


def validate_message(content: Optional[str]) -> Dict[str, Any]:
    """Validate message content and return validation result"""
    errors = []
    stripped = (content or "").strip()

    if not stripped:
        errors.append("Message content must be at least 1 character long")
    elif len(stripped) > settings.MAX_MESSAGE_LENGTH:
        errors.append(f"Message content exceeds the maximum length of {settings.MAX_MESSAGE_LENGTH} characters")

    return {
        "is_valid": len(errors) == 0,
        "errors": errors,
        "content": stripped
    }
