from .auth import create_access_token, verify_token, get_current_user_id
from .validation import validate_message

__all__ = [
    "create_access_token",
    "verify_token",
    "get_current_user_id",
    "validate_message"
]
