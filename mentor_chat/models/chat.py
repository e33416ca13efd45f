from pydantic import Field
from typing import List
from .base import BaseModel


class Chat(BaseModel):
    """Project chat room model for MongoDB"""

    name: str = Field(..., min_length=1, max_length=100)
    project_id: str
    participants: List[str] = Field(default_factory=list)
    is_group_chat: bool = Field(default=True)

    class Settings:
        name = "chats"
        indexes = [
            "project_id",
            "participants"
        ]

    def __repr__(self):
        return f"<Chat(name='{self.name}', project_id='{self.project_id}')>"
