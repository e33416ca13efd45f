from pydantic import BaseModel as PydanticModel, Field, EmailStr
from typing import Optional
from enum import Enum
from .base import BaseModel

DEFAULT_AVATAR_URL = "https://res.cloudinary.com/demo/image/upload/default_avatar.png"


class UserRole(str, Enum):
    STUDENT = "student"
    MENTOR = "mentor"
    ADMIN = "admin"


class UserStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    INACTIVE = "inactive"
    REJECTED = "rejected"


class Avatar(PydanticModel):
    public_id: str = "default_avatar.png"
    url: str = DEFAULT_AVATAR_URL


class User(BaseModel):
    """User model for MongoDB"""

    name: str = Field(..., min_length=1, max_length=50)
    email: EmailStr
    role: UserRole = Field(default=UserRole.STUDENT)
    status: UserStatus = Field(default=UserStatus.ACTIVE)
    avatar: Avatar = Field(default_factory=Avatar)
    bio: Optional[str] = Field(None, max_length=300)

    class Settings:
        name = "users"
        indexes = [
            "email",
            "role",
            "status"
        ]

    def to_profile(self) -> dict:
        """Public profile snapshot used to enrich chat events"""
        return {
            '_id': str(self.id),
            'name': self.name,
            'email': self.email,
            'avatar': self.avatar.model_dump(),
        }

    def __repr__(self):
        return f"<User(name='{self.name}', email='{self.email}', role='{self.role}')>"
