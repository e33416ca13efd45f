from datetime import datetime, timezone
from pydantic import Field
from beanie import Document, before_event, Replace, Save, SaveChanges


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BaseModel(Document):
    """Base document with created/updated timestamps"""

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @before_event(Replace, Save, SaveChanges)
    def touch(self):
        self.updated_at = utcnow()
