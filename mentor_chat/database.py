import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from beanie import init_beanie
from mentor_chat.config import settings
from mentor_chat.models import User, Chat, Message

logger = logging.getLogger(__name__)

DOCUMENT_MODELS = [User, Chat, Message]


class Database:
    client: Optional[AsyncIOMotorClient] = None
    database: Optional[AsyncIOMotorDatabase] = None


db = Database()


async def init_database():
    """Connect to MongoDB and register the chat documents with beanie"""
    timeout_ms = int(settings.STORE_TIMEOUT_SECONDS * 1000)
    db.client = AsyncIOMotorClient(settings.MONGODB_URL, serverSelectionTimeoutMS=timeout_ms)
    db.database = db.client[settings.DATABASE_NAME]

    # Startup fails if MongoDB is unreachable
    try:
        await db.client.admin.command("ping")
    except Exception as e:
        logger.error(f"Cannot reach MongoDB at startup: {e}")
        await close_database()
        raise

    await init_beanie(database=db.database, document_models=DOCUMENT_MODELS)
    logger.info(f"Connected to MongoDB database {settings.DATABASE_NAME}")


async def close_database():
    if db.client is not None:
        db.client.close()
        db.client = None
        db.database = None
        logger.info("MongoDB connection closed")
