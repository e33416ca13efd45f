import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import redis.asyncio as redis

logger = logging.getLogger(__name__)


class PresenceManager:
    """Mirrors who is online into Redis so other processes can see it.

    Failures here are logged and never surface to chat clients.
    """

    def __init__(self, redis_client, presence_ttl: int = 300):
        self.redis_client = redis_client
        self.presence_ttl = presence_ttl

    @classmethod
    def from_url(cls, url: str, presence_ttl: int = 300) -> Optional["PresenceManager"]:
        if not url:
            return None
        return cls(redis.Redis.from_url(url, decode_responses=True), presence_ttl)

    @staticmethod
    def _key(identity_key: str) -> str:
        return f"presence:{identity_key}"

    async def set_online(self, identity_key: str, connection_id: str):
        """Record a connection as online for a user"""
        try:
            presence_key = self._key(identity_key)
            session_data = {
                'connection_id': connection_id,
                'status': 'online',
                'timestamp': datetime.now(timezone.utc).isoformat()
            }
            await self.redis_client.hset(presence_key, connection_id, json.dumps(session_data))
            await self.redis_client.expire(presence_key, self.presence_ttl)
        except Exception as e:
            logger.error(f"Error updating Redis presence for {identity_key}: {e}")

    async def set_offline(self, identity_key: str, connection_id: str):
        """Remove a connection from a user's presence record"""
        try:
            await self.redis_client.hdel(self._key(identity_key), connection_id)
        except Exception as e:
            logger.error(f"Error clearing Redis presence for {identity_key}: {e}")

    async def get_presence(self, identity_key: str) -> Dict[str, Any]:
        """Get user presence from Redis"""
        try:
            sessions = await self.redis_client.hgetall(self._key(identity_key))
        except Exception as e:
            logger.error(f"Error getting presence for {identity_key}: {e}")
            return {'status': 'offline', 'sessions': []}

        online_sessions = [json.loads(session_data) for session_data in sessions.values()]
        return {
            'status': 'online' if online_sessions else 'offline',
            'sessions': online_sessions
        }

    async def close(self):
        await self.redis_client.aclose()
