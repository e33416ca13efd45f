import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class _CacheEntry:
    profile: Dict[str, Any]
    expires_at: float


class ProfileCache:
    """Short-lived cache of user profile snapshots used to enrich chat events.

    Each stored entry lives exactly ``ttl_seconds`` from the moment it was
    first stored: reads never extend it and a profile update in the store is
    not seen until the entry lapses. Lookups that find no user are not cached.
    """

    def __init__(self, user_store, ttl_seconds: float = 300.0, timeout: Optional[float] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.user_store = user_store
        self.ttl_seconds = ttl_seconds
        self.timeout = timeout
        self._clock = clock
        self._entries: Dict[str, _CacheEntry] = {}
        self._timers: Dict[str, asyncio.TimerHandle] = {}

    async def get_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Return the cached profile or fetch it from the user store"""
        entry = self._entries.get(user_id)
        if entry is not None:
            if self._clock() < entry.expires_at:
                return entry.profile
            # Timer hasn't fired yet but the entry is already stale
            self._evict(user_id, entry)

        try:
            profile = await asyncio.wait_for(self.user_store.fetch_user_profile(user_id), self.timeout)
        except asyncio.TimeoutError:
            logger.error(f"Timed out fetching profile for user {user_id}")
            return None
        except Exception as e:
            logger.error(f"Error fetching user details for {user_id}: {e}")
            return None

        if profile is None:
            return None

        return self._store(user_id, profile)

    def _store(self, user_id: str, profile: Dict[str, Any]) -> Dict[str, Any]:
        # A concurrent miss may have stored first; its TTL wins
        current = self._entries.get(user_id)
        if current is not None and self._clock() < current.expires_at:
            return current.profile

        entry = _CacheEntry(profile=profile, expires_at=self._clock() + self.ttl_seconds)
        self._entries[user_id] = entry

        old_timer = self._timers.pop(user_id, None)
        if old_timer is not None:
            old_timer.cancel()
        loop = asyncio.get_running_loop()
        self._timers[user_id] = loop.call_later(self.ttl_seconds, self._evict, user_id, entry)

        return profile

    def _evict(self, user_id: str, entry: _CacheEntry):
        # Only remove the entry this timer was scheduled for
        if self._entries.get(user_id) is not entry:
            return
        del self._entries[user_id]
        timer = self._timers.pop(user_id, None)
        if timer is not None:
            timer.cancel()

    def peek(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Cached profile without fetching, or None"""
        entry = self._entries.get(user_id)
        if entry is None or self._clock() >= entry.expires_at:
            return None
        return entry.profile

    def close(self):
        """Cancel pending eviction timers and drop every entry"""
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        self._entries.clear()

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)
