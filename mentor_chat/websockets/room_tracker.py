from typing import Dict, Set

from mentor_chat.websockets.identity import Identity


class RoomMembershipTracker:
    """Tracks which chat rooms each identity has joined"""

    def __init__(self):
        self._rooms: Dict[Identity, Set[str]] = {}

    def join(self, identity: Identity, room_id: str):
        self._rooms.setdefault(identity, set()).add(room_id)

    def leave(self, identity: Identity, room_id: str):
        rooms = self._rooms.get(identity)
        if rooms is None:
            return
        rooms.discard(room_id)
        # Don't keep empty sets around
        if not rooms:
            del self._rooms[identity]

    def clear(self, identity: Identity) -> Set[str]:
        """Remove every membership of an identity and return the rooms it was in"""
        return self._rooms.pop(identity, set())

    def rooms_for(self, identity: Identity) -> Set[str]:
        return set(self._rooms.get(identity, ()))

    def is_member(self, identity: Identity, room_id: str) -> bool:
        return room_id in self._rooms.get(identity, ())

    def members_of(self, room_id: str) -> Set[Identity]:
        return {identity for identity, rooms in self._rooms.items() if room_id in rooms}

    def __len__(self) -> int:
        return len(self._rooms)
