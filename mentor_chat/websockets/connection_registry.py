import logging
from typing import Dict, List, Optional, Set

from mentor_chat.websockets.identity import AnonymousIdentity, AuthenticatedIdentity, Identity

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """Binds ephemeral connection ids to durable user ids"""

    def __init__(self):
        # Connections currently open
        self._online: Set[str] = set()

        # connection_id -> user_id
        self._user_by_connection: Dict[str, str] = {}

        # user_id -> every bound connection_id, oldest first
        self._connections_by_user: Dict[str, List[str]] = {}

    def register(self, connection_id: str):
        """Record a freshly opened connection; it starts out anonymous"""
        self._online.add(connection_id)

    def is_registered(self, connection_id: str) -> bool:
        return connection_id in self._online

    def bind(self, connection_id: str, user_id: str):
        """Bind a connection to a user, overwriting any earlier binding"""
        self.unbind(connection_id)
        self._user_by_connection[connection_id] = user_id
        self._connections_by_user.setdefault(user_id, []).append(connection_id)

    def unbind(self, connection_id: str) -> Optional[str]:
        """Drop both directions for a connection; unknown ids are ignored"""
        user_id = self._user_by_connection.pop(connection_id, None)
        if user_id is None:
            return None

        bound = self._connections_by_user.get(user_id, [])
        if connection_id in bound:
            bound.remove(connection_id)
        if not bound:
            self._connections_by_user.pop(user_id, None)
        return user_id

    def remove(self, connection_id: str) -> Optional[str]:
        """Forget a closed connection entirely"""
        self._online.discard(connection_id)
        return self.unbind(connection_id)

    def resolve(self, connection_id: str) -> Identity:
        user_id = self._user_by_connection.get(connection_id)
        if user_id is None:
            return AnonymousIdentity(connection_id)
        return AuthenticatedIdentity(user_id)

    def is_last_connection(self, connection_id: str) -> bool:
        """True unless another open connection is bound to the same user"""
        user_id = self._user_by_connection.get(connection_id)
        if user_id is None:
            return True
        return self._connections_by_user.get(user_id, []) == [connection_id]

    def connections_of(self, user_id: str) -> List[str]:
        return list(self._connections_by_user.get(user_id, ()))

    def connection_for(self, user_id: str) -> Optional[str]:
        """Most recently authenticated connection of a user"""
        bound = self._connections_by_user.get(user_id)
        return bound[-1] if bound else None

    def online_users(self) -> Set[str]:
        """Identity keys of every open connection"""
        return {self.resolve(connection_id).key for connection_id in self._online}

    def __len__(self) -> int:
        return len(self._online)
