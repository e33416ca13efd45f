"""Who a connection speaks for.

A connection that has sent ``authenticate`` speaks for a durable user id; one
that has not still needs a stable key for room tracking and rate limiting, so
it is keyed by its own connection id. Keeping the two as distinct types means
a user id and a connection id with the same text never collide in a map.
"""
from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class AuthenticatedIdentity:
    user_id: str

    is_authenticated = True

    @property
    def key(self) -> str:
        return self.user_id


@dataclass(frozen=True)
class AnonymousIdentity:
    connection_id: str

    is_authenticated = False

    @property
    def key(self) -> str:
        return self.connection_id


Identity = Union[AuthenticatedIdentity, AnonymousIdentity]
