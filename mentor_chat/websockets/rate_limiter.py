import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict

from mentor_chat.websockets.identity import Identity


class RateDecision(str, Enum):
    ALLOWED = "allowed"
    LIMITED = "limited"


@dataclass
class _Window:
    count: int
    started_at_ms: float


def _wall_clock_ms() -> float:
    return time.time() * 1000


class FixedWindowRateLimiter:
    """Per-identity message counter over fixed windows.

    A window opens at the first message after the previous one lapsed and
    stays open for ``window_ms``. Every call inside an open window counts,
    rejected ones included, and calls past ``max_messages`` are limited.

    Windows are not aligned or sliding, so a burst straddling a window edge
    can admit up to roughly twice ``max_messages`` in one ``window_ms`` span.
    """

    def __init__(self, max_messages: int = 5, window_ms: int = 1000, clock: Callable[[], float] = _wall_clock_ms):
        self.max_messages = max_messages
        self.window_ms = window_ms
        self._clock = clock
        self._windows: Dict[Identity, _Window] = {}

    def check_and_record(self, identity: Identity) -> RateDecision:
        now = self._clock()
        window = self._windows.get(identity)

        if window is not None and now - window.started_at_ms < self.window_ms:
            window.count += 1
            if window.count > self.max_messages:
                return RateDecision.LIMITED
            return RateDecision.ALLOWED

        self._windows[identity] = _Window(count=1, started_at_ms=now)
        return RateDecision.ALLOWED

    def forget(self, identity: Identity):
        self._windows.pop(identity, None)

    def __len__(self) -> int:
        return len(self._windows)
