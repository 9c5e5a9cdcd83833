"""Monotonic MTProto-style message identifiers."""

from __future__ import annotations

import time
from typing import Callable


class MessageIdGenerator:
    """Client message ids: unix time scaled by 2**32, divisible by 4, strictly increasing."""

    def __init__(self, clock: Callable[[], float] = time.time, *, time_offset: int = 0) -> None:
        self._clock = clock
        self._last = 0
        self.time_offset = time_offset

    def next(self) -> int:
        candidate = int((self._clock() + self.time_offset) * 2**32) & ~3
        if candidate <= self._last:
            candidate = self._last + 4
        self._last = candidate
        return candidate
