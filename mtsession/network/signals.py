"""Single-slot wake conditions for the session's cooperative loops."""

from __future__ import annotations

import asyncio
from typing import Optional


class ResumeSignal:
    """Coalescing wake-up observed by exactly one consumer task.

    ``resume()`` fills the slot; repeated resumes before the consumer runs
    collapse into one wake-up, and a resume raised while nobody waits is kept
    until the next ``wait()``.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._event = asyncio.Event()
        self._waiting = False
        self.resumes = 0

    def resume(self) -> None:
        self.resumes += 1
        self._event.set()

    @property
    def pending(self) -> bool:
        return self._event.is_set()

    async def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until resumed; returns False when ``timeout`` elapsed first."""

        if self._waiting:
            raise RuntimeError(f"{self.name} signal already has a consumer")
        self._waiting = True
        try:
            if timeout is None:
                await self._event.wait()
            else:
                try:
                    await asyncio.wait_for(self._event.wait(), timeout=timeout)
                except asyncio.TimeoutError:
                    return False
            self._event.clear()
            return True
        finally:
            self._waiting = False
