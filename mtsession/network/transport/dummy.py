"""In-memory connection for offline use and tests."""

from __future__ import annotations

import logging

from mtsession.network.message import OutgoingMessage
from mtsession.network.transport.base import BaseConnection

LOGGER = logging.getLogger(__name__)


class DummyConnection(BaseConnection):
    """Queues messages in memory and moves them to ``written`` on flush."""

    def __init__(self, name: str = "dummy") -> None:
        self.name = name
        self.sent: list[tuple[OutgoingMessage, bool]] = []
        self.queued: list[OutgoingMessage] = []
        self.written: list[list[OutgoingMessage]] = []
        self.flushes = 0

    async def send(self, message: OutgoingMessage, flush: bool) -> None:
        LOGGER.debug("Dummy connection %s send(): %s id=%s flush=%s", self.name, message.name, message.id, flush)
        self.sent.append((message, flush))
        self.queued.append(message)
        if flush:
            await self.flush()

    async def flush(self) -> None:
        LOGGER.debug("Dummy connection %s flush() (%s queued)", self.name, len(self.queued))
        self.flushes += 1
        if self.queued:
            self.written.append(self.queued)
            self.queued = []
