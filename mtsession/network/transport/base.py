"""Connection contract the session layer submits messages to."""

from __future__ import annotations

from abc import ABC, abstractmethod

from mtsession.network.message import OutgoingMessage


class BaseConnection(ABC):
    """Framing/encrypting connection to one datacenter endpoint.

    ``send`` queues a message; with ``flush=False`` the connection may hold it
    back to batch it with later messages until ``flush`` is called.
    """

    @abstractmethod
    async def send(self, message: OutgoingMessage, flush: bool) -> None:
        ...

    @abstractmethod
    async def flush(self) -> None:
        ...
