"""Outgoing message records and per-call options."""

from __future__ import annotations

import asyncio
import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any, Optional


class MessageKind(enum.Enum):
    METHOD = "method"
    OBJECT = "object"


@dataclass
class CallOptions:
    """Recognised per-call options.

    ``datacenter`` is only consulted by recall; ``promise`` only by object
    calls. ``extra`` is merged verbatim into the outgoing record.
    """

    multiple: bool = False
    postpone: bool = False
    queue: Optional[str] = None
    no_response: bool = False
    file: bool = False
    datacenter: Optional[int] = None
    promise: Optional[asyncio.Future[Any]] = None
    cancel: Optional[asyncio.Event] = None
    extra: dict[str, Any] = field(default_factory=dict)

    def derive(self, **changes: Any) -> "CallOptions":
        return replace(self, **changes)


@dataclass(frozen=True)
class WriteAck:
    """Trivial acknowledgement that a message was handed to the connection."""

    message_id: Optional[int] = None


class DeferredParameters(ABC):
    """Arguments that are only materialised right before the record is built."""

    @abstractmethod
    async def fetch(self) -> Any:
        ...


@dataclass
class OutgoingMessage:
    """One unit of content submitted to the connection."""

    name: str
    kind: MessageKind
    body: Any = None
    id: Optional[int] = None
    response_type: Optional[str] = None
    content_related: bool = True
    unencrypted: bool = False
    queue: Optional[str] = None
    container_members: Optional[list[int]] = None
    user_related: bool = False
    promise: Optional[asyncio.Future[Any]] = None
    extra: dict[str, Any] = field(default_factory=dict)

    acked: bool = False
    response_received: bool = False
    sent_at: Optional[float] = None
    attempts: int = 0

    @property
    def is_container(self) -> bool:
        return self.container_members is not None

    @property
    def has_body(self) -> bool:
        return not self.is_container and self.body is not None

    @property
    def awaiting_response(self) -> bool:
        return (
            self.promise is not None
            and not self.promise.done()
            and not self.response_received
        )

    def resend_copy(self) -> "OutgoingMessage":
        """Fresh record carrying the same content and caller handle."""

        return replace(
            self,
            id=None,
            extra=dict(self.extra),
            acked=False,
            response_received=False,
            sent_at=None,
            attempts=self.attempts + 1,
        )

    @classmethod
    def container(cls, container_id: int, members: list[int]) -> "OutgoingMessage":
        return cls(
            name="msg_container",
            kind=MessageKind.OBJECT,
            id=container_id,
            content_related=False,
            container_members=list(members),
        )
