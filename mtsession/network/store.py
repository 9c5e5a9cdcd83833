"""Outgoing message store owned by a single datacenter session."""

from __future__ import annotations

import logging
from typing import Iterator, Optional

from mtsession.network.message import OutgoingMessage

LOGGER = logging.getLogger(__name__)


class OutgoingMessageStore:
    """Message id -> outgoing record, including container placeholders.

    Mutated only from inside the owning session's exclusive boundary.
    """

    def __init__(self) -> None:
        self._messages: dict[int, OutgoingMessage] = {}

    def put(self, message: OutgoingMessage) -> None:
        if message.id is None:
            raise ValueError(f"Cannot store {message.name} before an id is assigned")
        self._messages[message.id] = message

    def add_container(self, container_id: int, members: list[int]) -> OutgoingMessage:
        container = OutgoingMessage.container(container_id, members)
        self._messages[container_id] = container
        return container

    def get(self, message_id: int) -> Optional[OutgoingMessage]:
        return self._messages.get(message_id)

    def pop(self, message_id: int) -> Optional[OutgoingMessage]:
        return self._messages.pop(message_id, None)

    def expand(self, message_id: int) -> list[int]:
        """Ids a resend of ``message_id`` denotes: container members, or the id itself."""

        record = self._messages.get(message_id)
        if record is not None and record.container_members is not None:
            return list(record.container_members)
        return [message_id]

    def mark_acked(self, message_id: int) -> Optional[OutgoingMessage]:
        record = self._messages.get(message_id)
        if record is None:
            return None
        record.acked = True
        if record.container_members is not None:
            for member_id in record.container_members:
                member = self._messages.get(member_id)
                if member is not None:
                    member.acked = True
        return record

    @staticmethod
    def _unconfirmed(record: OutgoingMessage) -> bool:
        return (
            record.content_related
            and record.has_body
            and record.awaiting_response
            and not record.acked
            and record.sent_at is not None
        )

    def pending(self, *, sent_before: float) -> list[OutgoingMessage]:
        """Content-related records sent before ``sent_before`` with neither ack nor response."""

        return [
            record
            for record in self._messages.values()
            if self._unconfirmed(record) and record.sent_at <= sent_before  # type: ignore[operator]
        ]

    def oldest_pending_sent_at(self) -> Optional[float]:
        sent = [record.sent_at for record in self._messages.values() if self._unconfirmed(record)]
        return min(sent) if sent else None  # type: ignore[type-var]

    def clear(self) -> list[OutgoingMessage]:
        records = list(self._messages.values())
        self._messages.clear()
        return records

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._messages

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[int]:
        return iter(list(self._messages))
