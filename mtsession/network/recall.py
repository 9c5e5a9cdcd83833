"""Resend of messages whose delivery is in doubt."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, Optional

from mtsession.network.message import OutgoingMessage

if TYPE_CHECKING:
    from mtsession.network.session import DatacenterSession

LOGGER = logging.getLogger(__name__)


class RecallEngine:
    """Regenerates stored messages under new ids and re-queues them.

    Container ids expand to their members. Records that are no longer stored
    (already answered, superseded or evicted) are skipped.

    An old record is evicted only when its copy is handed to the connection.
    If that hand-off fails, the caller's future fails with the transport error
    and members not reached yet stay stored, so a later recall or the check
    loop can still resend them.
    """

    def __init__(self, session: DatacenterSession) -> None:
        self._session = session

    async def recall(
        self,
        message_id: int,
        *,
        postpone: bool = False,
        datacenter: Optional[int] = None,
    ) -> list[int]:
        """Resend ``message_id``; returns the ids assigned to the resent messages."""

        session = self._session
        target = session
        if datacenter is not None and datacenter != session.datacenter:
            target = session.require_directory().get(datacenter)

        resent: list[int] = []
        foreign: list[tuple[int, OutgoingMessage]] = []
        async with session.exclusive():
            member_ids = session.store.expand(message_id)
            placeholder = session.store.get(message_id)
            if placeholder is not None and placeholder.is_container:
                session.store.pop(message_id)
            for member_id in member_ids:
                record = session.store.get(member_id)
                if record is None or not record.has_body:
                    LOGGER.warning(
                        "Could not resend %s",
                        record.name if record is not None else member_id,
                    )
                    continue
                if target is not session:
                    foreign.append((member_id, record))
                    continue
                session.store.pop(member_id)
                new_id = await self._send_copy(session, member_id, record, session.submit)
                resent.append(new_id)

        # Sent outside our own boundary so two sessions never hold each other's locks.
        for member_id, record in foreign:
            async with session.exclusive():
                if session.store.get(member_id) is not record:
                    LOGGER.debug("Message %s completed before it could be resent", member_id)
                    continue
                session.store.pop(member_id)
            new_id = await self._send_copy(target, member_id, record, target.send_message)
            resent.append(new_id)

        if not postpone:
            target.flush()
        if resent:
            target.checker.resume()
        return resent

    @staticmethod
    async def _send_copy(
        target: DatacenterSession,
        member_id: int,
        record: OutgoingMessage,
        send: Callable[..., Awaitable[Any]],
    ) -> int:
        copy = record.resend_copy()
        try:
            await send(copy, flush=False)
        except Exception as exc:
            LOGGER.error("Resend of %s %s failed: %s", record.name, member_id, exc)
            if copy.promise and not copy.promise.done():
                copy.promise.set_exception(exc)
            raise
        assert copy.id is not None
        LOGGER.debug("Recalled %s %s as %s on datacenter %s", record.name, member_id, copy.id, target.key)
        return copy.id
