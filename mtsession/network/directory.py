"""Datacenter directory: resolves datacenter keys to their sessions."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterator, Union

if TYPE_CHECKING:
    from mtsession.network.session import DatacenterSession

LOGGER = logging.getLogger(__name__)

DatacenterKey = Union[int, str]


class RoutingError(RuntimeError):
    """Raised when a call cannot be routed to its datacenter."""


class DatacenterDirectory:
    """Keys are ``"<dc_id>"`` for the main connection and ``"<dc_id>_media"`` for media."""

    def __init__(self) -> None:
        self._sessions: dict[str, DatacenterSession] = {}

    def register(self, session: DatacenterSession) -> None:
        key = session.key
        if key in self._sessions and self._sessions[key] is not session:
            LOGGER.info("Replacing session registered for datacenter %s", key)
        self._sessions[key] = session
        session.directory = self

    def unregister(self, key: DatacenterKey) -> None:
        self._sessions.pop(str(key), None)

    def get(self, key: DatacenterKey) -> DatacenterSession:
        try:
            return self._sessions[str(key)]
        except KeyError:
            raise RoutingError(f"No connection for datacenter {key}") from None

    def has(self, key: DatacenterKey) -> bool:
        return str(key) in self._sessions

    def sessions(self) -> Iterator[DatacenterSession]:
        return iter(list(self._sessions.values()))
