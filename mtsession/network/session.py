"""Per-datacenter session: owner of the outgoing store and the write/check loops.

This layer is responsible for:
- Assigning message ids and submitting records to the connection
- The outgoing message store and its exclusive access boundary
- Completion bookkeeping (ack/response/error)
- Write-resume and check-resume loops, including overdue resends

Call classification and routing live in the dispatcher, resends in the recall engine.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Optional

from mtsession.config import SessionSettings
from mtsession.network.directory import DatacenterDirectory, RoutingError
from mtsession.network.dispatcher import CallDispatcher
from mtsession.network.message import OutgoingMessage
from mtsession.network.message_ids import MessageIdGenerator
from mtsession.network.recall import RecallEngine
from mtsession.network.signals import ResumeSignal
from mtsession.network.store import OutgoingMessageStore
from mtsession.network.transport.base import BaseConnection
from mtsession.protocol.chunking import IdentityNormalizer, TextNormalizer, split_to_chunks
from mtsession.protocol.methods import MethodRegistry
from mtsession.protocol.server_config import ConfigProvider, ServerConfig, StaticConfigProvider

LOGGER = logging.getLogger(__name__)

Splitter = Callable[[Mapping[str, Any], int], Awaitable[list[dict[str, Any]]]]


class ResendLimitExceeded(TimeoutError):
    """Raised on a caller's future once its message was resent too many times."""


@dataclass
class DatacenterSession:
    """Session bound to one datacenter connection (main or media variant)."""

    datacenter: int
    connection: BaseConnection
    methods: MethodRegistry = field(default_factory=MethodRegistry)
    config: Optional[ConfigProvider] = None
    normalizer: TextNormalizer = field(default_factory=IdentityNormalizer)
    splitter: Splitter = split_to_chunks
    settings: SessionSettings = field(default_factory=SessionSettings)
    directory: Optional[DatacenterDirectory] = None
    is_media: bool = False
    auth_key: Optional[bytes] = field(default=None, repr=False)
    message_ids: MessageIdGenerator = field(default_factory=MessageIdGenerator, repr=False)

    store: OutgoingMessageStore = field(default_factory=OutgoingMessageStore, init=False, repr=False)
    writer: ResumeSignal = field(default_factory=lambda: ResumeSignal("writer"), init=False, repr=False)
    checker: ResumeSignal = field(default_factory=lambda: ResumeSignal("checker"), init=False, repr=False)
    dispatcher: CallDispatcher = field(init=False, repr=False)
    recall_engine: RecallEngine = field(init=False, repr=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False, repr=False)
    _write_task: Optional[asyncio.Task[None]] = field(default=None, init=False, repr=False)
    _check_task: Optional[asyncio.Task[None]] = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.config is None:
            self.config = StaticConfigProvider(
                ServerConfig(message_length_max=self.settings.message_length_max_default)
            )
        self.dispatcher = CallDispatcher(self)
        self.recall_engine = RecallEngine(self)
        if self.directory is not None:
            self.directory.register(self)

    @property
    def key(self) -> str:
        return self.media_key if self.is_media else str(self.datacenter)

    @property
    def media_key(self) -> str:
        return f"{self.datacenter}{self.settings.media_suffix}"

    def has_key(self) -> bool:
        return self.auth_key is not None

    def require_directory(self) -> DatacenterDirectory:
        if self.directory is None:
            raise RoutingError(f"Session for datacenter {self.key} has no directory")
        return self.directory

    @contextlib.asynccontextmanager
    async def exclusive(self) -> AsyncIterator[None]:
        """Serialize multi-step store mutations that suspend (submission, recall).

        Single-step completion hooks never await, so they run atomically on the
        session's loop without taking the lock.
        """

        async with self._lock:
            yield

    async def start(self) -> None:
        """Spawn the write-resume and check-resume consumer loops."""

        if self._write_task is None or self._write_task.done():
            self._write_task = asyncio.create_task(self._write_loop(), name=f"session-{self.key}-writer")
        if self._check_task is None or self._check_task.done():
            self._check_task = asyncio.create_task(self._check_loop(), name=f"session-{self.key}-checker")

    async def stop(self) -> None:
        """Stop the loops and background writes, then cancel every caller still waiting on a response."""

        for task in (self._write_task, self._check_task):
            if task:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._write_task = None
        self._check_task = None
        await self.dispatcher.close()
        async with self.exclusive():
            records = self.store.clear()
        for record in records:
            if record.promise and not record.promise.done():
                record.promise.cancel()

    # --- submission ---

    async def send_message(self, message: OutgoingMessage, *, flush: bool) -> Optional[asyncio.Future[Any]]:
        async with self.exclusive():
            return await self.submit(message, flush=flush)

    async def submit(self, message: OutgoingMessage, *, flush: bool) -> Optional[asyncio.Future[Any]]:
        """Assign an id, store and hand the record to the connection.

        Callers must hold ``exclusive()``.
        """

        message.id = self.message_ids.next()
        message.sent_at = asyncio.get_running_loop().time()
        self.store.put(message)
        try:
            await self.connection.send(message, flush)
        except Exception:
            self.store.pop(message.id)
            raise
        LOGGER.debug(
            "Queued %s %s id=%s queue=%s flush=%s",
            message.kind.value,
            message.name,
            message.id,
            message.queue,
            flush,
        )
        return message.promise

    def flush(self) -> None:
        self.writer.resume()

    async def recall(self, message_id: int, *, postpone: bool = False, datacenter: Optional[int] = None) -> list[int]:
        return await self.recall_engine.recall(message_id, postpone=postpone, datacenter=datacenter)

    # --- completion hooks (called by the connection's receive path) ---
    #
    # Every hook takes the exclusive boundary, so it never observes a recall or
    # submission half way. They must not be awaited from inside
    # ``BaseConnection.send``, which already runs under that boundary.

    async def register_container(self, container_id: int, member_ids: list[int]) -> None:
        async with self.exclusive():
            self.store.add_container(container_id, member_ids)
        LOGGER.debug("Container %s holds %s", container_id, member_ids)

    async def handle_ack(self, message_id: int) -> None:
        async with self.exclusive():
            record = self.store.mark_acked(message_id)
            if record is None:
                LOGGER.debug("Ack for unknown message %s", message_id)
                return
            for acked_id in self.store.expand(message_id):
                acked = self.store.get(acked_id)
                if acked is not None and (not acked.content_related or acked.promise is None):
                    self.store.pop(acked_id)
            if record.is_container:
                self.store.pop(message_id)
        self.checker.resume()

    async def handle_response(self, message_id: int, result: Any) -> bool:
        async with self.exclusive():
            record = self.store.pop(message_id)
        if record is None:
            LOGGER.debug("Response for unknown message %s", message_id)
            return False
        record.response_received = True
        if record.promise and not record.promise.done():
            record.promise.set_result(result)
        self.checker.resume()
        return True

    async def handle_error(self, message_id: int, exc: BaseException) -> bool:
        async with self.exclusive():
            record = self.store.pop(message_id)
        if record is None:
            LOGGER.debug("Error for unknown message %s: %s", message_id, exc)
            return False
        record.response_received = True
        if record.promise and not record.promise.done():
            record.promise.set_exception(exc)
        self.checker.resume()
        return True

    # --- loops ---

    async def _write_loop(self) -> None:
        while True:
            await self.writer.wait()
            try:
                await self.connection.flush()
            except asyncio.CancelledError:
                raise
            except Exception:  # noqa: BLE001
                LOGGER.exception("Flush failed on datacenter %s", self.key)

    async def _check_loop(self) -> None:
        while True:
            try:
                await self.checker.wait(timeout=self._next_check_delay())
                await self._resend_overdue()
            except asyncio.CancelledError:
                raise
            except Exception:  # noqa: BLE001
                LOGGER.exception("Check loop iteration failed on datacenter %s", self.key)

    def _next_check_delay(self) -> Optional[float]:
        oldest = self.store.oldest_pending_sent_at()
        if oldest is None:
            return None
        now = asyncio.get_running_loop().time()
        due_in = max(0.0, oldest + self.settings.resend_timeout_seconds - now)
        return min(due_in, self.settings.check_interval_seconds)

    async def _resend_overdue(self) -> None:
        now = asyncio.get_running_loop().time()
        overdue = self.store.pending(sent_before=now - self.settings.resend_timeout_seconds)
        recalled = 0
        for record in overdue:
            if record.id is None or record.id not in self.store:
                continue
            if record.attempts >= self.settings.resend_max_attempts:
                async with self.exclusive():
                    if self.store.get(record.id) is not record:
                        continue
                    self.store.pop(record.id)
                LOGGER.error(
                    "Message %s %s exceeded %s resends; dropping",
                    record.name,
                    record.id,
                    self.settings.resend_max_attempts,
                )
                if record.promise and not record.promise.done():
                    record.promise.set_exception(
                        ResendLimitExceeded(f"{record.name} was not answered after {record.attempts} resends")
                    )
                continue
            LOGGER.warning("Resending %s %s (attempt %s)", record.name, record.id, record.attempts + 1)
            await self.recall_engine.recall(record.id, postpone=True)
            recalled += 1
        if recalled:
            self.flush()
