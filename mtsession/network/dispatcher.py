"""Call dispatcher: classifies, routes, chunks and submits method/object calls."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterator, Mapping, Sequence
from typing import TYPE_CHECKING, Any, Optional, Union

from mtsession.network.directory import RoutingError
from mtsession.network.message import (
    CallOptions,
    DeferredParameters,
    MessageKind,
    OutgoingMessage,
    WriteAck,
)
from mtsession.protocol.chunking import ChunkSplitError, text_length
from mtsession.protocol.methods import (
    content_related,
    is_secret_chat_method,
    is_user_related,
    may_send_unencrypted,
)
from mtsession.protocol.packing import pack_signed_long

if TYPE_CHECKING:
    from mtsession.network.session import DatacenterSession

LOGGER = logging.getLogger(__name__)

INLINE_MESSAGE_ID = "inputBotInlineMessageID"
SECRET_QUEUE = "secret"

ResponseHandle = Union["asyncio.Future[Any]", list["ResponseHandle"]]


class CallCancelledError(RuntimeError):
    """Raised when a fan-out call is abandoned through its cancellation token."""


def inline_message_datacenter(args: Any) -> Optional[int]:
    """Datacenter an inline-message id in ``args`` is bound to, if any."""

    if not isinstance(args, Mapping):
        return None
    ref = args.get("id")
    if not isinstance(ref, Mapping) or ref.get("_") != INLINE_MESSAGE_ID:
        return None
    dc_id = ref.get("dc_id")
    if dc_id is None:
        return None
    try:
        return int(dc_id)
    except (TypeError, ValueError):
        raise RoutingError(f"Invalid datacenter {dc_id!r} in inline message id") from None


def iter_futures(handle: ResponseHandle) -> Iterator["asyncio.Future[Any]"]:
    if isinstance(handle, list):
        for item in handle:
            yield from iter_futures(item)
    else:
        yield handle


def _discard_outcome(future: "asyncio.Future[Any]") -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        LOGGER.debug("Unawaited response failed: %s", exc)


async def join_responses(handle: ResponseHandle) -> Any:
    """Await a response handle; lists resolve in order and fail on the first failure."""

    if isinstance(handle, list):
        return list(await asyncio.gather(*(join_responses(item) for item in handle)))
    return await handle


class CallDispatcher:
    """Per-session entry point for outgoing method and object calls."""

    def __init__(self, session: DatacenterSession) -> None:
        self._session = session
        self._background: set[asyncio.Task[Any]] = set()

    async def dispatch_method(
        self,
        name: str,
        args: Any = None,
        options: Optional[CallOptions] = None,
    ) -> Any:
        """Call a method and wait for its decoded response.

        With ``no_response`` the call is still written, but the caller gets a
        resolved ``WriteAck`` right away instead of the response.
        """

        options = options or CallOptions()
        if options.no_response:
            task = asyncio.create_task(self.write_method(name, args, options), name=f"write-{name}")
            self._background.add(task)
            task.add_done_callback(self._on_background_done)
            return WriteAck()
        handle = await self.write_method(name, args, options)
        if options.cancel is None:
            return await join_responses(handle)
        return await self._join_cancellable(name, handle, options.cancel)

    async def write_method(
        self,
        name: str,
        args: Any = None,
        options: Optional[CallOptions] = None,
    ) -> ResponseHandle:
        """Build and enqueue a method call; returns its response future(s)."""

        options = options or CallOptions()
        target = self._route(name, args, options)
        if target is not None:
            return await target.dispatcher.write_method(name, args, options)

        if is_secret_chat_method(name):
            options = options.derive(queue=SECRET_QUEUE)

        if not options.multiple and isinstance(args, Mapping):
            chunks = await self._split_oversized(name, args)
            if chunks is not None:
                args = chunks
                options = options.derive(queue=name, multiple=True)

        if options.multiple:
            return await self._write_multiple(name, args, options)

        session = self._session
        body = await self._prepare_body(args)
        message = OutgoingMessage(
            name=name,
            kind=MessageKind.METHOD,
            body=body,
            response_type=session.methods.lookup(name).type,
            content_related=content_related(name),
            unencrypted=may_send_unencrypted(name, has_key=session.has_key()),
            queue=options.queue,
            user_related=is_user_related(name, body),
            promise=asyncio.get_running_loop().create_future(),
            extra=dict(options.extra),
        )
        promise = await session.send_message(message, flush=not options.postpone)
        session.checker.resume()
        assert promise is not None
        return promise

    async def dispatch_object(
        self,
        name: str,
        args: Any = None,
        options: Optional[CallOptions] = None,
    ) -> WriteAck:
        """Send a non-method protocol object; no response is expected."""

        options = options or CallOptions()
        session = self._session
        message = OutgoingMessage(
            name=name,
            kind=MessageKind.OBJECT,
            body=args if args is not None else {},
            content_related=content_related(name),
            unencrypted=may_send_unencrypted(name, has_key=session.has_key(), method=False),
            queue=options.queue,
            promise=options.promise,
            extra=dict(options.extra),
        )
        await session.send_message(message, flush=not options.postpone)
        return WriteAck(message.id)

    def _route(self, name: str, args: Any, options: CallOptions) -> Optional[DatacenterSession]:
        session = self._session
        inline_dc = inline_message_datacenter(args)
        if inline_dc is not None and inline_dc != session.datacenter:
            target = session.require_directory().get(inline_dc)
            if target.datacenter == session.datacenter:
                raise RoutingError(
                    f"Directory resolved datacenter {inline_dc} to datacenter {session.datacenter} for {name}"
                )
            LOGGER.debug("Forwarding %s to datacenter %s (inline message id)", name, inline_dc)
            return target

        if options.file and not session.is_media and session.directory is not None:
            media_key = session.media_key
            if session.directory.has(media_key):
                target = session.directory.get(media_key)
                if target is session or not target.is_media:
                    raise RoutingError(f"Directory entry {media_key} is not a media connection")
                LOGGER.debug("Using media DC %s for %s", media_key, name)
                return target
        return None

    async def _split_oversized(self, name: str, args: Mapping[str, Any]) -> Optional[list[dict[str, Any]]]:
        length = text_length(args)
        if length is None:
            return None
        session = self._session
        limit = (await session.config.current()).message_length_max
        if length <= limit:
            return None
        normalized = await session.normalizer.normalize(args)
        if (text_length(normalized) or 0) <= limit:
            return None

        chunks = await session.splitter(normalized, limit)
        for index, chunk in enumerate(chunks):
            size = text_length(await session.normalizer.normalize(chunk)) or 0
            if size > limit:
                raise ChunkSplitError(f"Chunk {index} of {name} is {size} long, limit is {limit}")
        LOGGER.debug("Split %s text into %s chunks (limit %s)", name, len(chunks), limit)
        return chunks

    async def _write_multiple(self, name: str, batch: Any, options: CallOptions) -> list[ResponseHandle]:
        if isinstance(batch, (str, bytes)) or not isinstance(batch, Sequence):
            raise TypeError(f"Fan-out call {name} needs a sequence of argument sets")
        element_options = options.derive(multiple=False, postpone=True)
        handles: list[ResponseHandle] = []
        for single_args in batch:
            if options.cancel is not None and options.cancel.is_set():
                raise CallCancelledError(f"{name} cancelled after {len(handles)} of {len(batch)} calls")
            handles.append(await self.write_method(name, single_args, element_options))
        if not options.postpone:
            self._session.flush()
        return handles

    async def _prepare_body(self, args: Any) -> Any:
        if isinstance(args, DeferredParameters):
            return await args.fetch()
        if args is None:
            return {}
        if not isinstance(args, Mapping):
            return args
        body = await self._session.normalizer.normalize(args)
        ping_id = body.get("ping_id")
        if isinstance(ping_id, int) and not isinstance(ping_id, bool):
            body["ping_id"] = pack_signed_long(ping_id)
        return body

    async def _join_cancellable(self, name: str, handle: ResponseHandle, cancel: asyncio.Event) -> Any:
        joined = asyncio.ensure_future(join_responses(handle))
        cancelled = asyncio.ensure_future(cancel.wait())
        try:
            done, _ = await asyncio.wait({joined, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancelled.cancel()
        if joined in done:
            return joined.result()
        joined.cancel()
        raise CallCancelledError(f"{name} cancelled while waiting for responses")

    async def close(self) -> None:
        """Cancel background writes still in flight."""

        tasks = list(self._background)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _on_background_done(self, task: asyncio.Task[Any]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.error("Write of %s failed: %s", task.get_name(), exc)
            return
        # Nobody awaits these responses; retrieve their outcome once they settle.
        for future in iter_futures(task.result()):
            future.add_done_callback(_discard_outcome)
