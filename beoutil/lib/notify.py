# beoutil
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
BeoNotify stream client.

GET /BeoNotify/Notifications never finishes: the product writes one JSON
document after another with no array brackets, commas or newlines between
them, e.g.

    {"notification":{...}}{"notification":{...}}{"notification":{...}}

JSONStreamDecoder finds the document boundaries incrementally as bytes
arrive.  NotificationStream runs one producer task that reads the response
body, decodes it and pushes NotificationEvents onto a one-slot queue, so
the producer can never get ahead of the consumer.

Stream lifecycle:
    Idle → Streaming → Ended (StreamEnded pushed, product closed the body)
                     → Ended (StreamAborted pushed, too many decode errors)
                     → Closed (cancelled; nothing further is delivered)

Reconnecting is *not* done here — see watch.py.
"""

import asyncio
import json
import logging

import aiohttp

from .errors import BeoRemoteHTTPError, StreamAborted, StreamDecodeError, StreamEnded
from .models import NotificationEvent

logger = logging.getLogger(__name__)

MAX_DECODE_ERRORS = 10
MAX_DOCUMENT_SIZE = 1 << 20  # bytes buffered for one incomplete document

_WHITESPACE = b" \t\r\n"
_OPENERS = b"{["
_CLOSERS = b"}]"
_QUOTE = ord('"')
_BACKSLASH = ord("\\")

# Connection-level failures that mean the product went away mid-stream.
_DISCONNECTS = (
    aiohttp.ClientPayloadError,
    aiohttp.ServerDisconnectedError,
    aiohttp.ClientConnectionError,
    ConnectionError,
)

_CLOSED = object()


class JSONStreamDecoder:
    """Split a byte stream of back-to-back JSON documents.

    feed() bytes as they arrive, then iterate decode() for every complete
    document.  Each result is either a decoded value or a StreamDecodeError
    instance.  A malformed document is always consumed, so a bad byte
    sequence produces exactly one error and decoding resumes after it.
    An unterminated document (e.g. a stray opener) is dropped with an error
    once it grows past *max_document_size*.
    """

    def __init__(self, max_document_size: int = MAX_DOCUMENT_SIZE):
        self._max_document_size = max_document_size
        self._buf = bytearray()
        self._pos = 0           # scan position inside the current document
        self._depth = 0
        self._in_string = False
        self._escape = False

    def feed(self, data: bytes) -> None:
        self._buf.extend(data)

    @property
    def pending(self) -> bool:
        """True if undecoded non-whitespace bytes are buffered."""
        return bool(bytes(self._buf).strip(_WHITESPACE))

    def decode(self):
        """Yield values / StreamDecodeErrors for every complete document."""
        while True:
            end = self._scan()
            if end is None:
                if len(self._buf) > self._max_document_size:
                    size = len(self._buf)
                    self._reset(size)
                    yield StreamDecodeError(f"unterminated document dropped ({size} bytes)")
                return
            yield self._take(end)

    def close(self):
        """Flush at end of input: a trailing scalar or a truncation error."""
        self._skip_whitespace()
        if not self._buf:
            return
        if self._depth == 0 and not self._in_string and self._buf[0] not in _OPENERS:
            yield self._take(len(self._buf))
            return
        size = len(self._buf)
        self._reset(len(self._buf))
        yield StreamDecodeError(f"stream ended inside a document ({size} bytes)")

    # -- internals --

    def _skip_whitespace(self) -> None:
        if self._pos:
            return
        i = 0
        while i < len(self._buf) and self._buf[i] in _WHITESPACE:
            i += 1
        if i:
            del self._buf[:i]

    def _scan(self) -> int | None:
        """Return the end offset of the first complete document, or None."""
        self._skip_whitespace()
        buf = self._buf
        if not buf:
            return None

        first = buf[0]
        if first in _CLOSERS:
            return 1  # stray closer: a one-byte malformed document
        scalar = first not in _OPENERS and first != _QUOTE

        if self._pos == 0:
            if first == _QUOTE:
                self._in_string = True
            elif not scalar:
                self._depth = 1
            self._pos = 1

        i = self._pos
        while i < len(buf):
            c = buf[i]
            if self._in_string:
                if self._escape:
                    self._escape = False
                elif c == _BACKSLASH:
                    self._escape = True
                elif c == _QUOTE:
                    self._in_string = False
                    if self._depth == 0:
                        return i + 1
            elif scalar:
                # bare numbers/literals end at whitespace or the next document
                if c in _WHITESPACE or c in _OPENERS or c in _CLOSERS or c == _QUOTE:
                    return i
            elif c == _QUOTE:
                self._in_string = True
            elif c in _OPENERS:
                self._depth += 1
            elif c in _CLOSERS:
                self._depth -= 1
                if self._depth == 0:
                    return i + 1
            i += 1
        self._pos = i
        return None

    def _take(self, end: int):
        chunk = bytes(self._buf[:end])
        self._reset(end)
        try:
            return json.loads(chunk)
        except (ValueError, UnicodeDecodeError) as e:
            return StreamDecodeError(f"malformed document: {e}")

    def _reset(self, end: int) -> None:
        del self._buf[:end]
        self._pos = 0
        self._depth = 0
        self._in_string = False
        self._escape = False


class NotificationStream:
    """Async iterator of NotificationEvents read from one open response.

    The response is owned by the producer task and released on every exit
    path.  Setting *cancel* (an asyncio.Event) or calling aclose() stops
    the producer; any event not yet received is discarded.
    """

    def __init__(self, response, cancel: asyncio.Event | None = None,
                 max_decode_errors: int = MAX_DECODE_ERRORS,
                 max_document_size: int = MAX_DOCUMENT_SIZE):
        self._response = response
        self._cancel = cancel
        self._max_decode_errors = max_decode_errors
        self._max_document_size = max_document_size
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=1)
        self._closed = False
        self._task: asyncio.Task | None = None
        self._cancel_waiter: asyncio.Task | None = None
        self.state = "idle"

    def start(self) -> "NotificationStream":
        self.state = "streaming"
        self._task = asyncio.create_task(self._produce())
        self._task.add_done_callback(self._on_done)
        if self._cancel is not None:
            self._cancel_waiter = asyncio.create_task(self._cancel.wait())
            self._cancel_waiter.add_done_callback(self._on_cancel)
        return self

    def _on_cancel(self, waiter: asyncio.Task) -> None:
        if not waiter.cancelled() and self._task is not None:
            logger.debug("Cancel signal set, stopping notification stream")
            self._task.cancel()

    def _on_done(self, task: asyncio.Task) -> None:
        # covers a producer cancelled before it ever ran
        if task.cancelled():
            self.state = "closed"
        self._close()
        self._response.release()

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self):
        return self

    async def __anext__(self) -> NotificationEvent:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    async def aclose(self) -> None:
        """Stop the producer and release the connection."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        if self._cancel_waiter is not None:
            self._cancel_waiter.cancel()
        self._close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    # -- producer --

    async def _produce(self) -> None:
        decoder = JSONStreamDecoder(self._max_document_size)
        errors = 0
        try:
            async with self._response:
                try:
                    async for chunk in self._response.content.iter_any():
                        decoder.feed(chunk)
                        for result in decoder.decode():
                            if isinstance(result, StreamDecodeError):
                                errors += 1
                                await self._push(NotificationEvent(error=result))
                                if errors >= self._max_decode_errors:
                                    await self._abort(errors)
                                    return
                            else:
                                errors = 0
                                await self._push(NotificationEvent(value=result))
                    ended = StreamEnded("product closed the notification stream")
                except _DISCONNECTS as e:
                    ended = StreamEnded(f"connection lost: {e}")

                for result in decoder.close():
                    if isinstance(result, StreamDecodeError):
                        await self._push(NotificationEvent(error=result))
                    else:
                        await self._push(NotificationEvent(value=result))
                logger.debug("Notification stream ended: %s", ended)
                self.state = "ended"
                await self._push(NotificationEvent(error=ended))
        except asyncio.CancelledError:
            self.state = "closed"
            self._drain()
            raise
        except Exception as e:
            logger.error("Notification stream failed: %s", e)
            self.state = "aborted"
            await self._push(NotificationEvent(error=StreamAborted(str(e))))
        finally:
            self._close()

    async def _push(self, event: NotificationEvent) -> None:
        await self._queue.put(event)

    async def _abort(self, errors: int) -> None:
        logger.error("Giving up on notification stream after %d consecutive decode errors",
                     errors)
        self.state = "aborted"
        await self._push(NotificationEvent(
            error=StreamAborted(f"{errors} consecutive decode errors")))

    def _drain(self) -> None:
        while not self._queue.empty():
            self._queue.get_nowait()

    def _close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._cancel_waiter is not None and not self._cancel_waiter.done():
            self._cancel_waiter.cancel()
        try:
            self._queue.put_nowait(_CLOSED)
        except asyncio.QueueFull:
            pass  # consumer sees closed+empty after taking the last event


async def open_stream(session: aiohttp.ClientSession, url: str,
                      cancel: asyncio.Event | None = None,
                      max_decode_errors: int = MAX_DECODE_ERRORS) -> NotificationStream:
    """Open *url* and start streaming.  Non-2xx raises BeoRemoteHTTPError."""
    response = await session.get(
        url, timeout=aiohttp.ClientTimeout(total=None, sock_connect=10))
    if not 200 <= response.status < 300:
        response.release()
        raise BeoRemoteHTTPError(response.status, response.reason or "")
    logger.info("Notification stream open: %s", url)
    return NotificationStream(response, cancel, max_decode_errors).start()
