"""ASGI binding: run a session over a Starlette/FastAPI request."""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from typing import Any, Awaitable, Callable

from starlette.background import BackgroundTask
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import Receive, Scope, Send

from eventstream.options import SessionOptions
from eventstream.session import Session

logger = logging.getLogger(__name__)

DEFAULT_MAX_PENDING = 1024

SessionHandler = Callable[[Session], Awaitable[None] | None]


class ASGIResponseTransport:
    """Response transport over ASGI ``send``/``receive``.

    ``write`` is synchronous and only queues the chunk; :meth:`pump` delivers the
    queue, sending status and headers ahead of the first body chunk. At most
    ``max_pending`` chunks wait for delivery; a client that falls further behind
    is treated as a failed stream.
    """

    def __init__(
        self,
        receive: Receive,
        send: Send,
        raw_headers: list[tuple[bytes, bytes]] | None = None,
        max_pending: int = DEFAULT_MAX_PENDING,
    ) -> None:
        self._receive = receive
        self._send = send
        self._queue: asyncio.Queue[str | None] = asyncio.Queue(maxsize=max_pending)
        self._raw_headers: list[tuple[bytes, bytes]] = list(raw_headers or [])
        self._close_callbacks: list[Callable[[], object]] = []
        self._error_callbacks: list[Callable[[BaseException], object]] = []
        self._aborted = False
        self.status_code = 200
        self.headers_sent = False
        self.closed = False

    def set_status(self, status_code: int) -> None:
        if self.headers_sent:
            raise RuntimeError("cannot set status after headers are sent")
        self.status_code = status_code

    def set_header(self, name: str, value: str) -> None:
        if self.headers_sent:
            raise RuntimeError("cannot set headers after they are sent")
        key = name.lower().encode("latin-1")
        self._raw_headers = [(k, v) for k, v in self._raw_headers if k != key]
        self._raw_headers.append((key, value.encode("latin-1")))

    def write(self, chunk: str) -> None:
        if self.closed:
            raise OSError("write after end")
        self.headers_sent = True
        try:
            self._queue.put_nowait(chunk)
        except asyncio.QueueFull:
            exc = OSError(f"client is not reading; {self._queue.maxsize} chunks pending")
            self._fail(exc)
            raise exc from None

    def end(self) -> None:
        if self.closed:
            return
        self.headers_sent = True
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            self._fail(OSError("stream ended with undelivered chunks"))
            return
        self._close()

    def abort(self) -> None:
        """Client went away; drop anything still queued."""
        if self.closed:
            return
        self._aborted = True
        with contextlib.suppress(asyncio.QueueFull):
            self._queue.put_nowait(None)
        self._close()

    def on_close(self, callback: Callable[[], object]) -> None:
        self._close_callbacks.append(callback)

    def on_error(self, callback: Callable[[BaseException], object]) -> None:
        self._error_callbacks.append(callback)

    async def pump(self) -> None:
        """Deliver queued chunks until the stream ends."""
        started = False
        while True:
            chunk = await self._queue.get()
            if self._aborted:
                return
            try:
                if not started:
                    await self._send(
                        {"type": "http.response.start", "status": self.status_code, "headers": self._raw_headers}
                    )
                    started = True
                if chunk is None:
                    await self._send({"type": "http.response.body", "body": b"", "more_body": False})
                    return
                await self._send({"type": "http.response.body", "body": chunk.encode("utf-8"), "more_body": True})
            except OSError as exc:
                self._fail(exc)
                return

    async def watch_disconnect(self) -> None:
        while not self.closed:
            message = await self._receive()
            if message["type"] == "http.disconnect":
                self.abort()
                return

    def _fail(self, exc: BaseException) -> None:
        for callback in list(self._error_callbacks):
            callback(exc)
        self.abort()

    def _close(self) -> None:
        self.closed = True
        callbacks, self._close_callbacks = self._close_callbacks, []
        for callback in callbacks:
            callback()


class EventStreamResponse(Response):
    """Starlette response that hands a live :class:`Session` to ``handler``.

    A coroutine handler owns the stream: the session is closed when it returns
    and the handler is cancelled when the client disconnects. A plain function
    handler only wires the session up; the stream then stays open until the
    client leaves or ``session.close()`` is called.
    """

    def __init__(
        self,
        handler: SessionHandler,
        options: SessionOptions | dict[str, Any] | None = None,
        background: BackgroundTask | None = None,
        max_pending: int = DEFAULT_MAX_PENDING,
    ) -> None:
        self.handler = handler
        self.options = options
        self.max_pending = max_pending
        self.status_code = 200
        self.media_type = None
        self.background = background
        self.init_headers(None)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(scope, receive)
        transport = ASGIResponseTransport(
            receive, send, raw_headers=self.raw_headers, max_pending=self.max_pending
        )
        session = Session(request, transport, self.options)

        pump = asyncio.ensure_future(transport.pump())
        watcher = asyncio.ensure_future(transport.watch_disconnect())
        handler_task: asyncio.Future[None] | None = None
        result = self.handler(session)
        if inspect.isawaitable(result):
            handler_task = asyncio.ensure_future(_run_handler(result, session))

        try:
            await pump
        finally:
            pending = [task for task in (watcher, handler_task) if task is not None]
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            session.close()

        if self.background is not None:
            await self.background()


async def _run_handler(awaitable: Awaitable[None], session: Session) -> None:
    try:
        await awaitable
    except asyncio.CancelledError:
        raise
    except Exception:
        logger.exception("event stream handler failed")
    finally:
        session.close()
