"""Server-side Server-Sent Events session."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Iterable

from eventstream.encoder import (
    DISPATCH,
    PROTOCOL_HEADERS,
    encode_comment,
    encode_data,
    encode_field,
    encode_id,
    encode_retry,
)
from eventstream.errors import EventStreamError, SessionStateError
from eventstream.options import SessionOptions
from eventstream.signals import OneShotSignal
from eventstream.transport import RequestLike, ResponseTransport

logger = logging.getLogger(__name__)

LAST_EVENT_ID_HEADER = "Last-Event-ID"


class SessionState(str, Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class Session:
    """One SSE stream over a single request/response exchange.

    The handshake runs one event loop turn after construction, so ``connected``
    and ``disconnected`` listeners can be attached right after building the
    session. Must be constructed on the event loop that drives ``response``,
    or be given that ``loop`` explicitly.

    Field methods (``id``, ``event``, ``data``, ``comment``, ``retry``,
    ``dispatch``) raise :class:`SessionStateError` until ``connected`` has
    fired. Once disconnected they are ignored.
    """

    def __init__(
        self,
        request: RequestLike,
        response: ResponseTransport,
        options: SessionOptions | dict[str, Any] | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        loop = loop or _running_loop()
        self.request = request
        self.response = response
        self.options = SessionOptions.coerce(options)
        self._headers = _merge_headers(self.options.headers)
        self._state = SessionState.CONNECTING
        self._last_id = ""
        self.connected = OneShotSignal("connected")
        self.disconnected = OneShotSignal("disconnected")

        response.on_close(self._handle_close)
        response.on_error(self._handle_error)
        loop.call_soon(self._handshake)

    def __repr__(self) -> str:
        return f"<Session state={self._state.value} last_id={self._last_id!r}>"

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def last_id(self) -> str:
        return self._last_id

    @property
    def retry_ms(self) -> int:
        return self.options.retry

    @property
    def trust_client_event_id(self) -> bool:
        return self.options.trust_client_event_id

    @property
    def headers(self) -> dict[str, str]:
        """Full header set applied at handshake."""
        return dict(self._headers)

    def on(self, kind: str, callback: Callable[[], object]) -> None:
        """Subscribe to ``connected`` or ``disconnected``."""
        if kind == "connected":
            self.connected.subscribe(callback)
        elif kind == "disconnected":
            self.disconnected.subscribe(callback)
        else:
            raise ValueError(f"unknown session notification: {kind!r}")

    async def wait_connected(self) -> bool:
        """Wait for the handshake. Returns False if the stream ended first."""
        if not (self.connected.fired or self.disconnected.fired):
            done: asyncio.Future[None] = asyncio.get_running_loop().create_future()

            def _resolve() -> None:
                if not done.done():
                    done.set_result(None)

            self.connected.subscribe(_resolve)
            self.disconnected.subscribe(_resolve)
            await done
        return self.connected.fired

    async def wait_disconnected(self) -> None:
        await self.disconnected.wait()

    # Field encoder

    def id(self, value: str | None) -> None:
        chunk = encode_id(value)
        if self._write("id", [chunk]):
            self._last_id = value or ""

    def event(self, name: str) -> None:
        self._write("event", [encode_field("event", name)])

    def data(self, payload: Any) -> None:
        self._write("data", encode_data(payload))

    def comment(self, text: str = "") -> None:
        self._write("comment", encode_comment(text))

    def retry(self, ms: int) -> None:
        self._write("retry", [encode_retry(ms)])

    def dispatch(self) -> None:
        self._write("dispatch", [DISPATCH])

    def send(self, data: Any, event: str | None = None, id: str | None = None) -> None:
        """Write a complete message: optional event and id, data, then dispatch."""
        if event is not None:
            self.event(event)
        if id is not None:
            self.id(id)
        self.data(data)
        self.dispatch()

    def close(self) -> None:
        """End the response stream from the server side."""
        if self._state is SessionState.DISCONNECTED:
            return
        if not self.response.closed:
            self.response.end()
        self._disconnect("closed by server")

    # Handshake and lifecycle

    def _handshake(self) -> None:
        if self._state is not SessionState.CONNECTING:
            return
        if self.response.closed:
            self._disconnect("stream closed before handshake")
            return

        try:
            self.response.set_status(200)
            for name, value in self._headers.items():
                self.response.set_header(name, value)
        except (OSError, ValueError, RuntimeError) as exc:
            logger.warning("could not start event stream: %s", exc)
            self._handle_error(exc)
            if not self.response.closed:
                self.response.end()
            return

        if self.options.trust_client_event_id:
            self._last_id = self._client_event_id()

        for chunk in (encode_retry(self.options.retry), DISPATCH):
            if not self._send_chunk(chunk):
                return

        self._state = SessionState.CONNECTED
        logger.debug("session connected (last_id=%r, retry=%d)", self._last_id, self.options.retry)
        self.connected.fire()

    def _client_event_id(self) -> str:
        headers = getattr(self.request, "headers", None)
        if headers is None:
            return ""
        value = headers.get(LAST_EVENT_ID_HEADER)
        return "" if value is None else str(value)

    def _write(self, operation: str, chunks: Iterable[str]) -> bool:
        if self._state is SessionState.CONNECTING:
            raise SessionStateError(operation, self._state.value)
        if self._state is SessionState.DISCONNECTED:
            logger.debug("dropping %s() on disconnected session", operation)
            return False
        for chunk in chunks:
            if not self._send_chunk(chunk):
                return False
        return True

    def _send_chunk(self, chunk: str) -> bool:
        try:
            self.response.write(chunk)
        except OSError as exc:
            self._handle_error(exc)
            return False
        return self._state is not SessionState.DISCONNECTED

    def _handle_close(self) -> None:
        self._disconnect("stream closed")

    def _handle_error(self, exc: BaseException) -> None:
        logger.debug("transport error: %r", exc)
        self._disconnect("stream error")

    def _disconnect(self, reason: str) -> None:
        if self._state is SessionState.DISCONNECTED:
            return
        previous = self._state
        self._state = SessionState.DISCONNECTED
        logger.debug("session disconnected from %s: %s", previous.value, reason)
        self.disconnected.fire()


def _running_loop() -> asyncio.AbstractEventLoop:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        raise EventStreamError(
            "Session must be created inside a running event loop or be given loop=; "
            "its handshake is scheduled on that loop"
        ) from None


def _merge_headers(extra: dict[str, str]) -> dict[str, str]:
    protocol_names = {name.lower() for name in PROTOCOL_HEADERS}
    merged: dict[str, str] = {}
    for name, value in extra.items():
        if name.lower() in protocol_names:
            logger.warning("ignoring %s header override; it is fixed by the event stream protocol", name)
            continue
        merged[name] = value
    merged.update(PROTOCOL_HEADERS)
    return merged
