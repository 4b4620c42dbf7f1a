"""In-memory request/response pair for driving sessions without a socket.

Usage:
    async def scenario() -> None:
        response = FakeResponse()
        session = Session(FakeRequest({"Last-Event-ID": "7"}), response)
        await session.wait_connected()
        session.event("tick")
        assert response.writes[-1] == "event:tick\\n"
"""

from __future__ import annotations

from typing import Callable

from starlette.datastructures import Headers


class FakeRequest:
    """Request exposing case-insensitive header lookup."""

    def __init__(self, headers: dict[str, str] | None = None) -> None:
        self.headers = Headers(headers=headers or {})


class FakeResponse:
    """Response transport recording status, headers and every write.

    ``end`` mirrors a server-side close, ``abort`` a client disconnect and
    ``fail`` a transport error. Each of them notifies close listeners once.
    """

    def __init__(self) -> None:
        self.status_code: int | None = None
        self.writes: list[str] = []
        self.headers_sent = False
        self.closed = False
        self.ended = False
        self._headers: dict[str, tuple[str, str]] = {}
        self._close_callbacks: list[Callable[[], object]] = []
        self._error_callbacks: list[Callable[[BaseException], object]] = []

    @property
    def headers(self) -> dict[str, str]:
        return dict(self._headers.values())

    @property
    def body(self) -> str:
        return "".join(self.writes)

    def get_header(self, name: str) -> str | None:
        entry = self._headers.get(name.lower())
        return entry[1] if entry else None

    def set_status(self, status_code: int) -> None:
        if self.headers_sent:
            raise RuntimeError("cannot set status after headers are sent")
        self.status_code = status_code

    def set_header(self, name: str, value: str) -> None:
        if self.headers_sent:
            raise RuntimeError("cannot set headers after they are sent")
        self._headers[name.lower()] = (name, value)

    def write(self, chunk: str) -> None:
        if self.closed:
            raise OSError("write after end")
        self.headers_sent = True
        self.writes.append(chunk)

    def end(self) -> None:
        if self.closed:
            return
        self.headers_sent = True
        self.ended = True
        self._close()

    def abort(self) -> None:
        if not self.closed:
            self._close()

    def fail(self, exc: BaseException | None = None) -> None:
        error = exc or ConnectionResetError("connection reset by peer")
        for callback in list(self._error_callbacks):
            callback(error)
        self.abort()

    def on_close(self, callback: Callable[[], object]) -> None:
        self._close_callbacks.append(callback)

    def on_error(self, callback: Callable[[BaseException], object]) -> None:
        self._error_callbacks.append(callback)

    def _close(self) -> None:
        self.closed = True
        for callback in list(self._close_callbacks):
            callback()
