from __future__ import annotations

import asyncio

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.routing import Route
from starlette.testclient import TestClient

from eventstream.asgi import ASGIResponseTransport, EventStreamResponse
from eventstream.session import Session
from eventstream.testing import FakeRequest


def _client(handler, options=None) -> TestClient:
    async def endpoint(request: Request) -> EventStreamResponse:
        return EventStreamResponse(handler, options=options)

    return TestClient(Starlette(routes=[Route("/events", endpoint)]))


async def _never() -> dict:
    await asyncio.Event().wait()
    return {"type": "http.disconnect"}


def test_transport_sends_start_before_body() -> None:
    async def scenario() -> None:
        sent: list[dict] = []

        async def send(message: dict) -> None:
            sent.append(message)

        transport = ASGIResponseTransport(_never, send)
        transport.set_status(200)
        transport.set_header("Content-Type", "text/event-stream")
        transport.set_header("content-type", "text/event-stream")
        transport.write("retry:2000\n")
        transport.write("\n")
        transport.end()
        await asyncio.wait_for(transport.pump(), timeout=1.0)

        assert sent[0] == {
            "type": "http.response.start",
            "status": 200,
            "headers": [(b"content-type", b"text/event-stream")],
        }
        assert [message["body"] for message in sent[1:]] == [b"retry:2000\n", b"\n", b""]
        assert sent[-1]["more_body"] is False

    asyncio.run(scenario())


def test_client_disconnect_ends_session() -> None:
    async def scenario() -> None:
        sent: list[dict] = []
        gate = asyncio.Event()
        messages = [{"type": "http.request", "body": b"", "more_body": False}, {"type": "http.disconnect"}]

        async def receive() -> dict:
            if len(messages) == 1:
                await gate.wait()
            return messages.pop(0)

        async def send(message: dict) -> None:
            sent.append(message)

        transport = ASGIResponseTransport(receive, send)
        session = Session(FakeRequest(), transport)
        fired: list[str] = []
        session.on("disconnected", lambda: fired.append("disconnected"))
        assert await session.wait_connected()

        watcher = asyncio.ensure_future(transport.watch_disconnect())
        gate.set()
        await asyncio.wait_for(watcher, timeout=1.0)
        await asyncio.wait_for(transport.pump(), timeout=1.0)

        assert fired == ["disconnected"]
        assert sent == []

    asyncio.run(scenario())


def test_send_failure_folds_into_disconnect() -> None:
    async def scenario() -> None:
        async def send(message: dict) -> None:
            raise BrokenPipeError("client went away")

        transport = ASGIResponseTransport(_never, send)
        session = Session(FakeRequest(), transport)
        fired: list[str] = []
        session.on("disconnected", lambda: fired.append("disconnected"))
        assert await session.wait_connected()

        await asyncio.wait_for(transport.pump(), timeout=1.0)
        assert fired == ["disconnected"]
        assert transport.closed

    asyncio.run(scenario())


def test_coroutine_handler_stream_over_http() -> None:
    seen: dict[str, str] = {}

    async def handler(session: Session) -> None:
        await session.wait_connected()
        seen["last_id"] = session.last_id
        session.send("hello\nworld", event="greeting", id="8")

    with _client(handler) as client:
        response = client.get("/events", headers={"Last-Event-ID": "7"})

    assert response.status_code == 200
    assert response.headers["content-type"] == "text/event-stream"
    assert response.headers["cache-control"] == "no-cache, no-transform"
    assert response.headers["connection"] == "keep-alive"
    assert response.text == "retry:2000\n\nevent:greeting\nid:8\ndata:hello\ndata:world\n\n"
    assert seen["last_id"] == "7"


def test_plain_handler_with_listeners_and_options() -> None:
    def handler(session: Session) -> None:
        def on_connected() -> None:
            session.comment("hi")
            session.close()

        session.on("connected", on_connected)

    options = {"retry": 500, "headers": {"X-Accel-Buffering": "no"}, "trust_client_event_id": False}
    with _client(handler, options=options) as client:
        response = client.get("/events")

    assert response.headers["x-accel-buffering"] == "no"
    assert response.text == "retry:500\n\n:hi\n"


def test_failing_handler_closes_stream() -> None:
    async def handler(session: Session) -> None:
        await session.wait_connected()
        session.event("partial")
        raise RuntimeError("handler bug")

    with _client(handler) as client:
        response = client.get("/events")

    assert response.status_code == 200
    assert response.text == "retry:2000\n\nevent:partial\n"


def test_non_latin1_header_option_does_not_stall_handshake() -> None:
    async def scenario() -> None:
        sent: list[dict] = []

        async def send(message: dict) -> None:
            sent.append(message)

        transport = ASGIResponseTransport(_never, send)
        session = Session(FakeRequest(), transport, {"headers": {"X-Name": "日本", "X-Ok": "1"}})
        assert await asyncio.wait_for(session.wait_connected(), timeout=1.0)

        session.close()
        await asyncio.wait_for(transport.pump(), timeout=1.0)
        header_names = [name for name, _ in sent[0]["headers"]]
        assert b"x-ok" in header_names
        assert b"x-name" not in header_names

    asyncio.run(scenario())


def test_unread_backlog_disconnects_session() -> None:
    async def scenario() -> None:
        async def send(message: dict) -> None:
            pass

        transport = ASGIResponseTransport(_never, send, max_pending=2)
        session = Session(FakeRequest(), transport)
        fired: list[str] = []
        session.on("disconnected", lambda: fired.append("disconnected"))
        assert await session.wait_connected()

        session.event("overflow")
        assert fired == ["disconnected"]
        assert transport.closed

        session.event("ignored")
        await asyncio.wait_for(transport.pump(), timeout=1.0)

    asyncio.run(scenario())
