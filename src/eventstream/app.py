"""Demo FastAPI application serving a resumable clock stream."""

from __future__ import annotations

import asyncio
import contextlib
from datetime import datetime, timezone
from pathlib import Path

import uvicorn
from fastapi import FastAPI, Query, Request

from eventstream import __version__
from eventstream.asgi import EventStreamResponse
from eventstream.config import AppSettings, StreamSettings, load_settings
from eventstream.session import Session, SessionState


def resume_seq(last_id: str) -> int:
    """Next sequence number after the id a reconnecting client reported."""
    clean = last_id.strip()
    return int(clean) + 1 if clean.isascii() and clean.isdecimal() else 1


async def keep_alive(session: Session, interval_seconds: float) -> None:
    """Send comment heartbeats until the session disconnects."""
    while session.state is not SessionState.DISCONNECTED:
        await asyncio.sleep(interval_seconds)
        session.comment("keep-alive")


async def tick_stream(session: Session, settings: StreamSettings, limit: int | None = None) -> None:
    if not await session.wait_connected():
        return

    heartbeat = asyncio.ensure_future(keep_alive(session, settings.heartbeat_seconds))
    try:
        seq = resume_seq(session.last_id)
        sent = 0
        while session.state is SessionState.CONNECTED:
            now = datetime.now(timezone.utc).isoformat()
            session.send({"seq": seq, "time": now}, event="tick", id=str(seq))
            seq += 1
            sent += 1
            if limit is not None and sent >= limit:
                break
            await asyncio.sleep(settings.tick_seconds)
    finally:
        heartbeat.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await heartbeat


def create_app(config_path: str | Path | None = None) -> FastAPI:
    """Create configured FastAPI app."""
    settings: AppSettings = load_settings(config_path)

    app = FastAPI(title="eventstream demo", version=__version__)
    app.state.settings = settings

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "version": __version__}

    @app.get("/stream")
    async def stream(request: Request, limit: int | None = Query(None, ge=1)) -> EventStreamResponse:
        stream_settings: StreamSettings = request.app.state.settings.stream

        async def run(session: Session) -> None:
            await tick_stream(session, stream_settings, limit=limit)

        return EventStreamResponse(run, options=stream_settings.session_options())

    return app


def serve(host: str, port: int, config_path: str | Path | None = None) -> None:
    """Run the demo app with a single worker."""
    app = create_app(config_path=config_path)
    uvicorn.run(app, host=host, port=port, workers=1)
