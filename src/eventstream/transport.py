"""Capability interfaces a session needs from the hosting HTTP layer."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Callable, Protocol


class RequestLike(Protocol):
    """Inbound request. ``headers`` lookup must be case-insensitive."""

    @property
    def headers(self) -> Mapping[str, str]: ...


class ResponseTransport(Protocol):
    """Outbound response stream written by exactly one session."""

    @property
    def headers_sent(self) -> bool: ...

    @property
    def closed(self) -> bool: ...

    def set_status(self, status_code: int) -> None: ...

    def set_header(self, name: str, value: str) -> None: ...

    def write(self, chunk: str) -> None: ...

    def end(self) -> None: ...

    def on_close(self, callback: Callable[[], object]) -> None:
        """Called once when the stream ends, from either side."""

    def on_error(self, callback: Callable[[BaseException], object]) -> None:
        """Called when the stream fails; a close notification follows."""
