"""Exceptions raised by event stream sessions."""

from __future__ import annotations


class EventStreamError(Exception):
    """Base class for errors raised by this package."""


class SessionStateError(EventStreamError):
    """A field write was attempted while the session could not accept it."""

    def __init__(self, operation: str, state: str) -> None:
        super().__init__(f"cannot call {operation}() while session is {state}; wait for 'connected'")
        self.operation = operation
        self.state = state
