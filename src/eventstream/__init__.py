"""Server-side Server-Sent Events sessions."""

__version__ = "0.1.0"

from eventstream.errors import EventStreamError, SessionStateError
from eventstream.options import SessionOptions
from eventstream.session import Session, SessionState
from eventstream.signals import OneShotSignal

__all__ = [
    "EventStreamError",
    "OneShotSignal",
    "Session",
    "SessionOptions",
    "SessionState",
    "SessionStateError",
    "__version__",
]
