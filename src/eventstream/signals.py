"""One-shot lifecycle notifications."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

logger = logging.getLogger(__name__)

Callback = Callable[[], object]


class OneShotSignal:
    """Notification that fires at most once.

    Subscribers registered after the signal fired are called immediately, so a
    caller that attaches late still observes the transition exactly once.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._callbacks: list[Callback] = []
        self._fired = False

    @property
    def fired(self) -> bool:
        return self._fired

    def subscribe(self, callback: Callback) -> None:
        if self._fired:
            self._invoke(callback)
            return
        self._callbacks.append(callback)

    def fire(self) -> bool:
        """Invoke all subscribers once. Returns False if already fired."""
        if self._fired:
            return False
        self._fired = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            self._invoke(callback)
        return True

    async def wait(self) -> None:
        if self._fired:
            return
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()

        def _resolve() -> None:
            if not future.done():
                future.set_result(None)

        self.subscribe(_resolve)
        await future

    def _invoke(self, callback: Callback) -> None:
        try:
            callback()
        except Exception:
            logger.exception("%s subscriber %r raised", self.name, callback)
