"""Named local event stream.

Handlers run in registration order. Coroutine handlers are scheduled on the
running loop instead of being awaited, so emit() never blocks the caller.
"""

import asyncio
import inspect
import logging
from collections import defaultdict

logger = logging.getLogger(__name__)


class EventEmitter:
    def __init__(self):
        self._handlers = defaultdict(list)
        self._pending = set()

    def on(self, name: str, handler):
        self._handlers[name].append((handler, False))
        return handler

    def once(self, name: str, handler):
        self._handlers[name].append((handler, True))
        return handler

    def off(self, name: str, handler) -> None:
        self._handlers[name] = [
            entry for entry in self._handlers[name] if entry[0] is not handler
        ]

    def listener_count(self, name: str) -> int:
        return len(self._handlers[name])

    def emit(self, name: str, *args) -> bool:
        """Call every handler registered for name.

        Returns:
            True if at least one handler was registered
        """
        entries = list(self._handlers[name])
        if not entries:
            return False

        self._handlers[name] = [entry for entry in entries if not entry[1]]
        for handler, _ in entries:
            result = handler(*args)
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._pending.add(task)
                task.add_done_callback(self._pending.discard)
        return True

    async def drain(self) -> None:
        """Wait for coroutine handlers scheduled by emit()."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
