# duplex_assistant/events.py
"""
Minimal event emitter used by the devices, the remote service and the orchestrator.

Handlers run synchronously on the caller's thread (the asyncio loop thread),
so no two handlers ever run concurrently.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

Handler = Callable[..., Any]


class EventEmitter:
    """Named-event pub/sub with `on`, `once` and single-shot futures."""

    def __init__(self) -> None:
        self._listeners: Dict[str, List[Handler]] = defaultdict(list)

    def on(self, event: str, handler: Handler) -> "EventEmitter":
        self._listeners[event].append(handler)
        return self

    def once(self, event: str, handler: Handler) -> "EventEmitter":
        def wrapper(*args: Any) -> Any:
            self.off(event, wrapper)
            return handler(*args)

        wrapper._wrapped = handler  # type: ignore[attr-defined]
        return self.on(event, wrapper)

    def off(self, event: str, handler: Handler) -> "EventEmitter":
        """Remove a handler; safe to call if it was already removed."""
        listeners = self._listeners.get(event, [])
        for registered in list(listeners):
            # Bound methods are rebuilt on every attribute lookup, so compare by equality
            if registered == handler or getattr(registered, "_wrapped", None) == handler:
                listeners.remove(registered)
                break
        if not listeners:
            self._listeners.pop(event, None)
        return self

    def remove_all_listeners(self, event: str = None) -> "EventEmitter":
        if event is None:
            self._listeners.clear()
        else:
            self._listeners.pop(event, None)
        return self

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))

    def emit(self, event: str, *args: Any) -> bool:
        """Call every handler for `event`. Returns True if any handler ran."""
        listeners = list(self._listeners.get(event, []))
        for handler in listeners:
            handler(*args)
        return bool(listeners)

    def wait_for(self, event: str) -> asyncio.Future:
        """Future resolved with the payload of the next `event`.

        The listener is registered immediately, so it is safe to create the
        future before triggering whatever emits the event.
        """
        loop = asyncio.get_running_loop()
        future = loop.create_future()

        def resolve(*args: Any) -> None:
            if future.done():
                return
            if not args:
                future.set_result(None)
            elif len(args) == 1:
                future.set_result(args[0])
            else:
                future.set_result(args)

        self.once(event, resolve)
        future.add_done_callback(lambda _: self.off(event, resolve))
        return future
