# duplex_assistant/host_channel.py
"""
Message channel between the assistant and the process hosting its UI
"""

import asyncio
import json
import logging
import sys
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

MessageHandler = Callable[[Dict[str, Any]], None]


class HostChannel(ABC):
    """Base channel: keeps handlers for inbound `message` payloads"""

    def __init__(self):
        self._handlers: List[MessageHandler] = []

    def on_message(self, handler: MessageHandler) -> None:
        self._handlers.append(handler)

    @abstractmethod
    def send(self, channel: str, payload: Any) -> None:
        """Notify the host process on `channel`"""

    def dispatch(self, message: Dict[str, Any]) -> None:
        logger.info(f"Message from host: {message}")
        for handler in list(self._handlers):
            handler(message)

    async def serve(self) -> None:
        """Read inbound messages until the channel closes"""

    def close(self) -> None:
        pass


class NullHostChannel(HostChannel):
    """No host process: outbound notifications are only logged"""

    def __init__(self):
        super().__init__()
        self.sent: List[tuple] = []

    def send(self, channel: str, payload: Any) -> None:
        logger.debug(f"Host notification {channel}: {payload}")
        self.sent.append((channel, payload))


class StdioHostChannel(HostChannel):
    """JSON lines over stdin/stdout.

    Inbound lines are either `{"channel": "message", "payload": {...}}` or a bare
    payload object. Outbound lines are always `{"channel": ..., "payload": ...}`.
    """

    def __init__(self, stdin=None, stdout=None):
        super().__init__()
        self.stdin = stdin or sys.stdin
        self.stdout = stdout or sys.stdout
        self._reader: Optional[asyncio.StreamReader] = None
        self._closed = False

    def send(self, channel: str, payload: Any) -> None:
        if self._closed:
            return
        self.stdout.write(json.dumps({"channel": channel, "payload": payload}) + "\n")
        self.stdout.flush()

    def handle_line(self, line: str) -> None:
        line = line.strip()
        if not line:
            return
        try:
            message = json.loads(line)
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring malformed host message: {e}")
            return
        if not isinstance(message, dict):
            logger.warning(f"Ignoring non-object host message: {message!r}")
            return
        if "channel" in message:
            if message["channel"] != "message":
                logger.debug(f"Ignoring host channel '{message['channel']}'")
                return
            message = message.get("payload") or {}
        self.dispatch(message)

    async def serve(self) -> None:
        loop = asyncio.get_running_loop()
        self._reader = asyncio.StreamReader()
        protocol = asyncio.StreamReaderProtocol(self._reader)
        await loop.connect_read_pipe(lambda: protocol, self.stdin)
        while not self._closed:
            raw = await self._reader.readline()
            if not raw:
                logger.info("Host channel closed")
                break
            try:
                self.handle_line(raw.decode("utf-8", errors="replace"))
            except Exception as e:
                logger.error(f"Error handling host message: {e}")

    def close(self) -> None:
        self._closed = True
