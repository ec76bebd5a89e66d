# duplex_assistant/services/base.py
"""
Base interfaces for remote assistant services
"""

import asyncio
import dataclasses
import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional

from ..config import ConversationConfig
from ..events import EventEmitter

logger = logging.getLogger(__name__)


class Conversation(EventEmitter, ABC):
    """One duplex exchange with the remote assistant.

    Emits `audio-data`, `end-of-utterance`, `device-action`, `speech-results`,
    `response`, `screen-data`, `error` and finally `ended` exactly once with the
    continue-conversation flag.
    """

    def __init__(self, config: ConversationConfig):
        super().__init__()
        self.config = config
        self.ended = False
        self._task: Optional[asyncio.Task] = None

    def begin(self) -> None:
        self._task = asyncio.ensure_future(self._guarded_run())

    def write(self, data: bytes) -> None:
        """Microphone audio for live capture; ignored by text conversations"""

    def end(self) -> None:
        """Terminate the exchange now"""
        if self.ended:
            return
        if self._task and not self._task.done():
            self._task.cancel()
        self._finish(False)

    @abstractmethod
    async def run(self) -> bool:
        """Drive the exchange. Returns True if the assistant expects a follow-on."""

    async def _guarded_run(self) -> None:
        continue_conversation = False
        try:
            continue_conversation = await self.run()
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error(f"Conversation failed: {e}")
            self.emit("error", e)
        finally:
            self._finish(continue_conversation)

    def _finish(self, continue_conversation: bool) -> None:
        if self.ended:
            return
        self.ended = True
        self.emit("ended", continue_conversation)


ConversationCallback = Callable[[Conversation], None]


class AssistantService(EventEmitter, ABC):
    """Remote assistant capability.

    Emits `ready` once connected, `error` on failures and `end` every time a
    conversation finishes (with its continue-conversation flag).
    """

    def __init__(self, default_config: ConversationConfig):
        super().__init__()
        self.default_config = default_config
        self.conversation: Optional[Conversation] = None

    @abstractmethod
    async def connect(self) -> None:
        """Authenticate with the remote service and emit `ready` or `error`"""

    @abstractmethod
    def create_conversation(self, config: ConversationConfig) -> Conversation:
        pass

    def start(self, config: ConversationConfig,
              on_conversation_started: Optional[ConversationCallback] = None) -> Conversation:
        """Open a conversation; the callback installs listeners before any event fires"""
        if self.conversation and not self.conversation.ended:
            logger.warning("Starting a conversation while another is open, ending the old one")
            self.conversation.end()

        conversation = self.create_conversation(config)
        self.conversation = conversation
        conversation.once("ended", lambda cont: self._conversation_ended(conversation, cont))
        if on_conversation_started:
            on_conversation_started(conversation)
        conversation.begin()
        return conversation

    def say(self, text: str, on_conversation_started: Optional[ConversationCallback] = None) -> Conversation:
        """Speak `text` verbatim in a conversation of its own"""
        config = dataclasses.replace(self.default_config, text_query=None, utterance=text)
        return self.start(config, on_conversation_started)

    def write_audio(self, data: bytes) -> None:
        if self.conversation and not self.conversation.ended:
            self.conversation.write(data)

    def stop(self) -> None:
        """End the open conversation, if any. Emits `end` synchronously."""
        if self.conversation and not self.conversation.ended:
            self.conversation.end()

    def _conversation_ended(self, conversation: Conversation, continue_conversation: bool) -> None:
        if self.conversation is conversation:
            self.conversation = None
        logger.debug(f"Conversation ended (continue={continue_conversation})")
        self.emit("end", continue_conversation)
