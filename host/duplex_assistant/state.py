# duplex_assistant/state.py
"""
Session states, transcript messages and the observable assistant store
"""

import json
import logging
import os
from dataclasses import dataclass, field, asdict
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """Lifecycle states of one conversation with the remote service"""
    IDLE = "idle"                        # Created, duplex not started yet
    LISTENING = "listening"              # Streaming microphone audio
    AWAITING_RESULT = "awaiting_result"  # Utterance ended, waiting for the reply
    SPEAKING = "speaking"                # Receiving reply audio
    ENDED = "ended"                      # Torn down, ignores further events


class MessageType(str, Enum):
    INCOMING = "incoming"  # From the assistant
    OUTGOING = "outgoing"  # From the user


@dataclass(frozen=True)
class SpeechResult:
    """One recognizer candidate; stability 1.0 means final."""
    transcript: str
    stability: float = 0.0

    @property
    def is_final(self) -> bool:
        return self.stability >= 1

    @classmethod
    def coerce(cls, value: Any) -> "SpeechResult":
        if isinstance(value, cls):
            return value
        return cls(transcript=value.get("transcript", ""), stability=float(value.get("stability", 0)))


def final_transcript(results: Sequence[SpeechResult]) -> Optional[str]:
    """The transcript if `results` is exactly one fully stable candidate."""
    if len(results) == 1 and results[0].is_final:
        return results[0].transcript
    return None


@dataclass(frozen=True)
class Message:
    """A transcript entry. Never mutated once stored."""
    text: str
    type: MessageType
    followup: bool = False
    html: Optional[str] = None
    links: tuple = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["type"] = self.type.value
        data["links"] = list(self.links)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        return cls(
            text=data["text"],
            type=MessageType(data["type"]),
            followup=data.get("followup", False),
            html=data.get("html"),
            links=tuple(data.get("links", ())),
        )


BufferObserver = Callable[[List[SpeechResult]], None]
MessageObserver = Callable[[Message], None]


class AssistantStore:
    """Conversation transcript plus the live speech buffer shown by the UI.

    Observers are notified on every write so the UI never reads shared state
    behind the orchestrator's back.
    """

    def __init__(self, transcript_file: Optional[str] = None):
        self.transcript_file = transcript_file
        self.messages: List[Message] = []
        self._speech_text_buffer: List[SpeechResult] = []
        self._buffer_observers: List[BufferObserver] = []
        self._message_observers: List[MessageObserver] = []

    # ------------------------------------------------------------------ #
    @property
    def speech_text_buffer(self) -> List[SpeechResult]:
        return list(self._speech_text_buffer)

    @speech_text_buffer.setter
    def speech_text_buffer(self, results: Sequence[SpeechResult]) -> None:
        # Last writer wins; candidates are replaced, never merged
        self._speech_text_buffer = list(results)
        for observer in list(self._buffer_observers):
            observer(self.speech_text_buffer)

    def clear_speech_text_buffer(self) -> None:
        self.speech_text_buffer = []

    def subscribe_buffer(self, observer: BufferObserver) -> None:
        self._buffer_observers.append(observer)

    def subscribe_messages(self, observer: MessageObserver) -> None:
        self._message_observers.append(observer)

    # ------------------------------------------------------------------ #
    def add_message(self, message: Message) -> Message:
        """Append a transcript entry and persist the log."""
        self.messages.append(message)
        logger.debug(f"Transcript +{message.type.value}: {message.text}")
        for observer in list(self._message_observers):
            observer(message)
        if self.transcript_file:
            self.save()
        return message

    def save(self, path: Optional[str] = None) -> str:
        target = Path(os.path.expanduser(path or self.transcript_file))
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, "w", encoding="utf-8") as f:
            json.dump([m.to_dict() for m in self.messages], f, indent=2)
        return str(target)

    def load(self, path: Optional[str] = None) -> int:
        """Load a previously saved transcript. Returns the number of entries."""
        source = Path(os.path.expanduser(path or self.transcript_file))
        if not source.exists():
            return 0
        try:
            with open(source, "r", encoding="utf-8") as f:
                self.messages = [Message.from_dict(item) for item in json.load(f)]
        except (json.JSONDecodeError, KeyError, ValueError) as e:
            logger.error(f"Could not load transcript from {source}: {e}")
            return 0
        logger.info(f"Loaded {len(self.messages)} transcript entries from {source}")
        return len(self.messages)
