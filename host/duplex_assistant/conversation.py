# duplex_assistant/conversation.py
"""
ConversationSession translates one remote conversation into orchestrator calls.

Every event from the duplex goes through a single dispatch table keyed by
event name: the table names the handler, the states the event is valid in and
the state to move to afterwards. Events that arrive in any other state
(typically late events from a conversation that was already replaced) are
dropped.
"""

import logging
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple

from .services.base import Conversation
from .state import SessionState, SpeechResult

logger = logging.getLogger(__name__)

ACTIVE: FrozenSet[SessionState] = frozenset({
    SessionState.LISTENING,
    SessionState.AWAITING_RESULT,
    SessionState.SPEAKING,
})

# event -> (handler name, valid states, next state)
DISPATCH: Dict[str, Tuple[str, FrozenSet[SessionState], Optional[SessionState]]] = {
    "audio-data": ("_on_audio_data", ACTIVE, SessionState.SPEAKING),
    "end-of-utterance": ("_on_end_of_utterance", frozenset({SessionState.LISTENING}), SessionState.AWAITING_RESULT),
    "device-action": ("_on_device_action", ACTIVE, None),
    "speech-results": ("_on_speech_results",
                       frozenset({SessionState.LISTENING, SessionState.AWAITING_RESULT}), None),
    "response": ("_on_response", ACTIVE, None),
    "screen-data": ("_on_screen_data", ACTIVE, None),
    "error": ("_on_error", ACTIVE, None),
    "ended": ("_on_ended", ACTIVE, SessionState.ENDED),
}


class ConversationSession:
    """Owns the listeners of one conversation until it ends or is replaced"""

    def __init__(
        self,
        conversation: Conversation,
        on_audio: Callable[[bytes], None],
        on_speech_results: Callable[[List[SpeechResult]], None],
        on_html: Callable[[str], None],
        on_ended: Callable[[bool], None],
    ):
        self.conversation = conversation
        self.on_audio = on_audio
        self.on_speech_results = on_speech_results
        self.on_html = on_html
        self.on_ended = on_ended
        self.state = SessionState.IDLE
        self._hooks: Dict[str, Callable[..., None]] = {}

    @property
    def active(self) -> bool:
        return self.state in ACTIVE

    @property
    def live(self) -> bool:
        """True for microphone conversations (no typed query, nothing to utter)"""
        config = self.conversation.config
        return config.text_query is None and config.utterance is None

    def open(self) -> "ConversationSession":
        """Install the hooks and enter the conversation's first state"""
        if self.state is not SessionState.IDLE:
            raise RuntimeError(f"session already opened (state={self.state.value})")
        for event in DISPATCH:
            hook = self._make_hook(event)
            self._hooks[event] = hook
            self.conversation.on(event, hook)

        config = self.conversation.config
        if config.utterance is not None:
            self._transition(SessionState.SPEAKING)
        elif config.text_query is not None:
            self._transition(SessionState.AWAITING_RESULT)
        else:
            self._transition(SessionState.LISTENING)
        return self

    def close(self) -> None:
        """Remove every hook. The session ignores the conversation from now on."""
        for event, hook in self._hooks.items():
            self.conversation.off(event, hook)
        self._hooks.clear()
        if self.state is not SessionState.ENDED:
            self._transition(SessionState.ENDED)

    def dispatch(self, event: str, *args: Any) -> None:
        entry = DISPATCH.get(event)
        if entry is None:
            logger.debug(f"No handler for conversation event '{event}'")
            return
        handler_name, valid_states, next_state = entry
        if self.state not in valid_states:
            logger.debug(f"Dropping '{event}' in state {self.state.value}")
            return
        getattr(self, handler_name)(*args)
        if next_state is not None and self.state in valid_states:
            self._transition(next_state)

    # ------------------------------------------------------------------ #
    def _make_hook(self, event: str) -> Callable[..., None]:
        def hook(*args: Any) -> None:
            self.dispatch(event, *args)
        return hook

    def _transition(self, new_state: SessionState) -> None:
        if new_state is self.state:
            return
        logger.debug(f"Session transition: {self.state.value} -> {new_state.value}")
        self.state = new_state

    def _on_audio_data(self, data: bytes) -> None:
        self.on_audio(bytes(data))

    def _on_end_of_utterance(self) -> None:
        logger.info("End of utterance.")

    def _on_device_action(self, data: Any) -> None:
        logger.info(f"Device action: {data}")

    def _on_speech_results(self, results: Any) -> None:
        self.on_speech_results([SpeechResult.coerce(r) for r in results or []])

    def _on_response(self, text: str) -> None:
        logger.info(f"Response: {text}")

    def _on_screen_data(self, data: Any) -> None:
        payload = data if isinstance(data, dict) else {}
        if str(payload.get("format", "")).upper() == "HTML":
            body = payload.get("data", b"")
            if isinstance(body, (bytes, bytearray)):
                body = bytes(body).decode("utf-8", errors="replace")
            self.on_html(str(body))
        else:
            logger.warning(f"Unknown screen data format: {payload.get('format')!r}")

    def _on_error(self, error: Exception) -> None:
        # Surfaced by the service; the session only records it
        logger.debug(f"Conversation error: {error}")

    def _on_ended(self, continue_conversation: bool) -> None:
        for event, hook in self._hooks.items():
            self.conversation.off(event, hook)
        self._hooks.clear()
        self.on_ended(bool(continue_conversation))
