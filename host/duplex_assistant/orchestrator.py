"""
SessionOrchestrator coordinates the microphone, the player, the remote
assistant and local commands, and publishes session events to the UI.

Events emitted: `ready`, `waiting`, `loading`, `new-text`, `responseHtml`,
`mini-mode` and `error`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional

from duplex_assistant.audio import Microphone, Player
from duplex_assistant.commands import Command, Commands
from duplex_assistant.config import Config, ConversationConfig
from duplex_assistant.conversation import ConversationSession
from duplex_assistant.events import EventEmitter
from duplex_assistant.host_channel import HostChannel, NullHostChannel
from duplex_assistant.services.base import AssistantService, Conversation
from duplex_assistant.state import (
    AssistantStore,
    Message,
    MessageType,
    SpeechResult,
    final_transcript,
)
from duplex_assistant.text_filters import TextFilters

log = logging.getLogger(__name__)

ResultsHandler = Callable[[List[SpeechResult]], None]


class SessionOrchestrator(EventEmitter):
    """Start/stop/ask/follow-on state machine over one assistant service."""

    def __init__(
        self,
        config: Config,
        assistant: AssistantService,
        player: Player,
        microphone: Microphone,
        commands: Optional[Commands] = None,
        text_filters: Optional[TextFilters] = None,
        store: Optional[AssistantStore] = None,
        host: Optional[HostChannel] = None,
    ) -> None:
        super().__init__()
        self.config = config
        self.assistant = assistant
        self.player = player
        self.microphone = microphone
        self.commands = commands if commands is not None else Commands()
        self.text_filters = text_filters or TextFilters()
        self.store = store or AssistantStore()
        self.host = host or NullHostChannel()

        # runtime state
        self.session: Optional[ConversationSession] = None
        self.command: Optional[Command] = None
        self.follow_on = False
        self.mini_mode = False
        self._results_handler: ResultsHandler = self.on_speech_results

        self.player.on("ready", lambda: log.info("Audio player ready..."))
        self.player.on("waiting", self.on_assistant_finished_talking)
        self.microphone.on("ready", lambda: log.info("Microphone ready..."))
        self.microphone.on("data", self.assistant.write_audio)
        self.assistant.on("ready", self._on_assistant_ready)
        self.assistant.on("error", self._on_assistant_error)
        self.host.on_message(self.handle_host_message)

    # ------------------------------------------------------------------ #
    # -------------------------  lifecycle  ---------------------------- #
    # ------------------------------------------------------------------ #
    async def start(self) -> None:
        """Open the audio devices and connect to the remote assistant."""
        self.player.start()
        self.microphone.start()
        await self.assistant.connect()

    def shutdown(self) -> None:
        self.force_stop()
        if self.session:
            self.session.close()
            self.session = None
        self.microphone.close()
        self.player.close()
        self.host.close()

    # ------------------------------------------------------------------ #
    # --------------------------  core logic  -------------------------- #
    # ------------------------------------------------------------------ #
    def assist(self, input_query: Optional[str] = None) -> Optional[ConversationSession]:
        """Answer a typed query, or start listening when there is none.

        Returns the opened session, or None when a local command took the query.
        """
        if input_query:
            self.emit("waiting")
            self.add_message(input_query, MessageType.OUTGOING, True)
            if self.run_command(input_query):
                return None
            return self._open_conversation(self.config.conversation_config(input_query))

        self.emit("loading")
        self.store.clear_speech_text_buffer()
        return self._open_conversation(self.config.conversation_config())

    async def ask(self, question: str, timeout: Optional[float] = None) -> Optional[str]:
        """Speak `question`, then listen for and return the user's answer.

        Completes once the answer's conversation has ended. Without a timeout it
        never raises; with one, asyncio.TimeoutError propagates after the
        session is force-stopped. Calls must not overlap.
        """
        log.info(f"Starting ask: {question}")
        self.stop()
        if not question:
            return None

        self.add_message(question, MessageType.INCOMING, True)
        try:
            if timeout is None:
                return await self._ask_turn(question)
            return await asyncio.wait_for(self._ask_turn(question), timeout)
        except asyncio.TimeoutError:
            log.warning(f"No answer to '{question}' within {timeout}s")
            self.force_stop()
            raise

    async def _ask_turn(self, question: str) -> str:
        loop = asyncio.get_running_loop()
        answer: asyncio.Future = loop.create_future()
        accepted = False

        def on_results(results: List[SpeechResult]) -> None:
            nonlocal accepted
            if not results or accepted:
                return
            log.info(f"Ask speech results: {results}")
            transcript = final_transcript(results)
            if transcript is None:
                self.store.speech_text_buffer = results
                return
            accepted = True
            self.add_message(transcript, MessageType.OUTGOING)
            self.store.clear_speech_text_buffer()
            self.microphone.enabled = False
            log.info("Executing response after session.")
            ended = self.assistant.wait_for("end")
            ended.add_done_callback(lambda _: answer.done() or answer.set_result(transcript))
            self.force_stop()

        # Any open conversation ends inside say(), so wait on the question's own end
        question_conversation = self.assistant.say(question, self._start_conversation)
        question_ended = question_conversation.wait_for("ended")
        try:
            await question_ended
            log.info("Question ended.")
            await self.player.wait_idle()
            log.info("Waiting for response...")
            self._results_handler = on_results
            self.assist()
            return await answer
        finally:
            self._results_handler = self.on_speech_results
            if not question_ended.done():
                question_ended.cancel()

    def say(self, sentence: str, delay: float = 0, silent: bool = False) -> asyncio.TimerHandle:
        """Let the assistant say `sentence` after `delay` seconds."""
        loop = asyncio.get_running_loop()
        return loop.call_later(delay, self._say_now, sentence, silent)

    def _say_now(self, sentence: str, silent: bool) -> None:
        if self.session is None:
            self.force_stop()
        if not sentence:
            return
        self.add_message(sentence, MessageType.INCOMING)
        if silent:
            self.emit("ready")
        else:
            self.assistant.say(sentence, self._start_conversation)

    def run_command(self, text: str, queue_command: bool = False) -> bool:
        """Run a local command for `text`; True if one matched.

        With `queue_command` the command runs once the current conversation has
        ended, and that conversation is force-stopped right away.
        """
        log.info(f'Checking if "{text}" is a command.')
        command = self.commands.find_command(text)
        if command is None:
            log.info("No command found.")
            return False

        log.info(f"Command found: {command.name}")
        self.command = command
        if not queue_command:
            log.info("Executing command directly.")
            self._execute_pending(command)
            return True

        if self.session is None:
            log.warning(f"No active session to queue '{command.name}' behind, ignoring.")
            self.command = None
            return True

        log.info("Executing command after session.")
        loop = asyncio.get_running_loop()
        self.assistant.once("end", lambda *_: loop.call_soon(self._execute_pending, command))
        self.force_stop()
        return True

    def _execute_pending(self, command: Command) -> None:
        if self.command is not command:
            log.info(f"Command '{command.name}' was superseded, skipping.")
            return
        self.command = None
        if self.commands.run(command):
            log.info(f"Command '{command.name}' finished.")
            self.emit("ready")
        else:
            log.warning(f"Command '{command.name}' failed.")

    def stop(self) -> None:
        """Stop the microphone and play what's left in the buffer (if any)."""
        self.microphone.enabled = False
        self.player.play()

    def force_stop(self) -> None:
        """Stop the conversation, the microphone and any audio right away."""
        log.info("Force stopping the assistant & players...")
        self.assistant.stop()
        self.microphone.enabled = False
        self.player.stop()

    def reset(self) -> None:
        """Stop everything and start listening for a new turn."""
        self.force_stop()
        self.assist()

    def on_assistant_finished_talking(self) -> None:
        log.info("Assistant audio stopped.")
        if self.follow_on:
            log.info("Follow on required.")
            self.follow_on = False
            self.reset()

    def on_speech_results(self, results: List[SpeechResult]) -> None:
        """Live-capture handler for recognizer output."""
        if not results:
            return
        log.debug(f"Speech results: {results}")
        transcript = final_transcript(results)
        if transcript is not None:
            self.add_message(transcript, MessageType.OUTGOING, False)
            self.store.clear_speech_text_buffer()
            self.run_command(transcript, True)
            self.microphone.enabled = False
            self.emit("waiting")
        else:
            self.store.speech_text_buffer = results
        self.emit("new-text")

    def set_mini_mode(self, enabled: bool) -> None:
        enabled = bool(enabled)
        if enabled == self.mini_mode:
            return
        self.mini_mode = enabled
        self.host.send("mini-mode", enabled)
        self.emit("mini-mode", enabled)

    # ------------------------------------------------------------------ #
    # ---------------------------  messages  --------------------------- #
    # ------------------------------------------------------------------ #
    def add_message(self, text: str, type: MessageType, followup: bool = False) -> Message:
        """Adds a message to the transcript shown in the UI."""
        self.command = None
        message = self.process_message(text, type, followup)
        return self.store.add_message(message)

    def process_message(self, text: str, type: MessageType, followup: bool = False) -> Message:
        """Formats assistant text for display; user text passes through."""
        type = MessageType(type)
        if type is not MessageType.INCOMING or followup:
            return Message(text=text, type=type, followup=followup)
        return self.text_filters.get_message(text)

    def handle_host_message(self, message: dict) -> None:
        query = message.get("query") if isinstance(message, dict) else None
        if not query:
            return
        if not isinstance(query, dict):
            log.warning(f"Ignoring host query that is not an object: {query!r}")
            return
        self.assist(query.get("queryText"))

    def update_response_window(self, html: str) -> None:
        self.emit("responseHtml", html)

    def play_ping(self) -> None:
        self.player.play_ping()

    # ------------------------------------------------------------------ #
    # ---------------------------  internals  -------------------------- #
    # ------------------------------------------------------------------ #
    def _open_conversation(self, config: ConversationConfig) -> Optional[ConversationSession]:
        self.assistant.start(config, self._start_conversation)
        return self.session

    def _start_conversation(self, conversation: Conversation) -> None:
        if self.session is not None:
            self.session.close()
        session = ConversationSession(
            conversation,
            on_audio=self.player.append_buffer,
            on_speech_results=self._dispatch_speech_results,
            on_html=self.update_response_window,
            on_ended=lambda cont: self._session_ended(session, cont),
        )
        self.session = session.open()
        if session.live:
            self.microphone.enabled = True

    def _dispatch_speech_results(self, results: List[SpeechResult]) -> None:
        self._results_handler(results)

    def _session_ended(self, session: ConversationSession, continue_conversation: bool) -> None:
        if self.session is session:
            self.session = None
        if continue_conversation:
            log.info("Assistant expects a follow-on.")
            self.follow_on = True

    def _on_assistant_ready(self) -> None:
        log.info("Assistant ready...")
        self.emit("ready")

    def _on_assistant_error(self, error: Exception) -> None:
        log.error(f"Assistant Error: {error}")
        self.emit("error", error)
