"""
OpenAI implementation of the remote assistant service.

A live conversation records microphone audio until the speaker falls silent,
transcribes it, asks the chat model for a reply and streams the synthesized
reply back as `audio-data` chunks.
"""

import asyncio
import html
import logging
from typing import Any, Dict, List, Optional

from openai import OpenAI

from ..audio import frame_energy, frames_to_wav, wav_to_pcm
from ..config import Config, ConversationConfig
from ..state import SpeechResult
from .base import AssistantService, Conversation

logger = logging.getLogger(__name__)

# Roughly 100 ms of 16-bit mono audio at 24 kHz
AUDIO_CHUNK_BYTES = 4800


class OpenAIConversation(Conversation):
    def __init__(self, config: ConversationConfig, service: "OpenAIAssistantService"):
        super().__init__(config)
        self.service = service
        self.settings = service.settings
        self._frames: asyncio.Queue = asyncio.Queue()

    def write(self, data: bytes) -> None:
        if self.config.text_query is None and self.config.utterance is None:
            self._frames.put_nowait(data)

    async def run(self) -> bool:
        if self.config.utterance is not None:
            await self._speak(self.config.utterance)
            return False

        if self.config.text_query is not None:
            query = self.config.text_query
        else:
            frames = await self._record_utterance()
            self.emit("end-of-utterance")
            if not frames:
                logger.info("No speech captured")
                return False
            query = await self.service.transcribe(frames, self.config)
            if not query:
                logger.info("Empty transcription, ignoring")
                return False
            self.emit("speech-results", [SpeechResult(transcript=query, stability=1.0)])

        reply = await self.service.complete(query)
        self.emit("response", reply)
        if self.config.screen_output:
            body = html.escape(reply).replace("\n", "<br>")
            self.emit("screen-data", {"format": "HTML", "data": f"<p>{body}</p>".encode("utf-8")})
        await self._speak(reply)
        return self.settings.follow_on_questions and reply.rstrip().endswith("?")

    async def _speak(self, text: str) -> None:
        pcm = await self.service.synthesize(text, self.config)
        for offset in range(0, len(pcm), AUDIO_CHUNK_BYTES):
            self.emit("audio-data", pcm[offset:offset + AUDIO_CHUNK_BYTES])
            # Let stop requests interleave with long replies
            await asyncio.sleep(0)

    async def _record_utterance(self) -> List[bytes]:
        """Collect frames until silence follows speech, or the utterance times out"""
        block = self.settings.block_duration
        required_silence = int(self.settings.silence_duration / block)
        min_speech = int(self.settings.min_speech_duration / block)
        max_frames = int(self.settings.max_utterance_duration / block)

        frames: List[bytes] = []
        speech_frames = 0
        silence_frames = 0
        seen = 0
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.settings.max_utterance_duration

        while seen < max_frames:
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            try:
                frame = await asyncio.wait_for(self._frames.get(), timeout=remaining)
            except asyncio.TimeoutError:
                break
            seen += 1

            if frame_energy(frame) > self.settings.silence_threshold:
                frames.append(frame)
                speech_frames += 1
                silence_frames = 0
            elif speech_frames:
                frames.append(frame)
                silence_frames += 1
                if silence_frames >= required_silence:
                    if speech_frames >= min_speech:
                        break
                    logger.debug(f"Ignoring short noise burst ({speech_frames} frames)")
                    frames, speech_frames, silence_frames = [], 0, 0

        if speech_frames < min_speech:
            return []
        return frames


class OpenAIAssistantService(AssistantService):
    """Remote assistant built on OpenAI transcription, chat and speech endpoints"""

    def __init__(self, settings: Config, client: Optional[Any] = None):
        super().__init__(settings.conversation_config())
        self.settings = settings
        self.client = client
        self.history: List[Dict[str, str]] = []

    async def connect(self) -> None:
        if self.client is None:
            if not self.settings.openai_api_key:
                error = RuntimeError("OPENAI_API_KEY is not set")
                logger.error(f"Assistant authentication failed: {error}")
                self.emit("error", error)
                return
            self.client = OpenAI(api_key=self.settings.openai_api_key, timeout=self.settings.request_timeout)
        logger.info("OpenAI assistant service ready")
        self.emit("ready")

    def create_conversation(self, config: ConversationConfig) -> Conversation:
        conversation = OpenAIConversation(config, self)
        conversation.on("error", lambda error: self.emit("error", error))
        return conversation

    def reset_history(self) -> None:
        self.history = []

    # ------------------------------------------------------------------ #
    async def transcribe(self, frames: List[bytes], config: ConversationConfig) -> str:
        audio_buffer = frames_to_wav(frames, config.sample_rate_in)
        if audio_buffer is None:
            return ""

        def _transcribe():
            response = self.client.audio.transcriptions.create(
                model=self.settings.stt_model,
                file=audio_buffer,
                language=config.language,
            )
            return response.text.strip()

        return await asyncio.get_running_loop().run_in_executor(None, _transcribe)

    async def complete(self, query: str) -> str:
        user_turn = {"role": "user", "content": query}
        messages = [{"role": "system", "content": self.settings.system_prompt}] + self.history + [user_turn]

        def _complete():
            completion = self.client.chat.completions.create(
                model=self.settings.chat_model,
                messages=messages,
            )
            return (completion.choices[0].message.content or "").strip()

        reply = await asyncio.get_running_loop().run_in_executor(None, _complete)
        # Only completed exchanges enter the history; a cancelled turn leaves no trace
        self.history.extend([user_turn, {"role": "assistant", "content": reply}])
        self._trim_history()
        return reply

    async def synthesize(self, text: str, config: ConversationConfig) -> bytes:
        def _synthesize():
            response = self.client.audio.speech.create(
                model=self.settings.tts_model,
                voice=self.settings.tts_voice,
                input=text,
                response_format="wav",
            )
            return response.content

        audio = await asyncio.get_running_loop().run_in_executor(None, _synthesize)
        return wav_to_pcm(audio, config.sample_rate_out)

    def _trim_history(self) -> None:
        if len(self.history) > self.settings.history_limit:
            original_length = len(self.history)
            self.history = self.history[-self.settings.history_limit:]
            logger.info(f"Trimmed conversation: {original_length} → {len(self.history)} messages")
