# duplex_assistant/config.py
"""
Configuration management for the duplex assistant
"""

import os
import sys
import logging
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ["true", "1", "yes", "on"]


@dataclass(frozen=True)
class ConversationConfig:
    """Per-conversation settings handed to the remote service.

    A fresh instance is built for every conversation; `text_query` set means the
    conversation answers a typed query instead of listening to the microphone,
    `utterance` set means the assistant only speaks that sentence.
    """
    text_query: Optional[str]
    language: str
    sample_rate_in: int
    sample_rate_out: int
    screen_output: bool
    utterance: Optional[str] = None


@dataclass
class Config:
    """Configuration settings for the duplex assistant"""
    # === API KEYS ===
    openai_api_key: str

    # === MODEL CONFIGURATION ===
    stt_model: str
    chat_model: str
    tts_model: str
    tts_voice: str
    language: str
    system_prompt: str

    # === AUDIO CONFIGURATION ===
    sample_rate_in: int
    sample_rate_out: int
    block_duration: float
    silence_threshold: float
    silence_duration: float
    min_speech_duration: float
    max_utterance_duration: float
    ping_file: str

    # === CONVERSATION CONFIGURATION ===
    follow_on_questions: bool
    screen_output: bool
    history_limit: int
    request_timeout: float

    # === FILES ===
    commands_file: str
    transcript_file: str

    # === LOGGING CONFIGURATION ===
    log_level: str
    log_file: str

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables"""
        return cls(
            # === API KEYS ===
            openai_api_key=os.getenv("OPENAI_API_KEY", ""),

            # === MODEL CONFIGURATION ===
            stt_model=os.getenv("STT_MODEL", "whisper-1"),
            chat_model=os.getenv("CHAT_MODEL", "gpt-4o-mini"),
            tts_model=os.getenv("TTS_MODEL", "tts-1"),
            tts_voice=os.getenv("TTS_VOICE", "nova"),
            language=os.getenv("ASSISTANT_LANGUAGE", "en"),
            system_prompt=os.getenv(
                "SYSTEM_PROMPT",
                "You are a helpful voice assistant. Answer in one or two short spoken sentences. "
                "Only end with a question when you need an answer from the user.",
            ),

            # === AUDIO CONFIGURATION ===
            sample_rate_in=int(os.getenv("SAMPLE_RATE_IN", "16000")),
            sample_rate_out=int(os.getenv("SAMPLE_RATE_OUT", "24000")),
            block_duration=float(os.getenv("BLOCK_DURATION", "0.03")),
            silence_threshold=float(os.getenv("SILENCE_THRESHOLD", "500")),
            silence_duration=float(os.getenv("SILENCE_DURATION", "1.2")),
            min_speech_duration=float(os.getenv("MIN_SPEECH_DURATION", "0.4")),
            max_utterance_duration=float(os.getenv("MAX_UTTERANCE_DURATION", "15")),
            ping_file=os.getenv("PING_FILE", ""),

            # === CONVERSATION CONFIGURATION ===
            follow_on_questions=_env_bool("FOLLOW_ON_QUESTIONS", "true"),
            screen_output=_env_bool("SCREEN_OUTPUT", "false"),
            history_limit=int(os.getenv("HISTORY_LIMIT", "10")),
            request_timeout=float(os.getenv("REQUEST_TIMEOUT", "30")),

            # === FILES ===
            commands_file=os.getenv("COMMANDS_FILE", "commands.json"),
            transcript_file=os.getenv("TRANSCRIPT_FILE", "transcript.json"),

            # === LOGGING CONFIGURATION ===
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_file=os.getenv("LOG_FILE", "duplex_assistant.log"),
        )

    def conversation_config(self, text_query: Optional[str] = None) -> ConversationConfig:
        return ConversationConfig(
            text_query=text_query,
            language=self.language,
            sample_rate_in=self.sample_rate_in,
            sample_rate_out=self.sample_rate_out,
            screen_output=self.screen_output,
        )


def setup_logging(config: Config, console: bool = True):
    """Configure logging with a file handler and optional console output"""
    handlers = [logging.FileHandler(config.log_file, encoding='utf-8')]

    # In IPC mode stdout carries protocol messages, so log to stderr instead
    handlers.append(logging.StreamHandler(sys.stdout if console else sys.stderr))

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True  # Reconfigure even if already configured
    )

    # Reduce noise from third-party libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
