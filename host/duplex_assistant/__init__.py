# duplex_assistant/__init__.py
"""
Duplex Assistant Package
"""

from .config import Config, ConversationConfig, setup_logging
from .state import AssistantStore, Message, MessageType, SessionState, SpeechResult
from .audio import Microphone, Player
from .commands import Command, Commands
from .text_filters import TextFilters
from .conversation import ConversationSession
from .host_channel import HostChannel, NullHostChannel, StdioHostChannel
from .orchestrator import SessionOrchestrator

__all__ = [
    'Config',
    'ConversationConfig',
    'setup_logging',
    'AssistantStore',
    'Message',
    'MessageType',
    'SessionState',
    'SpeechResult',
    'Microphone',
    'Player',
    'Command',
    'Commands',
    'TextFilters',
    'ConversationSession',
    'HostChannel',
    'NullHostChannel',
    'StdioHostChannel',
    'SessionOrchestrator',
]
