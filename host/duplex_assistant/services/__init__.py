"""
Remote assistant services
"""

from .base import AssistantService, Conversation
from .openai_service import OpenAIAssistantService

__all__ = ['AssistantService', 'Conversation', 'OpenAIAssistantService']
