# duplex_assistant/text_filters.py
"""
Turns raw assistant response text into a display message.

Each filter takes the message built so far and returns a new one, so the
chain can be extended without touching the orchestrator.
"""

import html
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import List, Optional

from .state import Message, MessageType

logger = logging.getLogger(__name__)

URL_PATTERN = re.compile(r"https?://[^\s<>\"')\]]+")
TAG_PATTERN = re.compile(r"<[^>]+>")
MARKDOWN_PATTERN = re.compile(r"(\*\*|__|`|#+\s)")


class TextFilter(ABC):
    name = "filter"

    @abstractmethod
    def apply(self, message: Message) -> Message:
        """Return the message with this filter applied"""


class MarkupFilter(TextFilter):
    """Strips SSML/HTML tags and markdown emphasis the TTS voice would skip"""
    name = "markup"

    def apply(self, message: Message) -> Message:
        text = TAG_PATTERN.sub("", message.text)
        text = MARKDOWN_PATTERN.sub("", text)
        return replace(message, text=html.unescape(text))


class WhitespaceFilter(TextFilter):
    name = "whitespace"

    def apply(self, message: Message) -> Message:
        return replace(message, text=" ".join(message.text.split()))


class SentenceCaseFilter(TextFilter):
    name = "sentence_case"

    def apply(self, message: Message) -> Message:
        text = message.text
        if text and text[0].islower():
            text = text[0].upper() + text[1:]
        return replace(message, text=text)


class LinkFilter(TextFilter):
    """Collects URLs and renders them as anchors in the HTML body"""
    name = "links"

    def apply(self, message: Message) -> Message:
        links = tuple(URL_PATTERN.findall(message.text))
        if not links:
            return message
        body = html.escape(message.text)
        for link in links:
            escaped = html.escape(link)
            body = body.replace(escaped, f'<a href="{escaped}">{escaped}</a>')
        return replace(message, links=links, html=f"<p>{body}</p>")


DEFAULT_FILTERS = (MarkupFilter, WhitespaceFilter, SentenceCaseFilter, LinkFilter)


class TextFilters:
    def __init__(self, filters: Optional[List[TextFilter]] = None):
        self.filters = filters if filters is not None else [f() for f in DEFAULT_FILTERS]

    def get_message(self, text: str) -> Message:
        """Builds an incoming display message from raw response text"""
        message = Message(text=text or "", type=MessageType.INCOMING)
        for text_filter in self.filters:
            message = text_filter.apply(message)
        logger.debug(f"Filtered message: {message}")
        return message
