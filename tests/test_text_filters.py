#!/usr/bin/env python3
"""
Response text filter chain tests
"""

import unittest

import fakes  # noqa: F401  (puts the package on sys.path)

from duplex_assistant.state import MessageType
from duplex_assistant.text_filters import (
    LinkFilter,
    MarkupFilter,
    TextFilter,
    TextFilters,
    WhitespaceFilter,
)


class TestTextFilters(unittest.TestCase):
    def setUp(self):
        self.filters = TextFilters()

    def test_plain_text(self):
        message = self.filters.get_message("it is sunny")

        self.assertEqual(message.text, "It is sunny")
        self.assertIs(message.type, MessageType.INCOMING)
        self.assertFalse(message.followup)
        self.assertIsNone(message.html)

    def test_markup_is_stripped(self):
        message = self.filters.get_message("<speak>**Hot** &amp;   humid</speak>")
        self.assertEqual(message.text, "Hot & humid")

    def test_links_are_collected(self):
        message = self.filters.get_message("Recipe at https://example.com/soup today")

        self.assertEqual(message.links, ("https://example.com/soup",))
        self.assertIn('<a href="https://example.com/soup">', message.html)

    def test_empty_text(self):
        self.assertEqual(self.filters.get_message("").text, "")

    def test_custom_chain(self):
        filters = TextFilters([MarkupFilter(), WhitespaceFilter()])
        message = filters.get_message("see  <b>http://x.io</b>")

        self.assertEqual(message.text, "see http://x.io")
        self.assertEqual(message.links, ())

    def test_base_filter_is_abstract(self):
        with self.assertRaises(TypeError):
            TextFilter()

    def test_link_filter_leaves_plain_messages(self):
        message = TextFilters([LinkFilter()]).get_message("no links here")
        self.assertIsNone(message.html)


if __name__ == "__main__":
    unittest.main()
