#!/usr/bin/env python3
"""
Transcript messages, speech results and the assistant store
"""

import os
import tempfile
import unittest

import fakes  # noqa: F401  (puts the package on sys.path)

from duplex_assistant.state import (
    AssistantStore,
    Message,
    MessageType,
    SpeechResult,
    final_transcript,
)


class TestSpeechResults(unittest.TestCase):
    def test_final_transcript_needs_one_stable_result(self):
        self.assertEqual(final_transcript([SpeechResult("lights off", 1.0)]), "lights off")
        self.assertIsNone(final_transcript([SpeechResult("lights", 0.4)]))
        self.assertIsNone(final_transcript([SpeechResult("a", 1.0), SpeechResult("b", 1.0)]))
        self.assertIsNone(final_transcript([]))

    def test_coerce_accepts_dicts(self):
        self.assertEqual(
            SpeechResult.coerce({"transcript": "hi", "stability": 1}),
            SpeechResult("hi", 1.0),
        )
        result = SpeechResult("x", 0.2)
        self.assertIs(SpeechResult.coerce(result), result)


class TestMessage(unittest.TestCase):
    def test_dict_form(self):
        message = Message("see https://a.b", MessageType.INCOMING, links=("https://a.b",))
        data = message.to_dict()

        self.assertEqual(data["type"], "incoming")
        self.assertEqual(data["links"], ["https://a.b"])
        self.assertEqual(Message.from_dict(data), message)

    def test_message_type_accepts_strings(self):
        self.assertIs(MessageType("outgoing"), MessageType.OUTGOING)


class TestAssistantStore(unittest.TestCase):
    def test_buffer_is_replaced_and_observed(self):
        store = AssistantStore()
        seen = []
        store.subscribe_buffer(seen.append)

        store.speech_text_buffer = [SpeechResult("turn", 0.2)]
        store.speech_text_buffer = [SpeechResult("turn on", 0.5)]
        store.clear_speech_text_buffer()

        self.assertEqual(seen, [[SpeechResult("turn", 0.2)], [SpeechResult("turn on", 0.5)], []])
        self.assertEqual(store.speech_text_buffer, [])

    def test_buffer_copy_is_detached(self):
        store = AssistantStore()
        store.speech_text_buffer = [SpeechResult("a", 0.1)]
        store.speech_text_buffer.append(SpeechResult("b", 0.1))

        self.assertEqual(len(store.speech_text_buffer), 1)

    def test_messages_are_observed(self):
        store = AssistantStore()
        seen = []
        store.subscribe_messages(seen.append)

        message = store.add_message(Message("hello", MessageType.OUTGOING))

        self.assertEqual(seen, [message])
        self.assertEqual(store.messages, [message])

    def test_transcript_persists(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "logs", "transcript.json")
            store = AssistantStore(path)
            store.add_message(Message("what time is it", MessageType.OUTGOING))
            store.add_message(Message("Noon.", MessageType.INCOMING, html="<p>Noon.</p>"))

            restored = AssistantStore(path)
            self.assertEqual(restored.load(), 2)
            self.assertEqual(restored.messages, store.messages)

    def test_load_missing_or_broken_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "transcript.json")
            store = AssistantStore(path)
            self.assertEqual(store.load(), 0)

            with open(path, "w", encoding="utf-8") as f:
                f.write("{not json")
            with self.assertLogs("duplex_assistant.state", level="ERROR"):
                self.assertEqual(store.load(), 0)


if __name__ == "__main__":
    unittest.main()
