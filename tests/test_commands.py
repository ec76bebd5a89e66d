#!/usr/bin/env python3
"""
Local command matching and execution tests
"""

import json
import os
import tempfile
import unittest
from unittest.mock import Mock, patch

import requests

import fakes  # noqa: F401  (puts the package on sys.path)

from duplex_assistant.commands import Commands, normalize_text


class TestMatching(unittest.TestCase):
    def setUp(self):
        self.commands = Commands()
        self.lights = self.commands.add("lights_off", ["turn off the lights"], "http", target="http://hub/off")
        self.browser = self.commands.add("browser", "open browser", "launch", target="firefox", exact=True)

    def test_normalize_text(self):
        self.assertEqual(normalize_text("  Turn OFF, the   lights!"), "turn off the lights")

    def test_phrase_inside_sentence(self):
        self.assertIs(self.commands.find_command("Please turn off the lights now."), self.lights)

    def test_phrase_needs_word_boundaries(self):
        self.assertIsNone(self.commands.find_command("return off the lightsaber"))

    def test_exact_phrases(self):
        self.assertIs(self.commands.find_command("Open browser!"), self.browser)
        self.assertIsNone(self.commands.find_command("open browser tabs"))

    def test_nothing_matches_empty_text(self):
        self.assertIsNone(self.commands.find_command(""))
        self.assertIsNone(self.commands.find_command(None))

    def test_unknown_action_rejected(self):
        with self.assertRaises(ValueError):
            self.commands.add("bad", ["x"], "teleport")


class TestFromFile(unittest.TestCase):
    def write(self, tmp, content):
        path = os.path.join(tmp, "commands.json")
        with open(path, "w", encoding="utf-8") as f:
            f.write(content)
        return path

    def test_loads_commands(self):
        config = {
            "commands": {
                "calendar": {"phrases": ["open calendar"], "action": "url", "target": "https://cal"},
                "broken": {"action": "url"},
            }
        }
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertLogs("duplex_assistant.commands", level="INFO"):
                commands = Commands.from_file(self.write(tmp, json.dumps(config)))

        self.assertEqual([c.name for c in commands.commands], ["calendar"])
        self.assertEqual(commands.find_command("open calendar").target, "https://cal")

    def test_missing_file(self):
        commands = Commands.from_file("/nonexistent/commands.json")
        self.assertEqual(commands.commands, [])

    def test_invalid_json(self):
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertLogs("duplex_assistant.commands", level="ERROR"):
                commands = Commands.from_file(self.write(tmp, "{oops"))
        self.assertEqual(commands.commands, [])


class TestRun(unittest.TestCase):
    def setUp(self):
        self.commands = Commands()

    @patch("duplex_assistant.commands.subprocess.Popen")
    def test_launch(self, popen):
        command = self.commands.add("term", ["open terminal"], "launch", target=["xterm", "-e", "top"])

        self.assertTrue(Commands.run(command))
        popen.assert_called_once_with(["xterm", "-e", "top"])

    @patch("duplex_assistant.commands.subprocess.Popen", side_effect=FileNotFoundError("xterm"))
    def test_launch_failure(self, popen):
        command = self.commands.add("term", ["open terminal"], "launch", target="xterm")

        with self.assertLogs("duplex_assistant.commands", level="ERROR"):
            self.assertFalse(Commands.run(command))

    @patch("duplex_assistant.commands.webbrowser.open", return_value=True)
    def test_url(self, browser_open):
        command = self.commands.add("cal", ["open calendar"], "url", target="https://cal")

        self.assertTrue(Commands.run(command))
        browser_open.assert_called_once_with("https://cal")

    @patch("duplex_assistant.commands.requests.request")
    def test_http(self, request):
        request.return_value = Mock(ok=True, status_code=200)
        command = self.commands.add(
            "lights", ["lights off"], "http", target="http://hub/off", payload={"on": False}, timeout=2.0
        )

        self.assertTrue(Commands.run(command))
        request.assert_called_once_with("POST", "http://hub/off", json={"on": False}, timeout=2.0)

    @patch("duplex_assistant.commands.requests.request")
    def test_http_error_status(self, request):
        request.return_value = Mock(ok=False, status_code=503)
        command = self.commands.add("lights", ["lights off"], "http", target="http://hub/off")

        with self.assertLogs("duplex_assistant.commands", level="WARNING"):
            self.assertFalse(Commands.run(command))

    @patch("duplex_assistant.commands.requests.request", side_effect=requests.ConnectionError("down"))
    def test_http_unreachable(self, request):
        command = self.commands.add("lights", ["lights off"], "http", target="http://hub/off")

        with self.assertLogs("duplex_assistant.commands", level="ERROR"):
            self.assertFalse(Commands.run(command))

    def test_callback(self):
        ok = self.commands.register("ok", ["do it"], lambda: True)
        nope = self.commands.register("nope", ["fail"], lambda: None)

        self.assertTrue(Commands.run(ok))
        self.assertFalse(Commands.run(nope))

    def test_callback_exception(self):
        def explode():
            raise RuntimeError("boom")

        command = self.commands.register("boom", ["explode"], explode)
        with self.assertLogs("duplex_assistant.commands", level="ERROR"):
            self.assertFalse(Commands.run(command))


if __name__ == "__main__":
    unittest.main()
