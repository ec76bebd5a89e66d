#!/usr/bin/env python3
"""
EventEmitter tests
"""

import asyncio
import unittest

import fakes  # noqa: F401  (puts the package on sys.path)

from duplex_assistant.events import EventEmitter


class TestEventEmitter(unittest.TestCase):
    def setUp(self):
        self.emitter = EventEmitter()
        self.calls = []

    def test_handlers_run_in_registration_order(self):
        self.emitter.on("tick", lambda n: self.calls.append(("a", n)))
        self.emitter.on("tick", lambda n: self.calls.append(("b", n)))

        self.assertTrue(self.emitter.emit("tick", 1))
        self.assertEqual(self.calls, [("a", 1), ("b", 1)])

    def test_emit_without_listeners(self):
        self.assertFalse(self.emitter.emit("nothing"))

    def test_once_runs_a_single_time(self):
        self.emitter.once("tick", self.calls.append)
        self.emitter.emit("tick", 1)
        self.emitter.emit("tick", 2)

        self.assertEqual(self.calls, [1])
        self.assertEqual(self.emitter.listener_count("tick"), 0)

    def test_off_removes_once_handler_by_original(self):
        self.emitter.once("tick", self.calls.append)
        self.emitter.off("tick", self.calls.append)
        self.emitter.emit("tick", 1)

        self.assertEqual(self.calls, [])

    def test_off_removes_bound_method(self):
        class Listener:
            def __init__(self):
                self.seen = []

            def handle(self, value):
                self.seen.append(value)

        listener = Listener()
        self.emitter.on("tick", listener.handle)
        self.emitter.off("tick", listener.handle)
        self.emitter.emit("tick", 1)

        self.assertEqual(listener.seen, [])
        self.assertEqual(self.emitter.listener_count("tick"), 0)

    def test_off_unknown_handler_is_harmless(self):
        self.emitter.off("tick", self.calls.append)
        self.assertEqual(self.emitter.listener_count("tick"), 0)

    def test_handler_added_during_emit_waits_for_next_emit(self):
        def first(_):
            self.calls.append("first")
            self.emitter.on("tick", lambda _: self.calls.append("late"))

        self.emitter.on("tick", first)
        self.emitter.emit("tick", None)
        self.assertEqual(self.calls, ["first"])

    def test_remove_all_listeners(self):
        self.emitter.on("a", self.calls.append)
        self.emitter.on("b", self.calls.append)

        self.emitter.remove_all_listeners("a")
        self.assertEqual(self.emitter.listener_count("a"), 0)
        self.assertEqual(self.emitter.listener_count("b"), 1)

        self.emitter.remove_all_listeners()
        self.assertEqual(self.emitter.listener_count("b"), 0)


class TestWaitFor(unittest.IsolatedAsyncioTestCase):
    async def test_resolves_with_payload(self):
        emitter = EventEmitter()
        single = emitter.wait_for("end")
        empty = emitter.wait_for("ready")
        multi = emitter.wait_for("pair")

        emitter.emit("end", True)
        emitter.emit("ready")
        emitter.emit("pair", 1, 2)

        self.assertTrue(await single)
        self.assertIsNone(await empty)
        self.assertEqual(await multi, (1, 2))

    async def test_cancelled_future_unregisters(self):
        emitter = EventEmitter()
        future = emitter.wait_for("end")
        future.cancel()
        await asyncio.sleep(0)

        self.assertTrue(future.cancelled())
        self.assertEqual(emitter.listener_count("end"), 0)
        emitter.emit("end", False)


if __name__ == "__main__":
    unittest.main()
