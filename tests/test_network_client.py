"""
Tests for the client side: line classification, the console front-end and a
live NetworkClient session against a real server.
"""

import asyncio
import io
import queue
import threading
import unittest
from unittest.mock import Mock, patch

from chat_client.app_main import ConsoleApp
from chat_client.network_client import NetworkClient, classify_line
from chat_server.app import Server
from chat_server.protocol import NICKNAME_IN_USE

TIMEOUT = 5


class TestClassifyLine(unittest.TestCase):

    def test_roster_line(self):
        self.assertEqual(
            classify_line("Active Users: alice, bob"),
            {"type": "active_users", "payload": ["alice", "bob"]},
        )

    def test_rejection_line(self):
        self.assertEqual(classify_line(NICKNAME_IN_USE), {"type": "rejected", "payload": NICKNAME_IN_USE})

    def test_anything_else_is_a_message(self):
        self.assertEqual(
            classify_line("[alice(Private)]: hi"),
            {"type": "message", "payload": "[alice(Private)]: hi"},
        )


class IdleInput:
    """An input stream where the user never types anything until released."""

    def __init__(self):
        self.release = threading.Event()

    def __iter__(self):
        return self

    def __next__(self):
        self.release.wait()
        raise StopIteration


class TestConsoleApp(unittest.TestCase):

    def setUp(self):
        self.app = ConsoleApp("alice", host="127.0.0.1", port=8888)
        self.app.network_client = Mock(spec=NetworkClient)

    def test_private_command(self):
        self.assertTrue(self.app.handle_input("/to bob see you at 10:30\n"))
        self.app.network_client.send_private.assert_called_once_with("bob", "see you at 10:30")

    def test_private_command_needs_a_message(self):
        with patch("builtins.print"):
            self.assertTrue(self.app.handle_input("/to bob"))
        self.app.network_client.send_private.assert_not_called()

    def test_quit_sends_the_terminate_keyword(self):
        self.assertFalse(self.app.handle_input("/quit"))
        self.app.network_client.leave.assert_called_once_with()

    def test_plain_text_is_sent_as_is(self):
        self.assertTrue(self.app.handle_input("hello\n"))
        self.app.network_client.send.assert_called_once_with("hello")

    def test_blank_input_is_skipped(self):
        self.assertTrue(self.app.handle_input("   \n"))
        self.app.network_client.send.assert_not_called()

    def test_roster_hides_own_nickname(self):
        with patch("builtins.print") as mock_print:
            self.app.handle_event({"type": "active_users", "payload": ["alice", "bob", "carol"]})
        self.assertEqual(self.app.active_users, ["bob", "carol"])
        mock_print.assert_called_once_with("Connected users: bob, carol")

    def test_stopped_event(self):
        self.app.handle_event({"type": "network_stopped", "payload": None})
        self.assertTrue(self.app.stopped.is_set())

    def test_end_of_input_leaves_the_chat(self):
        self.app.network_client.leave.side_effect = self.app.stopped.set
        self.app.read_input(io.StringIO("hello\n"))

        self.app.network_client.send.assert_called_once_with("hello")
        self.app.network_client.leave.assert_called_once_with()

    def test_server_disconnect_ends_run_while_input_is_idle(self):
        stream = IdleInput()
        self.addCleanup(stream.release.set)
        # The connection drops right away, as after a nickname rejection.
        self.app.network_client.start.side_effect = lambda *args: self.app.event_queue.put(
            {"type": "network_stopped", "payload": None})

        runner = threading.Thread(target=self.app.run, args=(stream,), daemon=True)
        runner.start()
        runner.join(TIMEOUT)

        self.assertFalse(runner.is_alive())
        self.app.network_client.stop.assert_called_once_with()


class TestNetworkClientSession(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.server = Server(host="127.0.0.1", port=0)
        addrs = await self.server.open()
        self.port = addrs[0][1]
        self.clients = []

    async def asyncTearDown(self):
        for client in self.clients:
            await asyncio.to_thread(client.stop)
        await self.server.stop()

    def start_client(self, nickname):
        events: "queue.Queue[dict]" = queue.Queue()
        client = NetworkClient(events)
        self.clients.append(client)
        client.start(nickname, host="127.0.0.1", port=self.port)
        return client, events

    async def next_event(self, events, etype):
        """Waits for the next event of type `etype`, skipping others."""
        while True:
            event = await asyncio.to_thread(events.get, timeout=TIMEOUT)
            if event["type"] == etype:
                return event

    async def test_join_private_message_and_leave(self):
        alice, alice_events = self.start_client("alice")
        self.assertEqual((await self.next_event(alice_events, "active_users"))["payload"], ["alice"])

        bob, bob_events = self.start_client("bob")
        self.assertEqual((await self.next_event(bob_events, "active_users"))["payload"], ["alice", "bob"])
        self.assertEqual((await self.next_event(alice_events, "active_users"))["payload"], ["alice", "bob"])

        bob.send_private("alice", "hello")
        self.assertEqual((await self.next_event(alice_events, "message"))["payload"], "[bob(Private)]:  hello")
        self.assertEqual((await self.next_event(bob_events, "message"))["payload"], "[bob(Private)]:  hello")

        bob.leave()
        await self.next_event(bob_events, "network_stopped")
        self.assertEqual((await self.next_event(alice_events, "active_users"))["payload"], ["alice"])

    async def test_duplicate_nickname_is_reported(self):
        _, first_events = self.start_client("alice")
        await self.next_event(first_events, "active_users")

        _, second_events = self.start_client("alice")
        self.assertEqual((await self.next_event(second_events, "rejected"))["payload"], NICKNAME_IN_USE)
        await self.next_event(second_events, "network_stopped")


if __name__ == "__main__":
    unittest.main()
