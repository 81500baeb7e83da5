# chat_client/app_main.py
import queue
import sys
import threading

from chat_server.log import configure_logging
from .config import settings
from .network_client import NetworkClient

HELP = "Commands: /to <nick> <message>  send a private message | /quit  leave the chat"


class ConsoleApp:
    """
    Terminal front-end: reads commands from stdin and prints what the server sends.
    """

    def __init__(self, nickname: str, host: str = settings.SERVER_HOST, port: int = settings.SERVER_PORT):
        self.nickname = nickname
        self.host = host
        self.port = port
        self.event_queue: "queue.Queue[dict]" = queue.Queue()
        self.network_client = NetworkClient(self.event_queue)
        self.active_users: list[str] = []
        self.stopped = threading.Event()

    def handle_event(self, event: dict):
        etype = event.get("type")
        payload = event.get("payload")

        if etype == "active_users":
            # The roster includes ourselves; only show the others.
            self.active_users = [user for user in payload if user != self.nickname]
            print(f"Connected users: {', '.join(self.active_users)}")
        elif etype in ("message", "rejected"):
            print(payload)
        elif etype == "network_connected":
            print(f"Connected to {payload['host']}:{payload['port']} as '{self.nickname}'.")
            print(HELP)
        elif etype == "network_error":
            print(f"Network error: {payload}")
        elif etype == "network_stopped":
            self.stopped.set()

    def process_incoming(self):
        while not self.stopped.is_set():
            self.handle_event(self.event_queue.get())

    def handle_input(self, text: str) -> bool:
        """Returns False once the user has asked to leave."""
        text = text.strip()
        if not text:
            return True
        if text == "/quit":
            self.network_client.leave()
            return False
        if text.startswith("/to "):
            parts = text.split(" ", 2)
            if len(parts) < 3 or not parts[2]:
                print("Usage: /to <nick> <message>")
                return True
            self.network_client.send_private(parts[1], parts[2])
            return True
        self.network_client.send(text)
        return True

    def read_input(self, stream=None):
        """Feeds stdin lines to handle_input until the user leaves or input ends."""
        for line in (stream or sys.stdin):
            if self.stopped.is_set() or not self.handle_input(line):
                break
        else:
            # End of input counts as leaving.
            self.network_client.leave()
        # Give the server a moment to answer the leave before giving up on it.
        if not self.stopped.wait(timeout=1):
            self.stopped.set()

    def run(self, stream=None):
        self.network_client.start(self.nickname, self.host, self.port)
        threading.Thread(target=self.process_incoming, daemon=True).start()
        # Input is read on a daemon thread so a server-side disconnect ends the
        # app without waiting for the next line from the user.
        threading.Thread(target=self.read_input, args=(stream,), daemon=True).start()
        try:
            self.stopped.wait()
        except KeyboardInterrupt:
            self.network_client.leave()
            self.stopped.wait(timeout=1)
        finally:
            self.network_client.stop()


def main():
    configure_logging(settings.LOG_LEVEL, name="chat_client")
    nickname = sys.argv[1] if len(sys.argv) > 1 else input("Nickname: ").strip()
    if not nickname:
        print("A nickname is required.")
        sys.exit(1)
    ConsoleApp(nickname).run()


if __name__ == "__main__":
    main()
