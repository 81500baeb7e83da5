# chat_client/network_client.py
import asyncio
import threading
import logging
import queue
from typing import Optional

from chat_server.protocol import (
    NICKNAME_IN_USE,
    TERMINATE_KEYWORD,
    decode_line,
    encode_line,
    format_directed,
    parse_active_users,
)
from .config import settings

logger = logging.getLogger(__name__)

DEFAULT_HOST = settings.SERVER_HOST
DEFAULT_PORT = settings.SERVER_PORT
_INTERNAL_STOP = object()


def classify_line(line: str) -> dict:
    """Turns one line from the server into an event for the front-end."""
    users = parse_active_users(line)
    if users is not None:
        return {"type": "active_users", "payload": users}
    if line == NICKNAME_IN_USE:
        return {"type": "rejected", "payload": line}
    return {"type": "message", "payload": line}


class NetworkClient:
    """
    Runs the connection on a background asyncio loop so a front-end can stay
    synchronous. Everything the server sends arrives on `event_queue` as dicts.
    """

    def __init__(self, event_queue: "queue.Queue[dict]"):
        self.event_queue = event_queue
        self.outgoing: "queue.Queue" = queue.Queue()
        self.nickname: Optional[str] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._writer: Optional[asyncio.StreamWriter] = None

    def start(self, nickname: str, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT):
        if self._thread and self._thread.is_alive():
            return
        self.nickname = nickname
        self.outgoing = queue.Queue()
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, args=(nickname, host, port), daemon=True)
        self._thread.start()

    def stop(self):
        self._stop_event.set()
        self.outgoing.put_nowait(_INTERNAL_STOP)
        loop = self._loop
        if loop is not None and not loop.is_closed():
            try:
                asyncio.run_coroutine_threadsafe(self._close_connection(), loop)
            except RuntimeError:
                # The loop finished between the check and the call.
                pass
        if self._thread:
            self._thread.join(timeout=1)

    def send(self, text: str):
        if not isinstance(text, str):
            raise TypeError("NetworkClient.send expects a str")
        self.outgoing.put(text)

    def send_private(self, recipient: str, text: str):
        self.send(format_directed(recipient, text))

    def leave(self):
        self.send(TERMINATE_KEYWORD)

    def _run_loop(self, nickname: str, host: str, port: int):
        self._loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self._loop)
        try:
            self._loop.run_until_complete(self._async_main(nickname, host, port))
        except Exception as e:
            logger.exception("Network loop error")
            self.event_queue.put({"type": "network_error", "payload": f"network loop error: {e}"})
        finally:
            self._loop.close()
            self._loop = None

    async def _async_main(self, nickname: str, host: str, port: int):
        try:
            reader, writer = await asyncio.open_connection(host, port)
        except OSError as e:
            self.event_queue.put({"type": "network_error", "payload": f"connection error: {e}"})
            self.event_queue.put({"type": "network_stopped", "payload": None})
            return

        self._writer = writer
        try:
            # The handshake is just the nickname line; silence means it was accepted.
            writer.write(encode_line(nickname))
            await writer.drain()
            self.event_queue.put({"type": "network_connected", "payload": {"host": host, "port": port}})

            send_task = asyncio.create_task(self._send_loop())
            try:
                await self._recv_loop(reader)
            finally:
                # Unblocks the executor thread waiting on the outgoing queue.
                self.outgoing.put_nowait(_INTERNAL_STOP)
                send_task.cancel()
                try:
                    await send_task
                except asyncio.CancelledError:
                    pass
        except (ConnectionError, OSError) as e:
            self.event_queue.put({"type": "network_error", "payload": f"connection error: {e}"})
        finally:
            await self._close_connection()
            self.event_queue.put({"type": "network_disconnected", "payload": None})
            self.event_queue.put({"type": "network_stopped", "payload": None})

    async def _recv_loop(self, reader: asyncio.StreamReader):
        while not self._stop_event.is_set():
            line = decode_line(await reader.readline())
            if line is None:
                return
            self.event_queue.put(classify_line(line))

    async def _send_loop(self):
        loop = asyncio.get_running_loop()
        while not self._stop_event.is_set():
            item = await loop.run_in_executor(None, self.outgoing.get)
            if item is _INTERNAL_STOP:
                return
            if self._writer is None:
                self.event_queue.put({"type": "network_error", "payload": "not connected"})
                continue
            try:
                self._writer.write(encode_line(item))
                await self._writer.drain()
            except (ConnectionError, OSError) as e:
                self.event_queue.put({"type": "network_error", "payload": f"send error: {e}"})
                return

    async def _close_connection(self):
        writer, self._writer = self._writer, None
        if writer is None:
            return
        writer.close()
        try:
            await writer.wait_closed()
        except (ConnectionError, OSError):
            pass
