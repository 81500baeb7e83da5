# chat_server/sink.py

import asyncio
import logging

from .protocol import encode_line

logger = logging.getLogger(__name__)

_CLOSE = object()


class OutboundSink:
    """
    Write-only channel to one connected peer.

    Lines are queued and written by a dedicated task, so a peer that stops
    reading only backs up its own queue; broadcasts to everyone else keep
    flowing. The queue is unbounded and there is no write timeout.
    """

    def __init__(self, writer: asyncio.StreamWriter, label: str = ""):
        self._writer = writer
        self._queue: asyncio.Queue = asyncio.Queue()
        self._task: asyncio.Task | None = None
        self._closed = False
        self.label = label
        self.alive = True

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._drain_loop())

    async def send(self, line: str) -> None:
        """Queues one line for delivery. Lines sent after close or a write failure are dropped."""
        if self._closed or not self.alive:
            return
        self.start()
        self._queue.put_nowait(line)

    async def close(self) -> None:
        """Flushes every line queued so far, then stops the writer task."""
        if self._closed:
            return
        self._closed = True
        if self._task is None:
            return
        self._queue.put_nowait(_CLOSE)
        await self._task

    async def _drain_loop(self) -> None:
        while True:
            line = await self._queue.get()
            if line is _CLOSE:
                return
            try:
                self._writer.write(encode_line(line))
                await self._writer.drain()
            except (ConnectionError, OSError) as e:
                logger.warning("Write to %s failed: %s", self.label or "peer", e)
                self.alive = False
                # Closing the transport feeds EOF to the owner's reader, which
                # sends the session down its normal cleanup path.
                self._writer.close()
                return
