# chat_server/connection.py

import asyncio
import enum
import logging

from .protocol import NICKNAME_IN_USE, decode_line, encode_line
from .sink import OutboundSink

from typing import TYPE_CHECKING
if TYPE_CHECKING:
    from .app import Server

logger = logging.getLogger(__name__)


class SessionState(enum.Enum):
    CONNECTED = "connected"
    AUTHENTICATING = "authenticating"
    ACTIVE = "active"
    TERMINATED = "terminated"


class ClientSession:
    def __init__(self, server: 'Server', reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        self.server = server
        self.reader = reader
        self.writer = writer

        self.nickname: str | None = None
        self.state = SessionState.CONNECTED
        self.is_registered: bool = False

        self.addr = writer.get_extra_info('peername')
        self.sink = OutboundSink(writer, label=str(self.addr))
        logger.info("ClientSession created for %r", self.addr)

    async def _read_line(self) -> str | None:
        return decode_line(await self.reader.readline())

    async def _reject(self, line: str) -> None:
        """Writes a single line straight to the stream, outside the sink."""
        self.writer.write(encode_line(line))
        await self.writer.drain()

    async def handle_connection(self):
        """Manages the full lifecycle: nickname handshake, message loop, cleanup."""
        try:
            self.state = SessionState.AUTHENTICATING
            if not await self._claim_nickname():
                return

            self.state = SessionState.ACTIVE
            await self.server.router.broadcast_active_users()
            await self._message_loop()

        except (ConnectionError, OSError, asyncio.IncompleteReadError) as e:
            logger.warning("Connection error with %r (%s): %s", self.addr, self.nickname, e)
        except ValueError as e:
            # StreamReader raises ValueError when a line exceeds its limit.
            logger.warning("Invalid input from %r (%s): %s", self.addr, self.nickname, e)
        finally:
            await self._terminate()

    async def _claim_nickname(self) -> bool:
        nickname = await self._read_line()
        if not nickname:
            logger.info("%r disconnected before sending a nickname.", self.addr)
            return False

        self.nickname = nickname
        if not await self.server.registry.try_register(nickname, self.sink):
            logger.info("Rejecting %r: nickname '%s' already in use.", self.addr, nickname)
            await self._reject(NICKNAME_IN_USE)
            return False

        self.is_registered = True
        self.sink.start()
        logger.info("%r joined as '%s'.", self.addr, nickname)
        return True

    async def _message_loop(self):
        while True:
            line = await self._read_line()
            if line is None:
                logger.info("'%s' closed the connection.", self.nickname)
                break

            logger.debug("Client [%s]: %s", self.nickname, line)
            if not await self.server.router.route(self, line):
                logger.info("'%s' asked to leave.", self.nickname)
                break

    async def _terminate(self):
        """Runs on every exit path. Only a session that registered announces its departure."""
        self.state = SessionState.TERMINATED
        try:
            if self.is_registered:
                await self.server.registry.unregister(self.nickname)
                self.is_registered = False
                await self.server.router.broadcast_active_users()
            await self.sink.close()
        finally:
            self.writer.close()
            try:
                await self.writer.wait_closed()
            except (ConnectionError, OSError) as e:
                logger.debug("Error while closing %r: %s", self.addr, e)
            logger.info("Connection to %r closed.", self.addr)
