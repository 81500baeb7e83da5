# chat_server/app.py

import asyncio
import logging
import sys

from .config import settings
from .log import configure_logging
from .registry import NicknameRegistry
from .connection import ClientSession
from .router import Router

logger = logging.getLogger(__name__)


class BindError(OSError):
    """The listening socket could not be opened. Nothing was accepted."""


class Server:
    """
    The relay server.
    Owns the listening socket and the shared registry, and runs one
    ClientSession task per accepted connection.
    """
    def __init__(self, host: str | None = None, port: int | None = None, max_line_bytes: int | None = None):
        self.host = settings.SERVER_HOST if host is None else host
        self.port = settings.SERVER_PORT if port is None else port
        self.max_line_bytes = settings.MAX_LINE_BYTES if max_line_bytes is None else max_line_bytes

        self.registry = NicknameRegistry()
        self.router = Router(self.registry)

        self._server: asyncio.Server | None = None
        self._sessions: set[ClientSession] = set()
        logger.debug("Server components initialized.")

    async def handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        """
        Executed as its own task for each new connection.
        Errors stay inside the session; they never reach the accept loop.
        """
        session = ClientSession(self, reader, writer)
        self._sessions.add(session)
        try:
            await session.handle_connection()
        finally:
            self._sessions.discard(session)

    def _log_loop_exception(self, loop: asyncio.AbstractEventLoop, context: dict):
        # asyncio reports failed accept() calls here and keeps the listener running.
        exc = context.get("exception")
        logger.error("Event loop error: %s%s", context.get("message"), f" ({exc!r})" if exc else "",
                     exc_info=exc)

    async def open(self):
        """
        Binds the listening socket. Raises BindError if the address is unusable.
        Returns the actual (host, port) pairs being served.
        """
        asyncio.get_running_loop().set_exception_handler(self._log_loop_exception)
        try:
            self._server = await asyncio.start_server(
                self.handle_client, self.host, self.port, limit=self.max_line_bytes)
        except OSError as e:
            raise BindError(e.errno, f"Could not listen on {self.host}:{self.port}: {e.strerror or e}") from e

        addrs = [sock.getsockname() for sock in self._server.sockets]
        logger.info("Serving on %s", ', '.join(str(addr) for addr in addrs))
        return addrs

    async def start(self):
        """
        Binds and serves until cancelled.
        """
        if self._server is None:
            await self.open()

        await self._server.serve_forever()

    async def stop(self):
        """
        Stops accepting connections and hangs up on every connected client.
        """
        logger.info("Shutting down server...")
        if self._server:
            self._server.close()
            for session in list(self._sessions):
                session.writer.close()
            await self._server.wait_closed()
            self._server = None
        logger.info("Server shut down gracefully.")


async def main():
    server = Server()
    # A bind failure propagates from here; there is nothing to stop yet.
    await server.open()
    try:
        await server.start()
    finally:
        await server.stop()


def run():
    configure_logging(settings.LOG_LEVEL)
    try:
        asyncio.run(main())
    except BindError as e:
        logger.critical("%s", e.strerror)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received.")


if __name__ == "__main__":
    run()
