# chat_server/router.py

import asyncio
import logging

from .protocol import format_active_users, format_private, is_terminate, parse_directed, DIRECTED_PREFIX

from typing import TYPE_CHECKING
if TYPE_CHECKING:
    from .registry import NicknameRegistry
    from .connection import ClientSession

logger = logging.getLogger(__name__)


class Router:
    """
    Decides what every line from an active session turns into.
    """
    def __init__(self, registry: "NicknameRegistry"):
        self.registry = registry
        # Keeps roster broadcasts from overtaking each other.
        self._broadcast_lock = asyncio.Lock()
        logger.debug("Router initialized.")

    async def route(self, session: "ClientSession", line: str) -> bool:
        """
        Handles one line from `session`.
        Returns False when the session asked to leave, True to keep reading.
        """
        if is_terminate(line):
            return False

        if line.startswith(DIRECTED_PREFIX):
            directed = parse_directed(line)
            if directed is None:
                logger.debug("Ignoring malformed directed message from '%s'.", session.nickname)
                return True

            # A private message whose body is the keyword ends the sender's
            # session; the recipient is not told.
            if is_terminate(directed.body.strip()):
                return False

            await self.route_private_message(session, directed.recipient, directed.body)
            return True

        # Free text has no room to go to.
        return True

    async def route_private_message(self, sender_session: "ClientSession", recipient: str, body: str) -> bool:
        """
        Delivers `body` to `recipient` and echoes it back to the sender.
        Unknown recipients are dropped without telling anyone.
        """
        recipient_sink = await self.registry.lookup(recipient)
        if recipient_sink is None:
            logger.debug("Dropping private message from '%s' to offline '%s'.", sender_session.nickname, recipient)
            return False

        message = format_private(sender_session.nickname, body)
        logger.debug("Routing private message from '%s' to '%s'.", sender_session.nickname, recipient)
        await recipient_sink.send(message)
        await sender_session.sink.send(message)
        return True

    async def broadcast_active_users(self) -> None:
        """Sends the current roster to every registered session, including the one that just changed it."""
        async with self._broadcast_lock:
            nicknames, sinks = await self.registry.snapshot()
            roster = format_active_users(nicknames)
            for sink in sinks:
                await sink.send(roster)
        logger.debug("Broadcast roster to %d session(s): %s", len(sinks), roster)
