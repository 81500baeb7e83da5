# chat_server/registry.py

import asyncio
import logging
from typing import Dict, List, Optional, Tuple

from .sink import OutboundSink

logger = logging.getLogger(__name__)


class NicknameRegistry:
    """
    The set of currently connected nicknames, each mapped to its outbound sink.

    Every read and write goes through the lock. Snapshots are copies, so callers
    can iterate them while sessions join and leave.
    """

    def __init__(self):
        # Dicts keep insertion order, which makes the roster order deterministic.
        self._sinks: Dict[str, OutboundSink] = {}
        self._lock = asyncio.Lock()
        logger.debug("NicknameRegistry initialized.")

    async def try_register(self, nickname: str, sink: OutboundSink) -> bool:
        """Claims `nickname` for `sink`. Returns False, changing nothing, if it is taken."""
        async with self._lock:
            if nickname in self._sinks:
                logger.info("Nickname '%s' is already registered.", nickname)
                return False
            self._sinks[nickname] = sink
            logger.info("Nickname '%s' registered (%d online).", nickname, len(self._sinks))
            return True

    async def unregister(self, nickname: str) -> None:
        """Releases `nickname`. Unknown nicknames are ignored."""
        async with self._lock:
            if self._sinks.pop(nickname, None) is not None:
                logger.info("Nickname '%s' unregistered (%d online).", nickname, len(self._sinks))

    async def lookup(self, nickname: str) -> Optional[OutboundSink]:
        async with self._lock:
            return self._sinks.get(nickname)

    async def snapshot_sinks(self) -> List[OutboundSink]:
        async with self._lock:
            return list(self._sinks.values())

    async def snapshot_nicknames(self) -> List[str]:
        async with self._lock:
            return list(self._sinks)

    async def snapshot(self) -> Tuple[List[str], List[OutboundSink]]:
        """Nicknames and sinks taken under one lock acquisition."""
        async with self._lock:
            return list(self._sinks), list(self._sinks.values())

    def __len__(self) -> int:
        return len(self._sinks)
