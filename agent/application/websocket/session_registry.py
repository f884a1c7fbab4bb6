from typing import Awaitable, Callable, Dict, Optional, Tuple
import structlog

from domain.models.chat_state import TurnLog

logger = structlog.get_logger(__name__)

SessionKey = Tuple[str, Optional[str]]


class SessionRegistry:
    """One live turn log per chat and user, shared by every connection to it.

    A connection holds its entry from connect until its handler exits, which
    is after any turn it started has terminated. Reconnecting while a turn is
    still streaming therefore sees the same log the turn commits to.
    """

    def __init__(self):
        self.turn_logs: Dict[SessionKey, TurnLog] = {}
        self._holders: Dict[SessionKey, int] = {}

    async def open(self, key: SessionKey, load: Callable[[], Awaitable[TurnLog]]) -> TurnLog:
        """Get the live log for a session, loading it for the first holder"""

        self._holders[key] = self._holders.get(key, 0) + 1
        turn_log = self.turn_logs.get(key)
        if turn_log is not None:
            return turn_log

        try:
            loaded = await load()
        except BaseException:
            self.close(key)
            raise

        # Another connection may have loaded it meanwhile
        turn_log = self.turn_logs.setdefault(key, loaded)
        logger.debug("Session opened", chat_id=key[0], holders=self._holders[key])
        return turn_log

    def close(self, key: SessionKey):
        """Drop one holder; the log is released with the last one"""

        remaining = self._holders.get(key, 0) - 1
        if remaining > 0:
            self._holders[key] = remaining
            return

        self._holders.pop(key, None)
        self.turn_logs.pop(key, None)
        logger.debug("Session released", chat_id=key[0])

    def holders(self, key: SessionKey) -> int:
        return self._holders.get(key, 0)
