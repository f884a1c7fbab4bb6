from typing import List, Optional
import structlog

from domain.context.state.session_store import SessionStore
from domain.models.chat_state import Chat, TurnLog
from domain.models.ui_fragments import RenderEntry
from domain.projection.ui_projector import project
from infrastructure.security.identity import Identity

logger = structlog.get_logger(__name__)


class SessionHooks:
    """Session read/write hooks; both are no-ops without an identity"""

    def __init__(self, session_store: SessionStore):
        self.session_store = session_store

    async def get_ui_state(self, turn_log: TurnLog, identity: Optional[Identity]) -> Optional[List[RenderEntry]]:
        """Rebuild UI state from the AI state for an authenticated user"""

        if identity is None:
            return None
        return project(turn_log)

    async def set_ai_state(self, turn_log: TurnLog, identity: Optional[Identity]) -> Optional[Chat]:
        """Persist the turn log as a chat record"""

        if identity is None or not turn_log.messages:
            return None

        chat = Chat.from_turn_log(turn_log.snapshot(), user_id=identity.user_id)
        await self.session_store.save_chat(chat)

        logger.info("Session saved", chat_id=chat.id, user_id=identity.user_id, messages=len(chat.messages))
        return chat

    async def load_turn_log(self, chat_id: str, identity: Optional[Identity]) -> Optional[TurnLog]:
        """Load a stored turn log for the user"""

        if identity is None:
            return None

        chat = await self.session_store.get_chat(chat_id, identity.user_id)
        if chat is None:
            return None
        return chat.to_turn_log()
