from typing import Dict, List, Optional, Protocol
import asyncio

import structlog

from domain.models.chat_state import Chat

logger = structlog.get_logger(__name__)


class SessionStore(Protocol):
    """Durable storage for chat records, keyed by chat id and user"""

    async def save_chat(self, chat: Chat) -> None:
        ...

    async def get_chat(self, chat_id: str, user_id: str) -> Optional[Chat]:
        ...

    async def get_chats(self, user_id: str) -> List[Chat]:
        ...

    async def remove_chat(self, chat_id: str, user_id: str) -> bool:
        ...

    async def clear_chats(self, user_id: str) -> int:
        ...


class InMemorySessionStore:
    """Keeps chat records in process memory"""

    def __init__(self):
        self.chats: Dict[str, Chat] = {}
        self._lock = asyncio.Lock()

    async def save_chat(self, chat: Chat) -> None:
        """Insert or replace a chat record"""

        async with self._lock:
            existing = self.chats.get(chat.id)
            if existing and existing.user_id != chat.user_id:
                raise PermissionError(f"Chat '{chat.id}' belongs to another user")

            stored = chat.model_copy(deep=True)
            if existing:
                stored.created_at = existing.created_at
            self.chats[chat.id] = stored

        logger.debug("Chat saved", chat_id=chat.id, messages=len(chat.messages))

    async def get_chat(self, chat_id: str, user_id: str) -> Optional[Chat]:
        """Get a chat if it belongs to the user"""

        async with self._lock:
            chat = self.chats.get(chat_id)
            if chat is None or chat.user_id != user_id:
                return None
            return chat.model_copy(deep=True)

    async def get_chats(self, user_id: str) -> List[Chat]:
        """Get all chats of a user, newest first"""

        async with self._lock:
            chats = [chat.model_copy(deep=True) for chat in self.chats.values() if chat.user_id == user_id]
        return sorted(chats, key=lambda chat: chat.created_at, reverse=True)

    async def remove_chat(self, chat_id: str, user_id: str) -> bool:
        """Delete a chat; returns whether anything was removed"""

        async with self._lock:
            chat = self.chats.get(chat_id)
            if chat is None or chat.user_id != user_id:
                return False
            del self.chats[chat_id]
            return True

    async def clear_chats(self, user_id: str) -> int:
        """Delete all chats of a user and return the count"""

        async with self._lock:
            chat_ids = [chat_id for chat_id, chat in self.chats.items() if chat.user_id == user_id]
            for chat_id in chat_ids:
                del self.chats[chat_id]
            return len(chat_ids)
