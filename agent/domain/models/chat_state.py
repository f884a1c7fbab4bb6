from typing import Dict, Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator
from datetime import datetime
from enum import Enum
import uuid


TITLE_MAX_LENGTH = 100


def generate_id() -> str:
    """Generate a unique identifier for chats and messages"""
    return uuid.uuid4().hex


class MessageRole(str, Enum):
    """Roles a message can take in the turn log"""
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    FUNCTION = "function"
    DATA = "data"
    TOOL = "tool"


TOOL_RESULT_ROLES = frozenset({MessageRole.FUNCTION, MessageRole.TOOL})


class Message(BaseModel):
    """A single exchanged message; immutable once created"""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=generate_id, description="Unique message identifier")
    role: MessageRole
    content: str = Field(description="Raw text or a JSON-encoded argument payload")
    name: Optional[str] = Field(None, description="Tool that produced the message")

    @model_validator(mode="after")
    def _check_name_matches_role(self) -> "Message":
        if self.role in TOOL_RESULT_ROLES and not self.name:
            raise ValueError(f"'{self.role.value}' messages require a tool name")
        if self.role not in TOOL_RESULT_ROLES and self.name is not None:
            raise ValueError(f"'{self.role.value}' messages cannot carry a tool name")
        return self

    @property
    def is_tool_result(self) -> bool:
        return self.role in TOOL_RESULT_ROLES


class TurnLog(BaseModel):
    """Durable AI state: session identity plus the append-only message log"""
    chat_id: str = Field(default_factory=generate_id, description="Session identifier")
    messages: List[Message] = Field(default_factory=list)

    @classmethod
    def new(cls) -> "TurnLog":
        """Create an empty log with a fresh session id"""
        return cls(chat_id=generate_id())

    def append(self, message: Message) -> Message:
        """Append a message; the log is never rewritten in place"""

        if any(existing.id == message.id for existing in self.messages):
            raise ValueError(f"Duplicate message id '{message.id}' in chat '{self.chat_id}'")
        self.messages.append(message)
        return message

    def reset(self, messages: Optional[List[Message]] = None):
        """Replace the entire log (session reset)"""
        self.messages = list(messages or [])

    def snapshot(self) -> "TurnLog":
        """Detached copy for handing to persistence"""
        return self.model_copy(deep=True)

    def __len__(self) -> int:
        return len(self.messages)


class Chat(BaseModel):
    """Persisted chat record built from a turn log"""
    id: str
    title: str
    user_id: str
    created_at: datetime = Field(default_factory=datetime.utcnow)
    path: str
    messages: List[Message] = Field(default_factory=list)

    @classmethod
    def from_turn_log(cls, turn_log: TurnLog, user_id: str) -> "Chat":
        """Build a chat record; the title comes from the first message"""

        title = turn_log.messages[0].content[:TITLE_MAX_LENGTH] if turn_log.messages else ""
        return cls(
            id=turn_log.chat_id,
            title=title,
            user_id=user_id,
            path=f"/chat/{turn_log.chat_id}",
            messages=list(turn_log.messages)
        )

    def to_turn_log(self) -> TurnLog:
        """Rebuild the AI state from a stored chat"""
        return TurnLog(chat_id=self.id, messages=list(self.messages))

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of the chat for listings"""
        return {
            "id": self.id,
            "title": self.title,
            "path": self.path,
            "created_at": self.created_at.isoformat(),
            "message_count": len(self.messages)
        }
