from typing import Dict, Any, Optional, List, Literal, Union
from pydantic import BaseModel, Field
from datetime import datetime
from enum import Enum


class EventType(str, Enum):
    """WebSocket event types"""
    MARKDOWN = "markdown"
    COMPONENT = "component"
    ERROR = "error"
    CONNECTION = "connection"
    UI_STATE = "ui_state"
    USER_MESSAGE = "user_message"
    CONFIRM_SESSION = "confirm_session"


class ComponentType(str, Enum):
    """UI component types"""
    PROGRESS = "progress"
    RENDER = "render"


class BaseEvent(BaseModel):
    """Base event model for all WebSocket messages"""
    type: EventType
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    session_id: Optional[str] = None


class MarkdownData(BaseModel):
    """Streamed assistant text for one turn"""
    turn_id: str
    content: str
    delta: Optional[str] = None
    done: bool = False


class MarkdownEvent(BaseEvent):
    """Markdown content event for chat messages"""
    type: Literal[EventType.MARKDOWN] = EventType.MARKDOWN
    payload: MarkdownData


class ProgressData(BaseModel):
    """Progress component data"""
    status: str
    turn_id: Optional[str] = None


class RenderData(BaseModel):
    """Current fragment of a turn's render handle"""
    turn_id: str
    fragment: Dict[str, Any]
    done: bool = False


class ComponentPayload(BaseModel):
    """Component event payload"""
    component: ComponentType
    data: Union[ProgressData, RenderData, Dict[str, Any]]


class ComponentEvent(BaseEvent):
    """Component event for UI updates"""
    type: Literal[EventType.COMPONENT] = EventType.COMPONENT
    payload: ComponentPayload


class UIStateEvent(BaseEvent):
    """Projected UI state sent when a session is (re)loaded"""
    type: Literal[EventType.UI_STATE] = EventType.UI_STATE
    chat_id: str
    entries: List[Dict[str, Any]] = Field(default_factory=list)


class ErrorEvent(BaseEvent):
    """Error event"""
    type: Literal[EventType.ERROR] = EventType.ERROR
    payload: Dict[str, Any]
    error_code: Optional[str] = None


class ConnectionEvent(BaseEvent):
    """Connection status event"""
    type: Literal[EventType.CONNECTION] = EventType.CONNECTION
    status: Literal["connected", "disconnected", "reconnecting"]


class UserMessage(BaseEvent):
    """User message event"""
    type: Literal[EventType.USER_MESSAGE] = EventType.USER_MESSAGE
    content: str
    metadata: Optional[Dict[str, Any]] = None


class ConfirmSession(BaseEvent):
    """Request to confirm the session for a student"""
    type: Literal[EventType.CONFIRM_SESSION] = EventType.CONFIRM_SESSION
    student_name: str
