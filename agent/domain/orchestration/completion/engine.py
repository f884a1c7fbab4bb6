from typing import AsyncIterator, List, Literal, Optional, Protocol, Union
from pydantic import BaseModel, ConfigDict, Field
from enum import Enum

from domain.tool.tool_registry import ToolSchema


class CompletionEventType(str, Enum):
    """Events emitted by a streaming completion"""
    TEXT_DELTA = "text_delta"
    TOOL_INVOCATION_STARTED = "tool_invocation_started"
    TOOL_INVOCATION_RESOLVED = "tool_invocation_resolved"
    TURN_COMPLETE = "turn_complete"


class BaseCompletionEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: CompletionEventType


class TextDelta(BaseCompletionEvent):
    """A chunk of assistant text"""
    type: Literal[CompletionEventType.TEXT_DELTA] = CompletionEventType.TEXT_DELTA
    delta: str


class ToolInvocationStarted(BaseCompletionEvent):
    """The model began calling a tool; arguments are not known yet"""
    type: Literal[CompletionEventType.TOOL_INVOCATION_STARTED] = CompletionEventType.TOOL_INVOCATION_STARTED
    call_id: str
    name: str


class ToolInvocationResolved(BaseCompletionEvent):
    """The tool call is complete with its raw JSON arguments"""
    type: Literal[CompletionEventType.TOOL_INVOCATION_RESOLVED] = CompletionEventType.TOOL_INVOCATION_RESOLVED
    call_id: str
    name: str
    arguments: str = ""


class TurnComplete(BaseCompletionEvent):
    """No further events follow"""
    type: Literal[CompletionEventType.TURN_COMPLETE] = CompletionEventType.TURN_COMPLETE


CompletionEvent = Union[TextDelta, ToolInvocationStarted, ToolInvocationResolved, TurnComplete]


class PromptMessage(BaseModel):
    """Message as sent to the completion engine"""
    role: str
    content: str
    name: Optional[str] = None


class CompletionRequest(BaseModel):
    """Everything the completion engine needs for one turn"""
    model: str = Field(description="Model identifier")
    messages: List[PromptMessage] = Field(default_factory=list)
    tools: List[ToolSchema] = Field(default_factory=list)


class CompletionEngine(Protocol):
    """Streams completion events for a request"""

    def stream(self, request: CompletionRequest) -> AsyncIterator[CompletionEvent]:
        ...
