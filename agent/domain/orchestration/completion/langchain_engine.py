from typing import Any, AsyncIterator, Dict, List, Mapping, Optional
from dataclasses import dataclass, field

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import (
    AIMessage, BaseMessage, FunctionMessage, HumanMessage, SystemMessage
)
import structlog

from domain.errors import EngineUnavailableError
from domain.orchestration.completion.engine import (
    CompletionEvent, CompletionRequest, PromptMessage, TextDelta,
    ToolInvocationResolved, ToolInvocationStarted, TurnComplete
)

logger = structlog.get_logger(__name__)


@dataclass
class _PendingCall:
    index: int
    call_id: str
    name: str = ""
    arguments: str = ""
    announced: bool = False


@dataclass
class ToolCallAccumulator:
    """Reassembles streamed tool call chunks into start/resolved events"""

    _pending: Dict[int, _PendingCall] = field(default_factory=dict)
    _current: Optional[int] = None
    _next_index: int = 0

    def feed(self, chunk: Mapping[str, Any]) -> List[CompletionEvent]:
        events: List[CompletionEvent] = []
        index = chunk.get("index")
        if index is None:
            index = self._infer_index(chunk)
        self._next_index = max(self._next_index, index + 1)

        if index != self._current:
            if self._current is not None and self._current in self._pending:
                events.append(self._resolve(self._pending.pop(self._current)))
            self._current = index

        call = self._pending.get(index)
        if call is None:
            call = _PendingCall(index=index, call_id=chunk.get("id") or f"call_{index}")
            self._pending[index] = call

        if chunk.get("name"):
            call.name = chunk["name"]
        if chunk.get("args"):
            call.arguments += chunk["args"]

        if call.name and not call.announced:
            call.announced = True
            events.append(ToolInvocationStarted(call_id=call.call_id, name=call.name))

        return events

    def finish(self) -> List[CompletionEvent]:
        """Resolve every call still open, in index order"""

        events = [self._resolve(self._pending[index]) for index in sorted(self._pending)]
        self._pending.clear()
        self._current = None
        self._next_index = 0
        return events

    def _infer_index(self, chunk: Mapping[str, Any]) -> int:
        # Providers without indexes mark a new call with a fresh id or a second name
        current = self._pending.get(self._current) if self._current is not None else None
        if current is None:
            return self._next_index

        call_id = chunk.get("id")
        if call_id and call_id != current.call_id:
            return self._next_index
        if not call_id and chunk.get("name") and current.name:
            return self._next_index
        return self._current

    def _resolve(self, call: _PendingCall) -> CompletionEvent:
        return ToolInvocationResolved(call_id=call.call_id, name=call.name, arguments=call.arguments)


def to_langchain_messages(messages: List[PromptMessage]) -> List[BaseMessage]:
    """Convert prompt messages to langchain-core messages"""

    converted: List[BaseMessage] = []
    for message in messages:
        if message.role == "system":
            converted.append(SystemMessage(content=message.content))
        elif message.role == "user":
            converted.append(HumanMessage(content=message.content))
        elif message.role == "assistant":
            converted.append(AIMessage(content=message.content))
        elif message.role in ("function", "tool"):
            converted.append(FunctionMessage(content=message.content, name=message.name or ""))
        else:
            logger.debug("Skipping message the provider cannot accept", role=message.role)
    return converted


def _chunk_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            part.get("text", "") if isinstance(part, dict) else str(part)
            for part in content
            if not isinstance(part, dict) or part.get("type") == "text"
        )
    return ""


class LangChainCompletionEngine:
    """Completion engine backed by a LangChain chat model"""

    def __init__(self, chat_model: BaseChatModel):
        self.chat_model = chat_model

    async def stream(self, request: CompletionRequest) -> AsyncIterator[CompletionEvent]:
        messages = to_langchain_messages(request.messages)
        tools = [schema.to_openai_tool() for schema in request.tools]
        runnable = self.chat_model.bind_tools(tools) if tools else self.chat_model
        accumulator = ToolCallAccumulator()

        logger.info("Streaming completion", model=request.model, messages=len(messages), tools=len(tools))

        try:
            async for chunk in runnable.astream(messages):
                text = _chunk_text(chunk.content)
                if text:
                    yield TextDelta(delta=text)
                for tool_chunk in getattr(chunk, "tool_call_chunks", None) or []:
                    for event in accumulator.feed(tool_chunk):
                        yield event
        except EngineUnavailableError:
            raise
        except Exception as e:
            logger.error("Completion engine call failed", model=request.model, error=str(e))
            raise EngineUnavailableError(f"Completion engine call failed: {e}", cause=e) from e

        for event in accumulator.finish():
            yield event
        yield TurnComplete()
