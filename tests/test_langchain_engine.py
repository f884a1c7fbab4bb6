from typing import Any, List

import pytest
from langchain_core.messages import AIMessageChunk, FunctionMessage, HumanMessage, SystemMessage

from domain.errors import EngineUnavailableError
from domain.orchestration.completion.engine import (
    CompletionRequest, PromptMessage, TextDelta, ToolInvocationResolved,
    ToolInvocationStarted, TurnComplete
)
from domain.orchestration.completion.langchain_engine import (
    LangChainCompletionEngine, ToolCallAccumulator, to_langchain_messages
)
from domain.tool.tool_registry import default_tool_registry


class FakeChatModel:
    """Streams canned chunks and records what it was bound and called with"""

    def __init__(self, chunks: List[Any], error: Exception = None) -> None:
        self.chunks = chunks
        self.error = error
        self.bound_tools: List[dict] = []
        self.received: List[Any] = []

    def bind_tools(self, tools):
        self.bound_tools = list(tools)
        return self

    async def astream(self, messages):
        self.received = list(messages)
        for chunk in self.chunks:
            yield chunk
        if self.error is not None:
            raise self.error


def _request(tools: bool = True) -> CompletionRequest:
    return CompletionRequest(
        model="gpt-3.5-turbo",
        messages=[
            PromptMessage(role="system", content="You are a tutor"),
            PromptMessage(role="user", content="What are fractions?"),
        ],
        tools=default_tool_registry().list_tools() if tools else [],
    )


async def _collect(engine: LangChainCompletionEngine, request: CompletionRequest) -> list:
    return [event async for event in engine.stream(request)]


def test_accumulator_joins_argument_fragments() -> None:
    accumulator = ToolCallAccumulator()

    started = accumulator.feed({"index": 0, "id": "call_a", "name": "provideExplanation", "args": ""})
    assert started == [ToolInvocationStarted(call_id="call_a", name="provideExplanation")]
    assert accumulator.feed({"index": 0, "args": '{"topic": '}) == []
    assert accumulator.feed({"index": 0, "args": '"fractions"}'}) == []

    assert accumulator.finish() == [
        ToolInvocationResolved(call_id="call_a", name="provideExplanation", arguments='{"topic": "fractions"}')
    ]


def test_accumulator_resolves_previous_call_when_index_advances() -> None:
    accumulator = ToolCallAccumulator()
    accumulator.feed({"index": 0, "id": "call_a", "name": "askQuestion", "args": '{"question": "why?"}'})

    events = accumulator.feed({"index": 1, "name": "recommendResources", "args": ""})

    assert events == [
        ToolInvocationResolved(call_id="call_a", name="askQuestion", arguments='{"question": "why?"}'),
        ToolInvocationStarted(call_id="call_1", name="recommendResources"),
    ]


def test_accumulator_keeps_calls_without_index_apart() -> None:
    accumulator = ToolCallAccumulator()
    calls = [
        ("call_a", "askQuestion", '{"question": "q"}'),
        ("call_b", "provideExplanation", '{"topic": "t"}'),
        ("call_c", "recommendResources", '{"topic": "r"}'),
    ]

    events = []
    for call_id, name, arguments in calls:
        events += accumulator.feed({"index": None, "id": call_id, "name": name, "args": ""})
        events += accumulator.feed({"index": None, "id": None, "name": None, "args": arguments})
    events += accumulator.finish()

    resolved = [event for event in events if isinstance(event, ToolInvocationResolved)]
    assert [(event.call_id, event.name, event.arguments) for event in resolved] == calls


def test_message_conversion() -> None:
    converted = to_langchain_messages([
        PromptMessage(role="system", content="be nice"),
        PromptMessage(role="user", content="hi"),
        PromptMessage(role="function", name="provideExplanation", content='{"topic": "x"}'),
        PromptMessage(role="data", content="ignored"),
    ])

    assert isinstance(converted[0], SystemMessage)
    assert isinstance(converted[1], HumanMessage)
    assert isinstance(converted[2], FunctionMessage)
    assert converted[2].name == "provideExplanation"
    assert len(converted) == 3


@pytest.mark.asyncio
async def test_stream_maps_text_chunks() -> None:
    model = FakeChatModel([AIMessageChunk(content="Fractions "), AIMessageChunk(content="are parts.")])
    engine = LangChainCompletionEngine(model)

    events = await _collect(engine, _request())

    assert events == [TextDelta(delta="Fractions "), TextDelta(delta="are parts."), TurnComplete()]
    assert [tool["function"]["name"] for tool in model.bound_tools] == default_tool_registry().names()
    assert isinstance(model.received[0], SystemMessage)


@pytest.mark.asyncio
async def test_stream_maps_tool_call_chunks() -> None:
    model = FakeChatModel([
        AIMessageChunk(content="", tool_call_chunks=[
            {"index": 0, "id": "call_a", "name": "provideExplanation", "args": '{"topic"'}
        ]),
        AIMessageChunk(content="", tool_call_chunks=[
            {"index": 0, "id": None, "name": None, "args": ': "fractions"}'}
        ]),
    ])
    engine = LangChainCompletionEngine(model)

    events = await _collect(engine, _request())

    assert events == [
        ToolInvocationStarted(call_id="call_a", name="provideExplanation"),
        ToolInvocationResolved(call_id="call_a", name="provideExplanation", arguments='{"topic": "fractions"}'),
        TurnComplete(),
    ]


@pytest.mark.asyncio
async def test_stream_without_tools_skips_binding() -> None:
    model = FakeChatModel([AIMessageChunk(content="hi")])
    engine = LangChainCompletionEngine(model)

    await _collect(engine, _request(tools=False))

    assert model.bound_tools == []


@pytest.mark.asyncio
async def test_provider_errors_are_wrapped() -> None:
    model = FakeChatModel([AIMessageChunk(content="partial")], error=TimeoutError("read timed out"))
    engine = LangChainCompletionEngine(model)

    with pytest.raises(EngineUnavailableError) as exc_info:
        await _collect(engine, _request())

    assert isinstance(exc_info.value.cause, TimeoutError)
