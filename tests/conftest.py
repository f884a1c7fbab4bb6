from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Callable

import pytest

from domain.context.state.session_store import InMemorySessionStore
from domain.orchestration.completion.engine import CompletionRequest
from domain.orchestration.core.dispatch_engine import DispatchEngine
from domain.orchestration.core.session_hooks import SessionHooks
from domain.tool.tool_registry import ToolRegistry, default_tool_registry


class Pause:
    """Script step that sleeps before the next event."""

    def __init__(self, seconds: float) -> None:
        self.seconds = seconds


class ScriptedCompletionEngine:
    """Completion engine that replays scripted events.

    A script is a list of events; exceptions in it are raised at that point and
    Pause steps suspend. `script_for` picks a script per request, otherwise
    scripts are consumed in call order.
    """

    def __init__(self, *scripts: list[Any], script_for: Callable[[CompletionRequest], list[Any]] | None = None) -> None:
        self.scripts = list(scripts)
        self.script_for = script_for
        self.requests: list[CompletionRequest] = []

    async def stream(self, request: CompletionRequest) -> AsyncIterator[Any]:
        self.requests.append(request)
        script = self.script_for(request) if self.script_for else self.scripts.pop(0)
        for step in script:
            if isinstance(step, BaseException):
                raise step
            if isinstance(step, Pause):
                await asyncio.sleep(step.seconds)
                continue
            yield step


@pytest.fixture
def registry() -> ToolRegistry:
    return default_tool_registry()


@pytest.fixture
def session_store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def session_hooks(session_store: InMemorySessionStore) -> SessionHooks:
    return SessionHooks(session_store)


@pytest.fixture
def make_engine(registry: ToolRegistry, session_hooks: SessionHooks) -> Callable[..., DispatchEngine]:
    def _make(completion_engine: ScriptedCompletionEngine, **kwargs: Any) -> DispatchEngine:
        kwargs.setdefault("tool_settle_seconds", 0)
        kwargs.setdefault("session_hooks", session_hooks)
        return DispatchEngine(completion_engine, registry, **kwargs)

    return _make
