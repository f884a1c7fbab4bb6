from typing import AsyncIterator, Awaitable, Callable, Dict, List, Optional
from dataclasses import dataclass, field
import asyncio
import json
import time

import structlog

from domain.errors import EngineUnavailableError
from domain.models.chat_state import Message, MessageRole, TurnLog, generate_id
from domain.models.ui_fragments import (
    BotMessageFragment, EmptyFragment, RenderEntry, SpinnerFragment, ToolPendingFragment
)
from domain.orchestration.completion.engine import (
    CompletionEngine, CompletionEvent, CompletionRequest, PromptMessage, TextDelta,
    ToolInvocationResolved, ToolInvocationStarted, TurnComplete
)
from domain.orchestration.core.prompts import SYSTEM_PROMPT
from domain.orchestration.core.session_hooks import SessionHooks
from domain.projection.ui_projector import build_tool_card
from domain.streaming.streamable import StreamableUI, StreamableValue
from domain.tool.tool_registry import ToolName, ToolRegistry
from domain.tool.tool_validator import validate_tool_arguments
from infrastructure.observability.logging import bind_turn_context, clear_turn_context, tutor_logger
from infrastructure.security.identity import Identity

logger = structlog.get_logger(__name__)


SessionConfirmer = Callable[[TurnLog, str, Optional[Identity]], Awaitable[None]]


def _mark_retrieved(task: "asyncio.Task[List[Message]]"):
    # Failures are already logged and pushed to the render handle
    if not task.cancelled():
        task.exception()


@dataclass
class TurnHandle:
    """Exchange id plus the live render handle for one turn"""
    id: str
    display: StreamableUI
    task: "asyncio.Task[List[Message]]"

    @property
    def done(self) -> bool:
        return self.task.done()

    async def wait(self) -> List[Message]:
        """Wait for the turn to terminate; returns the messages it committed"""
        # Shielded so an abandoned caller never cancels the pending commit
        return await asyncio.shield(self.task)


@dataclass
class _TurnState:
    turn_id: str
    turn_log: TurnLog
    display: StreamableUI
    text: Optional[StreamableValue] = None
    pending_tools: Dict[str, str] = field(default_factory=dict)
    committed: List[Message] = field(default_factory=list)


class DispatchEngine:
    """Drives one turn from user input through streamed model output into the turn log"""

    def __init__(
        self,
        completion_engine: CompletionEngine,
        tool_registry: ToolRegistry,
        session_hooks: Optional[SessionHooks] = None,
        model_name: str = "gpt-3.5-turbo",
        tool_settle_seconds: float = 1.0,
        system_prompt: str = SYSTEM_PROMPT,
        session_confirmer: Optional[SessionConfirmer] = None
    ):
        self.completion_engine = completion_engine
        self.tool_registry = tool_registry
        self.session_hooks = session_hooks
        self.model_name = model_name
        self.tool_settle_seconds = tool_settle_seconds
        self.system_prompt = system_prompt
        self.session_confirmer = session_confirmer
        self._session_locks: Dict[str, asyncio.Lock] = {}
        self._session_users: Dict[str, int] = {}

    async def submit_turn(
        self,
        turn_log: TurnLog,
        user_text: str,
        identity: Optional[Identity] = None
    ) -> TurnHandle:
        """Commit the user's message and start streaming the model's answer"""

        if not user_text or not user_text.strip():
            raise ValueError("Empty message content")

        turn_id = generate_id()
        await self._acquire_session(turn_log.chat_id)

        bind_turn_context(turn_log.chat_id, turn_id)
        try:
            try:
                self._commit(turn_log, Message(role=MessageRole.USER, content=user_text))
                tutor_logger.log_turn_event("turn_started", turn_log.chat_id, turn_id, identity=bool(identity))

                events = self._open_stream(self.build_request(turn_log))
                first_event = await self._next_event(events)
            except EngineUnavailableError as e:
                tutor_logger.log_turn_event("engine_unavailable", turn_log.chat_id, turn_id, error=str(e))
                try:
                    await self._persist(turn_log, identity)
                finally:
                    self._release_session(turn_log.chat_id)
                raise
            except BaseException:
                self._release_session(turn_log.chat_id)
                raise

            display = StreamableUI(SpinnerFragment())
            state = _TurnState(turn_id=turn_id, turn_log=turn_log, display=display)
            task = asyncio.create_task(self._drive_turn(state, events, first_event, identity))
            task.add_done_callback(_mark_retrieved)
            return TurnHandle(id=turn_id, display=display, task=task)
        finally:
            clear_turn_context()

    def build_request(self, turn_log: TurnLog) -> CompletionRequest:
        """Instruction context: system prompt followed by the whole log"""

        messages = [PromptMessage(role=MessageRole.SYSTEM.value, content=self.system_prompt)]
        messages.extend(
            PromptMessage(role=message.role.value, content=message.content, name=message.name)
            for message in turn_log.messages
        )
        return CompletionRequest(
            model=self.model_name,
            messages=messages,
            tools=self.tool_registry.list_tools()
        )

    async def get_ui_state(self, turn_log: TurnLog, identity: Optional[Identity]) -> Optional[List[RenderEntry]]:
        """UI state for a reloaded session"""

        if self.session_hooks is None:
            return None
        return await self.session_hooks.get_ui_state(turn_log, identity)

    async def confirm_session(
        self,
        turn_log: TurnLog,
        student_name: str,
        identity: Optional[Identity] = None
    ) -> None:
        """Extension point for confirming a pending session before further turns"""

        await self._acquire_session(turn_log.chat_id)
        try:
            if self.session_confirmer is None:
                logger.info("No session confirmer configured", chat_id=turn_log.chat_id, student=student_name)
                return None
            await self.session_confirmer(turn_log, student_name, identity)
        finally:
            self._release_session(turn_log.chat_id)

    async def _drive_turn(
        self,
        state: _TurnState,
        events: AsyncIterator[CompletionEvent],
        first_event: Optional[CompletionEvent],
        identity: Optional[Identity]
    ) -> List[Message]:
        chat_id = state.turn_log.chat_id
        try:
            event = first_event
            while event is not None and not isinstance(event, TurnComplete):
                await self._handle_event(state, event)
                event = await self._next_event(events)

            self._finish_text(state)
            if state.pending_tools:
                logger.warning("Tool invocations never resolved", tools=sorted(state.pending_tools.values()))
                state.pending_tools.clear()
            if isinstance(state.display.value, (SpinnerFragment, ToolPendingFragment)):
                state.display.complete(EmptyFragment())
            else:
                state.display.complete()

            tutor_logger.log_turn_event(
                "turn_completed", chat_id, state.turn_id, committed=len(state.committed)
            )
            return state.committed

        except (Exception, asyncio.CancelledError) as e:
            self._abort_text(state, e)
            if not state.display.done:
                state.display.fail(e)
            tutor_logger.log_turn_event(
                "turn_failed", chat_id, state.turn_id,
                error=str(e), error_type=type(e).__name__, committed=len(state.committed)
            )
            raise

        finally:
            try:
                aclose = getattr(events, "aclose", None)
                if aclose is not None:
                    await aclose()
                await self._persist(state.turn_log, identity)
            finally:
                self._release_session(chat_id)

    async def _handle_event(self, state: _TurnState, event: CompletionEvent):
        if isinstance(event, TextDelta):
            if state.text is None:
                state.text = StreamableValue()
                state.display.update(BotMessageFragment(stream=state.text))
            state.text.append(event.delta)

        elif isinstance(event, ToolInvocationStarted):
            self._finish_text(state)
            state.pending_tools[event.call_id] = event.name
            state.display.update(ToolPendingFragment(tool=event.name))

        elif isinstance(event, ToolInvocationResolved):
            self._finish_text(state)
            if event.call_id not in state.pending_tools:
                state.display.update(ToolPendingFragment(tool=event.name))
            await self._resolve_tool(state, event)
            state.pending_tools.pop(event.call_id, None)

        else:
            logger.warning("Ignoring unknown completion event", event_type=type(event).__name__)

    async def _resolve_tool(self, state: _TurnState, event: ToolInvocationResolved):
        chat_id = state.turn_log.chat_id
        started = time.monotonic()

        try:
            arguments = validate_tool_arguments(self.tool_registry, event.name, event.arguments)
        except Exception as e:
            tutor_logger.log_tool_invocation(event.name, chat_id, success=False, error=str(e))
            raise

        # The tool is "working" while the pending card is shown
        if self.tool_settle_seconds > 0:
            await asyncio.sleep(self.tool_settle_seconds)

        payload = arguments.model_dump()
        tool_name = ToolName(event.name)
        self._commit(
            state.turn_log,
            Message(role=MessageRole.FUNCTION, name=tool_name.value, content=json.dumps(payload)),
            state
        )
        state.display.update(build_tool_card(tool_name, arguments))

        tutor_logger.log_tool_invocation(
            tool_name.value, chat_id, arguments=payload,
            duration_ms=(time.monotonic() - started) * 1000
        )

    def _finish_text(self, state: _TurnState):
        """Seal the open text run and commit it as an assistant message"""

        if state.text is None:
            return
        text, state.text = state.text, None
        text.complete()
        self._commit(state.turn_log, Message(role=MessageRole.ASSISTANT, content=text.value), state)

    def _abort_text(self, state: _TurnState, error: BaseException):
        if state.text is None:
            return
        text, state.text = state.text, None
        if not text.done:
            text.fail(error)

    def _commit(self, turn_log: TurnLog, message: Message, state: Optional[_TurnState] = None) -> Message:
        turn_log.append(message)
        if state is not None:
            state.committed.append(message)
        tutor_logger.log_session_update(
            turn_log.chat_id, f"{message.role.value}_message", len(turn_log.messages),
            details={"message_id": message.id, "name": message.name}
        )
        return message

    def _open_stream(self, request: CompletionRequest) -> AsyncIterator[CompletionEvent]:
        try:
            return self.completion_engine.stream(request).__aiter__()
        except EngineUnavailableError:
            raise
        except Exception as e:
            raise EngineUnavailableError(f"Completion engine call failed: {e}", cause=e) from e

    async def _next_event(self, events: AsyncIterator[CompletionEvent]) -> Optional[CompletionEvent]:
        try:
            return await events.__anext__()
        except StopAsyncIteration:
            return None
        except EngineUnavailableError:
            raise
        except Exception as e:
            raise EngineUnavailableError(f"Completion engine call failed: {e}", cause=e) from e

    async def _acquire_session(self, chat_id: str) -> asyncio.Lock:
        """Wait for the session lock; the entry lives while anyone holds or awaits it"""

        lock = self._session_locks.get(chat_id)
        if lock is None:
            lock = self._session_locks[chat_id] = asyncio.Lock()
        self._session_users[chat_id] = self._session_users.get(chat_id, 0) + 1
        try:
            await lock.acquire()
        except BaseException:
            self._forget_session(chat_id)
            raise
        return lock

    def _release_session(self, chat_id: str):
        self._session_locks[chat_id].release()
        self._forget_session(chat_id)

    def _forget_session(self, chat_id: str):
        remaining = self._session_users[chat_id] - 1
        if remaining:
            self._session_users[chat_id] = remaining
        else:
            del self._session_users[chat_id]
            del self._session_locks[chat_id]

    async def _persist(self, turn_log: TurnLog, identity: Optional[Identity]):
        if self.session_hooks is None:
            return
        await self.session_hooks.set_ai_state(turn_log, identity)
