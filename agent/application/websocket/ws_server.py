from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from typing import Any, Dict, Optional
import asyncio
from datetime import datetime
from pydantic import ValidationError
import structlog

from .connection_manager import ConnectionManager
from .session_registry import SessionRegistry
from .schema.events import (
    ConfirmSession, EventType, UIStateEvent, UserMessage
)
from application.api.route.chat import router as chat_router
from domain.context.state.session_store import InMemorySessionStore
from domain.errors import EngineUnavailableError
from domain.models.chat_state import TurnLog
from domain.orchestration.completion.langchain_engine import LangChainCompletionEngine
from domain.orchestration.core.dispatch_engine import DispatchEngine
from domain.orchestration.core.session_hooks import SessionHooks
from domain.streaming.streaming_handler import StreamingHandler
from domain.tool.tool_registry import default_tool_registry
from infrastructure.config.settings import TutorSettings, get_settings
from infrastructure.llm.chat_model import create_chat_model
from infrastructure.observability.logging import setup_logging
from infrastructure.security.identity import Identity, StaticTokenIdentityProvider

settings = get_settings()

setup_logging(settings.log_level, settings.log_format, settings.service_name)
logger = structlog.get_logger(__name__)

app = FastAPI(title="Tutor Agent WebSocket Server")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

connection_manager = ConnectionManager()
streaming_handler = StreamingHandler(connection_manager)
session_store = InMemorySessionStore()
session_hooks = SessionHooks(session_store)
session_registry = SessionRegistry()
identity_provider = StaticTokenIdentityProvider(settings.api_tokens)

# Built on startup unless already provided
dispatch_engine: Optional[DispatchEngine] = None
_background_tasks: Dict[str, asyncio.Task] = {}

app.state.session_store = session_store
app.state.identity_provider = identity_provider
app.include_router(chat_router)


def build_dispatch_engine(settings: TutorSettings) -> DispatchEngine:
    """Wire the dispatch engine against the configured chat model"""

    return DispatchEngine(
        completion_engine=LangChainCompletionEngine(create_chat_model(settings)),
        tool_registry=default_tool_registry(),
        session_hooks=session_hooks,
        model_name=settings.model_name,
        tool_settle_seconds=settings.tool_settle_seconds
    )


@app.on_event("startup")
async def startup_event():
    """Initialize the dispatch engine and start background tasks"""
    global dispatch_engine

    if dispatch_engine is None:
        dispatch_engine = build_dispatch_engine(settings)

    _background_tasks["health_check"] = asyncio.create_task(connection_manager.health_check())

    logger.info("WebSocket server started", model=dispatch_engine.model_name)


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown"""
    for task in _background_tasks.values():
        task.cancel()
    _background_tasks.clear()

    sessions = list(connection_manager.active_connections.keys())
    for session_id in sessions:
        await connection_manager.disconnect(session_id)

    logger.info("WebSocket server shutdown")


def _event_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    """Incoming event fields; the type tag is implied by the model"""
    return {key: value for key, value in data.items() if key != "type"}


async def load_session(chat_id: str, identity: Optional[Identity]) -> TurnLog:
    """Stored turn log for the user, or a fresh log for this chat id"""

    turn_log = await session_hooks.load_turn_log(chat_id, identity)
    if turn_log is None:
        turn_log = TurnLog(chat_id=chat_id)
    return turn_log


@app.websocket("/ws/tutor/{chat_id}")
async def tutor_websocket(
    websocket: WebSocket,
    chat_id: str,
    token: Optional[str] = None,
):
    """Main WebSocket endpoint for tutor interaction"""

    identity = await identity_provider.authenticate(token)
    if token and identity is None:
        await websocket.close(code=1008, reason="Invalid token")
        return

    session_key = (chat_id, identity.user_id if identity else None)
    turn_log = await session_registry.open(session_key, lambda: load_session(chat_id, identity))

    try:
        await connection_manager.connect(websocket, chat_id, identity.user_id if identity else None)

        ui_state = await dispatch_engine.get_ui_state(turn_log, identity) or []
        await connection_manager.send_event(
            chat_id,
            UIStateEvent(
                chat_id=chat_id,
                entries=[entry.model_dump(mode="json") for entry in ui_state]
            )
        )

        while True:
            data = await websocket.receive_json()

            try:
                event_type = data.get("type")

                if event_type == EventType.USER_MESSAGE:
                    user_message = UserMessage(**_event_fields(data))
                    await process_user_message(chat_id, turn_log, user_message, identity)

                elif event_type == EventType.CONFIRM_SESSION:
                    request = ConfirmSession(**_event_fields(data))
                    await dispatch_engine.confirm_session(turn_log, request.student_name, identity)
                    await streaming_handler.send_progress(chat_id, "session_confirmed")

                else:
                    await connection_manager.send_error(
                        chat_id, f"Unsupported event type: {event_type}", error_code="unsupported_event"
                    )

            except ValidationError as e:
                await connection_manager.send_error(chat_id, f"Invalid event: {e}", error_code="invalid_event")
            except Exception as e:
                logger.error("Error processing message", error=str(e), session_id=chat_id)
                await connection_manager.send_error(
                    chat_id,
                    f"Error processing message: {str(e)}"
                )

    except WebSocketDisconnect:
        logger.info("Client disconnected", session_id=chat_id)
    except Exception as e:
        logger.error("WebSocket error", error=str(e), session_id=chat_id)
    finally:
        session_registry.close(session_key)
        await connection_manager.disconnect(chat_id, websocket)


async def process_user_message(
    chat_id: str,
    turn_log: TurnLog,
    message: UserMessage,
    identity: Optional[Identity]
):
    """Run one turn and stream it to the client"""

    try:
        handle = await dispatch_engine.submit_turn(turn_log, message.content, identity)
    except EngineUnavailableError as e:
        logger.error("Completion engine unavailable", error=str(e), session_id=chat_id)
        await connection_manager.send_error(chat_id, str(e), error_code=type(e).__name__)
        return
    except ValueError as e:
        await connection_manager.send_error(chat_id, str(e), error_code="invalid_message")
        return

    await streaming_handler.stream_turn(chat_id, handle)


@app.get("/health")
async def health_check() -> Dict[str, Any]:
    """Health check endpoint"""
    return {
        "status": "healthy",
        "active_connections": len(connection_manager.active_connections),
        "timestamp": datetime.utcnow().isoformat()
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
