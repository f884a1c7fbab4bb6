from typing import Annotated, Any, Dict, List
from fastapi import APIRouter, Depends, HTTPException
from datetime import datetime, timedelta

from application.api.dependencies import get_session_store, require_identity
from domain.context.state.session_store import SessionStore
from domain.models.chat_state import generate_id
from domain.projection.ui_projector import project
from infrastructure.security.identity import Identity

router = APIRouter(prefix="/api/v1")

SESSION_TTL_SECONDS = 3600


@router.post("/chat/session/create")
async def create_session() -> Dict[str, Any]:
    """Allocate a chat id and the WebSocket URL to talk to it"""

    chat_id = generate_id()
    return {
        "chat_id": chat_id,
        "websocket_url": f"/ws/tutor/{chat_id}",
        "expires_at": (datetime.utcnow() + timedelta(seconds=SESSION_TTL_SECONDS)).isoformat()
    }


@router.get("/chats")
async def list_chats(
    identity: Annotated[Identity, Depends(require_identity)],
    session_store: Annotated[SessionStore, Depends(get_session_store)]
) -> List[Dict[str, Any]]:
    chats = await session_store.get_chats(identity.user_id)
    return [chat.get_summary() for chat in chats]


@router.get("/chat/{chat_id}")
async def get_chat(
    chat_id: str,
    identity: Annotated[Identity, Depends(require_identity)],
    session_store: Annotated[SessionStore, Depends(get_session_store)]
) -> Dict[str, Any]:
    """Stored chat plus its projected UI state"""

    chat = await session_store.get_chat(chat_id, identity.user_id)
    if chat is None:
        raise HTTPException(status_code=404, detail="Chat not found")

    return {
        "chat": chat.get_summary(),
        "ui_state": [entry.model_dump(mode="json") for entry in project(chat.to_turn_log())]
    }


@router.delete("/chat/{chat_id}")
async def delete_chat(
    chat_id: str,
    identity: Annotated[Identity, Depends(require_identity)],
    session_store: Annotated[SessionStore, Depends(get_session_store)]
) -> Dict[str, Any]:
    removed = await session_store.remove_chat(chat_id, identity.user_id)
    if not removed:
        raise HTTPException(status_code=404, detail="Chat not found")
    return {"removed": chat_id}
